"""AI code review over an OpenAI-compatible proxy, grounded by repository tools."""

from reviewpilot.codebase import review_codebase
from reviewpilot.config import Config, configure_logging
from reviewpilot.llm import ChatClient
from reviewpilot.models import Bug, DiffReviewRequest, ReviewResult
from reviewpilot.review import generate_fix_diff, review_diff

__version__ = "0.1.0"

__all__ = [
    "Bug",
    "ChatClient",
    "Config",
    "DiffReviewRequest",
    "ReviewResult",
    "configure_logging",
    "generate_fix_diff",
    "review_codebase",
    "review_diff",
]

"""Diff review: conversation driver, prompts and entry points."""

from reviewpilot.review.driver import ConversationDriver, request_structured, wrap_tool_output
from reviewpilot.review.reviewer import generate_fix_diff, review_diff, with_proxy_recovery

__all__ = [
    "ConversationDriver",
    "generate_fix_diff",
    "request_structured",
    "review_diff",
    "with_proxy_recovery",
    "wrap_tool_output",
]

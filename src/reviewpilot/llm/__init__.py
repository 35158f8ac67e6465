"""LLM subsystem.

Provides:
- send(): retrying HTTP transport
- ChatClient for OpenAI-compatible chat-completion proxies
- Bug normalizer for the model's final report
- ReviewError classes for structured error handling
"""

from reviewpilot.llm.base import (
    ChatResponse,
    Message,
    ToolCall,
    # Error classes
    ReviewError,
    TransportError,
    RequestCancelledError,
    ProtocolError,
    BudgetExceededError,
    ToolExecutionError,
    NoChangesError,
)
from reviewpilot.llm.client import ChatClient, ProxySupervisor
from reviewpilot.llm.parser import normalize_bugs
from reviewpilot.llm.transport import RequestSpec, send

__all__ = [
    # Core classes
    "ChatClient",
    "ChatResponse",
    "Message",
    "ProxySupervisor",
    "RequestSpec",
    "ToolCall",
    "normalize_bugs",
    "send",
    # Errors
    "ReviewError",
    "TransportError",
    "RequestCancelledError",
    "ProtocolError",
    "BudgetExceededError",
    "ToolExecutionError",
    "NoChangesError",
]

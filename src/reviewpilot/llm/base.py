"""Chat protocol types and the review error family."""

import json
from dataclasses import dataclass, field
from typing import Any, Optional


PREVIEW_CHARS = 400


# =============================================================================
# Error Classes - every failure a review can surface
# =============================================================================

class ReviewError(Exception):
    """Base exception for review errors."""

    def __init__(self, message: str, suggestion: str = ""):
        self.message = message
        self.suggestion = suggestion
        super().__init__(self.format_message())

    def format_message(self) -> str:
        parts = [self.message]
        if self.suggestion:
            parts.append(f"\n  Suggestion: {self.suggestion}")
        return "".join(parts)


class TransportError(ReviewError):
    """HTTP call failed after exhausting retries."""

    def __init__(self, message: str, hint: str = "", status_code: Optional[int] = None):
        super().__init__(message, suggestion=hint)
        self.hint = hint
        self.status_code = status_code


class RequestCancelledError(TransportError):
    """The caller cancelled an in-flight request."""

    def __init__(self):
        super().__init__("Request cancelled by caller")


class ProtocolError(ReviewError):
    """The model's response did not have the expected shape."""

    def __init__(self, message: str, preview: str = ""):
        self.preview = preview[:PREVIEW_CHARS]
        if preview:
            message = f"{message}. Content preview: {json.dumps(self.preview)}"
        super().__init__(
            message,
            suggestion="The model may not support tool calling - try another model",
        )


class BudgetExceededError(ReviewError):
    """The model used every tool call without producing a report."""

    def __init__(self, max_tool_calls: int):
        super().__init__(
            f"AI used {max_tool_calls} tool calls without producing a final review report",
            suggestion="Raise tools.max_tool_calls or disable tools for this review",
        )
        self.max_tool_calls = max_tool_calls


class ToolExecutionError(ReviewError):
    """A single tool failed. Always recovered into a failed ToolResult."""

    def __init__(self, tool: str, details: str):
        super().__init__(f"Tool '{tool}' failed: {details}")
        self.tool = tool


class NoChangesError(ReviewError):
    """The diff to review is empty."""

    def __init__(self):
        super().__init__("No changes to review", suggestion="Stage or commit some changes first")


# =============================================================================
# Conversation types
# =============================================================================

@dataclass
class ToolCall:
    """A tool call from the model, arguments kept as the raw JSON string."""
    id: str
    name: str
    arguments: str = "{}"

    def parse_arguments(self) -> dict:
        """Decode the arguments.

        Raises:
            ValueError: If the arguments are not a JSON object.
        """
        parsed = json.loads(self.arguments or "{}")
        if not isinstance(parsed, dict):
            raise ValueError("arguments must be a JSON object")
        return parsed

    def to_payload(self) -> dict:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }


@dataclass
class Message:
    """A chat message."""
    role: str  # "system", "user", "assistant", "tool"
    content: Optional[str] = None
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_call_id: Optional[str] = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"role": self.role}
        if self.content is not None or not self.tool_calls:
            payload["content"] = self.content
        if self.tool_calls:
            payload["tool_calls"] = [tc.to_payload() for tc in self.tool_calls]
        if self.tool_call_id is not None:
            payload["tool_call_id"] = self.tool_call_id
        return payload


@dataclass
class ChatResponse:
    """One model turn."""
    content: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    finish_reason: Optional[str] = None

    @property
    def has_tool_calls(self) -> bool:
        """Check if response contains tool calls."""
        return len(self.tool_calls) > 0

    def find_tool_call(self, name: str) -> Optional[ToolCall]:
        return next((tc for tc in self.tool_calls if tc.name == name), None)

"""Tool base class with LLM schema support."""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from reviewpilot.config import ToolsConfig
from reviewpilot.git import GitRepo
from reviewpilot.workspace import Workspace, WorkspaceError


@dataclass
class ToolResult:
    """Result of a tool execution.

    Attributes:
        success: Whether the tool succeeded.
        data: JSON-serializable payload for the model.
        error: Error message if failed.
    """
    success: bool
    data: Any = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, data: Any = None, error: Optional[str] = None) -> "ToolResult":
        """Create a successful result."""
        return cls(success=True, data=data, error=error)

    @classmethod
    def fail(cls, error: str) -> "ToolResult":
        """Create a failed result."""
        return cls(success=False, error=error)

    def to_dict(self) -> dict:
        result: dict[str, Any] = {"success": self.success}
        if self.data is not None:
            result["data"] = self.data
        if self.error:
            result["error"] = self.error
        return result

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, default=str)


class Tool(ABC):
    """Base class for the sandboxed review tools.

    To create a new tool:
    1. Subclass Tool
    2. Set name and description
    3. Implement execute() and get_schema()
    4. Add it to the registry's default tool list

    ``execute`` must validate its arguments before touching the repository and
    report every failure as ``ToolResult.fail``.
    """

    name: str = "base"
    description: str = "Base tool"

    def __init__(self, workspace: Workspace, config: Optional[ToolsConfig] = None):
        self.workspace = workspace
        self.config = config or ToolsConfig()

    @property
    def root(self) -> Path:
        return self.workspace.root

    def _resolve_path(self, path: str) -> Path:
        """Resolve path within the repository.

        Raises:
            ValueError: If path is outside the repository.
        """
        try:
            return self.workspace.resolve_path(path)
        except WorkspaceError as e:
            raise ValueError(str(e))

    @abstractmethod
    async def execute(self, **kwargs) -> ToolResult:
        """Execute the tool with given arguments.

        Args:
            **kwargs: Tool-specific arguments, already decoded from JSON.

        Returns:
            ToolResult with success status and data/error.
        """
        pass

    @abstractmethod
    def get_schema(self) -> dict:
        """Return JSON schema for LLM function calling.

        Returns:
            Dict with ``properties`` and ``required``.
        """
        pass

    def to_openai_tool(self) -> dict:
        """Convert to OpenAI function format."""
        schema = self.get_schema()
        parameters: dict[str, Any] = {
            "type": "object",
            "properties": schema.get("properties", {}),
        }
        if schema.get("required"):
            parameters["required"] = schema["required"]
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": parameters,
            },
        }


class GitTool(Tool):
    """Base for tools that shell out to git."""

    @property
    def git(self) -> GitRepo:
        return GitRepo(self.root)

    def _path_error(self, path: str) -> Optional[str]:
        """Validate a model-supplied path for a git argument list."""
        if not self.workspace.is_within_bounds(path):
            return "File path is outside the repository"
        if contains_shell_metachars(path):
            return "Invalid characters in file path"
        return None


def contains_shell_metachars(value: str) -> bool:
    """Characters that could smuggle extra commands or options into a spawn."""
    return any(c in _SHELL_METACHARS for c in value)


_SHELL_METACHARS = frozenset(";&|`$(){}[]<>\\!*?\"'\n\r")


def optional_int(value: Any) -> Optional[int]:
    """Loosely typed number from the model, or None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return None

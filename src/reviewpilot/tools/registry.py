"""Tool registry and call dispatch."""

import json
import logging
from typing import Optional, Type

from reviewpilot.config import ToolsConfig
from reviewpilot.llm.base import ToolCall, ToolExecutionError
from reviewpilot.tools.base import Tool, ToolResult
from reviewpilot.workspace import Workspace


logger = logging.getLogger(__name__)


class ToolRegistry:
    """Registry of the tools a review may call."""

    def __init__(self, workspace: Workspace, config: Optional[ToolsConfig] = None):
        self._tools: dict[str, Tool] = {}
        self._workspace = workspace
        self._config = config or ToolsConfig()

    @classmethod
    def default(cls, workspace: Workspace, config: Optional[ToolsConfig] = None) -> "ToolRegistry":
        """Registry holding all seven grounding tools."""
        from reviewpilot.tools import DEFAULT_TOOLS

        registry = cls(workspace, config)
        for tool_class in DEFAULT_TOOLS:
            registry.register(tool_class)
        return registry

    def register(self, tool_class: Type[Tool]) -> Tool:
        """Register a tool class and instantiate it.

        Args:
            tool_class: The Tool subclass to register.

        Returns:
            The instantiated tool.
        """
        tool = tool_class(workspace=self._workspace, config=self._config)
        self._tools[tool.name] = tool
        return tool

    def register_instance(self, tool: Tool) -> None:
        """Register an already instantiated tool."""
        self._tools[tool.name] = tool

    def get(self, name: str) -> Tool:
        """Get a tool by name.

        Raises:
            KeyError: If tool not found.
        """
        if name not in self._tools:
            raise KeyError(f"Unknown tool: {name}")
        return self._tools[name]

    def has(self, name: str) -> bool:
        """Check if a tool is registered."""
        return name in self._tools

    def list_tools(self) -> list[str]:
        """List all registered tool names."""
        return list(self._tools.keys())

    def get_openai_tools(self) -> list[dict]:
        """Get all tools in OpenAI format."""
        return [tool.to_openai_tool() for tool in self._tools.values()]

    async def dispatch(self, call: ToolCall) -> ToolResult:
        """Run one model tool call.

        Never raises: bad JSON, unknown tools and tool crashes all come back as
        failed results the model can read.
        """
        try:
            arguments = call.parse_arguments()
        except (json.JSONDecodeError, ValueError) as e:
            logger.warning("Tool %s called with malformed arguments: %s", call.name, e)
            return ToolResult.fail(f"Invalid JSON arguments for {call.name}: {e}")

        if not self.has(call.name):
            logger.warning("Model called unknown tool: %s", call.name)
            return ToolResult.fail(
                f"Unknown tool: {call.name}. Available: {', '.join(self.list_tools())}"
            )

        tool = self._tools[call.name]
        try:
            result = await tool.execute(**arguments)
        except TypeError as e:
            error = ToolExecutionError(call.name, f"invalid arguments ({e})")
            logger.warning("%s", error)
            return ToolResult.fail(str(error))
        except Exception as e:
            error = ToolExecutionError(call.name, f"{e.__class__.__name__}: {e}")
            logger.warning("%s", error)
            return ToolResult.fail(str(error))

        if not result.success:
            logger.warning("Tool %s failed: %s", call.name, result.error)
        else:
            logger.debug("Tool %s succeeded", call.name)
        return result

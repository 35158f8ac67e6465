"""Sandboxed repository tools.

Provides:
- ToolRegistry with dispatch
- Tool base class
- The seven grounding tools: search_repo, read_file, run_check,
  git_blame, git_log, git_show, dep_report

Adding a new tool:
1. Create tools/mytool.py
2. Subclass Tool, implement execute() and get_schema()
3. Add it to DEFAULT_TOOLS
"""

from reviewpilot.tools.base import Tool, ToolResult
from reviewpilot.tools.dep_report import DepReportTool
from reviewpilot.tools.git_blame import GitBlameTool
from reviewpilot.tools.git_log import GitLogTool
from reviewpilot.tools.git_show import GitShowTool
from reviewpilot.tools.read_file import ReadFileTool
from reviewpilot.tools.registry import ToolRegistry
from reviewpilot.tools.run_check import RunCheckTool
from reviewpilot.tools.search_repo import SearchRepoTool

DEFAULT_TOOLS = (
    SearchRepoTool,
    ReadFileTool,
    RunCheckTool,
    GitBlameTool,
    GitLogTool,
    GitShowTool,
    DepReportTool,
)

__all__ = [
    "Tool",
    "ToolResult",
    "ToolRegistry",
    "DEFAULT_TOOLS",
    "SearchRepoTool",
    "ReadFileTool",
    "RunCheckTool",
    "GitBlameTool",
    "GitLogTool",
    "GitShowTool",
    "DepReportTool",
]

"""Single commit details via git show."""

import re

from reviewpilot.git import GitError
from reviewpilot.process import MAX_OUTPUT_CHARS, truncate_output
from reviewpilot.tools.base import GitTool, ToolResult, contains_shell_metachars
from reviewpilot.tools.git_log import LOG_FORMAT, parse_log_line


# Hex hash, HEAD with one ~N/^N suffix, or a branch name
VALID_REV = re.compile(r"^(?:[a-f0-9]{4,40}|HEAD(?:[~^]\d+)?|[a-zA-Z][a-zA-Z0-9_\-/]*)$")


def is_valid_rev(rev: str) -> bool:
    return bool(VALID_REV.match(rev)) and not contains_shell_metachars(rev)


class GitShowTool(GitTool):
    """Metadata and diff of one commit."""

    name = "git_show"
    description = (
        "Show details of a specific commit including its diff. "
        "Use this to understand what a specific commit changed."
    )

    async def execute(self, rev: str = "", **_ignored) -> ToolResult:
        if not isinstance(rev, str) or not rev or not is_valid_rev(rev):
            return ToolResult.fail("Invalid revision format")

        try:
            info = await self.git.run("show", "-s", "--date=short", f"--format={LOG_FORMAT}", rev, "--")
            diff = await self.git.run("show", "--pretty=format:", rev, "--", max_output=MAX_OUTPUT_CHARS * 2)
        except GitError as e:
            return ToolResult.fail(f"git show failed: {e}")

        diff, _ = truncate_output(diff)
        return ToolResult.ok({"commit": parse_log_line(info.strip()), "diff": diff})

    def get_schema(self) -> dict:
        return {
            "properties": {
                "rev": {
                    "type": "string",
                    "description": 'Commit hash or reference (e.g., "abc123", "HEAD~1")',
                },
            },
            "required": ["rev"],
        }

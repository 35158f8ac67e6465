"""Commit history via git log."""

from typing import Any

from reviewpilot.git import GitError
from reviewpilot.tools.base import GitTool, ToolResult, contains_shell_metachars, optional_int


LOG_FORMAT = "%H%x09%h%x09%an%x09%ad%x09%s"

DEFAULT_MAX_COMMITS = 20
MAX_COMMITS = 100


def parse_log_line(line: str) -> dict:
    """One tab-separated ``LOG_FORMAT`` line to a log entry."""
    parts = line.split("\t", 4)
    parts += [""] * (5 - len(parts))
    hash_, short_hash, author, date, message = parts
    return {
        "hash": hash_,
        "shortHash": short_hash,
        "author": author,
        "date": date,
        "message": message,
    }


class GitLogTool(GitTool):
    """Recent commits, optionally for one path or matching a message pattern."""

    name = "git_log"
    description = (
        "View git commit history. Use this to understand how code evolved, "
        "find when bugs were introduced, or see related changes."
    )

    async def execute(self, path: str = "", maxCommits: Any = None, grep: str = "", **_ignored) -> ToolResult:
        if path:
            if not isinstance(path, str):
                return ToolResult.fail("File path must be a string")
            if error := self._path_error(path):
                return ToolResult.fail(error)
        if grep:
            if not isinstance(grep, str) or contains_shell_metachars(grep):
                return ToolResult.fail("Invalid characters in grep pattern")

        n = min(max(1, optional_int(maxCommits) or DEFAULT_MAX_COMMITS), MAX_COMMITS)
        args = ["log", "-n", str(n), "--date=short", f"--pretty=format:{LOG_FORMAT}"]
        if grep:
            args.extend(["--grep", grep])
        if path:
            args.extend(["--", path])

        try:
            output = await self.git.run(*args)
        except GitError as e:
            return ToolResult.fail(f"git log failed: {e}")

        entries = [parse_log_line(line) for line in output.strip().split("\n") if line]
        return ToolResult.ok(entries)

    def get_schema(self) -> dict:
        return {
            "properties": {
                "path": {
                    "type": "string",
                    "description": "Optional path to filter commits affecting this file",
                },
                "maxCommits": {
                    "type": "number",
                    "description": f"Maximum number of commits to return (default: {DEFAULT_MAX_COMMITS}, max: {MAX_COMMITS})",
                },
                "grep": {
                    "type": "string",
                    "description": 'Filter commits by message pattern. Example: "fix auth", "JIRA-123"',
                },
            },
            "required": [],
        }

"""Line-level authorship via git blame."""

import re
from datetime import datetime, timezone
from typing import Any, Optional

from reviewpilot.git import GitError
from reviewpilot.tools.base import GitTool, ToolResult, optional_int


_HEADER = re.compile(r"^([0-9a-f]{40}) \d+ (\d+)")


def parse_porcelain(output: str) -> list[dict]:
    """Parse ``git blame --porcelain`` into one entry per line.

    Porcelain only prints author headers the first time a commit appears,
    so they are remembered per commit.
    """
    entries = []
    commits: dict[str, dict[str, str]] = {}
    current: Optional[str] = None
    line_number = 0

    for line in output.split("\n"):
        if line.startswith("\t"):
            if current is None:
                continue
            info = commits.get(current, {})
            entries.append({
                "line": line_number,
                "commit": current[:8],
                "author": info.get("author", ""),
                "date": info.get("date", ""),
                "content": line[1:],
            })
            current = None
            continue

        header = _HEADER.match(line)
        if header:
            current = header.group(1)
            line_number = int(header.group(2))
            commits.setdefault(current, {})
        elif current and line.startswith("author "):
            commits[current]["author"] = line[len("author "):]
        elif current and line.startswith("author-time "):
            try:
                stamp = int(line[len("author-time "):])
            except ValueError:
                continue
            commits[current]["date"] = datetime.fromtimestamp(stamp, tz=timezone.utc).strftime("%Y-%m-%d")

    return entries


class GitBlameTool(GitTool):
    """Who last touched each line of a file."""

    name = "git_blame"
    description = (
        "Get git blame information for a file to see who wrote each line and when. "
        "Use this to understand code history or check if code was recently changed."
    )

    async def execute(self, path: str = "", lineRange: Any = None, **_ignored) -> ToolResult:
        if not isinstance(path, str) or not path.strip():
            return ToolResult.fail("File path is required")
        if error := self._path_error(path):
            return ToolResult.fail(error)

        args = ["blame", "--porcelain"]
        if isinstance(lineRange, dict):
            start = max(1, optional_int(lineRange.get("start")) or 1)
            end = max(start, optional_int(lineRange.get("end")) or start)
            args.extend(["-L", f"{start},{end}"])
        args.extend(["--", path])

        try:
            output = await self.git.run(*args)
        except GitError as e:
            return ToolResult.fail(f"git blame failed: {e}")
        return ToolResult.ok(parse_porcelain(output))

    def get_schema(self) -> dict:
        return {
            "properties": {
                "path": {
                    "type": "string",
                    "description": "Path to the file relative to repository root",
                },
                "lineRange": {
                    "type": "object",
                    "properties": {
                        "start": {"type": "number", "description": "Starting line number (1-indexed)"},
                        "end": {"type": "number", "description": "Ending line number (inclusive)"},
                    },
                    "required": ["start", "end"],
                    "description": "Optional line range to blame",
                },
            },
            "required": ["path"],
        }

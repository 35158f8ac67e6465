"""Read tool for repository files."""

import asyncio
from pathlib import Path
from typing import Any, Optional

from reviewpilot.tools.base import Tool, ToolResult, optional_int
from reviewpilot.workspace import is_binary_path, is_potential_secret_path


def truncate_bytes(text: str, max_bytes: int) -> tuple[str, bool]:
    """Cut text to at most ``max_bytes`` of UTF-8, marking what was dropped."""
    encoded = text.encode("utf-8")
    if len(encoded) <= max_bytes:
        return text, False
    head = encoded[:max_bytes].decode("utf-8", errors="ignore")
    return head + f"\n\n[truncated: {len(encoded) - max_bytes} more bytes]", True


class ReadFileTool(Tool):
    """Read a file, or a line window of it, from the repository."""

    name = "read_file"
    description = (
        "Read content from a file in the repository. Use this to see full context around "
        "code shown in the diff, or to read files that need to be modified but are not in the diff."
    )

    async def execute(
        self,
        path: str = "",
        startLine: Any = None,
        endLine: Any = None,
        maxBytes: Any = None,
        **_ignored,
    ) -> ToolResult:
        """Read a file.

        Args:
            path: Path relative to the repository root.
            startLine: First line to return (1-indexed).
            endLine: Last line to return (inclusive).
            maxBytes: Requested cap, never above the configured one.

        Returns:
            ToolResult with ``{content, size, truncated, lines}``.
        """
        if not isinstance(path, str) or not path.strip():
            return ToolResult.fail("File path is required")

        try:
            full_path = self._resolve_path(path)
        except ValueError:
            return ToolResult.fail("File path is outside the repository")

        # Check both the name asked for and where it actually points
        rel = self.workspace.relative_path(full_path)
        if is_potential_secret_path(path) or is_potential_secret_path(rel):
            return ToolResult.fail("Refusing to read potential secret file")

        if is_binary_path(full_path):
            return ToolResult.fail("Cannot read binary files")

        ceiling = self.config.read_file.max_bytes
        max_bytes = max(1, min(optional_int(maxBytes) or ceiling, ceiling))

        try:
            return await asyncio.to_thread(
                self._read, full_path, optional_int(startLine), optional_int(endLine), max_bytes
            )
        except FileNotFoundError:
            return ToolResult.fail(f"File not found: {path}")
        except OSError as e:
            return ToolResult.fail(f"Failed to read file: {e}")

    def _read(self, full_path: Path, start_line: Optional[int], end_line: Optional[int],
              max_bytes: int) -> ToolResult:
        if not full_path.exists():
            raise FileNotFoundError(full_path)
        if not full_path.is_file():
            return ToolResult.fail("Path is not a file")

        size = full_path.stat().st_size
        content = full_path.read_text(encoding="utf-8", errors="replace")
        all_lines = content.split("\n")

        if start_line is not None or end_line is not None:
            start = max(1, start_line or 1)
            end = min(len(all_lines), end_line if end_line is not None else len(all_lines))
            selected = all_lines[start - 1:end]
            content = "\n".join(selected)
        else:
            selected = all_lines

        content, truncated = truncate_bytes(content, max_bytes)
        return ToolResult.ok({
            "content": content,
            "size": size,
            "truncated": truncated,
            "lines": len(selected),
        })

    def get_schema(self) -> dict:
        return {
            "properties": {
                "path": {
                    "type": "string",
                    "description": 'Path to the file relative to repository root. Example: "src/utils/auth.py"',
                },
                "startLine": {
                    "type": "number",
                    "description": "Starting line number (1-indexed). Omit to read from beginning.",
                },
                "endLine": {
                    "type": "number",
                    "description": "Ending line number (inclusive). Omit to read to end.",
                },
                "maxBytes": {
                    "type": "number",
                    "description": f"Maximum bytes to read (default: {self.config.read_file.max_bytes})",
                },
            },
            "required": ["path"],
        }

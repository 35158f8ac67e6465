"""Repository search backed by ripgrep."""

import asyncio
import json
import logging
import os
from typing import Any, Optional

from reviewpilot.process import MAX_STDERR_CHARS, OutputBuffer, kill_process, pump
from reviewpilot.tools.base import Tool, ToolResult, optional_int
from reviewpilot.workspace import is_binary_path, is_potential_secret_path


logger = logging.getLogger(__name__)

PREVIEW_CHARS = 200

# Longest JSON line kept; anything longer (minified bundles) is dropped
MAX_LINE_BUFFER = 1024 * 1024

DEFAULT_IGNORES = [
    # VCS, dependency caches, build output
    ".git",
    "node_modules",
    ".venv",
    "venv",
    "__pycache__",
    ".mypy_cache",
    ".pytest_cache",
    ".tox",
    "dist",
    "build",
    ".next",
    "coverage",
    ".cache",
    # Lock files
    "*.lock",
    "package-lock.json",
    "bun.lockb",
    # Secret material
    ".env",
    ".env.*",
    ".npmrc",
    ".pypirc",
    ".netrc",
    ".git-credentials",
    "id_rsa",
    "id_ed25519",
    "id_dsa",
    "id_ecdsa",
    "*.pem",
    "*.key",
    "*.p12",
    "*.pfx",
    "*.jks",
    "*.kdbx",
]


class SearchRepoTool(Tool):
    """Search file contents with ripgrep."""

    name = "search_repo"
    description = (
        "Search the repository for code patterns, symbols, function definitions, or text. "
        "Use this to find where code is defined or used, understand project patterns, "
        "or locate related code before proposing fixes."
    )

    def _build_args(self, query: str, globs: list[str], max_results: int,
                    case_sensitive: bool, regex: bool) -> list[str]:
        args = ["rg", "--json", "--line-number", "--column", "--sort", "path"]
        if not case_sensitive:
            args.append("--ignore-case")
        if not regex:
            args.append("--fixed-strings")
        # Later globs win in ripgrep, so the ignores go last
        for glob in globs:
            args.extend(["--glob", glob])
        for ignore in DEFAULT_IGNORES:
            args.extend(["--glob", f"!{ignore}"])
        # Extra headroom for hits dropped by the binary/secret filter
        args.extend(["--max-count", str(max_results * 2)])
        args.extend(["--", query, str(self.root)])
        return args

    def _parse_match(self, line: bytes) -> Optional[dict]:
        try:
            event = json.loads(line)
        except (json.JSONDecodeError, UnicodeDecodeError):
            return None
        if not isinstance(event, dict) or event.get("type") != "match":
            return None

        data = event.get("data") or {}
        path_text = (data.get("path") or {}).get("text")
        if not path_text:
            return None
        rel = os.path.relpath(path_text, self.root).replace(os.sep, "/")
        if is_binary_path(rel) or is_potential_secret_path(rel):
            return None

        submatches = data.get("submatches") or []
        col = submatches[0].get("start", 0) + 1 if submatches else 1
        text = (data.get("lines") or {}).get("text") or ""
        return {
            "path": rel,
            "line": data.get("line_number") or 0,
            "col": col,
            "preview": text.strip()[:PREVIEW_CHARS],
        }

    async def execute(
        self,
        query: str = "",
        globs: Optional[list[str]] = None,
        maxResults: Any = None,
        caseSensitive: bool = False,
        regex: bool = True,
        timeoutMs: Any = None,
        **_ignored,
    ) -> ToolResult:
        """Search the repository.

        Args:
            query: Regex (or literal when ``regex`` is false) to search for.
            globs: Include/exclude patterns passed to ripgrep.
            maxResults: Requested result cap, never above the configured one.
            caseSensitive: Match case exactly.
            regex: Treat the query as a regex.
            timeoutMs: Requested time limit, never above the configured one.

        Returns:
            ToolResult with ``[{path, line, col, preview}]``.
        """
        if not isinstance(query, str) or not query.strip():
            return ToolResult.fail("Query cannot be empty")

        ceiling = self.config.search_repo
        requested = optional_int(maxResults)
        max_results = max(1, min(requested or ceiling.max_results, ceiling.max_results))
        requested = optional_int(timeoutMs)
        timeout_ms = max(1, min(requested or ceiling.timeout_ms, ceiling.timeout_ms))

        glob_list = [g for g in (globs or []) if isinstance(g, str) and g]
        args = self._build_args(query, glob_list, max_results, bool(caseSensitive), bool(regex))

        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                cwd=str(self.root),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=MAX_LINE_BUFFER,
            )
        except FileNotFoundError:
            return ToolResult.fail(
                "Failed to run ripgrep: 'rg' not found. Make sure ripgrep is installed "
                "(https://github.com/BurntSushi/ripgrep#installation)."
            )

        results: list[dict] = []
        stderr = OutputBuffer(MAX_STDERR_CHARS)
        stderr_task = asyncio.ensure_future(pump(proc.stderr, stderr))

        async def collect() -> None:
            while len(results) < max_results:
                try:
                    line = await proc.stdout.readline()
                except ValueError:
                    # Over-long line; the reader already discarded it
                    continue
                if not line:
                    return
                match = self._parse_match(line)
                if match is not None:
                    results.append(match)

        try:
            await asyncio.wait_for(collect(), timeout_ms / 1000.0)
        except asyncio.TimeoutError:
            logger.debug("search_repo timed out after %dms with %d results", timeout_ms, len(results))
            await kill_process(proc)
            stderr_task.cancel()
            return ToolResult.ok(results, error=None if results else "Search timed out")
        except BaseException:
            await kill_process(proc)
            stderr_task.cancel()
            raise

        if len(results) >= max_results:
            await kill_process(proc)
            stderr_task.cancel()
            return ToolResult.ok(results)

        code = await proc.wait()
        await stderr_task

        # Exit code 1 means no matches
        if code not in (0, 1) and not results:
            return ToolResult.fail(stderr.text().strip() or f"ripgrep exited with code {code}")
        return ToolResult.ok(results)

    def get_schema(self) -> dict:
        return {
            "properties": {
                "query": {
                    "type": "string",
                    "description": (
                        'Search pattern. Supports regex by default. Examples: "def handle_auth", '
                        '"class.*Repository", "TODO|FIXME"'
                    ),
                },
                "globs": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": 'File patterns to include/exclude. Examples: ["*.py", "!*_test.py", "src/**/*.ts"]',
                },
                "maxResults": {
                    "type": "number",
                    "description": f"Maximum number of results to return (default: {self.config.search_repo.max_results})",
                },
                "caseSensitive": {
                    "type": "boolean",
                    "description": "Whether search is case sensitive (default: false)",
                },
                "regex": {
                    "type": "boolean",
                    "description": "Treat query as regex pattern (default: true)",
                },
            },
            "required": ["query"],
        }

"""Bounded per-file digests for the summarization prompts.

Import/export extraction is a regex heuristic across several languages. It
is lossy on purpose: the identifiers only steer the model and the snippet
window, nothing else depends on them.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from reviewpilot.pool import map_limit
from reviewpilot.workspace import Workspace, WorkspaceError, is_binary_path, is_potential_secret_path


logger = logging.getLogger(__name__)

DIGEST_READ_BYTES = 24 * 1024
HEAD_LINES = 40
WINDOW_LINES = 3
MAX_HOTSPOTS = 6
MAX_SNIPPET_CHARS = 3000
MAX_IDENTIFIERS = 30
DIGEST_CONCURRENCY = 8

IMPORT_PATTERNS = [
    re.compile(r"""^\s*import\s+(?:type\s+)?(?:[\w*{}\s,]+\s+from\s+)?['"]([^'"]+)['"]"""),
    re.compile(r"""\brequire\(\s*['"]([^'"]+)['"]\s*\)"""),
    re.compile(r"^\s*from\s+([\w.]+)\s+import\b"),
    re.compile(r"^\s*import\s+([\w.]+)"),
    re.compile(r"^\s*use\s+([\w:]+)"),
]

EXPORT_PATTERNS = [
    re.compile(r"^\s*export\s+(?:default\s+)?(?:async\s+)?(?:function\*?|class|const|let|var|interface|type|enum)\s+(\w+)"),
    re.compile(r"^(?:async\s+)?def\s+([A-Za-z]\w*)"),
    re.compile(r"^class\s+(\w+)"),
    re.compile(r"^func\s+(?:\([^)]*\)\s*)?([A-Z]\w*)"),
    re.compile(r"^\s*pub\s+(?:async\s+)?(?:fn|struct|enum|trait|mod)\s+(\w+)"),
    re.compile(r"^\s*(?:public\s+)?(?:abstract\s+|final\s+)?(?:class|interface|record)\s+(\w+)"),
]

_EXPORT_LIST = re.compile(r"^\s*export\s*\{([^}]*)\}")


@dataclass(frozen=True)
class FileDigest:
    path: str
    bytes: int
    imports: tuple[str, ...]
    exports: tuple[str, ...]
    snippet: str
    lines: int = 0

    def render(self) -> str:
        """Prompt text for this digest."""
        parts = [f"### {self.path} ({self.bytes} bytes)"]
        if self.imports:
            parts.append(f"imports: {', '.join(self.imports)}")
        if self.exports:
            parts.append(f"exports: {', '.join(self.exports)}")
        parts.append("```")
        parts.append(self.snippet)
        parts.append("```")
        return "\n".join(parts)


def _first_match(patterns: list[re.Pattern], line: str) -> Optional[str]:
    for pattern in patterns:
        m = pattern.search(line)
        if m:
            return m.group(1)
    return None


def extract_identifiers(lines: list[str]) -> tuple[list[str], list[str], list[int]]:
    """Find imports, exports and the line indexes they appear on."""
    imports: list[str] = []
    exports: list[str] = []
    hotspots: list[int] = []

    for i, line in enumerate(lines):
        hit = False
        if (name := _first_match(IMPORT_PATTERNS, line)) is not None:
            imports.append(name)
            hit = True
        if (name := _first_match(EXPORT_PATTERNS, line)) is not None:
            exports.append(name)
            hit = True
        elif m := _EXPORT_LIST.match(line):
            names = [n.strip().split(" as ")[-1].strip() for n in m.group(1).split(",")]
            exports.extend(n for n in names if n)
            hit = True
        if hit:
            hotspots.append(i)

    unique_imports = list(dict.fromkeys(imports))[:MAX_IDENTIFIERS]
    unique_exports = list(dict.fromkeys(exports))[:MAX_IDENTIFIERS]
    return unique_imports, unique_exports, hotspots


def build_snippet(lines: list[str], hotspots: list[int]) -> str:
    """First lines of the file plus small windows around hotspots past them."""
    keep = set(range(min(HEAD_LINES, len(lines))))
    late = [h for h in hotspots if h >= HEAD_LINES][:MAX_HOTSPOTS]
    for h in late:
        keep.update(range(max(0, h - WINDOW_LINES), min(len(lines), h + WINDOW_LINES + 1)))

    out = []
    previous = -1
    for i in sorted(keep):
        if previous != -1 and i != previous + 1:
            out.append("…")
        out.append(f"{i + 1}: {lines[i]}")
        previous = i

    snippet = "\n".join(out)
    if len(snippet) > MAX_SNIPPET_CHARS:
        snippet = snippet[:MAX_SNIPPET_CHARS] + "\n…"
    return snippet


def _read_head(path: Path, limit: int) -> bytes:
    with open(path, "rb") as f:
        return f.read(limit)


def digest_text(path: str, size: int, text: str) -> FileDigest:
    lines = text.split("\n")
    imports, exports, hotspots = extract_identifiers(lines)
    return FileDigest(
        path=path,
        bytes=size,
        imports=tuple(imports),
        exports=tuple(exports),
        snippet=build_snippet(lines, hotspots),
        lines=len(lines),
    )


async def digest_file(root: Path, path: str, size: int) -> Optional[FileDigest]:
    """Digest one file.

    Symlinks are resolved first; a link leaving the root or landing on a
    secret or binary file is skipped like the file itself.

    Returns:
        None for secret, binary (by extension or NUL byte) and unreadable files.
    """
    if is_potential_secret_path(path) or is_binary_path(path):
        return None
    workspace = Workspace(root)
    try:
        full_path = workspace.resolve_path(path)
    except WorkspaceError as e:
        logger.debug("Skipping %s: %s", path, e)
        return None
    rel = workspace.relative_path(full_path)
    if is_potential_secret_path(rel) or is_binary_path(rel):
        return None
    try:
        raw = await asyncio.to_thread(_read_head, full_path, DIGEST_READ_BYTES)
    except OSError as e:
        logger.debug("Skipping unreadable file %s: %s", path, e)
        return None
    if b"\0" in raw:
        return None
    return digest_text(path, size, raw.decode("utf-8", errors="replace"))


async def digest_files(root: Path, files: list[tuple[str, int]]) -> list[FileDigest]:
    """Digest ``(path, size)`` pairs on a bounded pool, keeping input order."""

    async def work(item: tuple[str, int], _index: int) -> Optional[FileDigest]:
        return await digest_file(root, item[0], item[1])

    results = await map_limit(files, DIGEST_CONCURRENCY, work)
    return [d for d in results if d is not None]

"""Repository indexing: file list, sizes, a bounded tree and entry points."""

import asyncio
import json
import logging
import os
import stat
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

from reviewpilot.git import GitRepo
from reviewpilot.pool import map_limit

if sys.version_info >= (3, 11):
    import tomllib as tomli
else:
    import tomli


logger = logging.getLogger(__name__)

STAT_CONCURRENCY = 16

TREE_MAX_DEPTH = 4
TREE_MAX_ENTRIES_PER_DIR = 40

IGNORE_DIRS = frozenset({
    "node_modules", "dist", "build", ".git", ".next", "coverage", ".cache",
    ".turbo", ".idea", ".vscode",
    "__pycache__", ".venv", "venv", ".mypy_cache", ".pytest_cache", ".ruff_cache",
    ".tox", ".eggs",
})

IGNORE_FILES = frozenset({
    "package-lock.json", "bun.lockb", "pnpm-lock.yaml", "yarn.lock",
    "poetry.lock", "uv.lock", "pdm.lock",
})

IGNORE_SUFFIXES = (".lock", ".pyc")

ENTRY_POINT_CANDIDATES = (
    "src/index.ts", "src/index.js", "src/main.ts", "src/main.js",
    "index.ts", "index.js", "main.ts", "main.js", "app.ts", "app.js",
    "main.py", "app.py", "manage.py", "__main__.py", "wsgi.py", "asgi.py",
    "main.go", "cmd/main.go", "src/main.rs", "src/lib.rs",
)


def is_ignored_path(rel_path: str) -> bool:
    """Check if a path sits in a dependency/build directory or is a lock file."""
    parts = [p for p in rel_path.replace("\\", "/").split("/") if p]
    if not parts:
        return True
    if any(p in IGNORE_DIRS or p.endswith(".egg-info") for p in parts[:-1]):
        return True
    base = parts[-1]
    return base in IGNORE_FILES or base.endswith(IGNORE_SUFFIXES)


@dataclass(frozen=True)
class FileInfo:
    path: str
    bytes: int


@dataclass
class CodebaseIndex:
    """What the pipeline knows about the repository before reading any file."""
    paths: list[str]
    files: list[FileInfo] = field(default_factory=list)
    file_tree: str = "."
    entry_points: list[str] = field(default_factory=list)


def _walk(root: Path) -> list[str]:
    results = []
    for dirpath, dirnames, filenames in os.walk(root):
        rel_dir = Path(dirpath).relative_to(root).as_posix()
        # Prune in place; symlinked directories are never followed
        dirnames[:] = sorted(
            d for d in dirnames
            if d not in IGNORE_DIRS and not d.endswith(".egg-info")
            and not os.path.islink(os.path.join(dirpath, d))
        )
        for name in sorted(filenames):
            rel = name if rel_dir == "." else f"{rel_dir}/{name}"
            if os.path.islink(os.path.join(dirpath, name)) or is_ignored_path(rel):
                continue
            results.append(rel)
    return results


async def list_files(root: Path, include_untracked: bool = True) -> list[str]:
    """Repository files via git, or a filesystem walk outside git."""
    repo = GitRepo(root)
    if repo.is_git_repo():
        paths = await repo.list_files(include_untracked=include_untracked)
        if paths is not None:
            return [p for p in (p.replace("\\", "/") for p in paths) if not is_ignored_path(p)]
    logger.debug("Indexing %s by walking the filesystem", root)
    return await asyncio.to_thread(_walk, root)


def _script_target(root: Path, target: str) -> Optional[str]:
    """Map a ``module.path:func`` script target to a file in the repo."""
    module = target.split(":", 1)[0].strip()
    if not module:
        return None
    rel = module.replace(".", "/")
    for candidate in (f"{rel}.py", f"{rel}/__init__.py", f"src/{rel}.py", f"src/{rel}/__init__.py"):
        if (root / candidate).is_file():
            return candidate
    return None


def detect_entry_points(paths: list[str], root: Optional[Path] = None) -> list[str]:
    """Likely entry points, manifest-declared ones first.

    Reads ``package.json`` (main/module/bin) and ``pyproject.toml``
    (``[project.scripts]``) when ``root`` is given; parse errors are ignored.
    """
    known = {p.replace("\\", "/") for p in paths}
    found = [p for p in ENTRY_POINT_CANDIDATES if p in known]
    found += sorted(p for p in known if p.endswith("/__main__.py") and p.count("/") <= 2)

    declared = []
    if root is not None and "package.json" in known:
        try:
            pkg = json.loads((root / "package.json").read_text(encoding="utf-8"))
        except (OSError, ValueError):
            pkg = {}
        if isinstance(pkg, dict):
            bin_ = pkg.get("bin")
            values = [pkg.get("module"), pkg.get("main")]
            if isinstance(bin_, str):
                values.append(bin_)
            elif isinstance(bin_, dict):
                values.extend(bin_.values())
            for value in values:
                if isinstance(value, str):
                    normalized = value.replace("\\", "/")
                    if normalized.startswith("./"):
                        normalized = normalized[2:]
                    if normalized in known:
                        declared.append(normalized)

    if root is not None and "pyproject.toml" in known:
        try:
            with open(root / "pyproject.toml", "rb") as f:
                scripts = (tomli.load(f).get("project") or {}).get("scripts") or {}
        except (OSError, tomli.TOMLDecodeError):
            scripts = {}
        for target in scripts.values():
            if isinstance(target, str):
                rel = _script_target(root, target)
                if rel and rel in known:
                    declared.append(rel)

    return list(dict.fromkeys(declared + found))


class _TreeNode:
    def __init__(self):
        self.dirs: dict[str, "_TreeNode"] = {}
        self.files: list[str] = []

    def count_files(self) -> int:
        return len(self.files) + sum(d.count_files() for d in self.dirs.values())


def render_file_tree(
    paths: list[str],
    max_depth: int = TREE_MAX_DEPTH,
    max_entries_per_dir: int = TREE_MAX_ENTRIES_PER_DIR,
) -> str:
    """Render paths as a box-drawing tree, bounded in depth and width."""
    root = _TreeNode()
    for raw in paths:
        rel = raw.replace("\\", "/")
        if is_ignored_path(rel):
            continue
        parts = [p for p in rel.split("/") if p]
        node = root
        for part in parts[:-1]:
            node = node.dirs.setdefault(part, _TreeNode())
        node.files.append(parts[-1])

    lines = ["."]

    def render(node: _TreeNode, prefix: str, depth: int) -> None:
        entries = [(name, True) for name in sorted(node.dirs)] + [(name, False) for name in sorted(node.files)]
        shown = entries[:max(0, max_entries_per_dir)]
        remaining = len(entries) - len(shown)

        for index, (name, is_dir) in enumerate(shown):
            is_last = index == len(shown) - 1 and remaining <= 0
            branch = "└─ " if is_last else "├─ "
            if not is_dir:
                lines.append(f"{prefix}{branch}{name}")
                continue
            lines.append(f"{prefix}{branch}{name}/")
            child_prefix = prefix + ("   " if is_last else "│  ")
            child = node.dirs[name]
            if depth + 1 < max_depth:
                render(child, child_prefix, depth + 1)
            elif (count := child.count_files()) > 0:
                lines.append(f"{child_prefix}└─ … ({count} files)")

        if remaining > 0:
            lines.append(f"{prefix}└─ … ({remaining} more)")

    render(root, "", 0)
    return "\n".join(lines)


def _file_size(path: Path) -> Optional[int]:
    """Size of a regular file, or None. Symlinks are not followed."""
    try:
        st = path.lstat()
    except OSError:
        return None
    return st.st_size if stat.S_ISREG(st.st_mode) else None


async def build_codebase_index(
    root: Union[str, Path],
    include_untracked: bool = True,
    max_files: Optional[int] = None,
) -> CodebaseIndex:
    """Index a repository.

    Args:
        root: Repository root.
        include_untracked: Also list untracked, non-ignored files (git only).
        max_files: Stat at most this many files.

    Returns:
        CodebaseIndex. Files that vanish or aren't regular files are left out of ``files``.
    """
    root = Path(root).resolve()
    paths = await list_files(root, include_untracked=include_untracked)
    to_stat = paths[:max_files] if max_files and max_files > 0 else paths

    async def stat_one(rel: str, _index: int) -> Optional[FileInfo]:
        size = await asyncio.to_thread(_file_size, root / rel)
        return FileInfo(path=rel, bytes=size) if size is not None else None

    stats = await map_limit(to_stat, STAT_CONCURRENCY, stat_one)
    files = [s for s in stats if s is not None]

    index = CodebaseIndex(
        paths=paths,
        files=files,
        file_tree=render_file_tree(paths),
        entry_points=detect_entry_points(paths, root),
    )
    logger.info("Indexed %d file(s) under %s", len(files), root)
    return index

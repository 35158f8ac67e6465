"""Project detection shared by run_check and dep_report."""

import sys
from pathlib import Path
from typing import Optional


NODE_LOCKFILES = (
    ("bun.lockb", "bun"),
    ("bun.lock", "bun"),
    ("yarn.lock", "yarn"),
    ("pnpm-lock.yaml", "pnpm"),
    ("package-lock.json", "npm"),
)

PYTHON_LOCKFILES = (
    ("uv.lock", "uv"),
    ("poetry.lock", "poetry"),
    ("pdm.lock", "pdm"),
)

_NODE_CHECKS = {
    "bun": {
        "typecheck": ["bunx", "tsc", "--noEmit"],
        "test": ["bun", "test"],
        "lint": ["bunx", "eslint", "."],
        "build": ["bun", "run", "build"],
    },
    "yarn": {
        "typecheck": ["yarn", "tsc", "--noEmit"],
        "test": ["yarn", "test"],
        "lint": ["yarn", "eslint", "."],
        "build": ["yarn", "build"],
    },
    "pnpm": {
        "typecheck": ["pnpm", "exec", "tsc", "--noEmit"],
        "test": ["pnpm", "test"],
        "lint": ["pnpm", "exec", "eslint", "."],
        "build": ["pnpm", "run", "build"],
    },
    "npm": {
        "typecheck": ["npx", "tsc", "--noEmit"],
        "test": ["npm", "test"],
        "lint": ["npx", "eslint", "."],
        "build": ["npm", "run", "build"],
    },
}


def detect_node_package_manager(root: Path) -> str:
    for lockfile, manager in NODE_LOCKFILES:
        if (root / lockfile).exists():
            return manager
    return "npm"


def detect_python_package_manager(root: Path) -> str:
    for lockfile, manager in PYTHON_LOCKFILES:
        if (root / lockfile).exists():
            return manager
    return "pip"


def is_node_project(root: Path) -> bool:
    return (root / "package.json").is_file()


def check_commands(root: Path) -> dict[str, list[str]]:
    """Commands for each check kind, picked from the project type.

    A ``package.json`` at the root means a JavaScript/TypeScript project;
    anything else gets the Python toolchain.
    """
    if is_node_project(root):
        return {kind: list(cmd) for kind, cmd in _NODE_CHECKS[detect_node_package_manager(root)].items()}
    return {
        "typecheck": ["mypy", "."],
        "test": ["pytest", "-q"],
        "lint": ["ruff", "check", "."],
        "build": [sys.executable, "-m", "build"],
    }


def check_command(root: Path, kind: str) -> Optional[list[str]]:
    return check_commands(root).get(kind)

"""Dependency report from the project manifest."""

import asyncio
import json
import sys
from pathlib import Path

from reviewpilot.tools.base import Tool, ToolResult
from reviewpilot.tools.project import detect_node_package_manager, detect_python_package_manager

if sys.version_info >= (3, 11):
    import tomllib as tomli
else:
    import tomli


def _requirement_name(spec: str) -> tuple[str, str]:
    """Split a PEP 508 requirement into name and the rest."""
    spec = spec.strip()
    for i, c in enumerate(spec):
        if not (c.isalnum() or c in "-_."):
            name, rest = spec[:i], spec[i:].strip()
            if rest.startswith("["):
                end = rest.find("]")
                rest = rest[end + 1:].strip() if end != -1 else ""
            return name, rest or "*"
    return spec, "*"


def node_report(root: Path) -> dict:
    data = json.loads((root / "package.json").read_text(encoding="utf-8"))
    dependencies = []
    for section, kind in (("dependencies", "prod"), ("devDependencies", "dev")):
        for name, version in (data.get(section) or {}).items():
            dependencies.append({"name": name, "version": str(version), "type": kind})
    return {"packageManager": detect_node_package_manager(root), "dependencies": dependencies}


def python_report(root: Path) -> dict:
    with open(root / "pyproject.toml", "rb") as f:
        data = tomli.load(f)

    project = data.get("project") or {}
    dependencies = []
    for spec in project.get("dependencies") or []:
        name, version = _requirement_name(spec)
        dependencies.append({"name": name, "version": version, "type": "prod"})

    dev_groups = dict(project.get("optional-dependencies") or {})
    dev_groups.update(data.get("dependency-groups") or {})
    for specs in dev_groups.values():
        for spec in specs:
            # Group includes are tables, not requirement strings
            if not isinstance(spec, str):
                continue
            name, version = _requirement_name(spec)
            dependencies.append({"name": name, "version": version, "type": "dev"})

    return {"packageManager": detect_python_package_manager(root), "dependencies": dependencies}


class DepReportTool(Tool):
    """List declared dependencies and the package manager in use."""

    name = "dep_report"
    description = (
        "Get a report of project dependencies from package.json or pyproject.toml. "
        "Use this to understand what packages are available or check versions."
    )

    async def execute(self, **_ignored) -> ToolResult:
        root = self.root
        try:
            if (root / "package.json").is_file():
                report = await asyncio.to_thread(node_report, root)
            elif (root / "pyproject.toml").is_file():
                report = await asyncio.to_thread(python_report, root)
            else:
                return ToolResult.fail("No package.json or pyproject.toml found in repository root")
        except (OSError, ValueError, tomli.TOMLDecodeError, AttributeError) as e:
            return ToolResult.fail(f"Failed to read dependencies: {e}")
        return ToolResult.ok(report)

    def get_schema(self) -> dict:
        return {"properties": {}, "required": []}

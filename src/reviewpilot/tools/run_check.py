"""Run typecheck/test/lint/build commands."""

import logging
import re
from typing import Any

from reviewpilot.config import CHECK_KINDS, RUN_CHECK_MAX_TIMEOUT_MS
from reviewpilot.process import MAX_OUTPUT_CHARS, run_process, truncate_output
from reviewpilot.tools.base import Tool, ToolResult, optional_int
from reviewpilot.tools.project import check_command


logger = logging.getLogger(__name__)

_UNSAFE_ARG = re.compile(r"[;&|`$(){}]")


def sanitize_args(args: Any) -> list[str]:
    """Split extra arguments on whitespace, dropping any with shell metacharacters."""
    if isinstance(args, list):
        args = " ".join(str(a) for a in args)
    if not isinstance(args, str):
        return []
    return [a for a in args.split() if not _UNSAFE_ARG.search(a)]


class RunCheckTool(Tool):
    """Run one of the project's validation commands."""

    name = "run_check"
    description = (
        "Run a validation command to check if code compiles, tests pass, or linting succeeds. "
        "Use this to validate your suggested fixes before claiming they work."
    )

    def effective_timeout_ms(self, requested: Any = None) -> int:
        """Requested timeout, or the configured default, never above the hard ceiling."""
        timeout = optional_int(requested) or self.config.run_check.timeout_ms
        return max(1, min(timeout, RUN_CHECK_MAX_TIMEOUT_MS))

    async def execute(self, kind: str = "", args: Any = None, timeoutMs: Any = None, **_ignored) -> ToolResult:
        """Run a check.

        Args:
            kind: "typecheck", "test", "lint" or "build".
            args: Extra arguments, space separated.
            timeoutMs: Requested time limit, capped at 60 seconds.

        Returns:
            ToolResult with ``{exitCode, stdout, stderr}``. A timed out
            command still succeeds, with exit code -1.
        """
        allowed = self.config.run_check.allowed_kinds
        if kind not in CHECK_KINDS or kind not in allowed:
            return ToolResult.fail(f"Unknown check kind: {kind}. Allowed: {', '.join(allowed)}")

        command = check_command(self.root, kind)
        if command is None:
            return ToolResult.fail(f"No command configured for {kind}")

        extra = sanitize_args(args)
        timeout_ms = self.effective_timeout_ms(timeoutMs)
        logger.info("run_check %s: %s (timeout %dms)", kind, " ".join(command + extra), timeout_ms)

        try:
            result = await run_process(
                command + extra,
                self.root,
                timeout_ms / 1000.0,
                env={"CI": "true"},
                max_output=MAX_OUTPUT_CHARS * 2,
                keep_tail=True,
            )
        except FileNotFoundError:
            return ToolResult.fail(f"Failed to run {kind}: '{command[0]}' is not installed or not on PATH")
        except OSError as e:
            return ToolResult.fail(f"Failed to run {kind}: {e}")

        stdout, _ = truncate_output(result.stdout)
        if result.timed_out:
            return ToolResult.ok({"exitCode": -1, "stdout": stdout, "stderr": "Command timed out"})

        stderr, _ = truncate_output(result.stderr)
        return ToolResult.ok({"exitCode": result.returncode, "stdout": stdout, "stderr": stderr})

    def get_schema(self) -> dict:
        commands = ", ".join(self.config.run_check.allowed_kinds)
        return {
            "properties": {
                "kind": {
                    "type": "string",
                    "enum": list(self.config.run_check.allowed_kinds),
                    "description": f"Type of check to run: {commands}",
                },
                "args": {
                    "type": "string",
                    "description": 'Additional arguments to pass to the command (optional). Example: "tests/test_auth.py"',
                },
                "timeoutMs": {
                    "type": "number",
                    "description": (
                        f"Timeout in milliseconds (default: {self.config.run_check.timeout_ms}, "
                        f"max: {RUN_CHECK_MAX_TIMEOUT_MS})"
                    ),
                },
            },
            "required": ["kind"],
        }

"""Read-only git access for the review tools and the indexer."""

import logging
from pathlib import Path
from typing import Optional

from reviewpilot.process import MAX_OUTPUT_CHARS, run_process


logger = logging.getLogger(__name__)

GIT_TIMEOUT_S = 30.0

# ls-files output for large monorepos easily exceeds the tool output cap
LS_FILES_MAX_BYTES = 64 * 1024 * 1024


class GitError(Exception):
    """A git command failed or could not be run."""
    pass


class GitRepo:
    """Runs git commands against one repository without a shell."""

    def __init__(self, repo_path: Path):
        self.repo_path = Path(repo_path)

    def is_git_repo(self) -> bool:
        """Check if the directory is a git repository."""
        return (self.repo_path / ".git").exists()

    async def run(
        self,
        *args: str,
        max_output: int = MAX_OUTPUT_CHARS,
        timeout_s: float = GIT_TIMEOUT_S,
    ) -> str:
        """Run a git command and return its stdout.

        Raises:
            GitError: git is missing, timed out, or exited non-zero.
        """
        try:
            result = await run_process(
                ["git", *args], self.repo_path, timeout_s, max_output=max_output,
            )
        except FileNotFoundError:
            raise GitError("git is not installed or not on PATH")

        if result.timed_out:
            raise GitError(f"git {args[0]} timed out after {timeout_s:.0f}s")
        if result.returncode != 0:
            raise GitError(result.stderr.strip() or f"git command failed with code {result.returncode}")
        return result.stdout

    async def list_files(self, include_untracked: bool = True) -> Optional[list[str]]:
        """List tracked and, optionally, untracked non-ignored files.

        Returns:
            POSIX paths relative to the root, or None when git can't list them.
        """
        untracked = ""
        try:
            tracked = await self.run("ls-files", "-z", max_output=LS_FILES_MAX_BYTES)
            if include_untracked:
                untracked = await self.run(
                    "ls-files", "-z", "--others", "--exclude-standard", max_output=LS_FILES_MAX_BYTES,
                )
        except GitError as e:
            logger.debug("git ls-files unavailable: %s", e)
            return None

        seen = set()
        paths = []
        for name in (tracked + untracked).split("\0"):
            if name and name not in seen:
                seen.add(name)
                paths.append(name)
        return paths

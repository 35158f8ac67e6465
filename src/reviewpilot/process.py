"""Child process execution with output caps and timeouts."""

import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence


logger = logging.getLogger(__name__)

MAX_OUTPUT_CHARS = 50000
MAX_STDERR_CHARS = 10000

_CHUNK = 65536


def truncate_output(output: str, max_chars: int = MAX_OUTPUT_CHARS) -> tuple[str, bool]:
    """Cap text, appending a marker that says how much was dropped."""
    if len(output) <= max_chars:
        return output, False
    dropped = len(output) - max_chars
    return output[:max_chars] + f"\n\n[truncated: {dropped} more characters]", True


@dataclass
class ProcessResult:
    """Result of a finished (or killed) child process."""
    returncode: int
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False


class OutputBuffer:
    """Collects a stream while never holding much more than ``limit`` bytes.

    Keeps the head of the stream, or the tail when ``keep_tail`` is set.
    """

    def __init__(self, limit: int, keep_tail: bool = False):
        self.limit = limit
        self.keep_tail = keep_tail
        self.data = bytearray()

    def feed(self, chunk: bytes) -> None:
        if self.keep_tail:
            self.data.extend(chunk)
            if len(self.data) > self.limit * 2:
                del self.data[: len(self.data) - self.limit]
        elif len(self.data) < self.limit:
            self.data.extend(chunk[: self.limit - len(self.data)])

    def text(self) -> str:
        return self.data.decode("utf-8", errors="replace")


async def pump(stream: Optional[asyncio.StreamReader], buffer: OutputBuffer) -> None:
    if stream is None:
        return
    while True:
        chunk = await stream.read(_CHUNK)
        if not chunk:
            return
        buffer.feed(chunk)


async def kill_process(proc: asyncio.subprocess.Process) -> None:
    """Kill a child if it is still running and reap it."""
    if proc.returncode is None:
        try:
            proc.kill()
        except ProcessLookupError:
            pass
    await proc.wait()


async def run_process(
    args: Sequence[str],
    cwd: Path,
    timeout_s: float,
    env: Optional[dict[str, str]] = None,
    max_output: int = MAX_OUTPUT_CHARS,
    keep_tail: bool = False,
) -> ProcessResult:
    """Run a command without a shell.

    Args:
        args: Executable followed by its arguments.
        cwd: Working directory.
        timeout_s: Wall-clock limit. The child is killed when it expires.
        env: Extra environment variables layered over the current ones.
        max_output: Cap for stdout. Stderr is capped at MAX_STDERR_CHARS.
        keep_tail: Keep the end of stdout instead of the start.

    Returns:
        ProcessResult. On timeout ``timed_out`` is set and ``returncode`` is -1.

    Raises:
        FileNotFoundError: The executable does not exist.
    """
    full_env = None
    if env:
        full_env = os.environ.copy()
        full_env.update(env)

    proc = await asyncio.create_subprocess_exec(
        *args,
        cwd=str(cwd),
        env=full_env,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )

    stdout = OutputBuffer(max_output, keep_tail=keep_tail)
    stderr = OutputBuffer(max(max_output, MAX_STDERR_CHARS), keep_tail=keep_tail)
    pumps = asyncio.gather(pump(proc.stdout, stdout), pump(proc.stderr, stderr))

    # The limit covers the exit too: a child may close its pipes and keep running
    async def drain_and_wait() -> int:
        await asyncio.shield(pumps)
        return await proc.wait()

    try:
        returncode = await asyncio.wait_for(drain_and_wait(), timeout_s)
    except asyncio.TimeoutError:
        logger.debug("Killing %s after %.1fs", args[0], timeout_s)
        await kill_process(proc)
        pumps.cancel()
        return ProcessResult(returncode=-1, stdout=stdout.text(), stderr=stderr.text(), timed_out=True)
    except asyncio.CancelledError:
        await kill_process(proc)
        pumps.cancel()
        raise

    return ProcessResult(returncode=returncode, stdout=stdout.text(), stderr=stderr.text())

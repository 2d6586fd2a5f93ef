"""Review CLI wrapper used to run specialist agents."""

import asyncio
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Awaitable, Callable, Sequence

from .exceptions import AgentTransportError


DEFAULT_REVIEW_COMMAND = ["claude"]

# Limit output read to 10MB to prevent memory exhaustion
MAX_OUTPUT_BYTES = 10 * 1024 * 1024

Runner = Callable[[str, Path], Awaitable[str]]


async def call_reviewer(
    prompt: str,
    workdir: Path,
    command: Sequence[str] | None = None,
) -> str:
    """Run the review CLI with the prompt on stdin.

    Cancelling the awaiting task kills the child process before the
    cancellation propagates, so a deadline enforced by the caller always
    terminates the underlying call.

    Args:
        prompt: Full agent prompt
        workdir: Directory the CLI runs in (the cloned repository)
        command: CLI argv (defaults to ``claude``)

    Returns:
        Reviewer stdout text

    Raises:
        AgentTransportError: If the CLI cannot start or exits non-zero
    """
    cmd = list(command or DEFAULT_REVIEW_COMMAND)

    # Use temp files to prevent memory exhaustion from massive outputs
    with tempfile.TemporaryFile(mode='w+b') as out_f, tempfile.TemporaryFile(mode='w+b') as err_f:
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=subprocess.PIPE,
                stdout=out_f,
                stderr=err_f,
                cwd=str(workdir),
            )
        except OSError as e:
            raise AgentTransportError(f"Failed to start reviewer {cmd[0]!r}: {e}") from e

        try:
            try:
                process.stdin.write(prompt.encode("utf-8"))
                await process.stdin.drain()
                process.stdin.close()
            except (BrokenPipeError, ConnectionResetError):
                pass  # Process died early

            await process.wait()
        finally:
            if process.returncode is None:
                process.kill()
                await process.wait()

        out_f.seek(0)
        err_f.seek(0)
        stdout = out_f.read(MAX_OUTPUT_BYTES).decode("utf-8", errors="replace")
        stderr = err_f.read(MAX_OUTPUT_BYTES).decode("utf-8", errors="replace")

    if process.returncode != 0:
        raise AgentTransportError(
            f"Reviewer exited with code {process.returncode}: {stderr.strip()}"
        )

    return stdout.strip()


def make_runner(command: Sequence[str] | None = None) -> Runner:
    """Bind a reviewer command into a runner usable by the orchestrator."""
    cmd = list(command or DEFAULT_REVIEW_COMMAND)

    async def runner(prompt: str, workdir: Path) -> str:
        return await call_reviewer(prompt, workdir, command=cmd)

    return runner


def check_reviewer_available(command: Sequence[str] | None = None) -> tuple[bool, str | None]:
    """Check if the review CLI is installed.

    Returns:
        (is_available, error_message)
    """
    cmd = list(command or DEFAULT_REVIEW_COMMAND)

    if not shutil.which(cmd[0]):
        return False, f"Reviewer CLI not found: {cmd[0]}"

    return True, None

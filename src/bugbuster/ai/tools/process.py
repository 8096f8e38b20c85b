"""Subprocess helper shared by the docker and ssh tools."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

MAX_STDOUT_CHARS = 20000
MAX_STDERR_CHARS = 5000


@dataclass(frozen=True, slots=True)
class CommandResult:
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandTimeout(Exception):
    """The command did not finish within its timeout and was killed."""


async def run_process(*argv: str, timeout: float = 30) -> CommandResult:
    """Run a command without a shell and collect its (truncated) output.

    Raises ``FileNotFoundError`` when the executable is missing and
    ``CommandTimeout`` when it outlives ``timeout`` seconds.
    """
    process = await asyncio.create_subprocess_exec(
        *argv,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        raise CommandTimeout(f"{argv[0]} timed out after {timeout} seconds")

    return CommandResult(
        returncode=process.returncode if process.returncode is not None else -1,
        stdout=stdout.decode("utf-8", errors="replace")[:MAX_STDOUT_CHARS],
        stderr=stderr.decode("utf-8", errors="replace")[:MAX_STDERR_CHARS],
    )

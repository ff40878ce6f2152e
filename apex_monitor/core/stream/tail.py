"""Launching the ``sf apex tail log`` subprocess."""

import asyncio
import os
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, Protocol

from apex_monitor.config import TAIL_COMMAND, TAIL_DEBUG_LEVEL
from apex_monitor.core.logging import get_logger

_log = get_logger("stream.tail")


class TailProcess(Protocol):
    """The parts of ``asyncio.subprocess.Process`` the session relies on."""

    stdout: Optional[asyncio.StreamReader]
    stderr: Optional[asyncio.StreamReader]
    returncode: Optional[int]
    pid: int

    async def wait(self) -> int: ...

    def terminate(self) -> None: ...

    def kill(self) -> None: ...


TailLauncher = Callable[[Optional[str], Path], Awaitable[TailProcess]]


def build_tail_command(target: Optional[str] = None, command: str = TAIL_COMMAND) -> List[str]:
    args = [command, "apex", "tail", "log", "--debug-level", TAIL_DEBUG_LEVEL]
    if target:
        args.extend(["--target-org", target])
    return args


async def launch_tail(target: Optional[str], cwd: Path) -> TailProcess:
    """Spawn the tail subprocess with piped stdout/stderr.

    Raises:
        OSError: The CLI is missing or cannot be executed.
    """
    command = build_tail_command(target)
    env = {**os.environ, "TERM": "dumb", "FORCE_COLOR": "0"}

    process = await asyncio.create_subprocess_exec(
        *command,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        cwd=str(cwd),
        env=env,
    )
    _log.info("Tail started", pid=process.pid, target=target or "(default)")
    return process

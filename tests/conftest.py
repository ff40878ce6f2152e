"""Shared fixtures: project layout on tmp_path and a fake ``sf apex tail log``."""

import asyncio
from pathlib import Path
from typing import Callable, List, Optional, Tuple

import pytest

from apex_monitor.config import LogPaths


# ── Project layout ───────────────────────────────────────────────────────────


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """Temporary Salesforce project root."""
    root = tmp_path / "project"
    root.mkdir()
    (root / "sfdx-project.json").write_text("{}", encoding="utf-8")
    return root


@pytest.fixture
def paths(project_dir: Path) -> LogPaths:
    return LogPaths.from_project(project_dir)


def archive_dirs(project_dir: Path, prefix: str = ".sf-log_") -> List[Path]:
    return sorted(
        p for p in project_dir.iterdir()
        if p.is_dir() and p.name.startswith(prefix) and p.name != ".sf-log_Analysis"
    )


@pytest.fixture
def list_archives() -> Callable[..., List[Path]]:
    """Archive directories under a project root, excluding the analysis dir."""
    return archive_dirs


# ── Fake tail subprocess ─────────────────────────────────────────────────────


class FakeTailProcess:
    """Stands in for ``asyncio.subprocess.Process`` running the tail CLI.

    Must be created inside a running event loop (StreamReader binds to it).
    """

    def __init__(self, ignore_terminate: bool = False, pid: int = 4242):
        self.stdout = asyncio.StreamReader()
        self.stderr = asyncio.StreamReader()
        self.returncode: Optional[int] = None
        self.pid = pid
        self.ignore_terminate = ignore_terminate
        self.terminated = False
        self.killed = False
        self._exited = asyncio.Event()

    def emit(self, data: bytes, stderr: bool = False) -> None:
        (self.stderr if stderr else self.stdout).feed_data(data)

    def exit(self, code: int = 0) -> None:
        if self.returncode is not None:
            return
        self.returncode = code
        self.stdout.feed_eof()
        self.stderr.feed_eof()
        self._exited.set()

    async def wait(self) -> int:
        await self._exited.wait()
        return self.returncode

    def terminate(self) -> None:
        self.terminated = True
        if not self.ignore_terminate:
            self.exit(-15)

    def kill(self) -> None:
        self.killed = True
        self.exit(-9)


class FakeLauncher:
    """Async callable matching ``TailLauncher``; records every launch."""

    def __init__(self):
        self.calls: List[Tuple[Optional[str], Path]] = []
        self.processes: List[FakeTailProcess] = []
        self.error: Optional[Exception] = None
        self.ignore_terminate = False
        # when set, launches block until the event fires
        self.gate: Optional[asyncio.Event] = None

    async def __call__(self, target: Optional[str], cwd: Path) -> FakeTailProcess:
        self.calls.append((target, cwd))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        process = FakeTailProcess(ignore_terminate=self.ignore_terminate, pid=4242 + len(self.processes))
        self.processes.append(process)
        return process

    @property
    def process(self) -> FakeTailProcess:
        return self.processes[-1]

    @property
    def live(self) -> List[FakeTailProcess]:
        return [p for p in self.processes if p.returncode is None]


@pytest.fixture
def launcher() -> FakeLauncher:
    return FakeLauncher()


@pytest.fixture
def eventually():
    """Poll a predicate until it holds, yielding to the event loop in between."""

    async def _eventually(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not met before timeout")
            await asyncio.sleep(0.01)

    return _eventually

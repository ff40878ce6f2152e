"""
Single active tail session.

``StreamSession`` owns the tail subprocess, the rotating writer and the live
buffer. Subprocess output crosses an ``asyncio.Queue`` to one consumer task,
so buffer appends and file writes happen in arrival order on a single path.

Usage:
    session = StreamSession(LogPaths.from_project(root))
    await session.start("my-sandbox")
    ...
    snapshot = session.snapshot()
    await session.stop()
"""

import asyncio
import codecs
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from apex_monitor.config import (
    LIVE_BUFFER_MAX_CHARS,
    LOG_ROTATE_SIZE_BYTES,
    TAIL_COMMAND,
    TAIL_READ_CHUNK,
    TAIL_STOP_TIMEOUT,
    LogPaths,
)
from apex_monitor.core.errors import ErrorCode, code_for_os_error
from apex_monitor.core.logging import get_logger, reset_run_id, set_run_id
from apex_monitor.core.stream.archive import ArchiveManager
from apex_monitor.core.stream.buffer import LiveBuffer
from apex_monitor.core.stream.state_machine import StreamState, StreamStateMachine
from apex_monitor.core.stream.tail import TailLauncher, TailProcess, launch_tail
from apex_monitor.core.stream.types import ArchiveResult, LogSnapshot, StartResult, StopResult
from apex_monitor.core.stream.writer import LogFileWriter

_log = get_logger("stream.session")

DEFAULT_TARGET_LABEL = "(default)"
_EOF = None


@dataclass
class SessionState:
    """Mutable state of the one tail session. Owned by ``StreamSession``."""

    buffer: LiveBuffer
    process: Optional[TailProcess] = None
    target: Optional[str] = None
    run_id: Optional[str] = None
    last_log_path: Optional[Path] = None
    tasks: List[asyncio.Task] = field(default_factory=list)

    def clear(self) -> None:
        self.process = None
        self.target = None
        self.run_id = None
        self.last_log_path = None
        self.tasks = []
        self.buffer.clear()


class StreamSession:

    def __init__(
        self,
        paths: LogPaths,
        *,
        launcher: Optional[TailLauncher] = None,
        rotate_bytes: int = LOG_ROTATE_SIZE_BYTES,
        buffer_max_chars: int = LIVE_BUFFER_MAX_CHARS,
        stop_timeout: float = TAIL_STOP_TIMEOUT,
        read_chunk: int = TAIL_READ_CHUNK,
    ):
        self.paths = paths
        self.writer = LogFileWriter(paths.log_dir, rotate_bytes)
        self.archive = ArchiveManager(paths, self.writer)
        self.state = SessionState(buffer=LiveBuffer(buffer_max_chars))
        self.machine = StreamStateMachine()
        self._launcher = launcher or launch_tail
        self._stop_timeout = stop_timeout
        self._read_chunk = read_chunk
        self._control_lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self.machine.state is StreamState.RUNNING

    @property
    def log_path(self) -> Optional[str]:
        return self.paths.relative(self.state.last_log_path)

    # -- control ---------------------------------------------------------

    async def start(self, target: Optional[str] = None) -> StartResult:
        """Archive old logs, open a segment and launch the tail subprocess.

        A running session is stopped first. Launch failures come back as
        ``StartResult(ok=False)`` with the session left idle.
        """
        async with self._control_lock:
            if not self.machine.is_idle:
                _log.info("Restarting tail, stopping previous run", target=self.state.target)
                await self._shutdown()

            self.state.clear()
            target = (target or "").strip() or None
            self.machine.transition(StreamState.STARTING)

            try:
                return await self._launch(target)
            except BaseException:
                self._abort_start()
                raise

    async def stop(self) -> StopResult:
        """Terminate the tail subprocess and close the writer. Idle is a no-op."""
        async with self._control_lock:
            if self.machine.is_idle:
                return StopResult(ok=True, was_running=False, log_path=self.log_path)

            exit_code = await self._shutdown()
            _log.info("Audit stopped", path=self.log_path, exit_code=exit_code)
            return StopResult(ok=True, was_running=True, log_path=self.log_path, exit_code=exit_code)

    def snapshot(self) -> LogSnapshot:
        return LogSnapshot(
            logs=self.state.buffer.text(),
            log_path=self.log_path,
            running=self.is_running,
            evicted_chunks=self.state.buffer.evicted_chunks,
        )

    async def prepare_analysis(self) -> ArchiveResult:
        """Archive current output for analysis; streaming resumes in a new segment.

        Waits for any start or stop in flight.
        """
        async with self._control_lock:
            result = self.archive.archive_pre_analysis(session_active=self.is_running)
            if self.writer.segment is not None:
                self.state.last_log_path = self.writer.segment.path
            return result

    # -- internals -------------------------------------------------------

    async def _launch(self, target: Optional[str]) -> StartResult:
        self.archive.archive_pre_audit()
        segment = self.writer.open_new()
        if segment is None:
            _log.warning("Streaming without a log file, buffer only")
        else:
            self.state.last_log_path = segment.path

        try:
            process = await self._launcher(target, self.paths.project_dir)
        except (OSError, ValueError) as e:
            # ValueError: arguments the OS refuses outright, e.g. a NUL in the alias
            if isinstance(e, OSError):
                code = code_for_os_error(e, not_found=ErrorCode.TAIL_NOT_FOUND)
            else:
                code = ErrorCode.TAIL_LAUNCH_FAILED
            self._abort_start()
            if code is ErrorCode.TAIL_NOT_FOUND:
                message = (
                    f"{TAIL_COMMAND} CLI not found. "
                    "Install it with: npm install -g @salesforce/cli"
                )
            else:
                message = f"Failed to start tail: {e}"
            _log.error("Tail launch failed", error=str(e), code=code.value)
            return StartResult(
                ok=False,
                target=target or DEFAULT_TARGET_LABEL,
                log_path=self.log_path,
                error=message,
                code=code,
            )

        self.state.process = process
        self.state.target = target
        self.state.run_id = uuid.uuid4().hex
        token = set_run_id(self.state.run_id)
        try:
            self._spawn_pipeline(process)
        finally:
            reset_run_id(token)
        self.machine.transition(StreamState.RUNNING)

        _log.info("Audit started", target=target or DEFAULT_TARGET_LABEL, path=self.log_path)
        return StartResult(ok=True, target=target or DEFAULT_TARGET_LABEL, log_path=self.log_path)

    def _abort_start(self) -> None:
        """Return a half-started session to idle. No-op once the start completed."""
        if self.machine.state is not StreamState.STARTING:
            return
        for task in self.state.tasks:
            task.cancel()
        self.state.tasks = []
        process, self.state.process = self.state.process, None
        if process is not None and process.returncode is None:
            try:
                process.terminate()
            except ProcessLookupError:
                pass
        self.writer.close()
        self.machine.transition(StreamState.IDLE)

    async def _shutdown(self) -> Optional[int]:
        process = self.state.process
        tasks = list(self.state.tasks)
        # Cleared first so the watcher treats this exit as requested.
        self.state.process = None
        self.machine.transition(StreamState.STOPPING)

        exit_code = None
        if process is not None:
            exit_code = await self._terminate(process)

        if tasks:
            _, pending = await asyncio.wait(tasks, timeout=self._stop_timeout)
            for task in pending:
                task.cancel()
            if pending:
                _log.warning("Tail output did not drain, cancelled", pending=len(pending))
                await asyncio.gather(*pending, return_exceptions=True)
        self.state.tasks = []

        self.writer.close()
        self.machine.transition(StreamState.IDLE)
        return exit_code

    async def _terminate(self, process: TailProcess) -> Optional[int]:
        if process.returncode is not None:
            return process.returncode

        try:
            process.terminate()
        except ProcessLookupError:
            return process.returncode

        try:
            return await asyncio.wait_for(process.wait(), self._stop_timeout)
        except asyncio.TimeoutError:
            _log.warning("Tail ignored terminate, killing", pid=process.pid)
            try:
                process.kill()
            except ProcessLookupError:
                pass
            return await process.wait()

    def _spawn_pipeline(self, process: TailProcess) -> None:
        queue: asyncio.Queue = asyncio.Queue()
        pumps = [
            asyncio.create_task(self._pump(stream, queue, name))
            for name, stream in (("stdout", process.stdout), ("stderr", process.stderr))
            if stream is not None
        ]
        consumer = asyncio.create_task(self._consume(queue))
        watcher = asyncio.create_task(self._watch(process, pumps, queue, consumer))
        self.state.tasks = [*pumps, consumer, watcher]

    async def _pump(self, stream: asyncio.StreamReader, queue: asyncio.Queue, name: str) -> None:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        try:
            while True:
                data = await stream.read(self._read_chunk)
                if not data:
                    break
                text = decoder.decode(data)
                if text:
                    await queue.put(text)
        except (OSError, ValueError) as e:
            _log.warning("Tail stream read failed", stream=name, error=str(e))
        rest = decoder.decode(b"", final=True)
        if rest:
            await queue.put(rest)

    async def _consume(self, queue: asyncio.Queue) -> None:
        while True:
            chunk = await queue.get()
            if chunk is _EOF:
                return
            self._ingest(chunk)

    def _ingest(self, chunk: str) -> None:
        self.state.buffer.append(chunk)
        if self.writer.write(chunk) and self.writer.segment is not None:
            self.state.last_log_path = self.writer.segment.path

    async def _watch(
        self,
        process: TailProcess,
        pumps: List[asyncio.Task],
        queue: asyncio.Queue,
        consumer: asyncio.Task,
    ) -> int:
        exit_code = await process.wait()
        if pumps:
            _, stuck = await asyncio.wait(pumps, timeout=self._stop_timeout)
            for task in stuck:
                task.cancel()
        await queue.put(_EOF)
        await consumer

        if self.state.process is process:
            self.state.process = None
            self.writer.close()
            if self.machine.state is StreamState.RUNNING:
                self.machine.transition(StreamState.IDLE)
            _log.warning("Tail exited on its own", exit_code=exit_code, path=self.log_path)
        return exit_code


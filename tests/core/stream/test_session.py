"""Tests for apex_monitor.core.stream.session, driven by a fake tail process."""

import asyncio

import pytest

from apex_monitor.core.errors import ErrorCode
from apex_monitor.core.stream import StreamSession, StreamState


@pytest.fixture
def session(paths, launcher):
    return StreamSession(paths, launcher=launcher, rotate_bytes=1024, stop_timeout=0.2)


# ── Start ────────────────────────────────────────────────────────────────────


class TestStart:

    async def test_start_opens_segment_and_launches(self, session, launcher, paths):
        result = await session.start("  my-sandbox ")

        assert result.ok
        assert result.target == "my-sandbox"
        assert result.log_path.startswith(".sf-log/apex-")
        assert launcher.calls == [("my-sandbox", paths.project_dir)]
        assert session.is_running
        assert session.writer.is_open
        assert session.writer.segment.path.exists()
        await session.stop()

    async def test_blank_target_uses_default_org(self, session, launcher):
        result = await session.start("")
        assert result.target == "(default)"
        assert launcher.calls[0][0] is None
        assert result.to_dict()["org"] == "(default)"
        await session.stop()

    async def test_existing_logs_archived_before_audit(self, session, paths, list_archives):
        paths.log_dir.mkdir()
        (paths.log_dir / "apex-old.log").write_text("old", encoding="utf-8")

        await session.start()

        archives = list_archives(paths.project_dir)
        assert len(archives) == 1
        assert (archives[0] / "apex-old.log").exists()
        assert not (paths.log_dir / "apex-old.log").exists()
        await session.stop()

    async def test_missing_cli_is_structured_failure(self, session, launcher):
        launcher.error = FileNotFoundError("sf")

        result = await session.start("org")

        assert not result.ok
        assert result.code is ErrorCode.TAIL_NOT_FOUND
        assert "npm install -g @salesforce/cli" in result.error
        assert result.to_dict()["code"] == "E101"
        assert session.machine.is_idle
        assert not session.writer.is_open

    async def test_permission_denied_launch(self, session, launcher):
        launcher.error = PermissionError("denied")
        result = await session.start()
        assert not result.ok
        assert result.code is ErrorCode.PERMISSION_DENIED
        assert session.machine.is_idle

    async def test_rejected_target_leaves_session_restartable(self, session, launcher):
        launcher.error = ValueError("embedded null byte")

        result = await session.start("org\x00alias")

        assert not result.ok
        assert result.code is ErrorCode.TAIL_LAUNCH_FAILED
        assert "Failed to start tail" in result.error
        assert session.machine.is_idle
        assert not session.writer.is_open

        launcher.error = None
        retry = await session.start("org")
        assert retry.ok
        assert session.is_running
        stopped = await session.stop()
        assert stopped.was_running
        assert session.machine.is_idle

    async def test_unexpected_launch_error_propagates_idle(self, session, launcher):
        launcher.error = RuntimeError("launcher bug")

        with pytest.raises(RuntimeError):
            await session.start()

        assert session.machine.is_idle
        assert not session.writer.is_open

        launcher.error = None
        assert (await session.start()).ok
        await session.stop()

    async def test_cancelled_start_returns_to_idle(self, session, launcher, eventually):
        launcher.gate = asyncio.Event()
        task = asyncio.create_task(session.start())
        await eventually(lambda: launcher.calls)
        assert session.machine.state is StreamState.STARTING

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert session.machine.is_idle
        assert not session.writer.is_open

    async def test_writer_failure_degrades_to_buffer_only(self, paths, launcher, eventually):
        paths.log_dir.write_text("not a directory", encoding="utf-8")
        session = StreamSession(paths, launcher=launcher, stop_timeout=0.2)

        result = await session.start()
        assert result.ok
        assert result.log_path is None
        assert session.is_running

        launcher.process.emit(b"10:00:00 |USER_DEBUG|still buffered\n")
        await eventually(lambda: "still buffered" in session.snapshot().logs)
        assert session.writer.dropped_writes >= 1
        await session.stop()


# ── Streaming ────────────────────────────────────────────────────────────────


class TestStreaming:

    async def test_output_reaches_buffer_and_file(self, session, launcher, eventually):
        await session.start()
        launcher.process.emit(b"line one\n")
        launcher.process.emit(b"line two\n")

        await eventually(lambda: session.snapshot().logs == "line one\nline two\n")
        segment_path = session.writer.segment.path

        await session.stop()
        assert segment_path.read_text(encoding="utf-8") == "line one\nline two\n"

    async def test_stderr_is_captured(self, session, launcher, eventually):
        await session.start()
        launcher.process.emit(b"ERROR: no default org\n", stderr=True)
        await eventually(lambda: "no default org" in session.snapshot().logs)
        await session.stop()

    async def test_split_utf8_sequence_decodes(self, session, launcher, eventually):
        await session.start()
        encoded = "café\n".encode("utf-8")
        launcher.process.emit(encoded[:4])
        launcher.process.emit(encoded[4:])
        await eventually(lambda: session.snapshot().logs == "café\n")
        await session.stop()

    async def test_invalid_bytes_replaced(self, session, launcher, eventually):
        await session.start()
        launcher.process.emit(b"bad \xff byte\n")
        await eventually(lambda: "byte" in session.snapshot().logs)
        assert "�" in session.snapshot().logs
        await session.stop()

    async def test_snapshot_reports_state(self, session, launcher):
        snap = session.snapshot()
        assert snap.logs == ""
        assert not snap.running

        await session.start()
        assert session.snapshot().running
        await session.stop()


# ── Stop and restart ─────────────────────────────────────────────────────────


class TestStop:

    async def test_stop_when_idle_is_harmless(self, session):
        result = await session.stop()
        assert result.ok
        assert not result.was_running
        assert result.to_dict()["wasRunning"] is False

    async def test_stop_terminates_and_closes(self, session, launcher):
        await session.start()
        process = launcher.process

        result = await session.stop()

        assert result.was_running
        assert result.exit_code == -15
        assert process.terminated
        assert not process.killed
        assert session.machine.is_idle
        assert not session.writer.is_open
        assert session.state.tasks == []

    async def test_stop_kills_unresponsive_process(self, session, launcher):
        launcher.ignore_terminate = True
        await session.start()
        process = launcher.process

        result = await session.stop()

        assert process.terminated
        assert process.killed
        assert result.exit_code == -9
        assert session.machine.is_idle

    async def test_stop_twice(self, session):
        await session.start()
        assert (await session.stop()).was_running
        assert not (await session.stop()).was_running

    async def test_restart_leaves_one_live_process(self, session, launcher, eventually):
        await session.start("first")
        launcher.process.emit(b"from first\n")
        await eventually(lambda: "from first" in session.snapshot().logs)
        first_segment = session.writer.segment

        await session.start("second")

        assert len(launcher.processes) == 2
        assert launcher.live == [launcher.processes[1]]
        assert launcher.processes[0].terminated
        assert first_segment.closed
        assert session.writer.segment is not first_segment
        assert session.writer.is_open
        assert session.snapshot().logs == ""
        assert session.state.target == "second"
        assert session.is_running
        await session.stop()

    async def test_self_exit_returns_to_idle(self, session, launcher, eventually):
        await session.start()
        launcher.process.emit(b"last words\n")
        launcher.process.exit(1)

        await eventually(lambda: session.machine.state is StreamState.IDLE)

        assert not session.writer.is_open
        assert session.state.process is None
        assert "last words" in session.snapshot().logs
        assert not (await session.stop()).was_running

    async def test_start_after_self_exit(self, session, launcher, eventually):
        await session.start()
        launcher.process.exit(0)
        await eventually(lambda: session.machine.is_idle)

        result = await session.start()

        assert result.ok
        assert len(launcher.live) == 1
        await session.stop()


# ── Analysis preparation ─────────────────────────────────────────────────────


class TestPrepareAnalysis:

    async def test_streaming_continues_in_new_segment(self, session, launcher, paths, eventually):
        await session.start()
        launcher.process.emit(b"before\n")
        await eventually(lambda: "before" in session.snapshot().logs)
        old_segment = session.writer.segment

        result = await session.prepare_analysis()

        assert result.moved_main
        assert old_segment.closed
        staged = paths.analysis_dir / old_segment.path.name
        assert staged.read_text(encoding="utf-8") == "before\n"

        launcher.process.emit(b"after\n")
        await eventually(lambda: "after" in session.snapshot().logs)
        new_segment = session.writer.segment
        assert new_segment is not old_segment
        assert session.log_path == f".sf-log/{new_segment.path.name}"

        await session.stop()
        assert new_segment.path.read_text(encoding="utf-8") == "after\n"

    async def test_idle_session_does_not_reopen(self, session, paths):
        paths.log_dir.mkdir()
        (paths.log_dir / "apex-1.log").write_text("saved", encoding="utf-8")

        await session.prepare_analysis()

        assert not session.writer.is_open
        assert (paths.analysis_dir / "apex-1.log").read_text(encoding="utf-8") == "saved"

    async def test_waits_for_start_in_flight(self, session, launcher, eventually):
        launcher.gate = asyncio.Event()
        starting = asyncio.create_task(session.start())
        await eventually(lambda: launcher.calls)
        assert session.machine.state is StreamState.STARTING

        preparing = asyncio.create_task(session.prepare_analysis())
        await asyncio.sleep(0.05)
        assert not preparing.done()

        launcher.gate.set()
        assert (await starting).ok
        await preparing

        assert session.is_running
        assert session.writer.is_open
        launcher.process.emit(b"10:00:00 |USER_DEBUG|after analysis\n")
        await eventually(lambda: "after analysis" in session.snapshot().logs)
        assert session.writer.dropped_writes == 0
        assert session.writer.segment.path.read_text(encoding="utf-8").endswith("after analysis\n")
        await session.stop()

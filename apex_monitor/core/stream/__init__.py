from apex_monitor.core.stream.archive import ArchiveManager
from apex_monitor.core.stream.buffer import LiveBuffer
from apex_monitor.core.stream.lock import StreamLock
from apex_monitor.core.stream.session import SessionState, StreamSession
from apex_monitor.core.stream.state_machine import (
    StreamState,
    StreamStateMachine,
    StreamTransitionError,
)
from apex_monitor.core.stream.types import (
    ArchiveResult,
    LogSegment,
    LogSnapshot,
    StartResult,
    StopResult,
)
from apex_monitor.core.stream.writer import LogFileWriter

__all__ = [
    "ArchiveManager",
    "ArchiveResult",
    "LiveBuffer",
    "LogFileWriter",
    "LogSegment",
    "LogSnapshot",
    "SessionState",
    "StartResult",
    "StopResult",
    "StreamLock",
    "StreamSession",
    "StreamState",
    "StreamStateMachine",
    "StreamTransitionError",
]

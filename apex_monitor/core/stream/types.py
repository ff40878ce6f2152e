"""Result and record types for the streaming subsystem."""
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from apex_monitor.core.errors import ErrorCode


@dataclass
class LogSegment:
    """One rotation period of a stream, written append-only."""
    path: Path
    created_at: datetime
    size: int = 0
    closed: bool = False


@dataclass
class ArchiveResult:
    """Outcome of archiving before an analysis run."""
    moved_main: bool = False
    moved_analysis: bool = False
    archive_dir: Optional[Path] = None
    skipped: list[str] = field(default_factory=list)


@dataclass
class StartResult:
    ok: bool
    target: str = "(default)"
    log_path: Optional[str] = None
    error: Optional[str] = None
    code: Optional[ErrorCode] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"ok": self.ok, "org": self.target, "logPath": self.log_path}
        if self.error:
            data["error"] = self.error
            data["code"] = self.code.value if self.code else None
        return data


@dataclass
class StopResult:
    ok: bool = True
    was_running: bool = False
    log_path: Optional[str] = None
    exit_code: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"ok": self.ok, "logPath": self.log_path, "wasRunning": self.was_running}


@dataclass
class LogSnapshot:
    """Read-only copy of the live buffer."""
    logs: str
    log_path: Optional[str] = None
    running: bool = False
    evicted_chunks: int = 0

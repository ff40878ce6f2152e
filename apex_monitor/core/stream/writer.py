"""Size-rotated writer for streamed log output.

The writer owns the only writable ``LogSegment``. Opening a new segment
always closes the previous one first.
"""

from pathlib import Path
from typing import BinaryIO, List, Optional, Union

from apex_monitor.core.logging import get_logger
from apex_monitor.core.stream.types import LogSegment
from apex_monitor.core.utils.timestamps import now_local, segment_stamp, unique_file

_log = get_logger("stream.writer")

DEFAULT_ROTATE_BYTES = 1024 * 1024
SEGMENT_PREFIX = "apex-"
SEGMENT_SUFFIX = ".log"


class LogFileWriter:

    def __init__(self, log_dir: Path, rotate_bytes: int = DEFAULT_ROTATE_BYTES):
        self.log_dir = Path(log_dir)
        self.rotate_bytes = max(1, rotate_bytes)
        self._segment: Optional[LogSegment] = None
        self._fh: Optional[BinaryIO] = None
        self.closed_segments: List[LogSegment] = []
        self.rotations = 0
        self.dropped_writes = 0

    @property
    def segment(self) -> Optional[LogSegment]:
        """The writable segment, or None in buffer-only mode."""
        return self._segment

    @property
    def is_open(self) -> bool:
        return self._fh is not None

    def next_segment_path(self) -> Path:
        """Timestamped path in the log directory that no file occupies yet."""
        return unique_file(self.log_dir, f"{SEGMENT_PREFIX}{segment_stamp()}", SEGMENT_SUFFIX)

    def open(self, path: Path) -> Optional[LogSegment]:
        """Create (or truncate) ``path`` as the sole writable segment.

        Returns None and stays closed when the file cannot be created.
        """
        self.close()
        path = Path(path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fh = open(path, "wb")
        except OSError as e:
            _log.error("Failed to create log file", path=str(path), error=str(e))
            return None

        self._fh = fh
        self._segment = LogSegment(path=path, created_at=now_local())
        _log.info("Log segment opened", segment=path.name)
        return self._segment

    def open_new(self) -> Optional[LogSegment]:
        return self.open(self.next_segment_path())

    def _should_rotate(self, pending: int) -> bool:
        segment = self._segment
        if segment is None or segment.size == 0:
            return False
        return segment.size + pending >= self.rotate_bytes

    def _rotate(self) -> None:
        previous = self._segment
        self.close()
        self.rotations += 1
        segment = self.open_new()
        _log.info(
            "Log rotated",
            previous=previous.path.name if previous else None,
            segment=segment.path.name if segment else None,
        )

    def write(self, data: Union[str, bytes]) -> bool:
        """Append ``data`` to the open segment, rotating first if it would fill.

        Returns False when the write was dropped (no open segment or IO error).
        """
        if isinstance(data, str):
            data = data.encode("utf-8")
        if not data:
            return True
        if self._fh is None:
            self.dropped_writes += 1
            return False

        if self._should_rotate(len(data)):
            self._rotate()
            if self._fh is None:
                self.dropped_writes += 1
                return False

        try:
            self._fh.write(data)
            self._fh.flush()
        except OSError as e:
            _log.error("Log write failed, continuing without file", error=str(e))
            self.close()
            self.dropped_writes += 1
            return False

        self._segment.size += len(data)
        return True

    def close(self) -> Optional[LogSegment]:
        """Flush and release the current segment. Safe to call repeatedly."""
        fh, segment = self._fh, self._segment
        self._fh = None
        self._segment = None
        if fh is None:
            return None

        try:
            fh.flush()
            fh.close()
        except OSError as e:
            _log.warning("Error closing log segment", error=str(e))

        if segment is not None:
            segment.closed = True
            self.closed_segments.append(segment)
            _log.debug("Log segment closed", segment=segment.path.name, size=segment.size)
        return segment

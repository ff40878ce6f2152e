"""Cross-process flock marking the project's live ``stream`` process."""

import os
from pathlib import Path
from typing import Optional

from apex_monitor.core.logging import get_logger

_log = get_logger("stream.lock")


class StreamLock:
    """Exclusive advisory lock on ``.sf-log.lock``, holding the owner's pid.

    The kernel drops the lock when its holder exits, so a file left behind
    by a crashed stream is never mistaken for a live one.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._fd: Optional[int] = None

    @property
    def held(self) -> bool:
        return self._fd is not None

    def acquire(self) -> bool:
        """Take the lock without blocking. False when another stream holds it."""
        if self._fd is not None:
            return True
        if os.name == "nt":
            return True

        import fcntl
        fd = os.open(str(self.path), os.O_CREAT | os.O_RDWR, 0o644)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            os.close(fd)
            return False
        except Exception:
            os.close(fd)
            raise

        os.ftruncate(fd, 0)
        os.write(fd, f"{os.getpid()}\n".encode("ascii"))
        self._fd = fd
        _log.debug("Stream lock acquired", path=str(self.path), pid=os.getpid())
        return True

    def release(self) -> None:
        if self._fd is None:
            return
        fd, self._fd = self._fd, None

        try:
            import fcntl
            os.ftruncate(fd, 0)
            fcntl.flock(fd, fcntl.LOCK_UN)
            os.close(fd)
        except (ImportError, OSError) as e:
            _log.warning("Stream lock release failed", error=str(e))

    def holder(self) -> Optional[int]:
        """Pid of the live stream holding the lock, 0 if unreadable, None if free."""
        if os.name == "nt" or not self.path.exists():
            return None

        import fcntl
        try:
            fd = os.open(str(self.path), os.O_RDONLY)
        except FileNotFoundError:
            return None

        try:
            try:
                fcntl.flock(fd, fcntl.LOCK_SH | fcntl.LOCK_NB)
            except BlockingIOError:
                raw = os.read(fd, 32).decode("ascii", errors="replace").strip()
                return int(raw) if raw.isdigit() else 0
            fcntl.flock(fd, fcntl.LOCK_UN)
            return None
        finally:
            os.close(fd)

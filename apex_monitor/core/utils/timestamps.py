"""Timestamp-derived names for log segments and archive directories."""

from datetime import datetime
from pathlib import Path
from typing import Optional


def now_local() -> datetime:

    return datetime.now().astimezone()


def segment_stamp(dt: Optional[datetime] = None) -> str:
    """``2024-05-01T13-45-09``: ISO-8601 to the second, filesystem safe."""
    if dt is None:
        dt = now_local()
    return dt.strftime("%Y-%m-%dT%H-%M-%S")


def archive_stamp(dt: Optional[datetime] = None) -> str:
    """``2024-05-01_13-45-09``: date and time parts for archive folders."""
    if dt is None:
        dt = now_local()
    return dt.strftime("%Y-%m-%d_%H-%M-%S")


def unique_file(directory: Path, stem: str, suffix: str) -> Path:
    """First of ``stem+suffix``, ``stem-2+suffix``, ... not present in ``directory``."""
    candidate = directory / f"{stem}{suffix}"
    n = 2
    while candidate.exists():
        candidate = directory / f"{stem}-{n}{suffix}"
        n += 1
    return candidate


def make_unique_dir(parent: Path, name: str) -> Path:
    """Create and return ``parent/name``, or ``name-2``, ``name-3``... if taken.

    Creation is exclusive, so an existing directory is never reused.
    """
    parent.mkdir(parents=True, exist_ok=True)
    n = 1
    while True:
        candidate = parent / (name if n == 1 else f"{name}-{n}")
        try:
            candidate.mkdir()
            return candidate
        except FileExistsError:
            n += 1

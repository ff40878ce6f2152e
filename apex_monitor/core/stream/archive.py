"""Archive prior log output before a new audit or analysis cycle.

Archives are sibling directories of ``.sf-log``:

- ``.sf-log_<date>_<time>/`` before a new audit starts
- ``.sf-log_archive_<date>_<time>/{main,analysis}/`` before an analysis

Moves and copies are best effort per file: a failure is logged and the
remaining files are still processed.
"""

import shutil
from pathlib import Path
from typing import Callable, List

from apex_monitor.config import LOG_DIR_NAME, LogPaths
from apex_monitor.core.logging import get_logger, logged
from apex_monitor.core.stream.types import ArchiveResult
from apex_monitor.core.stream.writer import LogFileWriter
from apex_monitor.core.utils.timestamps import archive_stamp, make_unique_dir

_log = get_logger("stream.archive")

LOG_FILE_SUFFIXES = (".log", ".log.gz")


def _list_files(directory: Path, predicate: Callable[[Path], bool] = lambda p: True) -> List[Path]:
    if not directory.is_dir():
        return []
    try:
        entries = sorted(directory.iterdir())
    except OSError as e:
        _log.warning("Cannot list directory", path=str(directory), error=str(e))
        return []
    files = []
    for entry in entries:
        try:
            if entry.is_file() and predicate(entry):
                files.append(entry)
        except OSError:
            continue
    return files


def _is_log_file(path: Path) -> bool:
    return path.name.endswith(LOG_FILE_SUFFIXES)


def _move_each(files: List[Path], dest_dir: Path, skipped: List[str]) -> int:
    moved = 0
    for src in files:
        try:
            shutil.move(str(src), str(dest_dir / src.name))
            moved += 1
        except (OSError, shutil.Error) as e:
            skipped.append(src.name)
            _log.warning("Archive move failed", file=src.name, error=str(e))
    return moved


def _copy_each(files: List[Path], dest_dir: Path, skipped: List[str]) -> int:
    copied = 0
    for src in files:
        try:
            shutil.copy2(src, dest_dir / src.name)
            copied += 1
        except (OSError, shutil.Error) as e:
            skipped.append(src.name)
            _log.warning("Analysis copy failed", file=src.name, error=str(e))
    return copied


def _subdir(archive_dir: Path, name: str) -> Path | None:
    dest = archive_dir / name
    try:
        dest.mkdir(exist_ok=True)
    except OSError as e:
        _log.error("Cannot create archive subfolder", path=str(dest), error=str(e))
        return None
    return dest


class ArchiveManager:
    """Moves prior output aside so each cycle starts from an empty directory."""

    def __init__(self, paths: LogPaths, writer: LogFileWriter):
        self.paths = paths
        self.writer = writer

    def _new_archive_dir(self, name: str) -> Path:
        return make_unique_dir(self.paths.project_dir, name)

    @logged()
    def archive_pre_audit(self) -> Path | None:
        """Move existing ``*.log`` / ``*.log.gz`` files out of the log directory.

        Returns the archive directory, or None when there was nothing to move.
        """
        log_files = _list_files(self.paths.log_dir, _is_log_file)
        if not log_files:
            return None

        try:
            archive_dir = self._new_archive_dir(f"{LOG_DIR_NAME}_{archive_stamp()}")
        except OSError as e:
            _log.error("Cannot create audit archive, keeping files in place", error=str(e))
            return None

        skipped: List[str] = []
        moved = _move_each(log_files, archive_dir, skipped)
        _log.info(
            "Archived logs before audit",
            archive=archive_dir.name,
            moved=moved,
            skipped=len(skipped),
        )
        return archive_dir

    @logged()
    def archive_pre_analysis(self, session_active: bool = False) -> ArchiveResult:
        """Archive main and analysis files, then stage a fresh analysis copy.

        The open segment is closed first so its bytes are included. Files in
        the analysis directory go to ``analysis/``, files in the log directory
        go to ``main/``; the archived main files are then copied into the
        emptied analysis directory. When ``session_active`` is true a new
        segment is opened so streaming continues after the archive point.
        """
        self.writer.close()

        result = ArchiveResult()
        try:
            self.paths.log_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            _log.warning("Cannot create log directory", path=str(self.paths.log_dir), error=str(e))

        analysis_files = _list_files(self.paths.analysis_dir)
        main_files = _list_files(self.paths.log_dir)

        if analysis_files or main_files:
            try:
                result.archive_dir = self._new_archive_dir(
                    f"{LOG_DIR_NAME}_archive_{archive_stamp()}"
                )
            except OSError as e:
                _log.error("Cannot create analysis archive", error=str(e))

        archive_dir = result.archive_dir
        if archive_dir is not None and analysis_files:
            dest = _subdir(archive_dir, "analysis")
            if dest is not None:
                result.moved_analysis = _move_each(analysis_files, dest, result.skipped) > 0

        try:
            self.paths.analysis_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            _log.error("Cannot create analysis directory", error=str(e))

        if archive_dir is not None and main_files:
            dest = _subdir(archive_dir, "main")
            if dest is not None:
                result.moved_main = _move_each(main_files, dest, result.skipped) > 0
                if self.paths.analysis_dir.is_dir():
                    _copy_each(_list_files(dest), self.paths.analysis_dir, result.skipped)

        if session_active:
            self.writer.open_new()

        _log.info(
            "Prepared logs for analysis",
            archive=archive_dir.name if archive_dir else None,
            main=result.moved_main,
            analysis=result.moved_analysis,
            skipped=len(result.skipped),
        )
        return result

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from apex_monitor.core.errors import ConfigurationError
from apex_monitor.core.logging import get_logger

_log = get_logger("config")

load_dotenv()

APP_VERSION = "1.0.0"

PACKAGE_ROOT = Path(__file__).parent.resolve()

SFDX_PROJECT_FILE = "sfdx-project.json"
PROJECT_SEARCH_DEPTH = 10

LOG_DIR_NAME = ".sf-log"
ANALYSIS_DIR_NAME = f"{LOG_DIR_NAME}_Analysis"
STREAM_LOCK_NAME = f"{LOG_DIR_NAME}.lock"


def _get_int_env(name: str, default: int) -> int:
    """Get integer value from environment variable.

    Args:
        name: Environment variable name
        default: Default value if not set or invalid

    Returns:
        Integer value from env or default
    """
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        _log.warning("Invalid int env", env=name, value=raw)
        return default


def _get_float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        _log.warning("Invalid float env", env=name, value=raw)
        return default


def _get_size_bytes(bytes_env: str, mb_env: str, default_bytes: int) -> int:
    """Get size in bytes from environment variable.

    Checks bytes_env first, then mb_env (converted to bytes).

    Args:
        bytes_env: Environment variable name for bytes value
        mb_env: Environment variable name for megabytes value
        default_bytes: Default size if neither env is set

    Returns:
        Size in bytes
    """
    raw_bytes = os.getenv(bytes_env)
    if raw_bytes:
        try:
            return max(1, int(raw_bytes))
        except ValueError:
            _log.warning("Invalid size env", env=bytes_env, value=raw_bytes)
    raw_mb = os.getenv(mb_env)
    if raw_mb:
        try:
            return max(1, int(float(raw_mb) * 1024 * 1024))
        except ValueError:
            _log.warning("Invalid size env", env=mb_env, value=raw_mb)
    return default_bytes


# =============================================================================
# Log streaming
# =============================================================================
LOG_ROTATE_SIZE_BYTES = _get_size_bytes("LOG_ROTATE_SIZE_BYTES", "LOG_ROTATE_SIZE_MB", 1024 * 1024)
# Live buffer cap in characters; oldest chunks are evicted beyond it.
LIVE_BUFFER_MAX_CHARS = _get_int_env("LIVE_BUFFER_MAX_CHARS", 5_000_000)
TAIL_COMMAND = os.getenv("TAIL_COMMAND", "sf")
TAIL_DEBUG_LEVEL = os.getenv("TAIL_DEBUG_LEVEL", "DEBUG")
TAIL_STOP_TIMEOUT = _get_float_env("TAIL_STOP_TIMEOUT", 5.0)
TAIL_READ_CHUNK = _get_int_env("TAIL_READ_CHUNK", 64 * 1024)

# =============================================================================
# Analysis
# =============================================================================
AGENT_CLI = os.getenv("AGENT_CLI", "agent")
AGENT_TIMEOUT = _get_int_env("AGENT_TIMEOUT", 600)
AGENT_PROMPT_FILE = Path(
    os.getenv("AGENT_PROMPT_FILE", str(PACKAGE_ROOT / "prompts" / "apex-log-analysis.md"))
)
SCAN_RULES_FILE = os.getenv("SCAN_RULES_FILE", "")
SCAN_MAX_LINE_DISPLAY = _get_int_env("SCAN_MAX_LINE_DISPLAY", 100)


@dataclass(frozen=True)
class LogPaths:
    """Directory layout under a Salesforce project root."""

    project_dir: Path
    log_dir: Path
    analysis_dir: Path

    @classmethod
    def from_project(cls, project_dir: Path) -> "LogPaths":
        root = Path(project_dir).resolve()
        return cls(
            project_dir=root,
            log_dir=root / LOG_DIR_NAME,
            analysis_dir=root / ANALYSIS_DIR_NAME,
        )

    @property
    def lock_file(self) -> Path:
        """Held by the one ``stream`` process writing into log_dir."""
        return self.project_dir / STREAM_LOCK_NAME

    def relative(self, path: Optional[Path]) -> Optional[str]:
        """Path relative to the project root, for display."""
        if path is None:
            return None
        try:
            return str(Path(path).relative_to(self.project_dir))
        except ValueError:
            return str(path)


def find_project_dir(explicit: Optional[str] = None, start: Optional[Path] = None) -> Optional[Path]:
    """Locate the Salesforce project root.

    An explicit directory (argument or ``SF_PROJECT_DIR``) is used as given,
    even without ``sfdx-project.json``. Otherwise walk up from ``start``
    (default: cwd) looking for ``sfdx-project.json``.
    """
    explicit = explicit or os.getenv("SF_PROJECT_DIR")
    if explicit:
        path = Path(explicit).expanduser().resolve()
        if not (path / SFDX_PROJECT_FILE).exists():
            _log.warning("No sfdx-project.json in explicit project dir", path=str(path))
        return path

    current = (start or Path.cwd()).resolve()
    for _ in range(PROJECT_SEARCH_DEPTH):
        if (current / SFDX_PROJECT_FILE).exists():
            return current
        if current.parent == current:
            break
        current = current.parent
    return None


def require_project_dir(explicit: Optional[str] = None, start: Optional[Path] = None) -> Path:
    """Like ``find_project_dir`` but a missing root is a ConfigurationError."""
    project_dir = find_project_dir(explicit, start)
    if project_dir is None:
        raise ConfigurationError(
            "Not inside a Salesforce project. Run from a project root "
            "(with sfdx-project.json) or set SF_PROJECT_DIR=/path/to/project"
        )
    return project_dir

"""
Structured error types for the log monitor.

Expected failures (missing tools, permission problems, agent errors) travel
as ``ErrorCode`` values inside result objects. Exceptions are reserved for
misconfiguration and programming errors.
"""

import time
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any


class ErrorCode(Enum):
    """
    Categorized error codes carried by result objects.

    Ranges:
    - E00x: Configuration
    - E10x: Tail subprocess
    - E20x: Filesystem
    - E30x: Analysis agent
    - E49x: Internal
    """

    # Configuration (E00x)
    PROJECT_NOT_FOUND = "E001"
    INVALID_RULES = "E002"

    # Tail subprocess (E10x)
    TAIL_NOT_FOUND = "E101"
    TAIL_LAUNCH_FAILED = "E102"

    # Filesystem (E20x)
    PERMISSION_DENIED = "E201"
    FILE_IO_FAILED = "E202"

    # Analysis agent (E30x)
    AGENT_NOT_FOUND = "E301"
    AGENT_FAILED = "E302"
    AGENT_TIMEOUT = "E303"
    PROMPT_NOT_FOUND = "E304"

    INTERNAL_ERROR = "E499"


def code_for_os_error(error: OSError, *, not_found: ErrorCode) -> ErrorCode:
    """Map an OSError raised while spawning or touching files to an ErrorCode."""
    if isinstance(error, FileNotFoundError):
        return not_found
    if isinstance(error, PermissionError):
        return ErrorCode.PERMISSION_DENIED
    return ErrorCode.FILE_IO_FAILED


class ApexMonitorError(Exception, ABC):
    """Abstract base for all typed application errors."""

    @abstractmethod
    def _abstract_guard(self) -> None: ...

    @property
    @abstractmethod
    def is_recoverable(self) -> bool: ...

    def __init__(self, message: str, *, code: ErrorCode = ErrorCode.INTERNAL_ERROR) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.timestamp = time.time()

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "is_recoverable": self.is_recoverable,
            "timestamp": self.timestamp,
        }


class PermanentError(ApexMonitorError):
    is_recoverable: bool = False

    def _abstract_guard(self) -> None: ...


class ConfigurationError(PermanentError):
    """Startup misconfiguration, such as no Salesforce project root."""

    def __init__(self, message: str, *, code: ErrorCode = ErrorCode.PROJECT_NOT_FOUND) -> None:
        super().__init__(message, code=code)

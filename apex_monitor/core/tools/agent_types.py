"""Common data types for the analysis agent integration."""
from dataclasses import dataclass
from typing import Any, Dict, Optional

from apex_monitor.core.errors import ErrorCode


@dataclass
class AgentResult:
    """Result from one agent CLI run."""
    success: bool
    output: str
    error: Optional[str] = None
    code: Optional[ErrorCode] = None
    exit_code: int = 0
    execution_time: float = 0.0


@dataclass
class AgentHealthStatus:
    """Agent CLI availability."""
    available: bool
    message: str
    version: Optional[str] = None
    details: Optional[Dict[str, Any]] = None

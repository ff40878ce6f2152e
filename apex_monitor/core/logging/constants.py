import logging
import os
import sys
from contextvars import ContextVar
from typing import Optional

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}
DEFAULT_LEVEL = LOG_LEVEL_MAP.get(LOG_LEVEL, logging.INFO)
LOG_JSON = os.getenv("LOG_JSON", "").lower() in ("1", "true", "yes")

_run_id: ContextVar[Optional[str]] = ContextVar("run_id", default=None)


def set_run_id(run_id: str):
    return _run_id.set(run_id)


def reset_run_id(token) -> None:
    _run_id.reset(token)


def get_run_id() -> Optional[str]:
    return _run_id.get()


MODULE_COLORS = {
    "stream":   "\033[96m",
    "analysis": "\033[95m",
    "tools":    "\033[92m",
    "services": "\033[93m",
    "config":   "\033[94m",
    "cli":      "\033[97m",
}

MODULE_ABBREV = {
    "stream": "STR",
    "analysis": "ANA",
    "tools": "TOL",
    "services": "SVC",
    "config": "CFG",
    "cli": "CLI",
}


class Colors:

    @staticmethod
    def _enabled() -> bool:

        if os.getenv("NO_COLOR"):
            return False
        return sys.stdout.isatty()

    @classmethod
    def get(cls, color_code: str) -> str:
        return color_code if cls._enabled() else ""


_COLORS = {
    "RESET": "\033[0m",
    "BOLD": "\033[1m",
    "DIM": "\033[2m",
    "DEBUG": "\033[36m",
    "INFO": "\033[32m",
    "WARNING": "\033[33m",
    "ERROR": "\033[31m",
    "CRITICAL": "\033[35m",
    "TIME": "\033[90m",
    "MODULE": "\033[34m",
    "KEY": "\033[90m",
    "VALUE": "\033[37m",
    "PATH": "\033[96m",
    "SUCCESS": "\033[92m",
    "SEPARATOR": "\033[90m",
}

LEVEL_STYLES = {
    "DEBUG": ("DEBUG", "DEBUG"),
    "INFO": (" INFO", "INFO"),
    "WARNING": (" WARN", "WARNING"),
    "ERROR": ("ERROR", "ERROR"),
    "CRITICAL": ("CRIT!", "CRITICAL"),
}

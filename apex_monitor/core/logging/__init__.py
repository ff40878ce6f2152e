from .constants import (
    Colors,
    MODULE_ABBREV,
    MODULE_COLORS,
    get_run_id,
    reset_run_id,
    set_run_id,
)
from .decorator import logged
from .formatters import JsonFormatter, PlainFormatter, SmartFormatter
from .structured_logger import StructuredLogger, get_logger, set_log_level

__all__ = [

    "get_logger",
    "StructuredLogger",
    "SmartFormatter",
    "PlainFormatter",
    "JsonFormatter",
    "Colors",
    "MODULE_COLORS",
    "MODULE_ABBREV",
    "set_run_id",
    "reset_run_id",
    "get_run_id",
    "set_log_level",
    "logged",
]

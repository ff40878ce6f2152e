"""``logged``: DEBUG tracing around filesystem operations such as archiving."""

import functools
import logging
from dataclasses import fields, is_dataclass
from pathlib import Path
from typing import Any, Callable, Dict, ParamSpec, TypeVar

from .structured_logger import get_logger

P = ParamSpec('P')
T = TypeVar('T')


def _logger_name(module: str) -> str:
    for prefix in ("apex_monitor.core.", "apex_monitor."):
        if module.startswith(prefix):
            return module[len(prefix):]
    return module


def _summary(result: Any) -> Dict[str, Any]:
    """Compact log fields for a return value: paths by name, lists by length."""
    if isinstance(result, Path):
        return {"result": result.name}
    if not is_dataclass(result):
        return {}

    out: Dict[str, Any] = {}
    for f in fields(result):
        value = getattr(result, f.name)
        if value is None or value is False:
            continue
        if isinstance(value, Path):
            value = value.name
        elif isinstance(value, list):
            if not value:
                continue
            value = len(value)
        out[f.name] = value
    return out


def logged(level: int = logging.DEBUG):
    """Log ``→ name`` on entry, ``← name`` with a result summary on return.

    Exceptions are logged as ``✗ name`` at ERROR and re-raised.
    """

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        logger_name = _logger_name(func.__module__)
        fn_name = func.__name__

        @functools.wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            _log = get_logger(logger_name)
            _log._log(level, f"→ {fn_name}")
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                _log.error(f"✗ {fn_name}", error=str(e)[:100])
                raise
            _log._log(level, f"← {fn_name}", **_summary(result))
            return result

        return wrapper

    return decorator

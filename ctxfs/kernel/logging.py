"""Logging for ctxfs, built on Loguru.

ctxfs logs from two kinds of threads: the event loops that submit
operations and receive their outcomes, and the worker threads that run
them. Every line therefore carries the thread name, so a dispatch on
``MainThread`` can be matched with the ``ctxfs-worker_N`` thread that ran
it.

The sinks installed by :func:`configure_logging` only accept records
emitted by ctxfs loggers (see :func:`get_logger`); the host
application's own Loguru records are left to whatever sinks it adds.

Examples
--------
Basic usage:

>>> from ctxfs.kernel.logging import get_logger
>>> logger = get_logger(__name__)
>>> logger.debug("Dispatching {op}", op="stat")

Configure logging globally::

    from ctxfs.kernel.logging import configure_logging
    configure_logging(level="DEBUG", format="json")
"""

import os
import sys
from contextlib import suppress
from functools import lru_cache
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal

if TYPE_CHECKING:
    from loguru import Logger, Record

from loguru import logger
from rich.logging import RichHandler

LogLevel = Literal["TRACE", "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
LogFormat = Literal["console", "json", "structured", "rich"]

PACKAGE = "ctxfs"

_CURRENT_CONFIG: dict | None = None
_HANDLER_IDS: list[int] = []


def _is_ctxfs_record(record: "Record") -> bool:
    module = record["extra"].get("module", "")
    return module == PACKAGE or module.startswith(f"{PACKAGE}.")


def _line_format(include_timestamp: bool, colored: bool) -> str:
    timestamp = "{time:YYYY-MM-DD HH:mm:ss.SSS} " if include_timestamp else ""
    level = "<level>{level: <8}</level>" if colored else "{level: <8}"
    module = "<cyan>{extra[module]}</cyan>" if colored else "{extra[module]}"
    return f"{timestamp}{level} [{{thread.name}}] {module} | {{message}}"


def configure_logging(
    level: LogLevel = "INFO",
    format: LogFormat = "structured",
    output_file: str | Path | None = None,
    use_color: bool = True,
    include_timestamp: bool = True,
    force_reconfigure: bool = False,
    use_rich: bool = False,
    backtrace: bool = True,
    diagnose: bool = True,
) -> None:
    """Configure where ctxfs log records go.

    Idempotent: calling it again with the same settings changes nothing.
    Only the sinks added by a previous call are replaced.

    Parameters
    ----------
    level : LogLevel, default="INFO"
        Minimum level written by ctxfs sinks
    format : LogFormat, default="structured"
        - "console": plain single-line text
        - "json": one serialized Loguru record per line
        - "structured": like console, colored when stderr is a terminal
        - "rich": rendered through Rich's ``RichHandler``
    output_file : str | Path | None, default=None
        Also append JSON records to this file
    use_color : bool, default=True
        Color the structured format (only on a TTY)
    include_timestamp : bool, default=True
        Prefix text lines with a timestamp
    force_reconfigure : bool, default=False
        Replace the sinks even if the settings are unchanged
    use_rich : bool, default=False
        Same as ``format="rich"``
    backtrace : bool, default=True
        Extend exception tracebacks beyond the catching frame
    diagnose : bool, default=True
        Show variable values in tracebacks (disable in production)
    """
    global _CURRENT_CONFIG

    current_config = {
        "level": level,
        "format": "rich" if use_rich else format,
        "output_file": str(output_file) if output_file else None,
        "use_color": use_color,
        "include_timestamp": include_timestamp,
        "backtrace": backtrace,
        "diagnose": diagnose,
    }

    if not force_reconfigure and current_config == _CURRENT_CONFIG:
        return

    for handler_id in _HANDLER_IDS:
        with suppress(ValueError):
            logger.remove(handler_id)
    _HANDLER_IDS.clear()

    common: dict[str, Any] = {
        "level": level,
        "filter": _is_ctxfs_record,
        "backtrace": backtrace,
        "diagnose": diagnose,
    }

    match current_config["format"]:
        case "rich":
            handler = RichHandler(
                rich_tracebacks=True, markup=False, show_time=include_timestamp, show_path=False
            )
            rich_format = "[{thread.name}] {extra[module]} | {message}"
            sink_id = logger.add(handler, format=rich_format, **common)
        case "json":
            sink_id = logger.add(sys.stderr, serialize=True, **common)
        case "structured":
            colored = use_color and sys.stderr.isatty()
            sink_id = logger.add(
                sys.stderr,
                format=_line_format(include_timestamp, colored),
                colorize=colored,
                **common,
            )
        case _:
            sink_id = logger.add(
                sys.stderr, format=_line_format(include_timestamp, False), colorize=False, **common
            )
    _HANDLER_IDS.append(sink_id)

    if output_file:
        output_path = Path(output_file)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        _HANDLER_IDS.append(logger.add(output_path, serialize=True, **common))

    _CURRENT_CONFIG = current_config


@lru_cache(maxsize=256)
def get_logger(name: str) -> "Logger":
    """Return the cached Loguru logger for module ``name``.

    The logger is bound with ``module=name``; records from names under the
    ``ctxfs`` package reach the sinks installed by :func:`configure_logging`.
    If logging was never configured, a default configuration is installed
    from ``CTXFS_LOG_LEVEL`` (default WARNING) and ``CTXFS_LOG_FORMAT``.
    """
    _ensure_configured()
    return logger.bind(module=name)


def _ensure_configured() -> None:
    if _CURRENT_CONFIG is None:
        level = os.getenv("CTXFS_LOG_LEVEL", "WARNING").upper()
        format_type = os.getenv("CTXFS_LOG_FORMAT", "structured").lower()
        configure_logging(level=level, format=format_type)  # type: ignore[arg-type]


__all__ = ["LogFormat", "LogLevel", "configure_logging", "get_logger"]

"""Logging configuration for the worldkeeper daemon, CLI and API.

This module configures the process-wide Python logger with:
- A custom TRACE level (used for per-snapshot retention chatter).
- Console output.
- Optional rotating file output, including separate error-only and daily
  log files for easier triage.

The configuration is safe to call multiple times.
"""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler, TimedRotatingFileHandler
from pathlib import Path
from typing import Optional


TRACE_LEVEL_NUM = 5
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

_CONFIGURED_MARKER = "_worldkeeper_logging_configured"
_HANDLER_MARKER = "_worldkeeper_handler"


def _install_trace_level() -> None:
    """Install the TRACE logging level and `Logger.trace` helper.

    Returns:
        None
    """

    if logging.getLevelName(TRACE_LEVEL_NUM) != "TRACE":
        logging.addLevelName(TRACE_LEVEL_NUM, "TRACE")

    if not hasattr(logging.Logger, "trace"):

        def trace(self: logging.Logger, message: str, *args, **kwargs) -> None:
            """Log a message with level TRACE.

            Args:
                message: Log message.
                *args: Positional args passed to logging.
                **kwargs: Keyword args passed to logging.

            Returns:
                None
            """

            if self.isEnabledFor(TRACE_LEVEL_NUM):
                self._log(TRACE_LEVEL_NUM, message, args, **kwargs)

        logging.Logger.trace = trace  # type: ignore[attr-defined]


def resolve_log_level(log_level: Optional[str], *, debug: bool = False) -> int:
    """Resolve a level name (including TRACE) to its numeric value.

    Args:
        log_level: Level name such as INFO, DEBUG or TRACE. Empty means default.
        debug: When True, an empty level name resolves to DEBUG instead of INFO.

    Returns:
        int: Numeric log level.

    Raises:
        ValueError: When the provided log_level is invalid.
    """

    name = str(log_level or "").strip().upper()
    if not name:
        name = "DEBUG" if debug else "INFO"

    if name == "TRACE":
        return TRACE_LEVEL_NUM

    level = getattr(logging, name, None)
    if not isinstance(level, int):
        raise ValueError(f"Invalid log level: {log_level}")
    return level


def _file_handler(handler: logging.Handler, level: int, formatter: logging.Formatter) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    setattr(handler, _HANDLER_MARKER, True)
    return handler


def configure_logging(
    *,
    log_dir: Optional[str] = None,
    log_level: str = "",
    debug: bool = False,
    log_filename: str = "worldkeeper.log",
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> None:
    """Configure application-wide logging.

    Args:
        log_dir: Directory where log files are stored. When empty, only console
            logging is configured.
        log_level: Root log level name (e.g. INFO, DEBUG, TRACE).
        debug: When True, defaults to DEBUG unless log_level explicitly overrides it.
        log_filename: Log file name (within log_dir).
        max_bytes: Rotate the log file after this size.
        backup_count: Number of rotated files to keep.

    Returns:
        None

    Raises:
        ValueError: When the provided log_level is invalid.
    """

    _install_trace_level()

    root = logging.getLogger()
    if getattr(root, _CONFIGURED_MARKER, False):
        return

    resolved_level = resolve_log_level(log_level, debug=debug)
    root.setLevel(resolved_level)

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)

    console_handler = logging.StreamHandler()
    root.addHandler(_file_handler(console_handler, resolved_level, formatter))

    if log_dir:
        log_filename_path = Path(log_filename)
        suffix = log_filename_path.suffix or ".log"
        log_path = Path(log_dir) / str(log_filename)
        error_log_path = Path(log_dir) / f"{log_filename_path.stem}.error{suffix}"
        daily_log_path = Path(log_dir) / f"{log_filename_path.stem}.day{suffix}"

        try:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            root.addHandler(
                _file_handler(
                    RotatingFileHandler(
                        filename=str(log_path),
                        maxBytes=max_bytes,
                        backupCount=backup_count,
                        encoding="utf-8",
                    ),
                    resolved_level,
                    formatter,
                )
            )
            root.addHandler(
                _file_handler(
                    RotatingFileHandler(
                        filename=str(error_log_path),
                        maxBytes=max_bytes,
                        backupCount=backup_count,
                        encoding="utf-8",
                    ),
                    logging.ERROR,
                    formatter,
                )
            )

            daily_handler = TimedRotatingFileHandler(
                filename=str(daily_log_path),
                when="midnight",
                backupCount=backup_count,
                encoding="utf-8",
            )
            daily_handler.suffix = "%Y-%m-%d"
            root.addHandler(_file_handler(daily_handler, resolved_level, formatter))
        except OSError:
            logging.getLogger(__name__).warning(
                "Failed to configure file logging under %s; continuing with console-only logging",
                log_dir,
            )

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logger = logging.getLogger(name)
        logger.handlers.clear()
        logger.propagate = True

    logging.captureWarnings(True)
    setattr(root, _CONFIGURED_MARKER, True)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a logger instance.

    Args:
        name: Logger name.

    Returns:
        logging.Logger: Logger instance.
    """

    return logging.getLogger(name or __name__)

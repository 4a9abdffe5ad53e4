"""Logging setup driven by :class:`~agentloop.settings.Settings`."""

from __future__ import annotations

import logging
import logging.handlers
from pathlib import Path

from ..settings import Settings, load_settings

__all__ = ["setup_logging", "get_log_path", "resolve_log_level"]

_DEFAULT_LOG_DIR = Path.home() / ".agentloop" / "logs"
_LOG_FILE_NAME = "agentloop.log"
_MAX_BYTES = 1_000_000
_BACKUP_COUNT = 3
_HTTP_LOGGERS: tuple[str, ...] = ("asyncio", "httpx", "httpcore", "openai")
_EXECUTOR_LOGGER = "agentloop.tools.executor"
_LOG_PATH: Path | None = None


def setup_logging(
    settings: Settings | None = None,
    *,
    log_dir: Path | str | None = None,
    console: bool = True,
    force: bool = False,
) -> Path:
    """Configure root logging for a process that runs agentloop.

    ``settings`` defaults to :func:`~agentloop.settings.load_settings`. With
    ``debug_logging`` the root level is DEBUG and HTTP client loggers stay at
    INFO; otherwise the root level is INFO and those loggers are held at
    WARNING. Turning on ``log_tool_arguments`` or ``log_tool_results`` opens
    the tool executor logger to DEBUG, since that is where those lines go.

    The log file is written to ``log_dir``, then ``settings.log_dir``, then
    ``~/.agentloop/logs``. Repeated calls return the existing path unless
    ``force`` is set.
    """

    global _LOG_PATH
    if _LOG_PATH is not None and not force:
        return _LOG_PATH

    settings = settings or load_settings()
    level = resolve_log_level(settings)
    target_dir = Path(log_dir or settings.log_dir or _DEFAULT_LOG_DIR).expanduser()
    target_dir.mkdir(parents=True, exist_ok=True)
    log_path = target_dir / _LOG_FILE_NAME

    formatter = logging.Formatter(
        fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    handlers: list[logging.Handler] = [
        logging.handlers.RotatingFileHandler(
            log_path, maxBytes=_MAX_BYTES, backupCount=_BACKUP_COUNT, encoding="utf-8"
        )
    ]
    if console:
        handlers.append(logging.StreamHandler())
    # Handlers stay at NOTSET so per-logger levels decide what is written.
    for handler in handlers:
        handler.setFormatter(formatter)

    logging.basicConfig(level=level, handlers=handlers, force=True)
    logging.captureWarnings(True)

    http_level = logging.INFO if settings.debug_logging else logging.WARNING
    for logger_name in _HTTP_LOGGERS:
        logging.getLogger(logger_name).setLevel(http_level)
    tool_logging = settings.log_tool_arguments or settings.log_tool_results
    logging.getLogger(_EXECUTOR_LOGGER).setLevel(logging.DEBUG if tool_logging else logging.NOTSET)

    _LOG_PATH = log_path
    logging.getLogger(__name__).debug("Logging to %s at level %s", log_path, logging.getLevelName(level))
    return log_path


def resolve_log_level(settings: Settings) -> int:
    return logging.DEBUG if settings.debug_logging else logging.INFO


def get_log_path() -> Path | None:
    """Return the configured log file, or ``None`` before :func:`setup_logging` runs."""

    return _LOG_PATH

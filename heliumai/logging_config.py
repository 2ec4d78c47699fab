"""Logging configuration for heliumai.

Two handlers hang off the root logger:
    - console: colorlog, on stderr so it never interleaves with streamed CLI output
    - file: rotating, plain text or JSON lines (python-json-logger)

Levels, file location, rotation and format come from HeliumSettings, so the
usual HELIUM_LOG_* environment variables apply.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING

import colorlog
from pythonjsonlogger import json

if TYPE_CHECKING:
    from heliumai.config import HeliumSettings

_LINE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_LEVEL_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "red,bg_white",
}

# Provider SDK transports log every request at INFO
_NOISY_LOGGERS = ("httpx", "httpcore", "openai", "ollama")


def _level(name: str, default: int) -> int:
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else default


def _console_handler(level: int) -> logging.Handler:
    handler = colorlog.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(
        colorlog.ColoredFormatter(
            "%(log_color)s" + _LINE_FORMAT,
            datefmt=_DATE_FORMAT,
            reset=True,
            log_colors=_LEVEL_COLORS,
        )
    )
    return handler


def _file_handler(path: Path, level: int, json_format: bool, max_bytes: int, backup_count: int) -> logging.Handler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
    handler.setLevel(level)
    if json_format:
        formatter = json.JsonFormatter(
            "%(asctime)s %(name)s %(levelname)s %(message)s",
            datefmt=_DATE_FORMAT,
            rename_fields={"levelname": "level", "name": "logger"},
        )
    else:
        formatter = logging.Formatter(_LINE_FORMAT, datefmt=_DATE_FORMAT)
    handler.setFormatter(formatter)
    return handler


def setup_logging(settings: "HeliumSettings | None" = None, force: bool = False) -> None:
    """Attach the console and file handlers to the root logger.

    Does nothing if the root logger already has handlers, unless `force`.

    Args:
        settings: Settings to read log options from (defaults to the global settings)
        force: Replace existing root handlers
    """
    root_logger = logging.getLogger()
    if root_logger.handlers and not force:
        return

    if settings is None:
        from heliumai.config import get_settings

        settings = get_settings()

    log_dir = Path(settings.log_dir) if settings.log_dir else Path.cwd() / "logs"
    log_path = log_dir / settings.log_file_name

    if force:
        for handler in list(root_logger.handlers):
            root_logger.removeHandler(handler)
            handler.close()

    # Handlers do the filtering
    root_logger.setLevel(logging.DEBUG)
    root_logger.addHandler(_console_handler(_level(settings.log_level, logging.INFO)))
    root_logger.addHandler(
        _file_handler(
            log_path,
            _level(settings.log_file_level, logging.DEBUG),
            settings.log_json_format,
            settings.log_max_bytes,
            settings.log_backup_count,
        )
    )
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).debug(
        f"Logging configured: console={settings.log_level}, file={settings.log_file_level}, "
        f"path={log_path}, json={settings.log_json_format}"
    )


def get_logger(name: str) -> logging.Logger:
    """Module logger; use as `logger = get_logger(__name__)`."""
    return logging.getLogger(name)

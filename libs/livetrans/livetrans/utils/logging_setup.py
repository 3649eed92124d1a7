"""Logging initialization helpers."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from livetrans.config import LoggingSettings, Settings

# httpx logs every request at INFO; a live session issues several per second.
_NOISY_LOGGERS = ("httpx", "httpcore")


def _build_handlers(cfg: LoggingSettings, log_dir: str, level: int) -> list[logging.Handler]:
    formatter = logging.Formatter(fmt=str(cfg.format), datefmt=str(cfg.datefmt))
    handlers: list[logging.Handler] = []
    if cfg.console:
        stream = logging.StreamHandler()
        stream.setLevel(level)
        stream.setFormatter(formatter)
        handlers.append(stream)

    if cfg.file:
        file_path = Path(str(cfg.file))
        if not file_path.is_absolute():
            file_path = Path(log_dir) / file_path
        file_path.parent.mkdir(parents=True, exist_ok=True)
        fh = RotatingFileHandler(
            file_path,
            maxBytes=int(cfg.max_bytes),
            backupCount=int(cfg.backup_count),
            encoding="utf-8",
        )
        fh.setLevel(level)
        fh.setFormatter(formatter)
        handlers.append(fh)
    return handlers


def setup_logging(settings: Settings) -> logging.Logger:
    """Configure the `livetrans` logger tree from Settings and return its root.

    Calling it again is a no-op, so both the worker and scripts can call it.
    """
    logger = logging.getLogger("livetrans")
    if getattr(logger, "_livetrans_configured", False):
        return logger

    level_name = str(settings.logging.level or "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)

    logger.setLevel(level)
    logger.handlers = _build_handlers(settings.logging, settings.log_dir, level)
    logger.propagate = False
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
    setattr(logger, "_livetrans_configured", True)
    return logger

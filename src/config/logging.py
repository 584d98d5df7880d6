"""Логирование движка: stdlib logging, консоль + файл.

В production уровень не ниже WARNING, в тестах файл не пишется.
"""
from __future__ import annotations

import logging
import sys
from typing import List, Optional

from src.config.settings import get_settings

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

_configured = False


def configure_logging(force: bool = False) -> None:
    global _configured
    if _configured and not force:
        return

    settings = get_settings()
    level_name = settings.LOG_LEVEL.upper()
    if settings.is_production and level_name in ("DEBUG", "INFO"):
        level_name = "WARNING"

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    log_path = settings.log_file_path
    if log_path is not None and not settings.is_testing:
        try:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(log_path, encoding="utf-8"))
        except OSError as e:
            print(f"Log file {log_path} unavailable, logging to stdout only: {e}", file=sys.stderr)

    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=handlers,
        force=True,
    )
    _configured = True


def get_logger(name: Optional[str] = None) -> logging.Logger:
    configure_logging()
    return logging.getLogger(name or "maintenance")


__all__ = ["configure_logging", "get_logger"]

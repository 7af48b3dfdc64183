from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from pythonjsonlogger import jsonlogger

from .settings import settings

_OWNED = "_station_walk_owned"
_JSON_FIELDS = "%(asctime)s %(levelname)s %(name)s %(message)s"


def _parse_level(name: str) -> int:
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else logging.INFO


def log_file_path() -> Path | None:
    """Where the JSONL event log goes, or None when file logging is off."""
    if not settings.log_file:
        return None
    return Path(settings.out_dir) / "logs" / settings.log_file


def _owned(handler: logging.Handler, formatter: logging.Formatter) -> logging.Handler:
    handler.setFormatter(formatter)
    setattr(handler, _OWNED, True)
    return handler


def get_logger() -> logging.Logger:
    logger = logging.getLogger(settings.log_name)
    logger.setLevel(_parse_level(settings.log_level))
    if any(getattr(h, _OWNED, False) for h in logger.handlers):
        return logger
    logger.propagate = False

    formatter = jsonlogger.JsonFormatter(
        _JSON_FIELDS,
        rename_fields={"asctime": "ts", "levelname": "level", "name": "logger"},
    )
    logger.addHandler(_owned(logging.StreamHandler(), formatter))

    path = log_file_path()
    if path is not None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(path, encoding="utf-8")
        except OSError as e:
            logger.warning(
                "log_file_unavailable",
                extra={"event": "log_file_unavailable", "path": str(path), "error": str(e)},
            )
        else:
            logger.addHandler(_owned(file_handler, formatter))
    return logger


LOGGER: logging.Logger | None = None


def log_event(event: str, **fields: Any) -> None:
    global LOGGER
    if LOGGER is None:
        LOGGER = get_logger()
    LOGGER.info(event, extra={"event": event, **fields})

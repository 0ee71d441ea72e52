from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Callable

from schoolsync.core.errors import error_payload
from schoolsync.core.observability import get_correlation_id

DEFAULT_LOG_MAX_BYTES = 1_048_576
DEFAULT_LOG_BACKUP_COUNT = 10
MAIN_LOG_NAME = "schoolsync.log"
ERROR_OPERATIVO_LOG_NAME = "error_operativo.log"
CRASH_LOG_NAME = "crash.log"
SYNC_EVENTS_LOG_NAME = "sync_events.log"


def _record_event(record: logging.LogRecord) -> dict[str, Any] | None:
    payload = getattr(record, "extra", None)
    if isinstance(payload, dict) and "event" in payload:
        return payload
    return None


class JsonLinesFormatter(logging.Formatter):
    """Una línea JSON por registro; los eventos de `log_event` salen con su nombre."""

    def format(self, record: logging.LogRecord) -> str:
        event: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "modulo": record.module,
            "funcion": record.funcName,
            "mensaje": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", None) or get_correlation_id(),
        }
        sync_event = _record_event(record)
        if sync_event is not None:
            event["event"] = sync_event["event"]

        payload_extra = getattr(record, "extra", None)
        if isinstance(payload_extra, dict) and payload_extra:
            event["extra"] = payload_extra

        incident_id = getattr(record, "incident_id", None)
        if incident_id:
            event["incident_id"] = incident_id

        if record.exc_info:
            event["exc_info"] = self.formatException(record.exc_info)
            if record.exc_info[1] is not None:
                event["error"] = error_payload(record.exc_info[1])

        return json.dumps(event, ensure_ascii=False, default=str)


class _PredicateFilter(logging.Filter):
    def __init__(self, predicate: Callable[[logging.LogRecord], bool]) -> None:
        super().__init__()
        self._predicate = predicate

    def filter(self, record: logging.LogRecord) -> bool:
        return self._predicate(record)


@dataclass(frozen=True)
class LogFile:
    """Fichero de log rotado; `level=None` usa el nivel general configurado."""

    name: str
    level: int | None = None
    accepts: Callable[[logging.LogRecord], bool] | None = None


LOG_FILES = (
    LogFile(MAIN_LOG_NAME),
    # Solo ERROR: los CRITICAL van a crash.log.
    LogFile(ERROR_OPERATIVO_LOG_NAME, logging.ERROR, lambda record: record.levelno == logging.ERROR),
    LogFile(CRASH_LOG_NAME, logging.CRITICAL),
    LogFile(SYNC_EVENTS_LOG_NAME, logging.INFO, lambda record: _record_event(record) is not None),
)


def _safe_int_env(name: str, default: int) -> int:
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


def _build_handler(
    log_dir: Path, log_file: LogFile, *, level: int, max_bytes: int, backup_count: int
) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        log_dir / log_file.name,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    handler.setLevel(log_file.level if log_file.level is not None else level)
    handler.setFormatter(JsonLinesFormatter())
    if log_file.accepts is not None:
        handler.addFilter(_PredicateFilter(log_file.accepts))
    return handler


def configure_logging(
    log_dir: Path,
    *,
    max_bytes: int | None = None,
    backup_count: int = DEFAULT_LOG_BACKUP_COUNT,
    level: int = logging.INFO,
) -> None:
    log_dir.mkdir(parents=True, exist_ok=True)
    resolved_max_bytes = max_bytes or _safe_int_env("SCHOOLSYNC_LOG_MAX_BYTES", DEFAULT_LOG_MAX_BYTES)

    root_logger = logging.getLogger()
    for existing in list(root_logger.handlers):
        if isinstance(existing, RotatingFileHandler):
            root_logger.removeHandler(existing)
            existing.close()
    root_logger.setLevel(level)
    for log_file in LOG_FILES:
        root_logger.addHandler(
            _build_handler(log_dir, log_file, level=level, max_bytes=resolved_max_bytes, backup_count=backup_count)
        )


def log_operational_error(
    logger: logging.Logger,
    message: str,
    *,
    exc: BaseException | None = None,
    extra: dict[str, Any] | None = None,
) -> None:
    """Error recuperable: va al log general y a `error_operativo.log`, nunca al usuario."""
    exc_info: Any = False
    if exc is not None:
        exc_info = (type(exc), exc, exc.__traceback__)

    payload = {"extra": extra} if extra else None
    logger.error(message, exc_info=exc_info, extra=payload)

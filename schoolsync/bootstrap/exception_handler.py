from __future__ import annotations

import json
import logging
import sys
import threading
import traceback
import uuid
from types import TracebackType
from typing import TextIO

from schoolsync.bootstrap.logging import CRASH_LOG_NAME
from schoolsync.bootstrap.settings import resolve_log_dir
from schoolsync.core.observability import generate_correlation_id, get_correlation_id, set_correlation_id

INCIDENT_MESSAGE = "Error inesperado. ID de incidente: {incident_id}\n"


def generate_incident_id() -> str:
    return f"INC-{uuid.uuid4().hex[:12].upper()}"


def _ensure_correlation_id() -> str:
    correlation_id = get_correlation_id()
    if correlation_id:
        return correlation_id
    correlation_id = generate_correlation_id()
    set_correlation_id(correlation_id)
    return correlation_id


def _write_fallback_crash_log(
    *,
    incident_id: str,
    correlation_id: str,
    exc_type: type[BaseException],
    exc_value: BaseException,
    exc_traceback: TracebackType | None,
) -> None:
    log_dir = resolve_log_dir()
    log_dir.mkdir(parents=True, exist_ok=True)
    payload = {
        "incident_id": incident_id,
        "correlation_id": correlation_id,
        "error_type": exc_type.__name__,
        "error_message": str(exc_value),
        "stacktrace": "".join(traceback.format_exception(exc_type, exc_value, exc_traceback)),
    }
    with (log_dir / CRASH_LOG_NAME).open("a", encoding="utf-8") as handler:
        handler.write(json.dumps(payload, ensure_ascii=False) + "\n")


def handle_global_exception(
    exc_type: type[BaseException], exc_value: BaseException, exc_traceback: TracebackType | None
) -> str:
    """Registra la excepción en `crash.log` y devuelve el ID que se enseña al usuario."""
    incident_id = generate_incident_id()
    correlation_id = _ensure_correlation_id()
    logger = logging.getLogger("schoolsync.global_exception")

    try:
        logger.critical(
            "Excepción no controlada. incident_id=%s",
            incident_id,
            exc_info=(exc_type, exc_value, exc_traceback),
            extra={"incident_id": incident_id, "correlation_id": correlation_id},
        )
    except Exception:  # noqa: BLE001
        _write_fallback_crash_log(
            incident_id=incident_id,
            correlation_id=correlation_id,
            exc_type=exc_type,
            exc_value=exc_value,
            exc_traceback=exc_traceback,
        )

    return incident_id


def report_incident(exc: BaseException, stream: TextIO | None = None) -> str:
    incident_id = handle_global_exception(type(exc), exc, exc.__traceback__)
    (stream or sys.stderr).write(INCIDENT_MESSAGE.format(incident_id=incident_id))
    return incident_id


def install_exception_hook() -> None:
    """Excepciones sin capturar del hilo principal y de los hilos de sincronización."""

    def _sys_hook(exc_type, exc_value, exc_traceback) -> None:
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_traceback)
            return
        incident_id = handle_global_exception(exc_type, exc_value, exc_traceback)
        sys.stderr.write(INCIDENT_MESSAGE.format(incident_id=incident_id))

    def _thread_hook(args: threading.ExceptHookArgs) -> None:
        if args.exc_value is None:
            return
        incident_id = handle_global_exception(args.exc_type, args.exc_value, args.exc_traceback)
        thread_name = args.thread.name if args.thread is not None else "?"
        sys.stderr.write(f"Fallo en el hilo {thread_name}. ID de incidente: {incident_id}\n")

    sys.excepthook = _sys_hook
    threading.excepthook = _thread_hook

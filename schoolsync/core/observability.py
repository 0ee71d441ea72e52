from __future__ import annotations

import uuid
from contextlib import AbstractContextManager
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from typing import Any

_CORRELATION_ID: ContextVar[str | None] = ContextVar("correlation_id", default=None)


def generate_correlation_id() -> str:
    return str(uuid.uuid4())


def get_correlation_id() -> str | None:
    return _CORRELATION_ID.get()


def set_correlation_id(correlation_id: str | None) -> Token[str | None]:
    return _CORRELATION_ID.set(correlation_id)


def reset_correlation_id(token: Token[str | None]) -> None:
    _CORRELATION_ID.reset(token)


class OperationContext(AbstractContextManager["OperationContext"]):
    """Asigna un correlation_id a todo lo que se loguee dentro del bloque."""

    def __init__(self, operation_name: str) -> None:
        self.operation_name = operation_name
        self.correlation_id = generate_correlation_id()
        self._token: Token[str | None] | None = None

    def __enter__(self) -> "OperationContext":
        self._token = set_correlation_id(self.correlation_id)
        return self

    def __exit__(self, exc_type: object, exc: object, exc_tb: object) -> None:
        if self._token is not None:
            reset_correlation_id(self._token)
            self._token = None
        return None


def log_event(logger: Any, event_name: str, payload: dict[str, Any], correlation_id: str | None = None) -> dict[str, Any]:
    resolved_id = correlation_id or get_correlation_id() or generate_correlation_id()
    event = {
        "event": event_name,
        "correlation_id": resolved_id,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "payload": payload,
    }
    logger.info(
        event_name,
        extra={
            "correlation_id": resolved_id,
            "extra": event,
        },
    )
    return event

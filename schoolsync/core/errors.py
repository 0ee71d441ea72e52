from __future__ import annotations

from typing import Any


class AppError(Exception):
    """Raíz de los errores propios.

    `code` identifica la familia en logs y en la salida del CLI; `retryable`
    indica si la cola puede volver a intentarlo en el siguiente flush.
    """

    code = "app_error"
    retryable = False

    def __init__(self, message: str = "", *, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.context: dict[str, Any] = dict(context or {})

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": str(self), "retryable": self.retryable}
        if self.context:
            payload["context"] = self.context
        return payload


class BusinessError(AppError):
    code = "business"


class ValidationError(BusinessError):
    code = "validation"


class InfraError(AppError):
    code = "infra"


class PersistenceError(InfraError):
    """Fallo del almacén local (SQLite)."""

    code = "local_storage"


class ExternalServiceError(InfraError):
    code = "remote"


class TransientExternalError(ExternalServiceError):
    code = "remote_transient"
    retryable = True


def error_payload(exc: BaseException) -> dict[str, Any]:
    if isinstance(exc, AppError):
        return exc.to_payload()
    return {"code": "unexpected", "message": str(exc), "retryable": False, "type": type(exc).__name__}

from __future__ import annotations

import json
from typing import Optional

from google.api_core import exceptions as api_exceptions
from google.auth.exceptions import DefaultCredentialsError, TransportError

from schoolsync.core.errors import AppError
from schoolsync.domain.remote_errors import (
    RemoteConfigError,
    RemoteCredentialsError,
    RemoteNotFoundError,
    RemotePermissionError,
    RemoteRateLimitError,
    RemoteRejectedError,
    RemoteStoreError,
    RemoteUnavailableError,
)

_TRANSIENT_API_ERRORS = (
    api_exceptions.ServiceUnavailable,
    api_exceptions.DeadlineExceeded,
    api_exceptions.InternalServerError,
    api_exceptions.Aborted,
    api_exceptions.RetryError,
)


def _credentials_not_found_message(path: Optional[str]) -> str:
    if path:
        return f"No se encuentra credentials.json en {path}."
    return "No se encuentra credentials.json."


def map_firestore_exception(ex: Exception) -> Exception:
    """Traduce errores de Firestore/google-auth a la taxonomía de la app."""
    if isinstance(ex, AppError):
        return ex
    if isinstance(ex, (api_exceptions.TooManyRequests, api_exceptions.ResourceExhausted)):
        return RemoteRateLimitError("Cuota de Firestore agotada. Se reintentará en el próximo ciclo.")
    if isinstance(ex, _TRANSIENT_API_ERRORS):
        return RemoteUnavailableError(f"Firestore no disponible: {ex}")
    if isinstance(ex, (api_exceptions.PermissionDenied, api_exceptions.Forbidden, api_exceptions.Unauthenticated)):
        return RemotePermissionError("La cuenta de servicio no tiene permisos sobre el proyecto de Firestore.")
    if isinstance(ex, api_exceptions.NotFound):
        return RemoteNotFoundError(f"Documento o proyecto inexistente en Firestore: {ex}")
    if isinstance(ex, (api_exceptions.InvalidArgument, api_exceptions.FailedPrecondition)):
        return RemoteRejectedError(f"Firestore rechazó la operación: {ex}")
    if isinstance(ex, api_exceptions.GoogleAPICallError):
        return RemoteStoreError(str(ex))
    if isinstance(ex, FileNotFoundError):
        return RemoteCredentialsError(_credentials_not_found_message(getattr(ex, "filename", None)))
    if isinstance(ex, (json.JSONDecodeError, DefaultCredentialsError)):
        return RemoteCredentialsError("El credentials.json no es válido. Revisa el contenido del archivo.")
    if isinstance(ex, (TransportError, ConnectionError, TimeoutError)):
        return RemoteUnavailableError(f"Sin conexión con Firestore: {ex}")
    if isinstance(ex, ValueError):
        return RemoteConfigError(str(ex))
    return RemoteStoreError(str(ex))

from __future__ import annotations

import json
import logging
import threading
from typing import Any, Callable, TypeVar

import firebase_admin
from firebase_admin import credentials, firestore
from google.api_core import exceptions as api_exceptions
from google.auth.exceptions import DefaultCredentialsError
from google.cloud.firestore_v1 import Query
from google.cloud.firestore_v1.base_query import FieldFilter

from schoolsync.bootstrap.logging import log_operational_error
from schoolsync.core.observability import get_correlation_id
from schoolsync.domain.ports import FirebaseConfigStorePort, RemoteBatchPort, RemoteStorePort, SnapshotCallback, Unsubscribe
from schoolsync.domain.remote_errors import RemoteConfigError, RemotePermissionError, RemoteUnavailableError
from schoolsync.infrastructure.firestore_errors import map_firestore_exception

logger = logging.getLogger(__name__)

T = TypeVar("T")

_CLIENT_ERRORS = (
    api_exceptions.GoogleAPICallError,
    api_exceptions.RetryError,
    DefaultCredentialsError,
    FileNotFoundError,
    json.JSONDecodeError,
    ValueError,
    OSError,
)


def _document_to_dict(snapshot: Any) -> dict[str, Any]:
    return {"id": snapshot.id, **(snapshot.to_dict() or {})}


class FirestoreBatch(RemoteBatchPort):
    def __init__(self, store: "FirestoreRemoteStore", batch: Any) -> None:
        self._store = store
        self._batch = batch
        self.size = 0

    def set(self, collection: str, document_id: str, data: dict[str, Any], *, merge: bool = False) -> None:
        self._batch.set(self._store.document(collection, document_id), data, merge=merge)
        self.size += 1

    def update(self, collection: str, document_id: str, data: dict[str, Any]) -> None:
        self._batch.update(self._store.document(collection, document_id), data)
        self.size += 1

    def delete(self, collection: str, document_id: str) -> None:
        self._batch.delete(self._store.document(collection, document_id))
        self.size += 1

    def commit(self) -> None:
        self._store.guard_network()
        self._store.run("batch.commit", self._batch.commit)


class FirestoreRemoteStore(RemoteStorePort):
    """Cliente Firestore perezoso: no abre conexión hasta la primera operación."""

    def __init__(self, config_store: FirebaseConfigStorePort) -> None:
        self._config_store = config_store
        self._db: Any | None = None
        self._init_lock = threading.Lock()
        self._network_enabled = True

    def is_configured(self) -> bool:
        config = self._config_store.load()
        return bool(config and config.project_id and config.credentials_path)

    def enable_network(self) -> None:
        self._network_enabled = True
        logger.info("Red de Firestore habilitada")

    def disable_network(self) -> None:
        self._network_enabled = False
        logger.info("Red de Firestore deshabilitada; las escrituras irán a la cola local")

    def guard_network(self) -> None:
        if not self._network_enabled:
            raise RemoteUnavailableError("Firestore deshabilitado mientras no haya conexión.")

    def document(self, collection: str, document_id: str) -> Any:
        return self._client().collection(collection).document(document_id)

    def batch(self) -> FirestoreBatch:
        self.guard_network()
        return FirestoreBatch(self, self._client().batch())

    def set_document(self, collection: str, document_id: str, data: dict[str, Any], *, merge: bool = False) -> None:
        self.guard_network()
        reference = self.document(collection, document_id)
        self.run(f"set({collection}/{document_id})", lambda: reference.set(data, merge=merge))

    def update_document(self, collection: str, document_id: str, data: dict[str, Any]) -> None:
        self.guard_network()
        reference = self.document(collection, document_id)
        self.run(f"update({collection}/{document_id})", lambda: reference.update(data))

    def delete_document(self, collection: str, document_id: str) -> None:
        self.guard_network()
        reference = self.document(collection, document_id)
        self.run(f"delete({collection}/{document_id})", reference.delete)

    def fetch_collection(
        self,
        collection: str,
        *,
        field: str | None = None,
        value: Any = None,
    ) -> list[dict[str, Any]]:
        self.guard_network()
        query = self._build_query(collection, field=field, value=value, order_by=None)
        snapshots = self.run(f"stream({collection})", lambda: list(query.stream()))
        return [_document_to_dict(snapshot) for snapshot in snapshots]

    def subscribe(
        self,
        collection: str,
        callback: SnapshotCallback,
        *,
        field: str | None = None,
        value: Any = None,
        order_by: str | None = None,
    ) -> Unsubscribe:
        self.guard_network()
        query = self._build_query(collection, field=field, value=value, order_by=order_by)

        def _on_snapshot(documents: list[Any], _changes: Any, _read_time: Any) -> None:
            try:
                callback([_document_to_dict(document) for document in documents])
            except Exception as exc:  # noqa: BLE001
                log_operational_error(
                    logger,
                    "Error en callback de tiempo real",
                    exc=exc,
                    extra={"collection": collection, "correlation_id": get_correlation_id()},
                )

        watch = self.run(f"on_snapshot({collection})", lambda: query.on_snapshot(_on_snapshot))
        logger.info("Suscripción en tiempo real abierta: %s", collection)
        return watch.unsubscribe

    def run(self, operation_name: str, operation: Callable[[], T]) -> T:
        try:
            result = operation()
        except _CLIENT_ERRORS as exc:
            mapped_error = map_firestore_exception(exc)
            if isinstance(mapped_error, RemotePermissionError):
                log_operational_error(
                    logger,
                    "Firestore: permisos insuficientes",
                    exc=mapped_error,
                    extra={"operation": operation_name, "correlation_id": get_correlation_id()},
                )
            raise mapped_error from exc
        return result

    def _build_query(self, collection: str, *, field: str | None, value: Any, order_by: str | None) -> Any:
        query: Any = self._client().collection(collection)
        if field:
            query = query.where(filter=FieldFilter(field, "==", value))
        elif order_by:
            query = query.order_by(order_by, direction=Query.DESCENDING)
        return query

    def _client(self) -> Any:
        if self._db is not None:
            return self._db
        with self._init_lock:
            if self._db is None:
                self._db = self._open_client()
        return self._db

    def _open_client(self) -> Any:
        config = self._config_store.load()
        if config is None or not config.credentials_path:
            raise RemoteConfigError("Falta configurar Firebase (proyecto y credentials.json).")
        app_name = f"schoolsync-{config.device_id or 'default'}"
        logger.info("Conectando a Firestore. proyecto=%s", config.project_id)
        try:
            try:
                app = firebase_admin.get_app(app_name)
            except ValueError:
                certificate = credentials.Certificate(config.credentials_path)
                options = {"projectId": config.project_id} if config.project_id else None
                app = firebase_admin.initialize_app(certificate, options, name=app_name)
            return firestore.client(app)
        except _CLIENT_ERRORS as exc:
            raise map_firestore_exception(exc) from exc

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Iterable

from schoolsync.application.offline_cache import OfflineCache
from schoolsync.application.sync_queue import DEFAULT_BATCH_LIMIT, SyncQueue
from schoolsync.bootstrap.logging import log_operational_error
from schoolsync.core.errors import AppError
from schoolsync.domain.models import ASSESSMENTS, CLASSES, STUDENTS, Assessment, ClassRoom, Student
from schoolsync.domain.ports import RemoteStorePort, SnapshotCallback, Unsubscribe
from schoolsync.domain.sync_models import SYNCED_STATUS, OperationType, QueuedOperation
from schoolsync.domain.time_utils import utc_now_iso

logger = logging.getLogger(__name__)

LAST_UPDATED_FIELD = "lastUpdated"


def _noop_unsubscribe() -> None:
    return None


class RemoteMirror:
    """Espejo best-effort de las escrituras locales en Firestore.

    Con conexión intenta la escritura inmediata; si falla, o si no hay red, la
    operación se encola y se refleja en la caché offline. El llamador nunca ve
    el error remoto: la escritura "tiene éxito" en local en cualquier caso.
    """

    def __init__(
        self,
        remote: RemoteStorePort,
        queue: SyncQueue,
        cache: OfflineCache,
        *,
        is_online: Callable[[], bool],
        batch_limit: int = DEFAULT_BATCH_LIMIT,
        clock: Callable[[], str] = utc_now_iso,
    ) -> None:
        self._remote = remote
        self._queue = queue
        self._cache = cache
        self._is_online = is_online
        self._batch_limit = max(1, batch_limit)
        self._clock = clock
        self._listeners: list[Unsubscribe] = []
        self._lock = threading.Lock()
        self._on_queued: Callable[[], None] | None = None

    def save_student(self, student: Student) -> bool:
        return self.save(STUDENTS, student.id, student.to_payload())

    def save_class(self, classroom: ClassRoom) -> bool:
        return self.save(CLASSES, classroom.id, classroom.to_payload())

    def save_assessment(self, assessment: Assessment) -> bool:
        return self.save(ASSESSMENTS, assessment.id, assessment.to_payload())

    def update_assessment(self, assessment_id: str, updates: dict[str, Any]) -> bool:
        return self.update(ASSESSMENTS, assessment_id, updates)

    def save(self, collection: str, document_id: str, data: dict[str, Any]) -> bool:
        """Devuelve True si el documento quedó escrito en remoto, False si quedó en cola."""
        if self._is_online():
            try:
                self._remote.set_document(collection, document_id, self._stamped(data))
            except Exception as exc:  # noqa: BLE001
                logger.info("Firestore no disponible para %s/%s; se encola (%s)", collection, document_id, exc)
            else:
                logger.info("Documento guardado en Firestore: %s/%s", collection, document_id)
                return True
        else:
            logger.info("Sin conexión: %s/%s se guarda en local", collection, document_id)
        self._queue.enqueue(QueuedOperation(OperationType.CREATE, collection, document_id, dict(data)))
        self._cache.save(collection, document_id, data)
        self._queued_while_online()
        return False

    def update(self, collection: str, document_id: str, updates: dict[str, Any]) -> bool:
        if self._is_online():
            try:
                self._remote.update_document(collection, document_id, self._stamped(updates))
            except Exception as exc:  # noqa: BLE001
                logger.info("Firestore no disponible para actualizar %s/%s; se encola (%s)", collection, document_id, exc)
            else:
                logger.info("Documento actualizado en Firestore: %s/%s", collection, document_id)
                return True
        self._queue.enqueue(QueuedOperation(OperationType.UPDATE, collection, document_id, dict(updates)))
        self._cache.update(collection, document_id, updates)
        self._queued_while_online()
        return False

    def delete(self, collection: str, document_id: str) -> bool:
        if self._is_online():
            try:
                self._remote.delete_document(collection, document_id)
            except Exception as exc:  # noqa: BLE001
                logger.info("Firestore no disponible para borrar %s/%s; se encola (%s)", collection, document_id, exc)
            else:
                self._cache.delete(collection, document_id)
                return True
        self._queue.enqueue(QueuedOperation(OperationType.DELETE, collection, document_id))
        self._cache.delete(collection, document_id)
        self._queued_while_online()
        return False

    def subscribe(
        self,
        collection: str,
        callback: SnapshotCallback,
        *,
        parent_field: str | None = None,
        parent_id: Any = None,
        include_local: bool = False,
    ) -> Unsubscribe:
        """Escucha cambios remotos de una colección.

        Cada invocación de `callback` trae el conjunto completo de documentos,
        no un diff. Con `include_local=True` recibe la vista fusionada con la
        caché offline. Sin conexión devuelve un unsubscribe vacío.
        """
        if not self._is_online():
            logger.info("Sin conexión: no se abre suscripción a %s", collection)
            return _noop_unsubscribe

        def _on_documents(documents: list[dict[str, Any]]) -> None:
            merged = self._cache.merge_snapshot(collection, documents)
            callback(merged if include_local else documents)

        filtered = parent_field is not None
        try:
            unsubscribe = self._remote.subscribe(
                collection,
                _on_documents,
                field=parent_field,
                value=parent_id,
                order_by=None if filtered else LAST_UPDATED_FIELD,
            )
        except AppError as exc:
            log_operational_error(
                logger,
                "No se pudo abrir la suscripción en tiempo real",
                exc=exc,
                extra={"collection": collection, "parent_field": parent_field},
            )
            return _noop_unsubscribe

        with self._lock:
            self._listeners.append(unsubscribe)

        def _unsubscribe() -> None:
            with self._lock:
                if unsubscribe not in self._listeners:
                    return
                self._listeners.remove(unsubscribe)
            unsubscribe()

        return _unsubscribe

    def fetch_collection(
        self,
        collection: str,
        parent_field: str | None = None,
        parent_id: Any = None,
    ) -> list[dict[str, Any]]:
        return self._remote.fetch_collection(collection, field=parent_field, value=parent_id)

    def pull(
        self,
        collection: str,
        parent_field: str | None = None,
        parent_id: Any = None,
    ) -> list[dict[str, Any]]:
        """Descarga la colección una vez y la fusiona en la caché offline.

        Sin conexión devuelve lo que ya hay en caché. Los errores remotos se
        propagan: quien pide un pull explícito quiere saber si falló.
        """
        if not self._is_online():
            logger.info("Sin conexión: %s se sirve desde la caché local", collection)
            return self._cache.list(collection)
        documents = self.fetch_collection(collection, parent_field, parent_id)
        merged = self._cache.merge_snapshot(collection, documents)
        logger.info("Pull de %s: %s remotos, %s en caché", collection, len(documents), len(merged))
        return merged

    def set_queue_listener(self, callback: Callable[[], None] | None) -> None:
        """`callback` se invoca cuando una escritura acaba en cola estando online."""
        self._on_queued = callback

    def mirror_existing(self, collection: str, records: Iterable[dict[str, Any]]) -> int:
        """Publica registros ya existentes en lotes de como mucho `batch_limit`.

        A diferencia de las escrituras normales, aquí los errores remotos se
        propagan: es una carga inicial que el operador lanza a mano.
        """
        published = 0
        pending: list[dict[str, Any]] = []
        for record in records:
            if not record.get("id"):
                logger.warning("Registro de %s sin id; se omite", collection)
                continue
            pending.append(record)
            if len(pending) >= self._batch_limit:
                published += self._publish_batch(collection, pending)
                pending = []
        if pending:
            published += self._publish_batch(collection, pending)
        logger.info("Publicados %s registros existentes en %s", published, collection)
        return published

    def enable_network(self) -> None:
        self._remote.enable_network()

    def disable_network(self) -> None:
        self._remote.disable_network()

    def destroy(self) -> None:
        with self._lock:
            listeners = list(self._listeners)
            self._listeners = []
        for unsubscribe in listeners:
            try:
                unsubscribe()
            except Exception:  # noqa: BLE001
                logger.exception("No se pudo cerrar una suscripción en tiempo real")

    @property
    def active_listeners(self) -> int:
        with self._lock:
            return len(self._listeners)

    def _publish_batch(self, collection: str, records: list[dict[str, Any]]) -> int:
        batch = self._remote.batch()
        for record in records:
            batch.set(collection, str(record["id"]), self._stamped(record), merge=True)
        batch.commit()
        return len(records)

    def _stamped(self, data: dict[str, Any]) -> dict[str, Any]:
        return {**data, LAST_UPDATED_FIELD: self._clock(), "syncStatus": SYNCED_STATUS}

    def _queued_while_online(self) -> None:
        callback = self._on_queued
        if callback is None or not self._is_online():
            return
        try:
            callback()
        except Exception:  # noqa: BLE001
            logger.exception("El aviso de operación encolada falló")

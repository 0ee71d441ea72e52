from __future__ import annotations

import json
import logging
import threading
from typing import Any, Callable

from schoolsync.bootstrap.logging import log_operational_error
from schoolsync.core.errors import AppError, ValidationError
from schoolsync.core.metrics import metrics_registry
from schoolsync.domain.models import RECORD_TYPES
from schoolsync.domain.ports import KeyValueStorePort, RemoteBatchPort, RemoteStorePort
from schoolsync.domain.remote_errors import RemoteConfigError
from schoolsync.domain.sync_models import (
    LAST_SYNC_KEY,
    SYNC_QUEUE_KEY,
    SYNCED_STATUS,
    FlushResult,
    OperationType,
    QueuedOperation,
    RetryPolicy,
)
from schoolsync.domain.time_utils import utc_now_iso

logger = logging.getLogger(__name__)

DEFAULT_BATCH_LIMIT = 500

_Stager = Callable[[RemoteBatchPort, QueuedOperation, dict[str, Any]], None]


def sync_stamp(written_at: str) -> dict[str, Any]:
    """Metadatos que el remoto recibe con cada escritura; `written_at` es la hora del flush."""
    return {"lastUpdated": written_at, "syncStatus": SYNCED_STATUS}


def validate_operation(operation: QueuedOperation) -> None:
    document_id = operation.document_id.strip()
    if not document_id or "/" in document_id:
        raise ValidationError(f"documentId inválido para {operation.collection}: {operation.document_id!r}")
    if operation.type is not OperationType.CREATE:
        return
    record_type = RECORD_TYPES.get(operation.collection)
    if record_type is None:
        return
    try:
        record_type.from_payload({**operation.payload, "id": operation.document_id})
    except (KeyError, TypeError, ValueError) as exc:
        raise ValidationError(f"Payload no válido para {operation.path}: {exc}") from exc


def _stage_create(batch: RemoteBatchPort, operation: QueuedOperation, stamp: dict[str, Any]) -> None:
    validate_operation(operation)
    batch.set(operation.collection, operation.document_id, {**operation.payload, **stamp}, merge=True)


def _stage_update(batch: RemoteBatchPort, operation: QueuedOperation, stamp: dict[str, Any]) -> None:
    validate_operation(operation)
    batch.update(operation.collection, operation.document_id, {**operation.payload, **stamp})


def _stage_delete(batch: RemoteBatchPort, operation: QueuedOperation, _stamp: dict[str, Any]) -> None:
    validate_operation(operation)
    batch.delete(operation.collection, operation.document_id)


_STAGERS: dict[OperationType, _Stager] = {
    OperationType.CREATE: _stage_create,
    OperationType.UPDATE: _stage_update,
    OperationType.DELETE: _stage_delete,
}


class SyncQueue:
    """Cola FIFO persistente de mutaciones pendientes.

    La cola vive en memoria y se vuelca entera a `sync_queue` tras cada cambio.
    `flush()` confirma hasta `batch_limit` operaciones en un único batch atómico:
    si el commit falla, todas siguen en cola con `retry_count` incrementado y en
    el mismo orden. Las operaciones que superan `RetryPolicy.max_retries` se
    descartan y se notifican por `on_exhausted`.

    Solo puede haber un flush en curso; una llamada concurrente o reentrante
    devuelve un resultado `skipped_reason="in_progress"` sin tocar el remoto.
    """

    def __init__(
        self,
        store: KeyValueStorePort,
        remote: RemoteStorePort,
        *,
        is_online: Callable[[], bool],
        retry_policy: RetryPolicy | None = None,
        batch_limit: int = DEFAULT_BATCH_LIMIT,
        clock: Callable[[], str] = utc_now_iso,
    ) -> None:
        self._store = store
        self._remote = remote
        self._is_online = is_online
        self._retry_policy = retry_policy or RetryPolicy()
        self._batch_limit = max(1, batch_limit)
        self._clock = clock
        self._operations: list[QueuedOperation] = []
        self._lock = threading.RLock()
        self._flush_in_progress = False

    def __len__(self) -> int:
        with self._lock:
            return len(self._operations)

    @property
    def flush_in_progress(self) -> bool:
        return self._flush_in_progress

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry_policy

    def snapshot(self) -> list[QueuedOperation]:
        with self._lock:
            return list(self._operations)

    def load(self) -> int:
        """Rehidrata la cola desde el almacén local; un blob corrupto se descarta."""
        raw = self._store.get(SYNC_QUEUE_KEY)
        operations: list[QueuedOperation] = []
        if raw:
            try:
                entries = json.loads(raw)
                if not isinstance(entries, list):
                    raise ValueError("sync_queue no es una lista")
                operations = [QueuedOperation.from_json(entry) for entry in entries]
            except (json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
                log_operational_error(
                    logger,
                    "Cola de sincronización corrupta; se reinicia vacía",
                    exc=exc,
                    extra={"key": SYNC_QUEUE_KEY},
                )
                operations = []
        with self._lock:
            self._operations = operations
        logger.info("Cola de sincronización cargada: %s operaciones", len(operations))
        return len(operations)

    def enqueue(self, operation: QueuedOperation) -> QueuedOperation:
        with self._lock:
            self._operations.append(operation)
            self._save()
        metrics_registry.increment("operations_queued")
        logger.info("Operación encolada: %s %s (pendientes=%s)", operation.type.value, operation.path, len(self))
        return operation

    def clear(self) -> None:
        with self._lock:
            self._operations = []
            self._save()

    def last_sync(self) -> str | None:
        try:
            return self._store.get(LAST_SYNC_KEY)
        except AppError:
            logger.exception("No se pudo leer la fecha de última sincronización")
            return None

    def flush(self) -> FlushResult:
        with self._lock:
            if not self._is_online():
                return FlushResult(remaining=len(self._operations), skipped_reason="offline")
            if self._flush_in_progress:
                return FlushResult(remaining=len(self._operations), skipped_reason="in_progress")
            if not self._operations:
                return FlushResult(skipped_reason="empty")
            self._flush_in_progress = True
            pending = list(self._operations[: self._batch_limit])
        try:
            return self._flush_pending(pending)
        finally:
            with self._lock:
                self._flush_in_progress = False

    def _flush_pending(self, pending: list[QueuedOperation]) -> FlushResult:
        try:
            batch = self._remote.batch()
        except RemoteConfigError as exc:
            logger.warning("Firebase sin configurar; la cola se conserva (%s)", exc)
            return FlushResult(remaining=len(self), skipped_reason="not_configured", error=str(exc))
        except Exception as exc:  # noqa: BLE001
            return self._register_failure(pending, [], exc)

        stamp = sync_stamp(self._clock())
        staged: list[QueuedOperation] = []
        rejected: list[tuple[QueuedOperation, BaseException]] = []
        for operation in pending:
            try:
                _STAGERS[operation.type](batch, operation, stamp)
            except Exception as exc:  # noqa: BLE001
                logger.warning("No se pudo preparar %s %s: %s", operation.type.value, operation.path, exc)
                rejected.append((operation, exc))
                continue
            staged.append(operation)

        if staged:
            try:
                batch.commit()
            except Exception as exc:  # noqa: BLE001
                return self._register_failure(pending, staged, exc, rejected=rejected)

        synced_at = self._clock()
        with self._lock:
            dropped = self._bump_retries(rejected)
            done_ids = {operation.id for operation in staged} | {operation.id for operation, _ in dropped}
            self._operations = [operation for operation in self._operations if operation.id not in done_ids]
            self._save(last_sync=synced_at if staged else None)
            remaining = len(self._operations)
        self._notify_exhausted(dropped)
        if staged:
            logger.info("Batch confirmado: %s operaciones aplicadas, %s pendientes", len(staged), remaining)
        return FlushResult(
            attempted=len(pending),
            committed=bool(staged),
            applied=len(staged),
            dropped=len(dropped),
            remaining=remaining,
            error=str(rejected[0][1]) if rejected else None,
        )

    def _register_failure(
        self,
        pending: list[QueuedOperation],
        staged: list[QueuedOperation],
        error: BaseException,
        *,
        rejected: list[tuple[QueuedOperation, BaseException]] | None = None,
    ) -> FlushResult:
        failed = [(operation, error) for operation in (staged or pending)]
        with self._lock:
            dropped = self._bump_retries(failed + list(rejected or []))
            dropped_ids = {operation.id for operation, _ in dropped}
            self._operations = [operation for operation in self._operations if operation.id not in dropped_ids]
            self._save()
            remaining = len(self._operations)
        log_operational_error(
            logger,
            "Fallo al confirmar el batch de sincronización",
            exc=error,
            extra={"attempted": len(pending), "dropped": len(dropped), "remaining": remaining},
        )
        self._notify_exhausted(dropped)
        return FlushResult(
            attempted=len(pending),
            committed=False,
            dropped=len(dropped),
            remaining=remaining,
            error=str(error),
        )

    def _bump_retries(
        self, failures: list[tuple[QueuedOperation, BaseException]]
    ) -> list[tuple[QueuedOperation, BaseException]]:
        dropped: list[tuple[QueuedOperation, BaseException]] = []
        for operation, error in failures:
            operation.retry_count += 1
            if self._retry_policy.is_exhausted(operation):
                dropped.append((operation, error))
        return dropped

    def _notify_exhausted(self, dropped: list[tuple[QueuedOperation, BaseException]]) -> None:
        for operation, error in dropped:
            metrics_registry.increment("operations_dropped")
            logger.warning(
                "Operación descartada tras %s reintentos: %s %s (%s)",
                operation.retry_count,
                operation.type.value,
                operation.path,
                error,
            )
            callback = self._retry_policy.on_exhausted
            if callback is None:
                continue
            try:
                callback(operation, error)
            except Exception:  # noqa: BLE001
                logger.exception("El callback de operación descartada falló")

    def _save(self, *, last_sync: str | None = None) -> None:
        values = {SYNC_QUEUE_KEY: json.dumps([operation.to_json() for operation in self._operations], ensure_ascii=False)}
        if last_sync is not None:
            values[LAST_SYNC_KEY] = last_sync
        try:
            self._store.set_many(values)
        except AppError as exc:
            log_operational_error(
                logger,
                "No se pudo persistir la cola de sincronización; se mantiene en memoria",
                exc=exc,
                extra={"pending": len(self._operations)},
            )

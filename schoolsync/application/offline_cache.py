from __future__ import annotations

import json
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Callable

from schoolsync.core.errors import AppError
from schoolsync.domain.ports import KeyValueStorePort
from schoolsync.domain.sync_models import OFFLINE_DATA_KEY
from schoolsync.domain.time_utils import now_ms, parse_iso

logger = logging.getLogger(__name__)

OfflineData = dict[str, dict[str, dict[str, Any]]]


def _record_moment(record: dict[str, Any]) -> datetime | None:
    """Momento de la última modificación conocida de un registro.

    Los documentos remotos traen `lastUpdated` (ISO-8601); los guardados sin
    conexión tienen `timestamp` en milisegundos. Un registro remoto editado en
    local conserva el `lastUpdated` antiguo, así que gana el más reciente.
    """
    moments = []
    last_updated = parse_iso(record.get("lastUpdated"))
    if last_updated is not None:
        moments.append(last_updated)
    stamp = record.get("timestamp")
    if isinstance(stamp, (int, float)) and not isinstance(stamp, bool) and stamp > 0:
        moments.append(datetime.fromtimestamp(stamp / 1000, tz=timezone.utc))
    return max(moments) if moments else None


def _local_wins(local: dict[str, Any], remote: dict[str, Any]) -> bool:
    local_moment = _record_moment(local)
    remote_moment = _record_moment(remote)
    if local_moment is None:
        return False
    if remote_moment is None:
        return True
    return local_moment > remote_moment


class OfflineCache:
    """Copia local de los registros por colección, guardada en `offline_data`.

    El blob entero se reescribe en cada cambio. Si está corrupto se trata como
    vacío: los datos locales previos se pierden, igual que la cola.
    """

    def __init__(self, store: KeyValueStorePort, *, clock: Callable[[], int] = now_ms) -> None:
        self._store = store
        self._clock = clock
        self._lock = threading.RLock()

    def save(self, collection: str, document_id: str, data: dict[str, Any]) -> dict[str, Any]:
        record = {**data, "offlineCreated": True, "timestamp": self._clock()}
        with self._lock:
            offline_data = self._read()
            offline_data.setdefault(collection, {})[document_id] = record
            self._write(offline_data)
        return record

    def update(self, collection: str, document_id: str, updates: dict[str, Any]) -> dict[str, Any] | None:
        """Fusiona `updates` en un registro existente; no crea registros nuevos."""
        with self._lock:
            offline_data = self._read()
            current = offline_data.get(collection, {}).get(document_id)
            if current is None:
                return None
            record = {**current, **updates, "timestamp": self._clock()}
            offline_data[collection][document_id] = record
            self._write(offline_data)
        return record

    def delete(self, collection: str, document_id: str) -> bool:
        with self._lock:
            offline_data = self._read()
            records = offline_data.get(collection, {})
            if document_id not in records:
                return False
            del records[document_id]
            self._write(offline_data)
        return True

    def get(self, collection: str, document_id: str) -> dict[str, Any] | None:
        with self._lock:
            record = self._read().get(collection, {}).get(document_id)
        return dict(record) if record is not None else None

    def list(self, collection: str) -> list[dict[str, Any]]:
        with self._lock:
            records = self._read().get(collection, {})
        return [dict(record) for record in records.values()]

    def clear(self) -> None:
        with self._lock:
            self._write({})

    def merge_snapshot(self, collection: str, remote_documents: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Integra un snapshot remoto completo y devuelve la vista fusionada.

        El remoto manda salvo que la copia local sea más reciente que su
        `lastUpdated`; los registros que solo existen en local se conservan.
        """
        with self._lock:
            offline_data = self._read()
            local_records = offline_data.get(collection, {})
            merged: dict[str, dict[str, Any]] = {}
            kept_local = 0
            for document in remote_documents:
                document_id = str(document.get("id", ""))
                if not document_id:
                    continue
                local = local_records.get(document_id)
                if local is not None and _local_wins(local, document):
                    merged[document_id] = local
                    kept_local += 1
                else:
                    merged[document_id] = dict(document)
            for document_id, local in local_records.items():
                merged.setdefault(document_id, local)
            offline_data[collection] = merged
            self._write(offline_data)
        if kept_local:
            logger.info("Snapshot de %s: %s registros locales más recientes que el remoto", collection, kept_local)
        return [dict(record) for record in merged.values()]

    def _read(self) -> OfflineData:
        try:
            raw = self._store.get(OFFLINE_DATA_KEY)
        except AppError:
            logger.exception("No se pudo leer la caché offline; se trata como vacía")
            return {}
        if not raw:
            return {}
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError:
            logger.exception("Caché offline corrupta; se trata como vacía")
            return {}
        if not isinstance(payload, dict):
            logger.error("Caché offline con formato inesperado (%s); se trata como vacía", type(payload).__name__)
            return {}
        return {
            str(collection): {str(key): dict(value) for key, value in records.items() if isinstance(value, dict)}
            for collection, records in payload.items()
            if isinstance(records, dict)
        }

    def _write(self, offline_data: OfflineData) -> None:
        try:
            self._store.set(OFFLINE_DATA_KEY, json.dumps(offline_data, ensure_ascii=False, default=str))
        except AppError:
            logger.exception("No se pudo guardar la caché offline")

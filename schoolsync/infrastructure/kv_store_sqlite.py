from __future__ import annotations

import logging
import sqlite3
import threading
import time
from datetime import datetime, timezone
from typing import Callable, TypeVar

from schoolsync.core.errors import PersistenceError
from schoolsync.domain.ports import KeyValueStorePort

logger = logging.getLogger(__name__)

_LOCKED_RETRY_BACKOFF_SECONDS = (0.05, 0.15, 0.3)
_T = TypeVar("_T")


def is_locked_error(error: Exception) -> bool:
    return isinstance(error, sqlite3.OperationalError) and "locked" in str(error).lower()


def _run_with_locked_retry(operation: Callable[[], _T], *, context: str) -> _T:
    for attempt, delay_seconds in enumerate(_LOCKED_RETRY_BACKOFF_SECONDS, start=1):
        try:
            return operation()
        except sqlite3.OperationalError as error:
            if not is_locked_error(error):
                raise
            logger.warning(
                "SQLite locked in %s (attempt=%s/%s); retrying in %.0fms",
                context,
                attempt,
                len(_LOCKED_RETRY_BACKOFF_SECONDS),
                delay_seconds * 1000,
            )
            time.sleep(delay_seconds)

    return operation()


class SQLiteKeyValueStore(KeyValueStorePort):
    """Blobs de texto por clave fija (`sync_queue`, `offline_data`, `last_sync`).

    El almacén no interpreta el contenido; cada consumidor serializa su JSON y
    decide qué hacer si lo encuentra corrupto.
    """

    def __init__(self, connection: sqlite3.Connection) -> None:
        self._connection = connection
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        def _read() -> str | None:
            row = self._connection.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
            return None if row is None else str(row[0])

        with self._lock:
            try:
                return _run_with_locked_retry(_read, context=f"kv_store.get({key})")
            except sqlite3.Error as exc:
                raise PersistenceError(f"No se pudo leer la clave local '{key}'", context={"key": key}) from exc

    def set(self, key: str, value: str) -> None:
        self.set_many({key: value})

    def set_many(self, values: dict[str, str]) -> None:
        """Guarda todas las claves en una sola transacción: o todas o ninguna.

        La cola y `last_sync` se escriben juntas al confirmar un batch.
        """
        if not values:
            return
        updated_at = datetime.now(timezone.utc).isoformat()
        rows = [(key, value, updated_at) for key, value in values.items()]

        def _write() -> None:
            self._in_write_transaction(
                lambda: self._connection.executemany(
                    """
                    INSERT INTO kv_store (key, value, updated_at)
                    VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                    """,
                    rows,
                )
            )

        keys = ", ".join(values)
        with self._lock:
            try:
                _run_with_locked_retry(_write, context=f"kv_store.set({keys})")
            except sqlite3.Error as exc:
                raise PersistenceError(
                    f"No se pudo guardar la clave local '{keys}'", context={"keys": list(values)}
                ) from exc

    def delete(self, key: str) -> None:
        def _delete() -> None:
            self._in_write_transaction(
                lambda: self._connection.execute("DELETE FROM kv_store WHERE key = ?", (key,))
            )

        with self._lock:
            try:
                _run_with_locked_retry(_delete, context=f"kv_store.delete({key})")
            except sqlite3.Error as exc:
                raise PersistenceError(f"No se pudo borrar la clave local '{key}'", context={"key": key}) from exc

    def _in_write_transaction(self, statement: Callable[[], object]) -> None:
        # IMMEDIATE toma el bloqueo de escritura al empezar; un "locked" se reintenta entero.
        self._connection.execute("BEGIN IMMEDIATE")
        try:
            statement()
        except BaseException:
            self._connection.rollback()
            raise
        self._connection.commit()

    def keys(self) -> list[str]:
        with self._lock:
            rows = self._connection.execute("SELECT key FROM kv_store ORDER BY key").fetchall()
        return [str(row[0]) for row in rows]

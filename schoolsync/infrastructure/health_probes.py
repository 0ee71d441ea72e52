from __future__ import annotations

import json
import sqlite3
from pathlib import Path
from typing import Callable

from schoolsync.core.errors import AppError
from schoolsync.domain.models import CLASSES
from schoolsync.domain.ports import FirebaseConfigStorePort, RemoteStorePort
from schoolsync.domain.sync_models import SYNC_QUEUE_KEY
from schoolsync.infrastructure.migrations import MigrationRunner
from schoolsync.infrastructure.network_monitor import TcpReachabilityProbe

_SYNC_ACTION = "open_sync_settings"
_DB_ACTION = "open_db_help"


def _missing_config_result() -> dict[str, tuple[bool, str, str]]:
    return {
        "credentials": (False, "Falta configurar credenciales de Firebase.", _SYNC_ACTION),
        "project": (False, "Falta configurar el proyecto de Firebase.", _SYNC_ACTION),
        "remote_read": (False, "No se puede leer Firestore sin configuración.", _SYNC_ACTION),
    }


class FirebaseConfigProbe:
    """Comprueba configuración local y, si está completa, una lectura real."""

    def __init__(
        self,
        config_store: FirebaseConfigStorePort,
        remote: RemoteStorePort | None = None,
        probe_collection: str = CLASSES,
    ) -> None:
        self._config_store = config_store
        self._remote = remote
        self._probe_collection = probe_collection

    def check(self) -> dict[str, tuple[bool, str, str]]:
        config = self._config_store.load()
        if not config:
            return _missing_config_result()

        credentials_ok = bool(config.credentials_path and Path(config.credentials_path).exists())
        project_ok = bool(config.project_id)
        result = {
            "credentials": (
                credentials_ok,
                "Credenciales presentes y legibles." if credentials_ok else "Credenciales ausentes o no accesibles.",
                _SYNC_ACTION,
            ),
            "project": (
                project_ok,
                f"Proyecto configurado: {config.project_id}." if project_ok else "Falta el ID de proyecto.",
                _SYNC_ACTION,
            ),
        }
        if not credentials_ok or self._remote is None:
            result["remote_read"] = (False, "No se puede validar la lectura remota todavía.", _SYNC_ACTION)
            return result

        try:
            documents = self._remote.fetch_collection(self._probe_collection)
        except AppError as exc:
            result["remote_read"] = (False, f"No se pudo leer '{self._probe_collection}': {exc}", _SYNC_ACTION)
            return result
        result["remote_read"] = (
            True,
            f"Lectura de '{self._probe_collection}' correcta ({len(documents)} documentos).",
            _SYNC_ACTION,
        )
        return result


class ConnectivityProbe:
    def __init__(self, reachability: TcpReachabilityProbe | None = None) -> None:
        self._reachability = reachability or TcpReachabilityProbe()

    def check(self) -> tuple[bool, float | None, str]:
        reachable, latency_ms = self._reachability.check()
        if latency_ms is None:
            return reachable, None, "Latencia no disponible (Firestore no alcanzable)."
        return reachable, latency_ms, f"Latencia aproximada Firestore: {latency_ms:.0f} ms."


class SQLiteLocalDbProbe:
    def __init__(self, connection_factory: Callable[[], sqlite3.Connection]) -> None:
        self._connection_factory = connection_factory

    def check(self) -> dict[str, tuple[bool, str, str]]:
        connection = self._connection_factory()
        try:
            db_ok = connection.execute("SELECT 1").fetchone() is not None
            pending_migrations = MigrationRunner(connection).pending()
            row = connection.execute("SELECT value FROM kv_store WHERE key = ?", (SYNC_QUEUE_KEY,)).fetchone()
            pending = _count_pending(row[0] if row is not None else None)
        except Exception as exc:  # noqa: BLE001
            return {
                "local_db": (False, f"Base de datos no accesible: {exc}", _DB_ACTION),
                "migrations": (False, "No se pudo validar estado de migraciones.", _DB_ACTION),
                "pending_queue": (False, "No se pudo leer la cola de sincronización.", "open_sync_panel"),
            }
        finally:
            connection.close()

        migrations_ok = not pending_migrations
        queue_ok = pending is not None
        if pending is None:
            queue_message = "La cola de sincronización guardada está corrupta."
        elif pending:
            queue_message = f"{pending} operaciones pendientes de sincronizar."
        else:
            queue_message = "Sin operaciones pendientes."
        return {
            "local_db": (db_ok, "Base de datos local accesible.", _DB_ACTION),
            "migrations": (
                migrations_ok,
                "Migraciones al día." if migrations_ok else f"Migraciones pendientes: {pending_migrations}.",
                _DB_ACTION,
            ),
            "pending_queue": (queue_ok, queue_message, "open_sync_panel"),
        }


def _count_pending(raw: str | None) -> int | None:
    if raw is None:
        return 0
    try:
        entries = json.loads(raw)
    except json.JSONDecodeError:
        return None
    return len(entries) if isinstance(entries, list) else None

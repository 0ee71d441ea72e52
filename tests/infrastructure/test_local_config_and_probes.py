from __future__ import annotations

import json
import sqlite3
from pathlib import Path

from schoolsync.domain.models import FirebaseConfig
from schoolsync.domain.remote_errors import RemotePermissionError
from schoolsync.infrastructure.db import get_connection
from schoolsync.infrastructure.health_probes import ConnectivityProbe, FirebaseConfigProbe, SQLiteLocalDbProbe
from schoolsync.infrastructure.local_config import FirebaseConfigStore
from schoolsync.infrastructure.migrations import run_migrations
from tests.fakes import FakeRemoteStore


def test_config_inexistente_devuelve_none(tmp_path: Path) -> None:
    assert FirebaseConfigStore(tmp_path).load() is None


def test_save_y_load(tmp_path: Path) -> None:
    store = FirebaseConfigStore(tmp_path)

    saved = store.save(FirebaseConfig(project_id="school-app", credentials_path="/secrets/c.json", device_id=""))
    loaded = store.load()

    assert saved.device_id
    assert loaded == saved


def test_device_id_se_genera_si_falta(tmp_path: Path) -> None:
    (tmp_path / "config.json").write_text(
        json.dumps({"firebase_project_id": "school-app", "path_credentials_json": "c.json"}), encoding="utf-8"
    )

    config = FirebaseConfigStore(tmp_path).load()

    assert config is not None and config.device_id
    persisted = json.loads((tmp_path / "config.json").read_text(encoding="utf-8"))
    assert persisted["device_id"] == config.device_id


def test_config_corrupta_devuelve_none(tmp_path: Path) -> None:
    (tmp_path / "config.json").write_text("{roto", encoding="utf-8")

    assert FirebaseConfigStore(tmp_path).load() is None


def test_probe_firebase_sin_configuracion(tmp_path: Path) -> None:
    result = FirebaseConfigProbe(FirebaseConfigStore(tmp_path)).check()

    assert {key: ok for key, (ok, _message, _action) in result.items()} == {
        "credentials": False,
        "project": False,
        "remote_read": False,
    }


def test_probe_firebase_con_lectura_remota(tmp_path: Path) -> None:
    credentials = tmp_path / "credentials.json"
    credentials.write_text("{}", encoding="utf-8")
    store = FirebaseConfigStore(tmp_path)
    store.save(FirebaseConfig(project_id="school-app", credentials_path=str(credentials), device_id="d1"))
    remote = FakeRemoteStore(documents={"classes": [{"id": "c1"}, {"id": "c2"}]})

    result = FirebaseConfigProbe(store, remote).check()

    ok, message, _action = result["remote_read"]
    assert ok is True
    assert "2 documentos" in message


def test_probe_firebase_con_lectura_remota_denegada(tmp_path: Path) -> None:
    credentials = tmp_path / "credentials.json"
    credentials.write_text("{}", encoding="utf-8")
    store = FirebaseConfigStore(tmp_path)
    store.save(FirebaseConfig(project_id="school-app", credentials_path=str(credentials), device_id="d1"))

    class _Denied(FakeRemoteStore):
        def fetch_collection(self, collection, *, field=None, value=None):
            raise RemotePermissionError("sin permisos")

    ok, _message, _action = FirebaseConfigProbe(store, _Denied()).check()["remote_read"]
    assert ok is False


def test_connectivity_probe_formatea_latencia() -> None:
    class _Reachability:
        def check(self) -> tuple[bool, float | None]:
            return True, 42.4

    reachable, latency_ms, message = ConnectivityProbe(_Reachability()).check()

    assert (reachable, latency_ms) == (True, 42.4)
    assert "42 ms" in message


def test_local_db_probe_cuenta_pendientes(tmp_path: Path) -> None:
    db_path = tmp_path / "schoolsync.db"
    connection = get_connection(db_path)
    run_migrations(connection)
    connection.execute(
        "INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)",
        ("sync_queue", json.dumps([{"id": "1"}, {"id": "2"}]), "2026-01-01T00:00:00+00:00"),
    )
    connection.commit()
    connection.close()

    result = SQLiteLocalDbProbe(lambda: get_connection(db_path)).check()

    assert result["local_db"][0] is True
    assert result["migrations"][0] is True
    assert result["pending_queue"] == (True, "2 operaciones pendientes de sincronizar.", "open_sync_panel")


def test_local_db_probe_sin_migraciones() -> None:
    result = SQLiteLocalDbProbe(lambda: sqlite3.connect(":memory:")).check()

    assert result["local_db"][0] is False

from __future__ import annotations

import importlib
import os
import platform
import sqlite3
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _is_linux_headless() -> bool:
    if platform.system() != "Linux":
        return False
    return not (os.environ.get("DISPLAY") or os.environ.get("WAYLAND_DISPLAY"))


if _is_linux_headless():
    os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")
    os.environ.setdefault("QT_OPENGL", "software")


_UI_BACKEND_ERROR: str | None = None


def _detect_ui_backend_issue() -> str | None:
    try:
        importlib.import_module("PySide6")
        importlib.import_module("PySide6.QtWidgets")
        return None
    except Exception as exc:  # pragma: no cover - depende del host de ejecución
        return f"PySide6/Qt no disponible para tests UI: {exc}"


def pytest_configure(config: pytest.Config) -> None:
    global _UI_BACKEND_ERROR
    config.addinivalue_line("markers", "ui: tests de interfaz PySide6")
    _UI_BACKEND_ERROR = _detect_ui_backend_issue()


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    skip_ui = None
    if _UI_BACKEND_ERROR is not None:
        skip_ui = pytest.mark.skip(reason=_UI_BACKEND_ERROR)

    for item in items:
        if "tests/ui/" in item.nodeid and "test_status_presenter" not in item.nodeid:
            item.add_marker(pytest.mark.ui)
        if skip_ui is not None and "ui" in item.keywords:
            item.add_marker(skip_ui)


from schoolsync.application.offline_cache import OfflineCache
from schoolsync.application.remote_mirror import RemoteMirror
from schoolsync.application.sync_coordinator import SyncCoordinator
from schoolsync.application.sync_queue import SyncQueue
from schoolsync.domain.sync_models import RetryPolicy
from schoolsync.infrastructure.kv_store_sqlite import SQLiteKeyValueStore
from schoolsync.infrastructure.migrations import run_migrations
from schoolsync.infrastructure.network_monitor import NetworkStateObserver
from tests.fakes import FakeRemoteStore, InMemoryKeyValueStore, TimerRecorder


@pytest.fixture
def connection() -> sqlite3.Connection:
    conn = sqlite3.connect(":memory:", check_same_thread=False)
    conn.row_factory = sqlite3.Row
    run_migrations(conn)
    yield conn
    conn.close()


@pytest.fixture
def sqlite_store(connection: sqlite3.Connection) -> SQLiteKeyValueStore:
    return SQLiteKeyValueStore(connection)


@pytest.fixture
def kv_store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def remote() -> FakeRemoteStore:
    return FakeRemoteStore()


@pytest.fixture
def network() -> NetworkStateObserver:
    return NetworkStateObserver(initial_online=False)


@pytest.fixture
def sync_queue(kv_store: InMemoryKeyValueStore, remote: FakeRemoteStore, network: NetworkStateObserver) -> SyncQueue:
    return SyncQueue(kv_store, remote, is_online=network.is_online, retry_policy=RetryPolicy(max_retries=3))


@pytest.fixture
def offline_cache(kv_store: InMemoryKeyValueStore) -> OfflineCache:
    return OfflineCache(kv_store)


@pytest.fixture
def mirror(
    remote: FakeRemoteStore,
    sync_queue: SyncQueue,
    offline_cache: OfflineCache,
    network: NetworkStateObserver,
) -> RemoteMirror:
    return RemoteMirror(remote, sync_queue, offline_cache, is_online=network.is_online)


@pytest.fixture
def timers() -> TimerRecorder:
    return TimerRecorder()


@pytest.fixture
def coordinator(
    sync_queue: SyncQueue,
    mirror: RemoteMirror,
    network: NetworkStateObserver,
    timers: TimerRecorder,
) -> SyncCoordinator:
    coordinator = SyncCoordinator(sync_queue, mirror, network, timer_factory=timers, flush_interval_seconds=30)
    yield coordinator
    coordinator.destroy()

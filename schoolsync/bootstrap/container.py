from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from typing import Callable

from schoolsync.application.assessment_service import AssessmentService
from schoolsync.application.health_check import HealthCheckService
from schoolsync.application.offline_cache import OfflineCache
from schoolsync.application.remote_mirror import RemoteMirror
from schoolsync.application.sync_coordinator import SyncCoordinator
from schoolsync.application.sync_queue import SyncQueue
from schoolsync.bootstrap.settings import SyncSettings
from schoolsync.domain.ports import FirebaseConfigStorePort, NetworkMonitorPort, RemoteStorePort
from schoolsync.domain.sync_models import ExhaustedCallback, RetryPolicy
from schoolsync.infrastructure.db import get_connection
from schoolsync.infrastructure.firestore_client import FirestoreRemoteStore
from schoolsync.infrastructure.health_probes import ConnectivityProbe, FirebaseConfigProbe, SQLiteLocalDbProbe
from schoolsync.infrastructure.interval_timer import ThreadingIntervalTimer
from schoolsync.infrastructure.kv_store_sqlite import SQLiteKeyValueStore
from schoolsync.infrastructure.local_config import FirebaseConfigStore
from schoolsync.infrastructure.migrations import run_migrations
from schoolsync.infrastructure.network_monitor import PollingNetworkMonitor, TcpReachabilityProbe


@dataclass
class AppContainer:
    settings: SyncSettings
    config_store: FirebaseConfigStorePort
    remote: RemoteStorePort
    network: NetworkMonitorPort
    sync_queue: SyncQueue
    offline_cache: OfflineCache
    mirror: RemoteMirror
    coordinator: SyncCoordinator
    assessment_service: AssessmentService
    health_check_service: HealthCheckService


ConnectionFactory = Callable[[], sqlite3.Connection]


def build_container(
    connection_factory: ConnectionFactory = get_connection,
    *,
    settings: SyncSettings | None = None,
    config_store: FirebaseConfigStorePort | None = None,
    remote: RemoteStorePort | None = None,
    network: NetworkMonitorPort | None = None,
    on_exhausted: ExhaustedCallback | None = None,
) -> AppContainer:
    resolved_settings = settings or SyncSettings.from_env()
    connection = connection_factory()
    run_migrations(connection)
    kv_store = SQLiteKeyValueStore(connection)

    resolved_config_store = config_store or FirebaseConfigStore()
    resolved_remote = remote or FirestoreRemoteStore(resolved_config_store)
    reachability = TcpReachabilityProbe(resolved_settings.probe_host, resolved_settings.probe_port)
    resolved_network = network or PollingNetworkMonitor(
        reachability.is_reachable,
        resolved_settings.probe_interval_seconds,
    )

    sync_queue = SyncQueue(
        kv_store,
        resolved_remote,
        is_online=resolved_network.is_online,
        retry_policy=RetryPolicy(max_retries=resolved_settings.max_retries, on_exhausted=on_exhausted),
        batch_limit=resolved_settings.batch_limit,
    )
    offline_cache = OfflineCache(kv_store)
    mirror = RemoteMirror(
        resolved_remote,
        sync_queue,
        offline_cache,
        is_online=resolved_network.is_online,
        batch_limit=resolved_settings.batch_limit,
    )
    coordinator = SyncCoordinator(
        sync_queue,
        mirror,
        resolved_network,
        timer_factory=ThreadingIntervalTimer,
        flush_interval_seconds=resolved_settings.flush_interval_seconds,
    )
    health_check_service = HealthCheckService(
        FirebaseConfigProbe(resolved_config_store, resolved_remote),
        ConnectivityProbe(reachability),
        SQLiteLocalDbProbe(connection_factory),
    )

    return AppContainer(
        settings=resolved_settings,
        config_store=resolved_config_store,
        remote=resolved_remote,
        network=resolved_network,
        sync_queue=sync_queue,
        offline_cache=offline_cache,
        mirror=mirror,
        coordinator=coordinator,
        assessment_service=AssessmentService(mirror, offline_cache),
        health_check_service=health_check_service,
    )

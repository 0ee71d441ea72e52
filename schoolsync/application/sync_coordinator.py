from __future__ import annotations

import logging
import threading
from typing import Callable, Iterable

from schoolsync.application.remote_mirror import RemoteMirror
from schoolsync.application.sync_queue import SyncQueue
from schoolsync.core import metrics
from schoolsync.core.errors import AppError
from schoolsync.core.metrics import measure_time
from schoolsync.core.observability import OperationContext, log_event
from schoolsync.domain.ports import IntervalTimerPort, NetworkMonitorPort, Unsubscribe
from schoolsync.domain.models import ASSESSMENTS, CLASSES, STUDENTS
from schoolsync.domain.sync_models import FlushResult, FullSyncResult, SyncStatus

logger = logging.getLogger(__name__)

DEFAULT_FLUSH_INTERVAL_SECONDS = 30.0
SYNCED_COLLECTIONS = (STUDENTS, CLASSES, ASSESSMENTS)

StatusCallback = Callable[[SyncStatus], None]
TimerFactory = Callable[[float, Callable[[], object]], IntervalTimerPort]


class SyncCoordinator:
    """Orquesta cola, espejo remoto, estado de red y temporizador periódico.

    Se construye una vez en `build_container` y se pasa a quien lo necesite.
    Cada transición OFFLINE->ONLINE dispara un flush; cada ONLINE->OFFLINE
    deshabilita la red del cliente remoto. El temporizador reintenta cada
    `flush_interval_seconds` mientras haya conexión y operaciones pendientes.
    """

    def __init__(
        self,
        queue: SyncQueue,
        mirror: RemoteMirror,
        network: NetworkMonitorPort,
        *,
        timer_factory: TimerFactory | None = None,
        flush_interval_seconds: float = DEFAULT_FLUSH_INTERVAL_SECONDS,
    ) -> None:
        self._queue = queue
        self._mirror = mirror
        self._network = network
        self._timer_factory = timer_factory
        self._flush_interval_seconds = flush_interval_seconds
        self._timer: IntervalTimerPort | None = None
        self._network_unsubscribe: Unsubscribe | None = None
        self._status_listeners: list[StatusCallback] = []
        self._lock = threading.Lock()
        self._started = False

    @property
    def queue(self) -> SyncQueue:
        return self._queue

    @property
    def mirror(self) -> RemoteMirror:
        return self._mirror

    @property
    def started(self) -> bool:
        return self._started

    def start(self) -> None:
        if self._started:
            return
        self._queue.load()
        self._network_unsubscribe = self._network.subscribe(self._on_network_change)
        self._mirror.set_queue_listener(self._on_local_enqueue)
        self._network.start()
        if self._network.is_online():
            self._mirror.enable_network()
        else:
            self._mirror.disable_network()
        if self._timer_factory is not None:
            self._timer = self._timer_factory(self._flush_interval_seconds, self._on_tick)
            self._timer.start()
        self._started = True
        logger.info(
            "Coordinador de sincronización iniciado (online=%s, pendientes=%s, intervalo=%ss)",
            self._network.is_online(),
            len(self._queue),
            self._flush_interval_seconds,
        )

    def set_online(self, online: bool) -> bool:
        """Fuerza el estado de red; devuelve True si hubo transición."""
        return self._network.set_online(online)

    def get_sync_status(self) -> SyncStatus:
        return SyncStatus(
            is_online=self._network.is_online(),
            queue_length=len(self._queue),
            last_sync=self._queue.last_sync(),
            sync_in_progress=self._queue.flush_in_progress,
        )

    def force_sync(self) -> FlushResult:
        """Intenta vaciar la cola ya, sin esperar al siguiente tick."""
        return self.flush(trigger="manual")

    def full_sync(self, collections: Iterable[str] = SYNCED_COLLECTIONS) -> FullSyncResult:
        """Vacía la cola y después trae cada colección completa a la caché.

        Un fallo en una colección no impide intentar las demás.
        """
        flushed = self.flush(trigger="full_sync")
        pulled: dict[str, int] = {}
        failed: dict[str, str] = {}
        for collection in collections:
            try:
                pulled[collection] = len(self._mirror.pull(collection))
            except AppError as exc:
                logger.warning("No se pudo traer %s: %s", collection, exc)
                failed[collection] = exc.code
        log_event(logger, "full_sync_finished", {"pulled": pulled, "failed": failed})
        return FullSyncResult(flush=flushed, pulled=pulled, failed=failed)

    @measure_time("latency.flush_ms")
    def flush(self, *, trigger: str = "direct") -> FlushResult:
        with OperationContext("sync_flush") as operation:
            pending = len(self._queue)
            result = self._queue.flush()
            if result.skipped:
                logger.debug("Flush omitido (%s, trigger=%s)", result.skipped_reason, trigger)
                self._notify_status()
                return result

            log_event(logger, "flush_started", {"trigger": trigger, "pending": pending}, operation.correlation_id)
            metrics.metrics_registry.increment("flushes_executed")
            if result.applied:
                metrics.metrics_registry.increment("operations_applied", result.applied)
            event_name = "flush_committed" if result.committed else "flush_failed"
            log_event(logger, event_name, {"trigger": trigger, **result.to_json()}, operation.correlation_id)
            if result.dropped:
                log_event(
                    logger,
                    "operation_dropped",
                    {"dropped": result.dropped, "remaining": result.remaining},
                    operation.correlation_id,
                )
        self._notify_status()
        return result

    def on_status_change(self, callback: StatusCallback) -> Unsubscribe:
        with self._lock:
            self._status_listeners.append(callback)

        def _unsubscribe() -> None:
            with self._lock:
                if callback in self._status_listeners:
                    self._status_listeners.remove(callback)

        return _unsubscribe

    def destroy(self) -> None:
        if self._timer is not None:
            self._timer.stop()
            self._timer = None
        if self._network_unsubscribe is not None:
            self._network_unsubscribe()
            self._network_unsubscribe = None
        self._mirror.set_queue_listener(None)
        self._network.stop()
        self._mirror.destroy()
        self._started = False
        logger.info("Coordinador de sincronización detenido (pendientes=%s)", len(self._queue))

    def _on_network_change(self, online: bool) -> None:
        log_event(logger, "network_changed", {"online": online, "pending": len(self._queue)})
        if online:
            self._mirror.enable_network()
            self.flush(trigger="reconnect")
            return
        self._mirror.disable_network()
        self._notify_status()

    def _on_local_enqueue(self) -> None:
        if self._queue.flush_in_progress:
            return
        self.flush(trigger="enqueue")

    def _on_tick(self) -> None:
        if not self._network.is_online() or self._queue.flush_in_progress or not len(self._queue):
            return
        self.flush(trigger="interval")

    def _notify_status(self) -> None:
        with self._lock:
            listeners = list(self._status_listeners)
        if not listeners:
            return
        status = self.get_sync_status()
        for listener in listeners:
            try:
                listener(status)
            except Exception:  # noqa: BLE001
                logger.exception("Listener de estado de sincronización falló")

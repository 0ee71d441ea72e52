from __future__ import annotations

import logging
import socket
import threading
import time
from typing import Callable

from schoolsync.domain.ports import NetworkCallback, NetworkMonitorPort, Unsubscribe

logger = logging.getLogger(__name__)


class TcpReachabilityProbe:
    def __init__(self, host: str = "firestore.googleapis.com", port: int = 443, timeout_seconds: float = 3.0) -> None:
        self.host = host
        self.port = port
        self.timeout_seconds = timeout_seconds

    def check(self) -> tuple[bool, float | None]:
        started = time.perf_counter()
        try:
            socket.create_connection((self.host, self.port), timeout=self.timeout_seconds).close()
        except OSError:
            return False, None
        return True, (time.perf_counter() - started) * 1000

    def is_reachable(self) -> bool:
        reachable, _latency = self.check()
        return reachable


class NetworkStateObserver(NetworkMonitorPort):
    """Máquina de dos estados ONLINE/OFFLINE que solo notifica cambios reales.

    No hay debounce: cada transición se propaga tal cual llega.
    """

    def __init__(self, initial_online: bool = True) -> None:
        self._online = initial_online
        self._listeners: list[NetworkCallback] = []
        self._lock = threading.Lock()

    def is_online(self) -> bool:
        return self._online

    def subscribe(self, callback: NetworkCallback) -> Unsubscribe:
        with self._lock:
            self._listeners.append(callback)

        def _unsubscribe() -> None:
            with self._lock:
                if callback in self._listeners:
                    self._listeners.remove(callback)

        return _unsubscribe

    def set_online(self, online: bool) -> bool:
        with self._lock:
            if online == self._online:
                return False
            self._online = online
            listeners = list(self._listeners)
        logger.info("Transición de red: %s", "ONLINE" if online else "OFFLINE")
        for listener in listeners:
            try:
                listener(online)
            except Exception:  # noqa: BLE001
                logger.exception("Listener de red falló al procesar la transición")
        return True

    def refresh(self) -> bool:
        """Estado actual; los monitores con sonda la consultan en este momento."""
        return self._online

    def start(self) -> None:
        return None

    def stop(self) -> None:
        return None


class PollingNetworkMonitor(NetworkStateObserver):
    """Sondea la alcanzabilidad del endpoint remoto en un hilo en segundo plano.

    Construirlo no toca la red: arranca OFFLINE y el primer sondeo se hace en
    el hilo al llamar a `start()`, o a demanda con `refresh()`.
    """

    def __init__(
        self,
        probe: Callable[[], bool],
        interval_seconds: float = 5.0,
        *,
        initial_online: bool = False,
    ) -> None:
        super().__init__(initial_online=initial_online)
        self._probe = probe
        self._interval_seconds = interval_seconds
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="schoolsync-network-monitor", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=self._interval_seconds + 1)
            self._thread = None

    def poll_once(self) -> bool:
        try:
            reachable = bool(self._probe())
        except Exception:  # noqa: BLE001
            logger.exception("La sonda de conectividad falló; se asume OFFLINE")
            reachable = False
        self.set_online(reachable)
        return reachable

    def refresh(self) -> bool:
        return self.poll_once()

    def _run(self) -> None:
        self.poll_once()
        while not self._stop_event.wait(self._interval_seconds):
            self.poll_once()

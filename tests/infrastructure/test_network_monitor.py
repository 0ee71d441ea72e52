from __future__ import annotations

import socket
import threading

from schoolsync.infrastructure.network_monitor import NetworkStateObserver, PollingNetworkMonitor, TcpReachabilityProbe


def test_solo_notifica_transiciones_reales() -> None:
    observer = NetworkStateObserver(initial_online=False)
    transitions = []
    observer.subscribe(transitions.append)

    assert observer.set_online(False) is False
    assert observer.set_online(True) is True
    assert observer.set_online(True) is False
    assert observer.set_online(False) is True

    assert transitions == [True, False]


def test_sin_debounce_cada_aleteo_se_propaga() -> None:
    observer = NetworkStateObserver(initial_online=True)
    transitions = []
    observer.subscribe(transitions.append)

    for _ in range(3):
        observer.set_online(False)
        observer.set_online(True)

    assert transitions == [False, True] * 3


def test_unsubscribe_y_listener_que_falla() -> None:
    observer = NetworkStateObserver(initial_online=True)
    received = []

    def _broken(_online: bool) -> None:
        raise RuntimeError("boom")

    observer.subscribe(_broken)
    unsubscribe = observer.subscribe(received.append)
    observer.set_online(False)
    unsubscribe()
    observer.set_online(True)

    assert received == [False]
    assert observer.is_online() is True


def test_polling_no_sondea_al_construirse_y_notifica_cada_cambio() -> None:
    calls = []
    answers = iter([True, True, False])

    def _probe() -> bool:
        calls.append(1)
        return next(answers)

    monitor = PollingNetworkMonitor(_probe, interval_seconds=60)
    transitions = []
    monitor.subscribe(transitions.append)

    assert calls == []
    assert monitor.is_online() is False
    assert monitor.refresh() is True
    monitor.poll_once()
    monitor.poll_once()

    assert transitions == [True, False]
    assert len(calls) == 3


def test_observer_refresh_devuelve_el_estado_conocido() -> None:
    observer = NetworkStateObserver(initial_online=True)

    assert observer.refresh() is True


def test_sonda_que_lanza_se_considera_offline() -> None:
    def _probe() -> bool:
        raise OSError("sin red")

    monitor = PollingNetworkMonitor(_probe, initial_online=True)

    assert monitor.poll_once() is False
    assert monitor.is_online() is False


def test_start_hace_el_primer_sondeo_en_el_hilo() -> None:
    probed = threading.Event()

    def _probe() -> bool:
        probed.set()
        return True

    monitor = PollingNetworkMonitor(_probe, interval_seconds=60)

    monitor.start()
    assert probed.wait(2.0) is True
    monitor.stop()

    assert monitor.is_online() is True


def test_tcp_probe_devuelve_latencia_si_conecta(monkeypatch) -> None:
    class _Socket:
        def close(self) -> None:
            return None

    monkeypatch.setattr(socket, "create_connection", lambda *args, **kwargs: _Socket())

    reachable, latency_ms = TcpReachabilityProbe("example.invalid", 443).check()

    assert reachable is True
    assert latency_ms is not None and latency_ms >= 0


def test_tcp_probe_sin_conexion(monkeypatch) -> None:
    def _fail(*args, **kwargs):
        raise OSError("unreachable")

    monkeypatch.setattr(socket, "create_connection", _fail)

    assert TcpReachabilityProbe("example.invalid", 443).is_reachable() is False

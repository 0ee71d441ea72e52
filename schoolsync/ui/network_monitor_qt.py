from __future__ import annotations

import logging

from PySide6.QtNetwork import QNetworkInformation

from schoolsync.infrastructure.network_monitor import NetworkStateObserver

logger = logging.getLogger(__name__)


class QtNetworkMonitor(NetworkStateObserver):
    """Traduce `QNetworkInformation.reachabilityChanged` a transiciones ONLINE/OFFLINE.

    Si la plataforma no ofrece backend de información de red se queda en el
    estado inicial y solo cambia mediante `set_online`.
    """

    def __init__(self, initial_online: bool = True) -> None:
        super().__init__(initial_online=initial_online)
        self._information: QNetworkInformation | None = None

    @property
    def has_backend(self) -> bool:
        return self._information is not None

    def start(self) -> None:
        if self._information is not None:
            return
        if not QNetworkInformation.loadDefaultBackend():
            logger.warning("QNetworkInformation sin backend; el estado de red no se actualizará solo")
            return
        information = QNetworkInformation.instance()
        if information is None:
            return
        self._information = information
        information.reachabilityChanged.connect(self._on_reachability_changed)
        self._on_reachability_changed(information.reachability())

    def stop(self) -> None:
        if self._information is None:
            return
        try:
            self._information.reachabilityChanged.disconnect(self._on_reachability_changed)
        except (RuntimeError, TypeError):
            logger.debug("La señal reachabilityChanged ya estaba desconectada")
        self._information = None

    def refresh(self) -> bool:
        if self._information is not None:
            self._on_reachability_changed(self._information.reachability())
        return self.is_online()

    def _on_reachability_changed(self, reachability: QNetworkInformation.Reachability) -> None:
        self.set_online(reachability == QNetworkInformation.Reachability.Online)

from __future__ import annotations

import logging
import traceback

from PySide6.QtCore import QObject, Signal, Slot

from schoolsync.application.sync_coordinator import SyncCoordinator
from schoolsync.bootstrap.logging import log_operational_error

logger = logging.getLogger(__name__)


class FlushWorker(QObject):
    finished = Signal(object)
    failed = Signal(object)

    def __init__(self, coordinator: SyncCoordinator) -> None:
        super().__init__()
        self._coordinator = coordinator

    @Slot()
    def run(self) -> None:
        try:
            result = self._coordinator.force_sync()
        except Exception as exc:  # noqa: BLE001
            log_operational_error(logger, "Sincronización manual fallida", exc=exc)
            self.failed.emit({"error": exc, "details": traceback.format_exc()})
            return
        self.finished.emit(result)

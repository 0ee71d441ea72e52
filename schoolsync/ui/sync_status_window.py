from __future__ import annotations

import logging

from PySide6.QtCore import QThread, Signal
from PySide6.QtWidgets import QLabel, QPushButton, QVBoxLayout, QWidget

from schoolsync.application.sync_coordinator import SyncCoordinator
from schoolsync.domain.sync_models import FlushResult, SyncStatus
from schoolsync.ui.flush_worker import FlushWorker
from schoolsync.ui.status_badge import StatusBadge
from schoolsync.ui.status_presenter import build_status_view, describe_flush_result

logger = logging.getLogger(__name__)


class SyncStatusWindow(QWidget):
    """Panel mínimo con el estado de la cola y un botón de sincronización manual."""

    status_changed = Signal(object)

    def __init__(self, coordinator: SyncCoordinator, parent: QWidget | None = None) -> None:
        super().__init__(parent)
        self._coordinator = coordinator
        self._flush_thread: QThread | None = None
        self._flush_worker: FlushWorker | None = None

        self.setWindowTitle("SchoolSync · Sincronización")
        self.badge = StatusBadge("")
        self.detail_label = QLabel("")
        self.last_sync_label = QLabel("")
        self.message_label = QLabel("")
        self.sync_button = QPushButton("Sincronizar ahora")

        layout = QVBoxLayout(self)
        layout.addWidget(self.badge)
        layout.addWidget(self.detail_label)
        layout.addWidget(self.last_sync_label)
        layout.addWidget(self.sync_button)
        layout.addWidget(self.message_label)

        self.sync_button.clicked.connect(self.on_sync_clicked)
        # El coordinador notifica desde hilos de fondo; la señal lo lleva al hilo de la UI.
        self.status_changed.connect(self.apply_status)
        self._unsubscribe = coordinator.on_status_change(self.status_changed.emit)
        self.apply_status(coordinator.get_sync_status())

    def apply_status(self, status: SyncStatus) -> None:
        view = build_status_view(status)
        self.badge.setText(view.badge_text)
        self.badge.set_variant(view.badge_variant)
        self.detail_label.setText(view.detail)
        self.last_sync_label.setText(view.last_sync_text)
        self.sync_button.setEnabled(view.sync_enabled and self._flush_thread is None)
        self.sync_button.setToolTip(view.sync_tooltip)

    def on_sync_clicked(self) -> None:
        if self._flush_thread is not None:
            return
        self.sync_button.setEnabled(False)
        self._flush_thread = QThread()
        self._flush_worker = FlushWorker(self._coordinator)
        self._flush_worker.moveToThread(self._flush_thread)
        self._flush_thread.started.connect(self._flush_worker.run)
        self._flush_worker.finished.connect(self._on_flush_finished)
        self._flush_worker.failed.connect(self._on_flush_failed)
        self._flush_worker.finished.connect(self._flush_thread.quit)
        self._flush_worker.failed.connect(self._flush_thread.quit)
        self._flush_worker.finished.connect(self._flush_worker.deleteLater)
        self._flush_thread.finished.connect(self._flush_thread.deleteLater)
        self._flush_thread.finished.connect(self._on_thread_finished)
        self._flush_thread.start()

    def _on_flush_finished(self, result: FlushResult) -> None:
        severity, message = describe_flush_result(result)
        self.message_label.setProperty("severity", severity)
        self.message_label.setText(message)

    def _on_flush_failed(self, payload: dict[str, object]) -> None:
        self.message_label.setProperty("severity", "error")
        self.message_label.setText(f"Error inesperado al sincronizar: {payload.get('error')}")

    def _on_thread_finished(self) -> None:
        self._flush_thread = None
        self._flush_worker = None
        self.apply_status(self._coordinator.get_sync_status())

    def closeEvent(self, event) -> None:  # noqa: N802
        self._unsubscribe()
        super().closeEvent(event)

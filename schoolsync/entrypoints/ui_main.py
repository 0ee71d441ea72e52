from __future__ import annotations

import sys
from types import TracebackType

from schoolsync.bootstrap.container import AppContainer, build_container
from schoolsync.bootstrap.exception_handler import handle_global_exception


def build_ui_error_message(incident_id: str) -> str:
    return f"Ha ocurrido un error inesperado.\nID de incidente: {incident_id}"


def handle_ui_exception(
    exc_type: type[BaseException],
    exc_value: BaseException,
    exc_traceback: TracebackType,
) -> str:
    from PySide6.QtWidgets import QApplication, QMessageBox

    incident_id = handle_global_exception(exc_type, exc_value, exc_traceback)
    if QApplication.instance() is None:
        return incident_id
    try:
        QMessageBox.critical(None, "Error inesperado", build_ui_error_message(incident_id))
    except Exception:  # noqa: BLE001
        # Un fallo pintando el diálogo no debe provocar un segundo crash.
        pass
    return incident_id


def run_ui(container: AppContainer | None = None) -> int:
    from PySide6.QtWidgets import QApplication

    from schoolsync.ui.network_monitor_qt import QtNetworkMonitor
    from schoolsync.ui.sync_status_window import SyncStatusWindow

    app = QApplication.instance() or QApplication([])
    resolved_container = container or build_container(network=QtNetworkMonitor())
    coordinator = resolved_container.coordinator
    try:
        coordinator.start()
        window = SyncStatusWindow(coordinator)
        window.show()
        return app.exec()
    except Exception:  # noqa: BLE001
        exc_type, exc_value, exc_traceback = sys.exc_info()
        if exc_type is not None and exc_value is not None and exc_traceback is not None:
            handle_ui_exception(exc_type, exc_value, exc_traceback)
        return 2
    finally:
        coordinator.destroy()

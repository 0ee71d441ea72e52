from __future__ import annotations

import pytest

pytest.importorskip("PySide6.QtWidgets", reason="PySide6 no disponible para tests UI")

from schoolsync.domain.models import Student
from schoolsync.ui.status_badge import StatusBadge
from schoolsync.ui.sync_status_window import SyncStatusWindow


def test_status_badge_en_mayusculas_y_con_tono(qapp) -> None:
    badge = StatusBadge("pendiente", "warning")

    assert badge.text() == "PENDIENTE"
    assert badge.variant() == "warning"

    badge.set_variant("desconocido")
    assert badge.variant() == "neutral"


def test_ventana_refleja_el_estado_del_coordinador(qapp, coordinator, mirror) -> None:
    coordinator.start()
    mirror.save_student(Student(id="s1", student_id="STU001", first_name="Ada", last_name="L", class_id="c1"))

    window = SyncStatusWindow(coordinator)
    try:
        assert window.badge.text() == "SIN CONEXIÓN"
        assert window.sync_button.isEnabled() is False

        coordinator.set_online(True)
        qapp.processEvents()

        assert window.badge.text() == "SINCRONIZADO"
        assert window.sync_button.isEnabled() is True
    finally:
        window.close()

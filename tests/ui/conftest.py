from __future__ import annotations

import pytest


@pytest.fixture
def qapp():
    widgets = pytest.importorskip("PySide6.QtWidgets", reason="PySide6 no disponible para tests UI")
    app = widgets.QApplication.instance() or widgets.QApplication([])
    yield app
    app.processEvents()

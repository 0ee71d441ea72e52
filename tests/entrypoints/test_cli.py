from __future__ import annotations

import io
import json
import threading
from pathlib import Path

import pytest

from schoolsync.application.health_check import HealthCheckService
from schoolsync.bootstrap.container import AppContainer, build_container
from schoolsync.bootstrap.settings import SyncSettings
from schoolsync.domain.models import Student
from schoolsync.domain.sync_models import OperationType, QueuedOperation
from schoolsync.core.observability import reset_correlation_id, set_correlation_id
from schoolsync.domain.remote_errors import RemoteConfigError
from schoolsync.entrypoints.cli import guarded_run, run
from schoolsync.infrastructure.db import get_connection
from schoolsync.infrastructure.local_config import FirebaseConfigStore
from schoolsync.infrastructure.network_monitor import NetworkStateObserver
from tests.fakes import FakeRemoteStore


def _container(tmp_path: Path, *, online: bool, remote: FakeRemoteStore | None = None) -> AppContainer:
    return build_container(
        lambda: get_connection(tmp_path / "schoolsync.db"),
        settings=SyncSettings(flush_interval_seconds=60),
        config_store=FirebaseConfigStore(tmp_path),
        remote=remote or FakeRemoteStore(),
        network=NetworkStateObserver(initial_online=online),
    )


def _unexpected_container() -> AppContainer:
    raise AssertionError("grade no debe construir el contenedor")


def test_grade_imprime_total_grado_y_estado() -> None:
    stdout = io.StringIO()

    code = run(
        ["grade", "--first-ca", "18", "--second-ca", "17", "--exam", "45"],
        container_factory=_unexpected_container,
        stdout=stdout,
    )

    assert code == 0
    assert json.loads(stdout.getvalue()) == {"total": 80.0, "grade": "A", "remark": "Excellent", "status": "PASS"}


def test_grade_con_nota_invalida_sale_con_1() -> None:
    stderr = io.StringIO()

    code = run(["grade", "--exam", "75"], container_factory=_unexpected_container, stderr=stderr)

    assert code == 1
    assert "exam" in stderr.getvalue()


def test_status_refleja_la_cola_persistida(tmp_path: Path) -> None:
    container = _container(tmp_path, online=False)
    container.mirror.save_student(
        Student(id="s1", student_id="STU001", first_name="Ada", last_name="L", class_id="c1")
    )
    stdout = io.StringIO()

    code = run(["status"], container_factory=lambda: container, stdout=stdout)

    assert code == 0
    assert json.loads(stdout.getvalue()) == {
        "isOnline": False,
        "queueLength": 1,
        "lastSync": None,
        "syncInProgress": False,
    }


def test_sync_vacia_la_cola_con_conexion(tmp_path: Path) -> None:
    remote = FakeRemoteStore()
    container = _container(tmp_path, online=True, remote=remote)
    container.sync_queue.enqueue(QueuedOperation(OperationType.CREATE, "students", "s1", {"firstName": "Ada"}))
    stdout = io.StringIO()

    code = run(["sync"], container_factory=lambda: container, stdout=stdout)

    assert code == 0
    payload = json.loads(stdout.getvalue())
    assert (payload["committed"], payload["applied"], payload["remaining"]) == (True, 1, 0)
    assert [call.path for call in remote.committed_calls] == ["students/s1"]


def test_health_sale_con_1_si_alguna_comprobacion_falla(tmp_path: Path) -> None:
    class _Probe:
        def check(self):
            return {"credentials": (False, "Faltan credenciales.", "open_sync_settings")}

    class _Connectivity:
        def check(self):
            return True, 10.0, "Latencia aproximada Firestore: 10 ms."

    container = _container(tmp_path, online=True)
    container.health_check_service = HealthCheckService(_Probe(), _Connectivity(), _Probe())
    stdout = io.StringIO()

    code = run(["health"], container_factory=lambda: container, stdout=stdout)

    assert code == 1
    payload = json.loads(stdout.getvalue())
    assert payload["ok"] is False
    assert payload["checks"][0] == {
        "key": "credentials",
        "status": "ERROR",
        "message": "Faltan credenciales.",
        "category": "Configuración",
    }


def test_watch_arranca_y_detiene_el_coordinador(tmp_path: Path) -> None:
    container = _container(tmp_path, online=False)
    stop_event = threading.Event()
    stop_event.set()

    code = run(["watch"], container_factory=lambda: container, stop_event=stop_event)

    assert code == 0
    assert container.coordinator.started is False


def test_comando_desconocido_termina_con_error_de_argparse() -> None:
    with pytest.raises(SystemExit):
        run(["purge"], container_factory=_unexpected_container)


def test_pull_de_una_coleccion_cuenta_los_documentos_fusionados(tmp_path: Path) -> None:
    remote = FakeRemoteStore(documents={"classes": [{"id": "c1", "name": "JSS1"}, {"id": "c2", "name": "JSS2"}]})
    container = _container(tmp_path, online=True, remote=remote)
    stdout = io.StringIO()

    code = run(["pull", "classes"], container_factory=lambda: container, stdout=stdout)

    assert code == 0
    assert json.loads(stdout.getvalue()) == {"collection": "classes", "count": 2}
    assert len(container.offline_cache.list("classes")) == 2


def test_pull_sin_coleccion_hace_la_sincronizacion_completa(tmp_path: Path) -> None:
    remote = FakeRemoteStore(fail_fetch={"assessments"})
    container = _container(tmp_path, online=True, remote=remote)
    container.sync_queue.enqueue(QueuedOperation(OperationType.DELETE, "students", "s1"))
    stdout = io.StringIO()

    code = run(["pull"], container_factory=lambda: container, stdout=stdout)

    assert code == 1
    payload = json.loads(stdout.getvalue())
    assert payload["flush"]["applied"] == 1
    assert payload["pulled"] == {"students": 0, "classes": 0}
    assert payload["failed"] == {"assessments": "remote_unavailable"}


def test_error_de_aplicacion_sale_con_1_y_json_en_stderr() -> None:
    def _unconfigured() -> AppContainer:
        raise RemoteConfigError("Faltan credenciales de Firebase.")

    stderr = io.StringIO()

    code = run(["sync"], container_factory=_unconfigured, stderr=stderr)

    assert code == 1
    assert json.loads(stderr.getvalue()) == {
        "code": "remote_not_configured",
        "message": "Faltan credenciales de Firebase.",
        "retryable": False,
    }


def test_error_inesperado_sale_con_2_e_id_de_incidente() -> None:
    def _broken() -> AppContainer:
        raise RuntimeError("disco lleno")

    stderr = io.StringIO()
    token = set_correlation_id(None)
    try:
        code = guarded_run(["status"], container_factory=_broken, stderr=stderr)
    finally:
        reset_correlation_id(token)

    assert code == 2
    assert stderr.getvalue().startswith("Error inesperado. ID de incidente: INC-")

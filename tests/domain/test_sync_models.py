from __future__ import annotations

import re

import pytest

from schoolsync.domain.models import RECORD_TYPES, Assessment, ClassRoom, Student
from schoolsync.domain.sync_models import (
    FlushResult,
    OperationType,
    QueuedOperation,
    RetryPolicy,
    SyncStatus,
    generate_operation_id,
)


def test_id_de_operacion_tiene_sello_y_sufijo_base36() -> None:
    assert re.fullmatch(r"1700000000000_[0-9a-z]{9}", generate_operation_id(1_700_000_000_000))


def test_queued_operation_usa_claves_camel_case() -> None:
    operation = QueuedOperation(
        OperationType.UPDATE, "students", "s1", {"firstName": "Ada"}, id="op-1", enqueued_at=123, retry_count=2
    )

    assert operation.to_json() == {
        "id": "op-1",
        "type": "UPDATE",
        "collection": "students",
        "documentId": "s1",
        "data": {"firstName": "Ada"},
        "timestamp": 123,
        "retryCount": 2,
    }
    assert QueuedOperation.from_json(operation.to_json()) == operation
    assert operation.path == "students/s1"


def test_queued_operation_rellena_id_y_fecha() -> None:
    operation = QueuedOperation("DELETE", "classes", "c1")

    assert operation.type is OperationType.DELETE
    assert operation.enqueued_at > 0
    assert operation.id.startswith(f"{operation.enqueued_at}_")


def test_tipo_desconocido_se_rechaza() -> None:
    with pytest.raises(ValueError):
        QueuedOperation("PATCH", "classes", "c1")


def test_retry_policy_descarta_por_encima_del_maximo() -> None:
    policy = RetryPolicy(max_retries=3)

    assert policy.is_exhausted(QueuedOperation(OperationType.CREATE, "a", "b", retry_count=3)) is False
    assert policy.is_exhausted(QueuedOperation(OperationType.CREATE, "a", "b", retry_count=4)) is True


def test_sync_status_json_y_alias_pending_count() -> None:
    status = SyncStatus(is_online=True, queue_length=2, last_sync=None, sync_in_progress=False)

    assert status.pending_count == 2
    assert status.to_json() == {"isOnline": True, "queueLength": 2, "lastSync": None, "syncInProgress": False}


def test_flush_result_skipped() -> None:
    assert FlushResult(skipped_reason="offline").skipped is True
    assert FlushResult(attempted=1, committed=True, applied=1).skipped is False


def test_registros_se_convierten_a_documentos_camel_case() -> None:
    student = Student(id="s1", student_id="STU001", first_name="Ada", last_name="Lovelace", class_id="SCH1-JSS1")
    classroom = ClassRoom(id="SCH1-JSS1", name="JSS 1", school_id="SCH1")
    assessment = Assessment(
        id="a1", student_id="s1", subject_id="math", class_id="SCH1-JSS1", term="1", session="2025/2026", exam=50
    )

    assert Student.from_payload(student.to_payload()) == student
    assert ClassRoom.from_payload(classroom.to_payload()) == classroom
    assert Assessment.from_payload(assessment.to_payload()) == assessment
    assert student.full_name == "Ada Lovelace"
    assert assessment.to_payload()["firstCA"] == 0.0
    assert set(RECORD_TYPES) == {"students", "classes", "assessments"}


def test_assessment_desde_payload_tolera_notas_vacias() -> None:
    assessment = Assessment.from_payload({"id": "a1", "firstCA": "", "exam": "45"})

    assert (assessment.first_ca, assessment.exam) == (0.0, 45.0)

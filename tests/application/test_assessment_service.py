from __future__ import annotations

import pytest

from schoolsync.application.assessment_service import AssessmentService
from schoolsync.core.errors import ValidationError
from schoolsync.domain.models import Assessment
from schoolsync.domain.sync_models import OperationType


def _record(service: AssessmentService, **scores) -> Assessment:
    return service.record_scores(
        assessment_id="a1",
        student_id="s1",
        subject_id="math",
        class_id="c1",
        term="1",
        session="2025/2026",
        **scores,
    )


def test_record_scores_calcula_total_grado_y_observacion(mirror, offline_cache) -> None:
    service = AssessmentService(mirror, offline_cache)

    assessment = _record(service, first_ca=18, second_ca=17, exam=45)

    assert assessment.total == 80
    assert (assessment.grade, assessment.remark) == ("A", "Excellent")


def test_primera_vez_guarda_y_despues_actualiza(mirror, offline_cache, sync_queue) -> None:
    service = AssessmentService(mirror, offline_cache)

    _record(service, first_ca=10, second_ca=10, exam=20)
    _record(service, first_ca=10, second_ca=10, exam=35)

    assert [op.type for op in sync_queue.snapshot()] == [OperationType.CREATE, OperationType.UPDATE]
    update = sync_queue.snapshot()[1]
    assert "id" not in update.payload
    assert update.payload["total"] == 55
    assert offline_cache.get("assessments", "a1")["grade"] == "C"


def test_notas_fuera_de_rango_no_llegan_a_la_cola(mirror, offline_cache, sync_queue) -> None:
    service = AssessmentService(mirror, offline_cache)

    with pytest.raises(ValidationError):
        _record(service, first_ca=25, second_ca=0, exam=0)

    assert len(sync_queue) == 0


def test_offline_assessments_y_resumen(mirror, offline_cache) -> None:
    service = AssessmentService(mirror, offline_cache)
    _record(service, first_ca=20, second_ca=20, exam=40)

    assessments = service.offline_assessments()
    summary = service.summarize(assessments)

    assert [assessment.id for assessment in assessments] == ["a1"]
    assert summary.average_percentage == 80.0
    assert summary.status == "PASS"

from __future__ import annotations

import logging
from typing import Iterable

from schoolsync.application.offline_cache import OfflineCache
from schoolsync.application.remote_mirror import RemoteMirror
from schoolsync.domain.grading import ResultSummary, grade_scores, summarize_results
from schoolsync.domain.models import ASSESSMENTS, Assessment

logger = logging.getLogger(__name__)


class AssessmentService:
    def __init__(self, mirror: RemoteMirror, cache: OfflineCache) -> None:
        self._mirror = mirror
        self._cache = cache

    def record_scores(
        self,
        *,
        assessment_id: str,
        student_id: str,
        subject_id: str,
        class_id: str,
        term: str,
        session: str,
        first_ca: float | None,
        second_ca: float | None,
        exam: float | None,
    ) -> Assessment:
        """Valida las notas, calcula total/grado/observación y las refleja en remoto.

        Si la evaluación ya está en la caché local se envía como actualización
        parcial; si no, como documento completo.
        """
        result = grade_scores(first_ca, second_ca, exam)
        assessment = Assessment(
            id=assessment_id,
            student_id=student_id,
            subject_id=subject_id,
            class_id=class_id,
            term=term,
            session=session,
            first_ca=float(first_ca or 0),
            second_ca=float(second_ca or 0),
            exam=float(exam or 0),
            total=result.total,
            grade=result.grade,
            remark=result.remark,
        )
        if self._cache.get(ASSESSMENTS, assessment_id) is not None:
            updates = assessment.to_payload()
            updates.pop("id")
            self._mirror.update_assessment(assessment_id, updates)
        else:
            self._mirror.save_assessment(assessment)
        logger.info("Notas registradas: %s total=%s grado=%s", assessment_id, result.total, result.grade)
        return assessment

    def offline_assessments(self) -> list[Assessment]:
        assessments: list[Assessment] = []
        for record in self._cache.list(ASSESSMENTS):
            try:
                assessments.append(Assessment.from_payload(record))
            except (KeyError, TypeError, ValueError):
                logger.warning("Evaluación offline ilegible; se omite: %s", record.get("id"))
        return assessments

    @staticmethod
    def summarize(assessments: Iterable[Assessment]) -> ResultSummary:
        return summarize_results(assessment.total for assessment in assessments)

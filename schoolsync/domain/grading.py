from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from schoolsync.core.errors import ValidationError

FIRST_CA_MAX = 20.0
SECOND_CA_MAX = 20.0
EXAM_MAX = 60.0
TOTAL_MAX = FIRST_CA_MAX + SECOND_CA_MAX + EXAM_MAX

PASS_MARK = 40.0

# (nota mínima, grado, observación), de mayor a menor.
GRADE_BANDS: tuple[tuple[float, str, str], ...] = (
    (75.0, "A", "Excellent"),
    (50.0, "C", "Credit"),
    (40.0, "P", "Pass"),
    (0.0, "F", "Fail"),
)


@dataclass(frozen=True)
class GradeResult:
    total: float
    grade: str
    remark: str
    passed: bool

    @property
    def status(self) -> str:
        return "PASS" if self.passed else "FAIL"


@dataclass(frozen=True)
class ResultSummary:
    subjects: int
    total_score: float
    average_percentage: float
    passed: bool

    @property
    def status(self) -> str:
        return "PASS" if self.passed else "FAIL"


def _validate_score(name: str, value: float | None, maximum: float) -> float:
    if value is None:
        return 0.0
    score = float(value)
    if score < 0 or score > maximum:
        raise ValidationError(
            f"{name} debe estar entre 0 y {maximum:g} (recibido {score:g}).",
            context={"field": name, "max": maximum, "value": score},
        )
    return score


def compute_total(first_ca: float | None, second_ca: float | None, exam: float | None) -> float:
    """Suma las tres notas tras validar su rango; las notas vacías cuentan como 0."""
    return (
        _validate_score("firstCA", first_ca, FIRST_CA_MAX)
        + _validate_score("secondCA", second_ca, SECOND_CA_MAX)
        + _validate_score("exam", exam, EXAM_MAX)
    )


def grade_for_total(total: float) -> tuple[str, str]:
    for minimum, grade, remark in GRADE_BANDS:
        if total >= minimum:
            return grade, remark
    return GRADE_BANDS[-1][1], GRADE_BANDS[-1][2]


def is_pass(score: float) -> bool:
    return score >= PASS_MARK


def grade_scores(first_ca: float | None, second_ca: float | None, exam: float | None) -> GradeResult:
    total = compute_total(first_ca, second_ca, exam)
    grade, remark = grade_for_total(total)
    return GradeResult(total=total, grade=grade, remark=remark, passed=is_pass(total))


def summarize_results(totals: Iterable[float]) -> ResultSummary:
    values = [float(value) for value in totals]
    if not values:
        return ResultSummary(subjects=0, total_score=0.0, average_percentage=0.0, passed=False)
    total_score = sum(values)
    average = round(total_score / (len(values) * TOTAL_MAX) * 100, 2)
    return ResultSummary(
        subjects=len(values),
        total_score=total_score,
        average_percentage=average,
        passed=is_pass(average),
    )

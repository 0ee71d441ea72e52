from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _score(value: Any) -> float:
    if value is None or value == "":
        return 0.0
    return float(value)


@dataclass(frozen=True)
class Student:
    """Alumno matriculado en una clase.

    `id` es opaco (lo asigna quien crea el registro); `student_id` es el número
    de matrícula visible ("STU001") y no se usa como clave de documento.
    """

    id: str
    student_id: str
    first_name: str
    last_name: str
    class_id: str
    school_id: Optional[str] = None
    date_of_birth: Optional[str] = None
    parent_contact: Optional[str] = None
    address: Optional[str] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "studentId": self.student_id,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "classId": self.class_id,
            "schoolId": self.school_id,
            "dateOfBirth": self.date_of_birth,
            "parentContact": self.parent_contact,
            "address": self.address,
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "Student":
        return cls(
            id=str(payload["id"]),
            student_id=str(payload.get("studentId") or ""),
            first_name=str(payload.get("firstName") or ""),
            last_name=str(payload.get("lastName") or ""),
            class_id=str(payload.get("classId") or ""),
            school_id=_optional_str(payload.get("schoolId")),
            date_of_birth=_optional_str(payload.get("dateOfBirth")),
            parent_contact=_optional_str(payload.get("parentContact")),
            address=_optional_str(payload.get("address")),
        )


@dataclass(frozen=True)
class ClassRoom:
    id: str
    name: str
    school_id: Optional[str] = None
    description: Optional[str] = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "schoolId": self.school_id,
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "ClassRoom":
        return cls(
            id=str(payload["id"]),
            name=str(payload.get("name") or ""),
            school_id=_optional_str(payload.get("schoolId")),
            description=_optional_str(payload.get("description")),
        )


@dataclass(frozen=True)
class Assessment:
    """Notas de una asignatura para un alumno en un trimestre y curso escolar.

    `total`, `grade` y `remark` son derivados; los calcula `domain.grading` al
    registrar las notas y se guardan para que el informe no tenga que recalcular.
    """

    id: str
    student_id: str
    subject_id: str
    class_id: str
    term: str
    session: str
    first_ca: float = 0.0
    second_ca: float = 0.0
    exam: float = 0.0
    total: float = 0.0
    grade: Optional[str] = None
    remark: Optional[str] = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "studentId": self.student_id,
            "subjectId": self.subject_id,
            "classId": self.class_id,
            "term": self.term,
            "session": self.session,
            "firstCA": self.first_ca,
            "secondCA": self.second_ca,
            "exam": self.exam,
            "total": self.total,
            "grade": self.grade,
            "remark": self.remark,
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "Assessment":
        return cls(
            id=str(payload["id"]),
            student_id=str(payload.get("studentId") or ""),
            subject_id=str(payload.get("subjectId") or ""),
            class_id=str(payload.get("classId") or ""),
            term=str(payload.get("term") or ""),
            session=str(payload.get("session") or ""),
            first_ca=_score(payload.get("firstCA")),
            second_ca=_score(payload.get("secondCA")),
            exam=_score(payload.get("exam")),
            total=_score(payload.get("total")),
            grade=_optional_str(payload.get("grade")),
            remark=_optional_str(payload.get("remark")),
        )


STUDENTS = "students"
CLASSES = "classes"
ASSESSMENTS = "assessments"

RECORD_TYPES: dict[str, type] = {
    STUDENTS: Student,
    CLASSES: ClassRoom,
    ASSESSMENTS: Assessment,
}


@dataclass(frozen=True)
class FirebaseConfig:
    project_id: str
    credentials_path: str
    device_id: str

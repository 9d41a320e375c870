"""Service for the student roster and each student's exam assignment."""

from __future__ import annotations

from uuid import uuid4

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError as StorageIntegrityError
from sqlalchemy.orm import Session

from exam_hall.core.errors import ConflictError, NotFoundError, ValidationError
from exam_hall.storage.tables import ExamRow, StudentRow


class StudentRoster:
    """Owns every write to the students table."""

    def add(
        self,
        session: Session,
        name: str,
        roll_number: str,
        class_batch: str,
        exam_id: str | None = None,
    ) -> StudentRow:
        fields = self._validate(session, name, roll_number, class_batch, exam_id)
        if self._find_by_roll_number(session, fields["roll_number"]) is not None:
            raise ConflictError(f"Roll number {fields['roll_number']} is already registered.")
        student = StudentRow(id=uuid4().hex, **fields)
        session.add(student)
        try:
            session.flush()
        except StorageIntegrityError as exc:
            raise ConflictError(f"Roll number {fields['roll_number']} is already registered.") from exc
        return student

    def update(
        self,
        session: Session,
        student_id: str,
        name: str,
        roll_number: str,
        class_batch: str,
        exam_id: str | None = None,
    ) -> tuple[StudentRow, bool]:
        """Edit a student. Returns ``(student, exam_changed)``."""
        student = self.get(session, student_id)
        fields = self._validate(session, name, roll_number, class_batch, exam_id)
        other = self._find_by_roll_number(session, fields["roll_number"])
        if other is not None and other.id != student_id:
            raise ConflictError(f"Roll number {fields['roll_number']} is already registered.")
        exam_changed = student.assigned_exam_id != fields["assigned_exam_id"]
        for key, value in fields.items():
            setattr(student, key, value)
        try:
            session.flush()
        except StorageIntegrityError as exc:
            raise ConflictError(f"Roll number {fields['roll_number']} is already registered.") from exc
        return student, exam_changed

    def get(self, session: Session, student_id: str) -> StudentRow:
        student = session.get(StudentRow, student_id)
        if student is None:
            raise NotFoundError(f"Student {student_id} not found.")
        return student

    def find(self, session: Session, student_id: str | None) -> StudentRow | None:
        if student_id is None:
            return None
        return session.get(StudentRow, student_id)

    def list_all(self, session: Session) -> list[StudentRow]:
        return list(session.scalars(select(StudentRow).order_by(StudentRow.roll_number)))

    def list_assigned_to(self, session: Session, exam_id: str) -> list[StudentRow]:
        return list(session.scalars(select(StudentRow).where(StudentRow.assigned_exam_id == exam_id)))

    def delete(self, session: Session, student_id: str) -> StudentRow | None:
        student = session.get(StudentRow, student_id)
        if student is None:
            return None
        session.delete(student)
        session.flush()
        return student

    def clear_exam(self, session: Session, exam_id: str) -> int:
        return session.execute(
            update(StudentRow)
            .where(StudentRow.assigned_exam_id == exam_id)
            .values(assigned_exam_id=None)
        ).rowcount

    @staticmethod
    def _find_by_roll_number(session: Session, roll_number: str) -> StudentRow | None:
        return session.scalars(
            select(StudentRow).where(StudentRow.roll_number == roll_number)
        ).one_or_none()

    @staticmethod
    def _validate(
        session: Session,
        name: str,
        roll_number: str,
        class_batch: str,
        exam_id: str | None,
    ) -> dict[str, object]:
        cleaned = {
            "name": (name or "").strip(),
            "roll_number": (roll_number or "").strip(),
            "class_batch": (class_batch or "").strip(),
        }
        for label, value in (("Name", cleaned["name"]), ("Roll number", cleaned["roll_number"]),
                             ("Class/Batch", cleaned["class_batch"])):
            if not value:
                raise ValidationError(f"{label} is required.")
        if exam_id is not None and session.get(ExamRow, exam_id) is None:
            raise NotFoundError(f"Exam {exam_id} not found.")
        cleaned["assigned_exam_id"] = exam_id
        return cleaned

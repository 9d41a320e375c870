"""Service for the shared question bank."""

from __future__ import annotations

from typing import Iterable, Sequence
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from exam_hall.core.errors import ValidationError
from exam_hall.core.models import QuestionCategory, QuestionRecord
from exam_hall.storage.tables import QuestionRow


class QuestionBank:
    """Stores questions and resolves an exam's fixed id list to records."""

    def add(
        self,
        session: Session,
        text: str,
        options: Sequence[str],
        correct_options: Sequence[int],
        weight: float = 1,
        negative_marking: bool = False,
        category: QuestionCategory | str = QuestionCategory.MEDIUM,
        tags: Iterable[str] = (),
    ) -> QuestionRow:
        cleaned_text = (text or "").strip()
        if not cleaned_text:
            raise ValidationError("Question text must not be empty.")
        cleaned_options = self._validate_options(options)
        cleaned_correct = self._validate_correct_options(correct_options, len(cleaned_options))
        if weight is None or weight < 0:
            raise ValidationError("Weight must be zero or positive.")
        try:
            category = QuestionCategory(category)
        except ValueError as exc:
            raise ValidationError("Category must be Easy, Medium or Hard.") from exc

        question = QuestionRow(
            id=uuid4().hex,
            text=cleaned_text,
            options=cleaned_options,
            correct_options=cleaned_correct,
            weight=weight,
            negative_marking=bool(negative_marking),
            category=category,
            tags=[tag.strip() for tag in tags if tag and tag.strip()],
        )
        session.add(question)
        session.flush()
        return question

    def list_all(self, session: Session) -> list[QuestionRow]:
        return list(session.scalars(select(QuestionRow).order_by(QuestionRow.id)))

    def delete(self, session: Session, question_id: str) -> bool:
        question = session.get(QuestionRow, question_id)
        if question is None:
            return False
        session.delete(question)
        session.flush()
        return True

    def resolve(self, session: Session, question_ids: Sequence[str]) -> dict[str, QuestionRecord]:
        """Map ids to records; ids deleted from the bank since are simply absent."""
        if not question_ids:
            return {}
        rows = session.scalars(select(QuestionRow).where(QuestionRow.id.in_(list(question_ids))))
        return {row.id: row.to_record() for row in rows}

    @staticmethod
    def _validate_options(options: Sequence[str]) -> list[str]:
        cleaned = [(option or "").strip() for option in options]
        if len(cleaned) < 2:
            raise ValidationError("At least two options are required.")
        if any(not option for option in cleaned):
            raise ValidationError("Option text cannot be empty.")
        return cleaned

    @staticmethod
    def _validate_correct_options(correct_options: Sequence[int], option_count: int) -> list[int]:
        cleaned = sorted(set(correct_options))
        if not cleaned:
            raise ValidationError("At least one correct option must be selected.")
        if any(not 0 <= index < option_count for index in cleaned):
            raise ValidationError(f"Correct options must be between 0 and {option_count - 1}.")
        return cleaned

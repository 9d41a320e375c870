"""Service for the exam definition lifecycle: schedule, edit, start, end, delete."""

from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Callable
from uuid import uuid4

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from exam_hall.constants.session_constants import DEFAULT_NUMBER_OF_QUESTIONS
from exam_hall.core.errors import ConflictError, IntegrityError, NotFoundError, ValidationError
from exam_hall.core.models import ExamStatus
from exam_hall.core.services.question_sampler import QuestionSampler
from exam_hall.storage.tables import ExamRow, QuestionRow

logger = logging.getLogger(__name__)

_EDITABLE_STATUSES = (ExamStatus.SCHEDULED, ExamStatus.IN_PROGRESS)


class ExamScheduler:
    """Owns every write to the exams table."""

    def __init__(self, sampler: QuestionSampler, clock: Callable[[], datetime]) -> None:
        self._sampler = sampler
        self._clock = clock

    def schedule(
        self,
        session: Session,
        title: str,
        description: str,
        start_time: datetime,
        duration_minutes: int,
        number_of_questions: int | None = None,
    ) -> ExamRow:
        fields = self._validate_fields(title, description, start_time, duration_minutes, number_of_questions)
        exam = ExamRow(
            id=uuid4().hex,
            status=ExamStatus.SCHEDULED,
            question_ids=[],
            **fields,
        )
        session.add(exam)
        session.flush()
        return exam

    def update(
        self,
        session: Session,
        exam_id: str,
        title: str,
        description: str,
        start_time: datetime,
        duration_minutes: int,
        number_of_questions: int | None = None,
    ) -> ExamRow:
        """Edit an exam that has not completed. The question set is never resampled."""
        fields = self._validate_fields(title, description, start_time, duration_minutes, number_of_questions)
        changed = session.execute(
            update(ExamRow)
            .where(ExamRow.id == exam_id, ExamRow.status.in_(_EDITABLE_STATUSES))
            .values(**fields)
        ).rowcount
        if not changed:
            self.get(session, exam_id)
            raise ConflictError("A completed exam can no longer be edited.")
        return self.get(session, exam_id)

    def get(self, session: Session, exam_id: str) -> ExamRow:
        exam = session.get(ExamRow, exam_id, populate_existing=True)
        if exam is None:
            raise NotFoundError(f"Exam {exam_id} not found.")
        return exam

    def find(self, session: Session, exam_id: str | None) -> ExamRow | None:
        if exam_id is None:
            return None
        return session.get(ExamRow, exam_id)

    def list_exams(self, session: Session, status: ExamStatus | None = None) -> list[ExamRow]:
        query = select(ExamRow).order_by(ExamRow.start_time.desc())
        if status is not None:
            query = query.where(ExamRow.status == status)
        return list(session.scalars(query))

    def list_expired(self, session: Session, now: datetime, grace_seconds: int) -> list[ExamRow]:
        """In-progress exams whose duration plus grace has elapsed."""
        running = self.list_exams(session, ExamStatus.IN_PROGRESS)
        return [
            exam
            for exam in running
            if (now - exam.start_time).total_seconds() >= exam.duration * 60 + grace_seconds
        ]

    def start(self, session: Session, exam_id: str) -> tuple[ExamRow, bool]:
        """Scheduled -> In Progress with a freshly sampled question set.

        Returns ``(exam, started)``. A second start of a running exam is a
        no-op: the status guard on the UPDATE matches nothing and the first
        question set stays in place.
        """
        exam = self.get(session, exam_id)
        if exam.status is ExamStatus.IN_PROGRESS:
            return exam, False
        if exam.status is ExamStatus.COMPLETED:
            raise ConflictError("A completed exam cannot be started.")

        pool_ids = list(session.scalars(select(QuestionRow.id).order_by(QuestionRow.id)))
        if not pool_ids:
            raise IntegrityError("The question bank is empty; add questions before starting the exam.")
        target = exam.number_of_questions or DEFAULT_NUMBER_OF_QUESTIONS
        question_ids = self._sampler.sample(pool_ids, target)
        if len(question_ids) < target:
            logger.warning(
                "Exam %s asked for %d questions but the bank holds only %d; using all of them",
                exam.title,
                target,
                len(question_ids),
            )

        changed = session.execute(
            update(ExamRow)
            .where(ExamRow.id == exam_id, ExamRow.status == ExamStatus.SCHEDULED)
            .values(status=ExamStatus.IN_PROGRESS, start_time=self._clock(), question_ids=question_ids)
        ).rowcount
        exam = self.get(session, exam_id)
        if not changed:
            if exam.status is ExamStatus.IN_PROGRESS:
                return exam, False
            raise ConflictError("The exam changed state while it was being started.")
        return exam, True

    def end(self, session: Session, exam_id: str) -> tuple[ExamRow, bool]:
        """Scheduled/In Progress -> Completed. Ending a completed exam is a no-op."""
        self.get(session, exam_id)
        changed = session.execute(
            update(ExamRow)
            .where(ExamRow.id == exam_id, ExamRow.status != ExamStatus.COMPLETED)
            .values(status=ExamStatus.COMPLETED)
        ).rowcount
        return self.get(session, exam_id), bool(changed)

    def delete(self, session: Session, exam_id: str) -> ExamRow | None:
        exam = session.get(ExamRow, exam_id)
        if exam is None:
            return None
        if exam.status is ExamStatus.COMPLETED:
            raise ConflictError("Completed exams are kept for reporting and cannot be deleted.")
        session.delete(exam)
        session.flush()
        return exam

    @staticmethod
    def _validate_fields(
        title: str,
        description: str,
        start_time: datetime,
        duration_minutes: int,
        number_of_questions: int | None,
    ) -> dict[str, object]:
        cleaned_title = (title or "").strip()
        if not cleaned_title:
            raise ValidationError("Title is required.")
        cleaned_description = (description or "").strip()
        if not cleaned_description:
            raise ValidationError("Description is required.")
        if not isinstance(start_time, datetime):
            raise ValidationError("Start time must be a datetime.")
        if isinstance(duration_minutes, bool) or not isinstance(duration_minutes, int):
            raise ValidationError("Duration must be a whole number of minutes.")
        if duration_minutes <= 0:
            raise ValidationError("Duration must be positive.")
        if number_of_questions is not None:
            if isinstance(number_of_questions, bool) or not isinstance(number_of_questions, int):
                raise ValidationError("Number of questions must be an integer.")
            if number_of_questions < 1:
                raise ValidationError("Number of questions must be at least 1.")
        if start_time.tzinfo is not None:
            # Stored as naive UTC.
            start_time = start_time.astimezone(timezone.utc).replace(tzinfo=None)
        return {
            "title": cleaned_title,
            "description": cleaned_description,
            "start_time": start_time,
            "duration": duration_minutes,
            "number_of_questions": number_of_questions,
        }

"""Service that hands exams to students and records their single submission."""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Iterable
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError as StorageIntegrityError
from sqlalchemy.orm import Session

from exam_hall.core.errors import ConflictError, IntegrityError
from exam_hall.core.markdown_math_renderer import MarkdownMathRenderer
from exam_hall.core.models import AnswerEntry, ExamStatus, ScoreSummary, StudentExamView
from exam_hall.core.services.question_bank import QuestionBank
from exam_hall.core.services.scoring import normalize_answers, score_answers
from exam_hall.storage.tables import ExamResultRow, ExamRow, StudentRow


class SubmissionDesk:
    """Owns every write to the exam results table."""

    def __init__(
        self,
        question_bank: QuestionBank,
        renderer: MarkdownMathRenderer,
        clock: Callable[[], datetime],
    ) -> None:
        self._question_bank = question_bank
        self._renderer = renderer
        self._clock = clock

    def has_result(self, session: Session, exam_id: str, student_id: str) -> bool:
        return self.find_result(session, exam_id, student_id) is not None

    def find_result(self, session: Session, exam_id: str, student_id: str) -> ExamResultRow | None:
        return session.scalars(
            select(ExamResultRow).where(
                ExamResultRow.exam_id == exam_id,
                ExamResultRow.student_id == student_id,
            )
        ).one_or_none()

    def list_results(self, session: Session, exam_id: str | None = None) -> list[ExamResultRow]:
        query = select(ExamResultRow).order_by(ExamResultRow.completed_at.desc())
        if exam_id is not None:
            query = query.where(ExamResultRow.exam_id == exam_id)
        return list(session.scalars(query))

    def view_for_student(self, session: Session, exam: ExamRow, student: StudentRow) -> StudentExamView:
        """Return the exam and its questions, or ``already_taken`` when a result exists."""
        if self.has_result(session, exam.id, student.id):
            return StudentExamView(exam=None, already_taken=True)
        if student.assigned_exam_id != exam.id:
            raise ConflictError("This exam is not assigned to the student.")
        if exam.status is ExamStatus.COMPLETED:
            raise ConflictError("This exam has ended.")
        if exam.status is not ExamStatus.IN_PROGRESS or not exam.question_ids:
            raise IntegrityError("The exam is not ready yet; wait for it to be started.")
        records = self._question_bank.resolve(session, exam.question_ids)
        questions = tuple(
            self._renderer.present(records[question_id])
            for question_id in exam.question_ids
            if question_id in records
        )
        return StudentExamView(exam=exam.to_snapshot(), questions=questions, already_taken=False)

    def submit(
        self,
        session: Session,
        exam: ExamRow,
        student: StudentRow,
        answers: Iterable[AnswerEntry],
        auto_submitted: bool = False,
    ) -> ExamResultRow:
        """Score and store the one result for (student, exam).

        A second submission for the pair is a ConflictError, whether it is
        caught by the existence check or by the unique index.
        """
        if self.has_result(session, exam.id, student.id):
            raise ConflictError("This exam has already been submitted.")
        if student.assigned_exam_id != exam.id:
            raise ConflictError("This exam is not assigned to the student.")
        if not exam.question_ids:
            raise IntegrityError("The exam is not ready yet; wait for it to be started.")

        records = self._question_bank.resolve(session, exam.question_ids)
        normalized = normalize_answers(exam.question_ids, answers, records)
        summary: ScoreSummary = score_answers(exam.question_ids, records, normalized)

        result = ExamResultRow(
            id=uuid4().hex,
            student_id=student.id,
            exam_id=exam.id,
            student_name=student.name,
            exam_title=exam.title,
            answers=[
                {"questionId": entry.question_id, "selectedOption": entry.selected_option}
                for entry in normalized
            ],
            score=summary.score,
            total_questions=summary.total_questions,
            completed_at=self._clock(),
            auto_submitted=auto_submitted,
        )
        session.add(result)
        try:
            session.flush()
        except StorageIntegrityError as exc:
            raise ConflictError("This exam has already been submitted.") from exc
        return result

"""Tables backing terminals, students, exams, questions and results."""

from __future__ import annotations

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum as SAEnum,
    Float,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from exam_hall.core.models import (
    AnswerEntry,
    ExamResultSnapshot,
    ExamSnapshot,
    ExamStatus,
    LiveStatus,
    QuestionCategory,
    QuestionRecord,
    Seated,
    StudentSnapshot,
    TerminalAssignment,
    TerminalSnapshot,
    TerminalStatus,
    Unassigned,
)
from exam_hall.storage.database import Base


def _enum_column(enum_cls, **kwargs) -> Column:
    # Store the human-readable value ("In Progress"), not the member name.
    return Column(
        SAEnum(
            enum_cls,
            values_callable=lambda members: [member.value for member in members],
            native_enum=False,
            length=20,
            validate_strings=True,
        ),
        **kwargs,
    )


class TerminalRow(Base):
    __tablename__ = "terminals"

    id = Column(String(32), primary_key=True)
    unique_identifier = Column(String(40), unique=True, nullable=False, index=True)
    name = Column(String(120), nullable=False)
    ip_address = Column(String(64), nullable=True)
    status = _enum_column(TerminalStatus, nullable=False, default=TerminalStatus.PENDING)

    # A student occupies one seat: the unique index rejects a second claim.
    assigned_student_id = Column(String(32), unique=True, nullable=True)
    # Cache of the student's exam at assignment time.
    assigned_exam_id = Column(String(32), nullable=True, index=True)

    live_status = _enum_column(LiveStatus, nullable=False, default=LiveStatus.ONLINE)
    last_seen = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False)

    @property
    def assignment(self) -> TerminalAssignment:
        if self.assigned_student_id is None:
            return Unassigned()
        return Seated(student_id=self.assigned_student_id, exam_id=self.assigned_exam_id)

    def to_snapshot(self) -> TerminalSnapshot:
        return TerminalSnapshot(
            id=self.id,
            name=self.name,
            unique_identifier=self.unique_identifier,
            status=self.status,
            assignment=self.assignment,
            live_status=self.live_status,
            last_seen=self.last_seen,
            ip_address=self.ip_address,
        )


class StudentRow(Base):
    __tablename__ = "students"

    id = Column(String(32), primary_key=True)
    roll_number = Column(String(40), unique=True, nullable=False)
    name = Column(String(120), nullable=False)
    class_batch = Column(String(60), nullable=False)
    # Authoritative exam assignment; terminals only cache it.
    assigned_exam_id = Column(String(32), nullable=True, index=True)

    def to_snapshot(self) -> StudentSnapshot:
        return StudentSnapshot(
            id=self.id,
            name=self.name,
            roll_number=self.roll_number,
            class_batch=self.class_batch,
            assigned_exam_id=self.assigned_exam_id,
        )


class ExamRow(Base):
    __tablename__ = "exams"

    id = Column(String(32), primary_key=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False, default="")
    start_time = Column(DateTime, nullable=False)
    duration = Column(Integer, nullable=False)
    number_of_questions = Column(Integer, nullable=True)
    status = _enum_column(ExamStatus, nullable=False, default=ExamStatus.SCHEDULED, index=True)
    # Empty until the exam starts, then fixed.
    question_ids = Column(JSON, nullable=False, default=list)

    def to_snapshot(self) -> ExamSnapshot:
        return ExamSnapshot(
            id=self.id,
            title=self.title,
            description=self.description,
            start_time=self.start_time,
            duration=self.duration,
            number_of_questions=self.number_of_questions,
            status=self.status,
            question_ids=tuple(self.question_ids or ()),
        )


class QuestionRow(Base):
    __tablename__ = "questions"

    id = Column(String(32), primary_key=True)
    text = Column(Text, nullable=False)
    options = Column(JSON, nullable=False)
    correct_options = Column(JSON, nullable=False)
    category = _enum_column(QuestionCategory, nullable=False, default=QuestionCategory.MEDIUM)
    tags = Column(JSON, nullable=False, default=list)
    weight = Column(Float, nullable=False, default=1)
    negative_marking = Column(Boolean, nullable=False, default=False)

    def to_record(self) -> QuestionRecord:
        return QuestionRecord(
            id=self.id,
            text=self.text,
            options=tuple(self.options),
            correct_options=tuple(self.correct_options),
            weight=self.weight,
            negative_marking=self.negative_marking,
            category=self.category,
            tags=tuple(self.tags or ()),
        )


class ExamResultRow(Base):
    __tablename__ = "exam_results"
    __table_args__ = (UniqueConstraint("student_id", "exam_id", name="uq_result_student_exam"),)

    id = Column(String(32), primary_key=True)
    # Plain ids: results outlive deleted exams and students.
    student_id = Column(String(32), nullable=False, index=True)
    exam_id = Column(String(32), nullable=False, index=True)
    student_name = Column(String(120), nullable=False)
    exam_title = Column(String(200), nullable=False)
    answers = Column(JSON, nullable=False)
    score = Column(Float, nullable=False)
    total_questions = Column(Integer, nullable=False)
    completed_at = Column(DateTime, nullable=False)
    auto_submitted = Column(Boolean, nullable=False, default=False)

    def to_snapshot(self) -> ExamResultSnapshot:
        return ExamResultSnapshot(
            id=self.id,
            student_id=self.student_id,
            exam_id=self.exam_id,
            student_name=self.student_name,
            exam_title=self.exam_title,
            answers=tuple(
                AnswerEntry(question_id=entry["questionId"], selected_option=entry["selectedOption"])
                for entry in self.answers
            ),
            score=self.score,
            total_questions=self.total_questions,
            completed_at=self.completed_at,
            auto_submitted=self.auto_submitted,
        )

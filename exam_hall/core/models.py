"""Domain models for the exam hall."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
import enum


class TerminalStatus(str, enum.Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"


class LiveStatus(str, enum.Enum):
    ONLINE = "Online"
    READY = "Ready"
    WAITING = "Waiting"
    ATTEMPTING = "Attempting"
    FINISHED = "Finished"


class ExamStatus(str, enum.Enum):
    SCHEDULED = "Scheduled"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"


class QuestionCategory(str, enum.Enum):
    EASY = "Easy"
    MEDIUM = "Medium"
    HARD = "Hard"


@dataclass(frozen=True, slots=True)
class Unassigned:
    """Terminal holds no student."""


@dataclass(frozen=True, slots=True)
class Seated:
    """Terminal holds a student and, through them, possibly an exam."""

    student_id: str
    exam_id: str | None = None


TerminalAssignment = Unassigned | Seated


@dataclass(frozen=True, slots=True)
class TerminalSnapshot:
    """Read-only copy of a terminal row used by the live status deriver."""

    id: str
    name: str
    unique_identifier: str
    status: TerminalStatus
    assignment: TerminalAssignment
    live_status: LiveStatus
    last_seen: datetime | None
    ip_address: str | None = None


@dataclass(frozen=True, slots=True)
class ExamSnapshot:
    """Read-only copy of an exam definition."""

    id: str
    title: str
    description: str
    start_time: datetime
    duration: int
    number_of_questions: int | None
    status: ExamStatus
    question_ids: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class StudentSnapshot:
    id: str
    name: str
    roll_number: str
    class_batch: str
    assigned_exam_id: str | None = None


@dataclass(frozen=True, slots=True)
class QuestionRecord:
    """Multiple-choice question with weight and negative-marking policy."""

    id: str
    text: str
    options: tuple[str, ...]
    correct_options: tuple[int, ...]
    weight: float = 1
    negative_marking: bool = False
    category: QuestionCategory = QuestionCategory.MEDIUM
    tags: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class AnswerEntry:
    """A student's response to one presented question; ``None`` means unanswered."""

    question_id: str
    selected_option: int | None = None


@dataclass(frozen=True, slots=True)
class ScoreSummary:
    score: float
    total_questions: int


@dataclass(frozen=True, slots=True)
class ExamResultSnapshot:
    id: str
    student_id: str
    exam_id: str
    student_name: str
    exam_title: str
    answers: tuple[AnswerEntry, ...]
    score: float
    total_questions: int
    completed_at: datetime
    auto_submitted: bool = False


@dataclass(frozen=True, slots=True)
class TerminalRegistration:
    identifier: str
    status: TerminalStatus


@dataclass(frozen=True, slots=True)
class ExamSummary:
    """Exam fields a terminal needs to run its countdown."""

    id: str
    title: str
    start_time: datetime
    duration: int
    status: ExamStatus


@dataclass(frozen=True, slots=True)
class TerminalStatusReport:
    """Answer to a terminal's status poll."""

    status: TerminalStatus
    live_status: LiveStatus
    terminal_id: str
    name: str
    student_id: str | None = None
    student_name: str | None = None
    student_roll_number: str | None = None
    exam: ExamSummary | None = None
    exam_already_taken: bool = False


@dataclass(frozen=True, slots=True)
class LiveStatusRow:
    """One line of the live status board."""

    terminal_id: str
    terminal_name: str
    live_status: LiveStatus
    last_seen: datetime | None
    student_name: str
    student_roll_number: str
    exam_title: str | None = None
    exam_status: ExamStatus | None = None


@dataclass(frozen=True, slots=True)
class PresentedQuestion:
    """Question as shown to a student: no correct answers included."""

    id: str
    text_html: str
    options_html: tuple[str, ...]
    weight: float
    negative_marking: bool


@dataclass(frozen=True, slots=True)
class StudentExamView:
    exam: ExamSnapshot | None
    questions: tuple[PresentedQuestion, ...] = field(default_factory=tuple)
    already_taken: bool = False

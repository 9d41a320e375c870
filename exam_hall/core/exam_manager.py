"""Business logic for exam sessions shared between the HTTP gateway and the sweeper."""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timezone
import logging
from threading import RLock
from typing import Any, Callable, Iterable, Iterator, Sequence

from sqlalchemy.exc import IntegrityError as StorageIntegrityError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from exam_hall.constants.session_constants import EXPIRY_GRACE_SECONDS, SYSTEM_ACTOR
from exam_hall.core.errors import ConflictError, ExamHallError, ValidationError
from exam_hall.core.events import EventBus, EventKind, EventListener, SessionEvent
from exam_hall.core.markdown_math_renderer import MarkdownMathRenderer, renderer
from exam_hall.core.models import (
    AnswerEntry,
    ExamResultSnapshot,
    ExamSnapshot,
    ExamStatus,
    LiveStatus,
    LiveStatusRow,
    QuestionCategory,
    QuestionRecord,
    ScoreSummary,
    StudentExamView,
    StudentSnapshot,
    TerminalRegistration,
    TerminalSnapshot,
    TerminalStatusReport,
)
from exam_hall.core.services.exam_scheduler import ExamScheduler
from exam_hall.core.services.expiry_sweeper import sweep_expired_exams
from exam_hall.core.services.polling_gateway import PollingGateway
from exam_hall.core.services.question_bank import QuestionBank
from exam_hall.core.services.question_sampler import QuestionSampler
from exam_hall.core.services.student_roster import StudentRoster
from exam_hall.core.services.submission_desk import SubmissionDesk
from exam_hall.core.services.terminal_registry import TerminalRegistry
from exam_hall.storage.database import Database

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    """Naive UTC timestamp, the form every stored datetime uses."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class ExamManager:
    """Facade for exam services: registry, roster, scheduler, submissions and polling.

    Every operation runs under one lock and one database transaction, and
    storage exceptions are translated before they leave this class.
    """

    def __init__(
        self,
        database: Database,
        clock: Callable[[], datetime] = utc_now,
        sampler: QuestionSampler | None = None,
        question_renderer: MarkdownMathRenderer = renderer,
        expiry_grace_seconds: int = EXPIRY_GRACE_SECONDS,
    ) -> None:
        self._lock = RLock()
        self._database = database
        self._clock = clock
        self._expiry_grace_seconds = expiry_grace_seconds
        self._events = EventBus()

        # Services
        self._registry = TerminalRegistry(clock)
        self._roster = StudentRoster()
        self._question_bank = QuestionBank()
        self._scheduler = ExamScheduler(sampler or QuestionSampler(), clock)
        self._desk = SubmissionDesk(self._question_bank, question_renderer, clock)
        self._gateway = PollingGateway(self._registry, self._roster, self._scheduler, self._desk, clock)

    @contextmanager
    def _unit_of_work(self) -> Iterator[Session]:
        with self._lock:
            try:
                with self._database.session_scope() as session:
                    yield session
            except StorageIntegrityError as exc:
                logger.warning("Storage rejected a conflicting write: %s", exc.orig)
                raise ConflictError("The change conflicts with existing data.") from exc
            except SQLAlchemyError as exc:
                logger.exception("Storage failure")
                raise ExamHallError("Storage is unavailable; try again.") from exc

    def _emit(self, kind: EventKind, actor: str, **details: Any) -> None:
        self._events.publish(SessionEvent(kind=kind, actor=actor, occurred_at=self._clock(), details=details))

    def subscribe(self, listener: EventListener) -> Callable[[], None]:
        return self._events.subscribe(listener)

    # --- Polling gateway (terminal-facing) ---

    def register_terminal(self, name: str, ip_address: str | None = None) -> TerminalRegistration:
        with self._unit_of_work() as session:
            terminal = self._registry.register(session, name, ip_address)
            registration = TerminalRegistration(identifier=terminal.unique_identifier, status=terminal.status)
            terminal_id, terminal_name = terminal.id, terminal.name
        logger.info("Terminal %s registered from %s", terminal_name, ip_address or "unknown address")
        self._emit(EventKind.TERMINAL_REGISTERED, SYSTEM_ACTOR, terminal_id=terminal_id)
        return registration

    def get_terminal_status(self, identifier: str) -> TerminalStatusReport:
        with self._unit_of_work() as session:
            return self._gateway.status_report(session, identifier)

    def report_heartbeat(self, identifier: str, self_reported: LiveStatus | str | None = None) -> LiveStatus:
        reported = _coerce_live_status(self_reported)
        with self._unit_of_work() as session:
            derived = self._gateway.heartbeat(session, identifier, reported)
        if reported is not None:
            self._emit(EventKind.LIVE_STATUS_REPORTED, SYSTEM_ACTOR, identifier=identifier, live_status=derived.value)
        return derived

    # --- Terminal administration ---

    def approve_terminal(self, terminal_id: str, *, actor: str = SYSTEM_ACTOR) -> TerminalSnapshot:
        with self._unit_of_work() as session:
            changed = self._registry.approve(session, terminal_id)
            snapshot = self._registry.get(session, terminal_id).to_snapshot()
        if changed:
            logger.info("%s approved terminal %s", actor, snapshot.name)
            self._emit(EventKind.TERMINAL_APPROVED, actor, terminal_id=terminal_id)
        return snapshot

    def reject_terminal(self, terminal_id: str, *, actor: str = SYSTEM_ACTOR) -> TerminalSnapshot:
        with self._unit_of_work() as session:
            changed = self._registry.reject(session, terminal_id)
            snapshot = self._registry.get(session, terminal_id).to_snapshot()
        if changed:
            logger.info("%s rejected terminal %s", actor, snapshot.name)
            self._emit(EventKind.TERMINAL_REJECTED, actor, terminal_id=terminal_id)
        return snapshot

    def delete_terminal(self, terminal_id: str, *, actor: str = SYSTEM_ACTOR) -> bool:
        with self._unit_of_work() as session:
            deleted = self._registry.delete(session, terminal_id)
            name = deleted.name if deleted is not None else None
        if deleted is None:
            return False
        logger.info("%s deleted terminal %s", actor, name)
        self._emit(EventKind.TERMINAL_DELETED, actor, terminal_id=terminal_id)
        return True

    def assign_student(
        self,
        terminal_id: str,
        student_id: str | None,
        *,
        actor: str = SYSTEM_ACTOR,
    ) -> TerminalSnapshot:
        with self._unit_of_work() as session:
            student = self._roster.get(session, student_id) if student_id is not None else None
            snapshot = self._registry.assign(session, terminal_id, student).to_snapshot()
        if student_id is None:
            logger.info("%s cleared the seat at terminal %s", actor, snapshot.name)
            self._emit(EventKind.STUDENT_UNASSIGNED, actor, terminal_id=terminal_id)
        else:
            logger.info("%s seated student %s at terminal %s", actor, student_id, snapshot.name)
            self._emit(EventKind.STUDENT_ASSIGNED, actor, terminal_id=terminal_id, student_id=student_id)
        return snapshot

    def list_terminals(self) -> list[TerminalSnapshot]:
        with self._unit_of_work() as session:
            return [terminal.to_snapshot() for terminal in self._registry.list_all(session)]

    def list_live_statuses(self) -> list[LiveStatusRow]:
        with self._unit_of_work() as session:
            return self._gateway.live_board(session)

    # --- Exam lifecycle ---

    def schedule_exam(
        self,
        title: str,
        description: str,
        start_time: datetime,
        duration_minutes: int,
        number_of_questions: int | None = None,
        *,
        actor: str = SYSTEM_ACTOR,
    ) -> str:
        with self._unit_of_work() as session:
            exam = self._scheduler.schedule(
                session, title, description, start_time, duration_minutes, number_of_questions
            )
            exam_id, exam_title = exam.id, exam.title
        logger.info("%s scheduled exam %s", actor, exam_title)
        self._emit(EventKind.EXAM_SCHEDULED, actor, exam_id=exam_id)
        return exam_id

    def update_exam(
        self,
        exam_id: str,
        title: str,
        description: str,
        start_time: datetime,
        duration_minutes: int,
        number_of_questions: int | None = None,
        *,
        actor: str = SYSTEM_ACTOR,
    ) -> ExamSnapshot:
        with self._unit_of_work() as session:
            snapshot = self._scheduler.update(
                session, exam_id, title, description, start_time, duration_minutes, number_of_questions
            ).to_snapshot()
        logger.info("%s updated exam %s", actor, snapshot.title)
        self._emit(EventKind.EXAM_UPDATED, actor, exam_id=exam_id)
        return snapshot

    def start_exam(self, exam_id: str, *, actor: str = SYSTEM_ACTOR) -> ExamSnapshot:
        with self._unit_of_work() as session:
            exam, started = self._scheduler.start(session, exam_id)
            snapshot = exam.to_snapshot()
        if started:
            logger.info("%s started exam %s with %d questions", actor, snapshot.title, len(snapshot.question_ids))
            self._emit(EventKind.EXAM_STARTED, actor, exam_id=exam_id)
        else:
            logger.info("Exam %s was already in progress; start by %s ignored", snapshot.title, actor)
        return snapshot

    def end_exam(self, exam_id: str, *, actor: str = SYSTEM_ACTOR) -> ExamSnapshot:
        with self._unit_of_work() as session:
            exam, ended = self._scheduler.end(session, exam_id)
            snapshot = exam.to_snapshot()
        if ended:
            logger.info("%s ended exam %s", actor, snapshot.title)
            self._emit(EventKind.EXAM_ENDED, actor, exam_id=exam_id)
        return snapshot

    def delete_exam(self, exam_id: str, *, actor: str = SYSTEM_ACTOR) -> bool:
        with self._unit_of_work() as session:
            deleted = self._scheduler.delete(session, exam_id)
            if deleted is not None:
                self._roster.clear_exam(session, exam_id)
                self._registry.clear_exam(session, exam_id)
            title = deleted.title if deleted is not None else None
        if deleted is None:
            return False
        logger.info("%s deleted exam %s", actor, title)
        self._emit(EventKind.EXAM_DELETED, actor, exam_id=exam_id)
        return True

    def get_exam(self, exam_id: str) -> ExamSnapshot:
        with self._unit_of_work() as session:
            return self._scheduler.get(session, exam_id).to_snapshot()

    def list_exams(self, status: ExamStatus | None = None) -> list[ExamSnapshot]:
        with self._unit_of_work() as session:
            return [exam.to_snapshot() for exam in self._scheduler.list_exams(session, status)]

    # --- Student-facing exam flow ---

    def fetch_exam_for_student(self, exam_id: str, student_id: str) -> StudentExamView:
        with self._unit_of_work() as session:
            exam = self._scheduler.get(session, exam_id)
            student = self._roster.get(session, student_id)
            return self._desk.view_for_student(session, exam, student)

    def submit_exam(self, exam_id: str, student_id: str, answers: Iterable[AnswerEntry]) -> ScoreSummary:
        with self._unit_of_work() as session:
            exam = self._scheduler.get(session, exam_id)
            student = self._roster.get(session, student_id)
            result = self._desk.submit(session, exam, student, list(answers))
            self._registry.mark_finished(session, student.id)
            summary = ScoreSummary(score=result.score, total_questions=result.total_questions)
            student_name, exam_title = student.name, exam.title
        logger.info("%s submitted %s: %s/%d", student_name, exam_title, summary.score, summary.total_questions)
        self._emit(EventKind.EXAM_SUBMITTED, student_id, exam_id=exam_id, score=summary.score)
        return summary

    def list_results(self, exam_id: str | None = None) -> list[ExamResultSnapshot]:
        with self._unit_of_work() as session:
            return [result.to_snapshot() for result in self._desk.list_results(session, exam_id)]

    def sweep_expired_exams(self) -> list[ExamResultSnapshot]:
        with self._unit_of_work() as session:
            recorded = sweep_expired_exams(
                session,
                self._scheduler,
                self._roster,
                self._registry,
                self._desk,
                self._clock(),
                self._expiry_grace_seconds,
            )
            snapshots = [result.to_snapshot() for result in recorded]
        for snapshot in snapshots:
            self._emit(EventKind.EXAM_SUBMITTED, SYSTEM_ACTOR, exam_id=snapshot.exam_id, auto_submitted=True)
        return snapshots

    # --- Roster and question bank ---

    def add_student(
        self,
        name: str,
        roll_number: str,
        class_batch: str,
        exam_id: str | None = None,
        *,
        actor: str = SYSTEM_ACTOR,
    ) -> StudentSnapshot:
        with self._unit_of_work() as session:
            snapshot = self._roster.add(session, name, roll_number, class_batch, exam_id).to_snapshot()
        logger.info("%s added student %s", actor, snapshot.roll_number)
        return snapshot

    def update_student(
        self,
        student_id: str,
        name: str,
        roll_number: str,
        class_batch: str,
        exam_id: str | None = None,
        *,
        actor: str = SYSTEM_ACTOR,
    ) -> StudentSnapshot:
        with self._unit_of_work() as session:
            student, exam_changed = self._roster.update(
                session, student_id, name, roll_number, class_batch, exam_id
            )
            if exam_changed:
                self._registry.refresh_exam_cache(session, student.id, student.assigned_exam_id)
            snapshot = student.to_snapshot()
        logger.info("%s updated student %s", actor, snapshot.roll_number)
        return snapshot

    def delete_student(self, student_id: str, *, actor: str = SYSTEM_ACTOR) -> bool:
        with self._unit_of_work() as session:
            if self._roster.find(session, student_id) is None:
                return False
            self._registry.unseat_student(session, student_id)
            deleted = self._roster.delete(session, student_id)
            roll_number = deleted.roll_number
        logger.info("%s deleted student %s", actor, roll_number)
        self._emit(EventKind.STUDENT_DELETED, actor, student_id=student_id)
        return True

    def get_student(self, student_id: str) -> StudentSnapshot:
        with self._unit_of_work() as session:
            return self._roster.get(session, student_id).to_snapshot()

    def list_students(self) -> list[StudentSnapshot]:
        with self._unit_of_work() as session:
            return [student.to_snapshot() for student in self._roster.list_all(session)]

    def add_question(
        self,
        text: str,
        options: Sequence[str],
        correct_options: Sequence[int],
        weight: float = 1,
        negative_marking: bool = False,
        category: QuestionCategory | str = QuestionCategory.MEDIUM,
        tags: Iterable[str] = (),
        *,
        actor: str = SYSTEM_ACTOR,
    ) -> QuestionRecord:
        with self._unit_of_work() as session:
            record = self._question_bank.add(
                session, text, options, correct_options, weight, negative_marking, category, tags
            ).to_record()
        logger.info("%s added question %s", actor, record.id)
        return record

    def list_questions(self) -> list[QuestionRecord]:
        with self._unit_of_work() as session:
            return [question.to_record() for question in self._question_bank.list_all(session)]

    def delete_question(self, question_id: str, *, actor: str = SYSTEM_ACTOR) -> bool:
        with self._unit_of_work() as session:
            deleted = self._question_bank.delete(session, question_id)
        if deleted:
            logger.info("%s deleted question %s", actor, question_id)
        return deleted


def _coerce_live_status(value: LiveStatus | str | None) -> LiveStatus | None:
    if value is None or isinstance(value, LiveStatus):
        return value
    try:
        return LiveStatus(value)
    except ValueError as exc:
        allowed = ", ".join(status.value for status in LiveStatus)
        raise ValidationError(f"Live status must be one of: {allowed}.") from exc

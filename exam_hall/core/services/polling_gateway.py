"""Service answering terminal polls and building the live status board."""

from __future__ import annotations

from datetime import datetime
from typing import Callable

from sqlalchemy.orm import Session

from exam_hall.core.models import (
    ExamSummary,
    LiveStatus,
    LiveStatusRow,
    TerminalStatusReport,
)
from exam_hall.core.services.exam_scheduler import ExamScheduler
from exam_hall.core.services.live_status import derive_live_status
from exam_hall.core.services.student_roster import StudentRoster
from exam_hall.core.services.submission_desk import SubmissionDesk
from exam_hall.core.services.terminal_registry import TerminalRegistry
from exam_hall.storage.tables import ExamRow, StudentRow, TerminalRow


class PollingGateway:
    """Read side of the terminal contract: status polls, heartbeats, the board."""

    def __init__(
        self,
        registry: TerminalRegistry,
        roster: StudentRoster,
        scheduler: ExamScheduler,
        desk: SubmissionDesk,
        clock: Callable[[], datetime],
    ) -> None:
        self._registry = registry
        self._roster = roster
        self._scheduler = scheduler
        self._desk = desk
        self._clock = clock

    def status_report(self, session: Session, identifier: str) -> TerminalStatusReport:
        terminal = self._registry.find_by_identifier(session, identifier)
        self._registry.touch(session, terminal)
        student, exam = self._resolve_seat(session, terminal)

        exam_summary = None
        already_taken = False
        if exam is not None:
            exam_summary = ExamSummary(
                id=exam.id,
                title=exam.title,
                start_time=exam.start_time,
                duration=exam.duration,
                status=exam.status,
            )
            if student is not None:
                already_taken = self._desk.has_result(session, exam.id, student.id)

        return TerminalStatusReport(
            status=terminal.status,
            live_status=self.derive(terminal, exam),
            terminal_id=terminal.id,
            name=terminal.name,
            student_id=student.id if student is not None else None,
            student_name=student.name if student is not None else None,
            student_roll_number=student.roll_number if student is not None else None,
            exam=exam_summary,
            exam_already_taken=already_taken,
        )

    def heartbeat(self, session: Session, identifier: str, reported: LiveStatus | None) -> LiveStatus:
        terminal = self._registry.find_by_identifier(session, identifier)
        student, exam = self._resolve_seat(session, terminal)
        result_recorded = (
            student is not None
            and exam is not None
            and self._desk.has_result(session, exam.id, student.id)
        )
        self._registry.record_heartbeat(session, terminal, reported, exam, result_recorded)
        return self.derive(terminal, exam)

    def live_board(self, session: Session) -> list[LiveStatusRow]:
        rows: list[LiveStatusRow] = []
        for terminal in self._registry.list_seated(session):
            student, exam = self._resolve_seat(session, terminal)
            if student is None:
                continue
            rows.append(
                LiveStatusRow(
                    terminal_id=terminal.id,
                    terminal_name=terminal.name,
                    live_status=self.derive(terminal, exam),
                    last_seen=terminal.last_seen,
                    student_name=student.name,
                    student_roll_number=student.roll_number,
                    exam_title=exam.title if exam is not None else None,
                    exam_status=exam.status if exam is not None else None,
                )
            )
        return rows

    def derive(self, terminal: TerminalRow, exam: ExamRow | None) -> LiveStatus:
        return derive_live_status(
            terminal.to_snapshot(),
            exam.to_snapshot() if exam is not None else None,
            self._clock(),
        )

    def _resolve_seat(self, session: Session, terminal: TerminalRow) -> tuple[StudentRow | None, ExamRow | None]:
        # The student's assignment is authoritative; the terminal copy is a fallback.
        student = self._roster.find(session, terminal.assigned_student_id)
        exam_id = terminal.assigned_exam_id
        if student is not None and student.assigned_exam_id is not None:
            exam_id = student.assigned_exam_id
        return student, self._scheduler.find(session, exam_id)

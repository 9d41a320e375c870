"""Server-side expiry of exam attempts whose time has run out.

Terminals auto-submit when their countdown reaches zero, but a terminal that
was closed before then never does. The sweep records a blank, auto-submitted
result for every seated student of an expired exam who has none.
"""

from __future__ import annotations

from datetime import datetime
import logging
from threading import Event, Thread
from typing import Callable

from sqlalchemy.orm import Session

from exam_hall.core.services.exam_scheduler import ExamScheduler
from exam_hall.core.services.student_roster import StudentRoster
from exam_hall.core.services.submission_desk import SubmissionDesk
from exam_hall.core.services.terminal_registry import TerminalRegistry
from exam_hall.storage.tables import ExamResultRow

logger = logging.getLogger(__name__)


def sweep_expired_exams(
    session: Session,
    scheduler: ExamScheduler,
    roster: StudentRoster,
    registry: TerminalRegistry,
    desk: SubmissionDesk,
    now: datetime,
    grace_seconds: int,
) -> list[ExamResultRow]:
    recorded: list[ExamResultRow] = []
    for exam in scheduler.list_expired(session, now, grace_seconds):
        for student in roster.list_assigned_to(session, exam.id):
            if registry.find_by_student(session, student.id) is None:
                continue
            if desk.has_result(session, exam.id, student.id):
                continue
            result = desk.submit(session, exam, student, answers=(), auto_submitted=True)
            registry.mark_finished(session, student.id)
            recorded.append(result)
            logger.info("Auto-submitted %s for %s after time ran out", exam.title, student.roll_number)
    return recorded


class ExpirySweeper:
    """Runs a sweep callable on a fixed interval in a daemon thread."""

    def __init__(self, sweep: Callable[[], object], interval_seconds: float) -> None:
        self._sweep = sweep
        self._interval = interval_seconds
        self._stop = Event()
        self._thread: Thread | None = None

    def start(self) -> Thread:
        self._thread = Thread(target=self._run, name="ExamExpirySweeper", daemon=True)
        self._thread.start()
        return self._thread

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)

    def _run(self) -> None:
        while not self._stop.wait(self._interval):
            try:
                self._sweep()
            except Exception:
                # Next tick retries; a failed sweep changes nothing.
                logger.exception("Expiry sweep failed")

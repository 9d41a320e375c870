"""Service for terminal registration, approval and student seating."""

from __future__ import annotations

from datetime import datetime
import logging
import secrets
import string
from typing import Callable
from uuid import uuid4

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError as StorageIntegrityError
from sqlalchemy.orm import Session

from exam_hall.constants.session_constants import (
    MIN_TERMINAL_NAME_LENGTH,
    TERMINAL_IDENTIFIER_LENGTH,
    TERMINAL_IDENTIFIER_PREFIX,
    UNKNOWN_IP_ADDRESS,
)
from exam_hall.core.errors import ConflictError, NotFoundError, ValidationError
from exam_hall.core.models import ExamStatus, LiveStatus, TerminalStatus
from exam_hall.storage.tables import ExamRow, StudentRow, TerminalRow

logger = logging.getLogger(__name__)

_IDENTIFIER_ALPHABET = string.ascii_lowercase + string.digits


def generate_identifier() -> str:
    suffix = "".join(secrets.choice(_IDENTIFIER_ALPHABET) for _ in range(TERMINAL_IDENTIFIER_LENGTH))
    return f"{TERMINAL_IDENTIFIER_PREFIX}{suffix}"


class TerminalRegistry:
    """Owns every write to the terminals table."""

    def __init__(self, clock: Callable[[], datetime]) -> None:
        self._clock = clock

    def register(self, session: Session, name: str, ip_address: str | None = None) -> TerminalRow:
        """Create a Pending terminal with a fresh identifier."""
        cleaned = (name or "").strip()
        if len(cleaned) < MIN_TERMINAL_NAME_LENGTH:
            raise ValidationError(
                f"Terminal name must be at least {MIN_TERMINAL_NAME_LENGTH} characters."
            )
        now = self._clock()
        terminal = TerminalRow(
            id=uuid4().hex,
            unique_identifier=generate_identifier(),
            name=cleaned,
            ip_address=(ip_address or "").strip() or UNKNOWN_IP_ADDRESS,
            status=TerminalStatus.PENDING,
            live_status=LiveStatus.ONLINE,
            last_seen=now,
            created_at=now,
        )
        session.add(terminal)
        session.flush()
        return terminal

    def get(self, session: Session, terminal_id: str) -> TerminalRow:
        terminal = session.get(TerminalRow, terminal_id, populate_existing=True)
        if terminal is None:
            raise NotFoundError(f"Terminal {terminal_id} not found.")
        return terminal

    def find_by_identifier(self, session: Session, identifier: str) -> TerminalRow:
        terminal = session.scalars(
            select(TerminalRow).where(TerminalRow.unique_identifier == identifier)
        ).one_or_none()
        if terminal is None:
            raise NotFoundError("Terminal identifier is not registered.")
        return terminal

    def list_all(self, session: Session) -> list[TerminalRow]:
        return list(session.scalars(select(TerminalRow).order_by(TerminalRow.name)))

    def list_seated(self, session: Session) -> list[TerminalRow]:
        return list(
            session.scalars(
                select(TerminalRow)
                .where(TerminalRow.assigned_student_id.is_not(None))
                .order_by(TerminalRow.name)
            )
        )

    def find_by_student(self, session: Session, student_id: str) -> TerminalRow | None:
        return session.scalars(
            select(TerminalRow).where(TerminalRow.assigned_student_id == student_id)
        ).one_or_none()

    # --- Status transitions ---

    def approve(self, session: Session, terminal_id: str) -> bool:
        """Pending -> Approved. Returns False when already approved."""
        terminal = self.get(session, terminal_id)
        if terminal.status is TerminalStatus.APPROVED:
            return False
        if terminal.status is TerminalStatus.REJECTED:
            raise ConflictError("A rejected terminal cannot be approved; it must register again.")
        changed = session.execute(
            update(TerminalRow)
            .where(TerminalRow.id == terminal_id, TerminalRow.status == TerminalStatus.PENDING)
            .values(status=TerminalStatus.APPROVED)
        ).rowcount
        return bool(changed)

    def reject(self, session: Session, terminal_id: str) -> bool:
        """Pending/Approved -> Rejected, releasing any seat. Returns False when already rejected."""
        terminal = self.get(session, terminal_id)
        if terminal.status is TerminalStatus.REJECTED:
            return False
        changed = session.execute(
            update(TerminalRow)
            .where(TerminalRow.id == terminal_id, TerminalRow.status != TerminalStatus.REJECTED)
            .values(
                status=TerminalStatus.REJECTED,
                assigned_student_id=None,
                assigned_exam_id=None,
                live_status=LiveStatus.ONLINE,
            )
        ).rowcount
        return bool(changed)

    def delete(self, session: Session, terminal_id: str) -> TerminalRow | None:
        terminal = session.get(TerminalRow, terminal_id)
        if terminal is None:
            return None
        session.delete(terminal)
        session.flush()
        return terminal

    # --- Seating ---

    def assign(self, session: Session, terminal_id: str, student: StudentRow | None) -> TerminalRow:
        """Seat ``student`` at the terminal, or clear the seat when ``student`` is None.

        Student id, cached exam id, live status and last seen are written by a
        single UPDATE keyed by terminal id so the pair never interleaves.
        """
        terminal = self.get(session, terminal_id)
        if student is not None:
            if terminal.status is not TerminalStatus.APPROVED:
                raise ConflictError("Only approved terminals can be assigned a student.")
            holder = self.find_by_student(session, student.id)
            if holder is not None and holder.id != terminal_id:
                raise ConflictError(
                    f"Student {student.roll_number} is already seated at terminal {holder.name}."
                )
        values = {
            "assigned_student_id": student.id if student is not None else None,
            "assigned_exam_id": student.assigned_exam_id if student is not None else None,
            "live_status": LiveStatus.READY if student is not None else LiveStatus.ONLINE,
            "last_seen": self._clock(),
        }
        try:
            session.execute(update(TerminalRow).where(TerminalRow.id == terminal_id).values(**values))
        except StorageIntegrityError as exc:
            raise ConflictError("Student is already seated at another terminal.") from exc
        return self.get(session, terminal_id)

    def unseat_student(self, session: Session, student_id: str) -> int:
        """Clear every seat referencing a student. Returns the number of terminals touched."""
        return session.execute(
            update(TerminalRow)
            .where(TerminalRow.assigned_student_id == student_id)
            .values(assigned_student_id=None, assigned_exam_id=None, live_status=LiveStatus.ONLINE)
        ).rowcount

    def refresh_exam_cache(self, session: Session, student_id: str, exam_id: str | None) -> int:
        """Re-copy a student's exam onto the terminal seating them.

        The seat starts over as Ready, as after a fresh assignment.
        """
        return session.execute(
            update(TerminalRow)
            .where(TerminalRow.assigned_student_id == student_id)
            .values(assigned_exam_id=exam_id, live_status=LiveStatus.READY)
        ).rowcount

    def clear_exam(self, session: Session, exam_id: str) -> int:
        return session.execute(
            update(TerminalRow)
            .where(TerminalRow.assigned_exam_id == exam_id)
            .values(assigned_exam_id=None)
        ).rowcount

    def mark_finished(self, session: Session, student_id: str) -> int:
        return session.execute(
            update(TerminalRow)
            .where(TerminalRow.assigned_student_id == student_id)
            .values(live_status=LiveStatus.FINISHED, last_seen=self._clock())
        ).rowcount

    # --- Polling ---

    def touch(self, session: Session, terminal: TerminalRow) -> None:
        terminal.last_seen = self._clock()
        session.flush()

    def record_heartbeat(
        self,
        session: Session,
        terminal: TerminalRow,
        reported: LiveStatus | None,
        exam: ExamRow | None,
        result_recorded: bool = False,
    ) -> bool:
        """Refresh last seen and store the self-reported status when it is believable.

        ``result_recorded`` tells whether the seated student already has a
        result for ``exam``; Finished is only believed in that case.
        Returns True when the report was stored.
        """
        terminal.last_seen = self._clock()
        accepted = reported is not None and self._accepts_report(terminal, reported, exam, result_recorded)
        if accepted:
            terminal.live_status = reported
        elif reported is not None:
            logger.info(
                "Ignoring %s report from terminal %s (status=%s, stored=%s)",
                reported.value,
                terminal.name,
                terminal.status.value,
                terminal.live_status.value,
            )
        session.flush()
        return accepted

    @staticmethod
    def _accepts_report(
        terminal: TerminalRow,
        reported: LiveStatus,
        exam: ExamRow | None,
        result_recorded: bool,
    ) -> bool:
        if terminal.status is not TerminalStatus.APPROVED:
            return False
        if reported is LiveStatus.FINISHED:
            return result_recorded
        if terminal.live_status is LiveStatus.FINISHED:
            return False
        if reported is LiveStatus.ATTEMPTING:
            return exam is not None and exam.status is ExamStatus.IN_PROGRESS
        return True

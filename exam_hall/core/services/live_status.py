"""Derives what a terminal is doing right now from stored state and recency."""

from __future__ import annotations

from datetime import datetime, timedelta

from exam_hall.constants.session_constants import LIVE_STATUS_FRESHNESS_SECONDS
from exam_hall.core.models import ExamSnapshot, ExamStatus, LiveStatus, TerminalSnapshot

FRESHNESS_WINDOW = timedelta(seconds=LIVE_STATUS_FRESHNESS_SECONDS)


def derive_live_status(
    terminal: TerminalSnapshot,
    exam: ExamSnapshot | None,
    now: datetime,
    freshness_window: timedelta = FRESHNESS_WINDOW,
) -> LiveStatus:
    """Reconcile the terminal's self-reported state with the exam's state.

    ``Finished`` is final. ``Attempting`` holds only while heartbeats are fresh
    and otherwise degrades to ``Online``. Without a fresh self-report the label
    follows the assigned exam: in progress means the student is still waiting
    to open it, scheduled means ready, anything else is plain online.
    """
    if terminal.live_status is LiveStatus.FINISHED:
        return LiveStatus.FINISHED

    if terminal.live_status is LiveStatus.ATTEMPTING:
        if terminal.last_seen is not None and now - terminal.last_seen < freshness_window:
            return LiveStatus.ATTEMPTING
        return LiveStatus.ONLINE

    if exam is not None and exam.status is ExamStatus.IN_PROGRESS:
        return LiveStatus.WAITING

    if exam is not None and exam.status is ExamStatus.SCHEDULED:
        return LiveStatus.READY

    return LiveStatus.ONLINE

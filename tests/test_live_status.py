"""Tests for live status derivation."""

from datetime import datetime, timedelta

import pytest

from exam_hall.core.models import (
    ExamSnapshot,
    ExamStatus,
    LiveStatus,
    Seated,
    TerminalSnapshot,
    TerminalStatus,
)
from exam_hall.core.services.live_status import FRESHNESS_WINDOW, derive_live_status

NOW = datetime(2026, 3, 2, 10, 0, 0)


def _terminal(live_status, last_seen=NOW):
    return TerminalSnapshot(
        id="t1",
        name="Lab PC 01",
        unique_identifier="pc-id-abcd1234",
        status=TerminalStatus.APPROVED,
        assignment=Seated(student_id="s1", exam_id="e1"),
        live_status=live_status,
        last_seen=last_seen,
    )


def _exam(status):
    return ExamSnapshot(
        id="e1",
        title="Algebra",
        description="Chapters 1 to 4",
        start_time=NOW,
        duration=30,
        number_of_questions=3,
        status=status,
    )


class TestDeriveLiveStatus:
    """Test the five derivation rules in priority order."""

    @pytest.mark.parametrize("exam_status", [None, *ExamStatus])
    def test_finished_is_final(self, exam_status):
        """A finished terminal stays finished whatever the exam does."""
        exam = _exam(exam_status) if exam_status is not None else None
        stale = NOW - timedelta(hours=2)

        assert derive_live_status(_terminal(LiveStatus.FINISHED, stale), exam, NOW) is LiveStatus.FINISHED

    def test_fresh_attempting_is_kept(self):
        terminal = _terminal(LiveStatus.ATTEMPTING, NOW - timedelta(seconds=10))

        assert derive_live_status(terminal, _exam(ExamStatus.IN_PROGRESS), NOW) is LiveStatus.ATTEMPTING

    def test_attempting_at_window_edge_is_stale(self):
        """A heartbeat exactly one window old no longer counts as fresh."""
        terminal = _terminal(LiveStatus.ATTEMPTING, NOW - FRESHNESS_WINDOW)

        assert derive_live_status(terminal, _exam(ExamStatus.IN_PROGRESS), NOW) is LiveStatus.ONLINE

    def test_attempting_just_inside_window_is_fresh(self):
        terminal = _terminal(LiveStatus.ATTEMPTING, NOW - FRESHNESS_WINDOW + timedelta(microseconds=1))

        assert derive_live_status(terminal, _exam(ExamStatus.IN_PROGRESS), NOW) is LiveStatus.ATTEMPTING

    def test_stale_attempting_degrades_to_online(self):
        """Without heartbeats an attempting terminal is only known to be online."""
        terminal = _terminal(LiveStatus.ATTEMPTING, NOW - timedelta(seconds=31))

        assert derive_live_status(terminal, _exam(ExamStatus.IN_PROGRESS), NOW) is LiveStatus.ONLINE

    def test_in_progress_exam_means_waiting(self):
        terminal = _terminal(LiveStatus.READY)

        assert derive_live_status(terminal, _exam(ExamStatus.IN_PROGRESS), NOW) is LiveStatus.WAITING

    def test_scheduled_exam_means_ready(self):
        terminal = _terminal(LiveStatus.ONLINE)

        assert derive_live_status(terminal, _exam(ExamStatus.SCHEDULED), NOW) is LiveStatus.READY

    @pytest.mark.parametrize("exam", [None, _exam(ExamStatus.COMPLETED)])
    def test_otherwise_online(self, exam):
        assert derive_live_status(_terminal(LiveStatus.READY), exam, NOW) is LiveStatus.ONLINE

    def test_derivation_is_deterministic(self):
        """Identical inputs always give identical labels."""
        terminal = _terminal(LiveStatus.ATTEMPTING, NOW - timedelta(seconds=29))
        exam = _exam(ExamStatus.IN_PROGRESS)

        labels = {derive_live_status(terminal, exam, NOW) for _ in range(20)}

        assert labels == {LiveStatus.ATTEMPTING}

    def test_custom_freshness_window(self):
        terminal = _terminal(LiveStatus.ATTEMPTING, NOW - timedelta(seconds=10))

        label = derive_live_status(terminal, _exam(ExamStatus.IN_PROGRESS), NOW, timedelta(seconds=5))

        assert label is LiveStatus.ONLINE

"""Tests for server-side expiry of exams whose time has run out."""

import threading

from exam_hall.core.models import LiveStatus
from exam_hall.core.services.expiry_sweeper import ExpirySweeper


class TestSweepExpiredExams:
    """Test the auto-submission of seated students after the deadline."""

    def test_seated_student_is_auto_submitted(self, manager, clock, questions, seated_terminal, student, exam_id):
        manager.start_exam(exam_id)
        clock.advance(minutes=31, seconds=1)

        [result] = manager.sweep_expired_exams()

        assert result.student_id == student.id
        assert result.auto_submitted is True
        assert result.score == 0
        assert result.total_questions == 3
        assert all(entry.selected_option is None for entry in result.answers)
        [terminal] = manager.list_terminals()
        assert terminal.live_status is LiveStatus.FINISHED

    def test_grace_period_is_respected(self, manager, clock, questions, seated_terminal, exam_id):
        manager.start_exam(exam_id)
        clock.advance(minutes=30, seconds=59)

        assert manager.sweep_expired_exams() == []

    def test_existing_result_is_left_alone(self, manager, clock, questions, seated_terminal, student, exam_id):
        manager.start_exam(exam_id)
        manager.submit_exam(exam_id, student.id, [])
        clock.advance(hours=1)

        assert manager.sweep_expired_exams() == []
        [result] = manager.list_results(exam_id)
        assert result.auto_submitted is False

    def test_unseated_student_is_skipped(self, manager, clock, questions, student, exam_id):
        manager.start_exam(exam_id)
        clock.advance(hours=1)

        assert manager.sweep_expired_exams() == []

    def test_sweep_runs_once_per_student(self, manager, clock, questions, seated_terminal, exam_id):
        manager.start_exam(exam_id)
        clock.advance(hours=1)

        assert len(manager.sweep_expired_exams()) == 1
        assert manager.sweep_expired_exams() == []

    def test_scheduled_exam_never_expires(self, manager, clock, seated_terminal, exam_id):
        clock.advance(days=1)

        assert manager.sweep_expired_exams() == []


class TestExpirySweeper:
    """Test the background thread driving the sweep."""

    def test_runs_sweep_until_stopped(self):
        calls = threading.Event()
        sweeper = ExpirySweeper(calls.set, interval_seconds=0.01)

        thread = sweeper.start()
        assert calls.wait(timeout=2)
        sweeper.stop(timeout=2)

        assert thread.daemon is True
        assert not thread.is_alive()

    def test_failed_sweep_does_not_stop_thread(self):
        attempts = []
        recovered = threading.Event()

        def sweep():
            attempts.append(1)
            if len(attempts) == 1:
                raise RuntimeError("database is locked")
            recovered.set()

        sweeper = ExpirySweeper(sweep, interval_seconds=0.01)
        sweeper.start()

        assert recovered.wait(timeout=2)
        sweeper.stop(timeout=2)

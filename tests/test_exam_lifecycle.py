"""
Tests for the exam definition lifecycle.

Covers scheduling validation, the exactly-once start with question sampling,
ending, editing and deletion.
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

import pytest

from exam_hall.core.errors import ConflictError, IntegrityError, NotFoundError, ValidationError
from exam_hall.core.models import ExamStatus, Seated


class TestScheduling:
    """Test exam creation and field validation."""

    def test_schedule_creates_scheduled_exam(self, manager, exam_id):
        exam = manager.get_exam(exam_id)

        assert exam.status is ExamStatus.SCHEDULED
        assert exam.question_ids == ()
        assert exam.number_of_questions == 3
        assert exam.duration == 30

    @pytest.mark.parametrize(
        "title, description, duration, count",
        [
            ("", "Chapters", 30, None),
            ("Algebra", "  ", 30, None),
            ("Algebra", "Chapters", 0, None),
            ("Algebra", "Chapters", 30, 0),
        ],
    )
    def test_invalid_fields_are_rejected(self, manager, clock, title, description, duration, count):
        with pytest.raises(ValidationError):
            manager.schedule_exam(title, description, clock.now, duration, count)

    def test_aware_start_time_is_stored_as_utc(self, manager):
        start = datetime(2026, 3, 2, 11, 0, tzinfo=timezone(timedelta(hours=2)))

        exam_id = manager.schedule_exam("Algebra", "Chapters", start, 30)

        assert manager.get_exam(exam_id).start_time == datetime(2026, 3, 2, 9, 0)

    def test_list_exams_filters_by_status(self, manager, questions, exam_id, clock):
        other = manager.schedule_exam("Geometry", "Chapter 5", clock.now, 20)
        manager.start_exam(exam_id)

        assert [exam.id for exam in manager.list_exams(ExamStatus.SCHEDULED)] == [other]
        assert [exam.id for exam in manager.list_exams(ExamStatus.IN_PROGRESS)] == [exam_id]
        assert len(manager.list_exams()) == 2

    def test_unknown_exam(self, manager):
        with pytest.raises(NotFoundError):
            manager.get_exam("missing")


class TestStart:
    """Test the Scheduled to In Progress transition."""

    def test_start_samples_questions(self, manager, clock, questions, exam_id):
        clock.advance(minutes=5)

        exam = manager.start_exam(exam_id, actor="proctor")

        bank_ids = {question.id for question in questions}
        assert exam.status is ExamStatus.IN_PROGRESS
        assert len(exam.question_ids) == 3
        assert len(set(exam.question_ids)) == 3
        assert set(exam.question_ids) <= bank_ids
        assert exam.start_time == clock.now

    def test_duplicate_start_keeps_question_set(self, manager, clock, questions, exam_id):
        """Starting a running exam again is a no-op."""
        first = manager.start_exam(exam_id)
        clock.advance(minutes=1)

        second = manager.start_exam(exam_id)

        assert second.question_ids == first.question_ids
        assert second.start_time == first.start_time

    def test_concurrent_starts_agree(self, manager, questions, exam_id):
        """Many simultaneous starts still produce exactly one question set."""
        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda _: manager.start_exam(exam_id), range(8)))

        question_sets = {exam.question_ids for exam in results}
        assert len(question_sets) == 1
        assert manager.get_exam(exam_id).question_ids in question_sets

    def test_small_bank_uses_every_question(self, manager, clock, questions):
        """Asking for ten questions from a bank of five uses all five."""
        exam_id = manager.schedule_exam("Full bank", "Everything", clock.now, 30)

        exam = manager.start_exam(exam_id)

        assert sorted(exam.question_ids) == sorted(question.id for question in questions)

    def test_empty_bank_keeps_exam_scheduled(self, manager, exam_id):
        with pytest.raises(IntegrityError):
            manager.start_exam(exam_id)

        assert manager.get_exam(exam_id).status is ExamStatus.SCHEDULED

    def test_completed_exam_cannot_start(self, manager, questions, exam_id):
        manager.end_exam(exam_id)

        with pytest.raises(ConflictError):
            manager.start_exam(exam_id)

    def test_question_set_survives_bank_changes(self, manager, questions, exam_id):
        exam = manager.start_exam(exam_id)
        manager.add_question("Late addition", ["yes", "no"], [0])

        assert manager.get_exam(exam_id).question_ids == exam.question_ids


class TestEndUpdateDelete:
    """Test ending, editing and deleting exams."""

    def test_end_completes_exam(self, manager, questions, exam_id):
        manager.start_exam(exam_id)

        assert manager.end_exam(exam_id).status is ExamStatus.COMPLETED

    def test_end_scheduled_exam(self, manager, exam_id):
        assert manager.end_exam(exam_id).status is ExamStatus.COMPLETED

    def test_end_is_idempotent(self, manager, exam_id):
        manager.end_exam(exam_id)

        assert manager.end_exam(exam_id).status is ExamStatus.COMPLETED

    def test_update_running_exam_keeps_questions(self, manager, clock, questions, exam_id):
        started = manager.start_exam(exam_id)

        updated = manager.update_exam(exam_id, "Algebra Final", "Chapters 1 to 6", clock.now, 45, 4)

        assert updated.title == "Algebra Final"
        assert updated.duration == 45
        assert updated.number_of_questions == 4
        assert updated.status is ExamStatus.IN_PROGRESS
        assert updated.question_ids == started.question_ids

    def test_completed_exam_cannot_be_edited(self, manager, clock, exam_id):
        manager.end_exam(exam_id)

        with pytest.raises(ConflictError):
            manager.update_exam(exam_id, "Algebra", "Chapters", clock.now, 30)

    def test_update_unknown_exam(self, manager, clock):
        with pytest.raises(NotFoundError):
            manager.update_exam("missing", "Algebra", "Chapters", clock.now, 30)

    def test_delete_clears_references(self, manager, seated_terminal, student, exam_id):
        assert manager.delete_exam(exam_id) is True

        assert manager.get_student(student.id).assigned_exam_id is None
        [terminal] = manager.list_terminals()
        assert terminal.assignment == Seated(student_id=student.id, exam_id=None)

    def test_delete_unknown_exam_is_a_no_op(self, manager):
        assert manager.delete_exam("missing") is False

    def test_completed_exam_cannot_be_deleted(self, manager, exam_id):
        manager.end_exam(exam_id)

        with pytest.raises(ConflictError):
            manager.delete_exam(exam_id)

    def test_delete_keeps_results(self, manager, questions, seated_terminal, student, exam_id):
        manager.start_exam(exam_id)
        manager.submit_exam(exam_id, student.id, [])

        manager.delete_exam(exam_id)

        [result] = manager.list_results(exam_id)
        assert result.exam_title == "Algebra Midterm"

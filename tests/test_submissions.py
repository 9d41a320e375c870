"""
Tests for handing an exam to a student and recording the single submission.
"""

from concurrent.futures import ThreadPoolExecutor

import pytest

from exam_hall.core.errors import ConflictError, IntegrityError, NotFoundError, ValidationError
from exam_hall.core.models import AnswerEntry, LiveStatus


def _correct_answers(exam, questions):
    by_id = {question.id: question for question in questions}
    return [AnswerEntry(question_id, by_id[question_id].correct_options[0]) for question_id in exam.question_ids]


class TestFetchExam:
    """Test what a student receives when opening the exam."""

    def test_not_started_exam_is_not_ready(self, manager, questions, student, exam_id):
        with pytest.raises(IntegrityError):
            manager.fetch_exam_for_student(exam_id, student.id)

    def test_started_exam_returns_rendered_questions(self, manager, questions, student, exam_id):
        exam = manager.start_exam(exam_id)

        view = manager.fetch_exam_for_student(exam_id, student.id)

        assert view.already_taken is False
        assert view.exam.id == exam_id
        assert [question.id for question in view.questions] == list(exam.question_ids)
        assert view.questions[0].text_html.startswith("<p>")
        assert len(view.questions[0].options_html) == 3

    def test_correct_answers_are_not_exposed(self, manager, questions, student, exam_id):
        manager.start_exam(exam_id)

        view = manager.fetch_exam_for_student(exam_id, student.id)

        assert not hasattr(view.questions[0], "correct_options")

    def test_exam_must_be_assigned_to_student(self, manager, questions, exam_id):
        outsider = manager.add_student("Alan Turing", "R-002", "CS-2026")
        manager.start_exam(exam_id)

        with pytest.raises(ConflictError):
            manager.fetch_exam_for_student(exam_id, outsider.id)

    def test_completed_exam_cannot_be_fetched(self, manager, questions, student, exam_id):
        manager.start_exam(exam_id)
        manager.end_exam(exam_id)

        with pytest.raises(ConflictError):
            manager.fetch_exam_for_student(exam_id, student.id)

    def test_unknown_student(self, manager, exam_id):
        with pytest.raises(NotFoundError):
            manager.fetch_exam_for_student(exam_id, "missing")

    def test_already_taken_after_submission(self, manager, questions, student, exam_id):
        manager.start_exam(exam_id)
        manager.submit_exam(exam_id, student.id, [])

        view = manager.fetch_exam_for_student(exam_id, student.id)

        assert view.already_taken is True
        assert view.exam is None
        assert view.questions == ()


class TestSubmit:
    """Test scoring and the one-result-per-student rule."""

    def test_all_correct(self, manager, questions, seated_terminal, student, exam_id):
        exam = manager.start_exam(exam_id)

        summary = manager.submit_exam(exam_id, student.id, _correct_answers(exam, questions))

        assert summary.score == 3
        assert summary.total_questions == 3

    def test_result_is_recorded_in_exam_order(self, manager, questions, student, exam_id):
        exam = manager.start_exam(exam_id)
        last = exam.question_ids[-1]

        manager.submit_exam(exam_id, student.id, [AnswerEntry(last, 1)])

        [result] = manager.list_results(exam_id)
        assert [entry.question_id for entry in result.answers] == list(exam.question_ids)
        assert result.answers[-1].selected_option == 1
        assert all(entry.selected_option is None for entry in result.answers[:-1])
        assert result.student_name == "Ada Lovelace"
        assert result.auto_submitted is False

    def test_second_submission_is_rejected(self, manager, questions, student, exam_id):
        exam = manager.start_exam(exam_id)
        manager.submit_exam(exam_id, student.id, _correct_answers(exam, questions))

        with pytest.raises(ConflictError):
            manager.submit_exam(exam_id, student.id, [])

        [result] = manager.list_results(exam_id)
        assert result.score == 3

    def test_concurrent_submissions_record_one_result(self, manager, questions, student, exam_id):
        """Only one of many simultaneous submissions is accepted."""
        manager.start_exam(exam_id)

        def submit(_):
            try:
                manager.submit_exam(exam_id, student.id, [])
            except ConflictError:
                return False
            return True

        with ThreadPoolExecutor(max_workers=8) as pool:
            outcomes = list(pool.map(submit, range(8)))

        assert outcomes.count(True) == 1
        assert len(manager.list_results(exam_id)) == 1

    def test_submission_marks_terminal_finished(
        self, manager, questions, seated_terminal, terminal_identifier, student, exam_id
    ):
        manager.start_exam(exam_id)
        manager.submit_exam(exam_id, student.id, [])

        report = manager.get_terminal_status(terminal_identifier)

        assert report.live_status is LiveStatus.FINISHED
        assert report.exam_already_taken is True

    def test_foreign_answer_is_rejected_without_storing(self, manager, questions, student, exam_id):
        manager.start_exam(exam_id)

        with pytest.raises(ValidationError):
            manager.submit_exam(exam_id, student.id, [AnswerEntry("not-in-exam", 0)])

        assert manager.list_results(exam_id) == []

    def test_exam_must_be_assigned_to_submit(self, manager, clock, questions, seated_terminal, student, exam_id):
        """A student cannot file a result for someone else's exam."""
        other_exam = manager.schedule_exam("Geometry", "Chapter 5", clock.now, 20, 2)
        manager.start_exam(other_exam)

        with pytest.raises(ConflictError):
            manager.submit_exam(other_exam, student.id, [])

        assert manager.list_results() == []
        [terminal] = manager.list_terminals()
        assert terminal.live_status is LiveStatus.READY

    def test_submit_before_start(self, manager, questions, student, exam_id):
        with pytest.raises(IntegrityError):
            manager.submit_exam(exam_id, student.id, [])

    def test_results_are_listed_per_exam(self, manager, questions, student, exam_id, clock):
        other_exam = manager.schedule_exam("Geometry", "Chapter 5", clock.now, 20, 2)
        other_student = manager.add_student("Alan Turing", "R-002", "CS-2026", other_exam)
        manager.start_exam(exam_id)
        manager.start_exam(other_exam)
        manager.submit_exam(exam_id, student.id, [])
        manager.submit_exam(other_exam, other_student.id, [])

        assert len(manager.list_results()) == 2
        assert [result.student_id for result in manager.list_results(other_exam)] == [other_student.id]

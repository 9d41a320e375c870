"""Scoring of a submitted answer set against an exam's fixed questions."""

from __future__ import annotations

from typing import Iterable, Mapping, Sequence

from exam_hall.constants.session_constants import NEGATIVE_MARKING_PENALTY
from exam_hall.core.errors import ValidationError
from exam_hall.core.models import AnswerEntry, QuestionRecord, ScoreSummary


def normalize_answers(
    question_ids: Sequence[str],
    answers: Iterable[AnswerEntry],
    questions: Mapping[str, QuestionRecord] | None = None,
) -> list[AnswerEntry]:
    """Return exactly one entry per presented question, in presentation order.

    Questions the student never sent are recorded as unanswered. Answers for
    questions outside the exam, duplicate answers and out-of-range options are
    rejected.
    """
    allowed = set(question_ids)
    by_question: dict[str, AnswerEntry] = {}
    for answer in answers:
        if answer.question_id not in allowed:
            raise ValidationError(f"Question {answer.question_id} is not part of this exam.")
        if answer.question_id in by_question:
            raise ValidationError(f"Question {answer.question_id} was answered more than once.")
        if answer.selected_option is not None:
            if isinstance(answer.selected_option, bool) or not isinstance(answer.selected_option, int):
                raise ValidationError("Selected option must be an integer index or null.")
            question = questions.get(answer.question_id) if questions else None
            upper = len(question.options) if question is not None else None
            if answer.selected_option < 0 or (upper is not None and answer.selected_option >= upper):
                raise ValidationError(
                    f"Selected option {answer.selected_option} is out of range for question {answer.question_id}."
                )
        by_question[answer.question_id] = answer
    return [by_question.get(qid, AnswerEntry(question_id=qid)) for qid in question_ids]


def score_answers(
    question_ids: Sequence[str],
    questions: Mapping[str, QuestionRecord],
    answers: Iterable[AnswerEntry],
    penalty: float = NEGATIVE_MARKING_PENALTY,
) -> ScoreSummary:
    """Score answers: +weight when correct, -penalty when wrong under negative marking.

    Unanswered questions never cost anything. The total is clamped at zero and
    ``total_questions`` counts the exam's fixed set, answered or not.
    """
    selected = {answer.question_id: answer.selected_option for answer in answers}
    score: float = 0
    for question_id in question_ids:
        question = questions.get(question_id)
        option = selected.get(question_id)
        if question is None or option is None:
            continue
        if option in question.correct_options:
            score += question.weight
        elif question.negative_marking:
            score -= penalty
    return ScoreSummary(score=max(0, score), total_questions=len(question_ids))

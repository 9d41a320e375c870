"""Error taxonomy surfaced by the exam hall core."""

from __future__ import annotations


class ExamHallError(Exception):
    """Base class for every error raised at the operation boundary."""


class ValidationError(ExamHallError):
    """Raised when input is malformed or missing. No state was changed."""


class ConflictError(ExamHallError):
    """Raised when an action collides with current state (seat taken, duplicate submission)."""


class NotFoundError(ExamHallError):
    """Raised when a terminal, student, exam or question id is unknown."""


class IntegrityError(ExamHallError):
    """Raised when an exam is not ready yet; retry once it has been started."""

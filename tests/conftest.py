"""Shared fixtures: a file-backed SQLite store, a controllable clock and a seeded manager."""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from exam_hall.core.exam_manager import ExamManager
from exam_hall.core.services.question_sampler import QuestionSampler
from exam_hall.storage.database import Database


class FakeClock:
    """Callable clock that only moves when a test moves it."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 2, 9, 0, 0))


@pytest.fixture
def database(tmp_path):
    db = Database(f"sqlite:///{tmp_path / 'examhall.db'}")
    db.create_all()
    yield db
    db.dispose()


@pytest.fixture
def manager(database, clock):
    return ExamManager(database, clock=clock, sampler=QuestionSampler(seed=7))


@pytest.fixture
def questions(manager):
    """Five bank questions; the first has negative marking."""
    return [
        manager.add_question(
            f"What is {index} + {index}?",
            [str(index * 2), str(index * 2 + 1), str(index * 2 + 2)],
            [0],
            weight=1,
            negative_marking=index == 0,
        )
        for index in range(5)
    ]


@pytest.fixture
def exam_id(manager, clock):
    return manager.schedule_exam(
        "Algebra Midterm",
        "Chapters 1 to 4",
        clock.now + timedelta(minutes=10),
        30,
        3,
    )


@pytest.fixture
def student(manager, exam_id):
    return manager.add_student("Ada Lovelace", "R-001", "CS-2026", exam_id)


@pytest.fixture
def terminal_identifier(manager):
    return manager.register_terminal("Lab PC 01", ip_address="10.0.0.21").identifier


@pytest.fixture
def terminal(manager, terminal_identifier):
    return next(
        snapshot
        for snapshot in manager.list_terminals()
        if snapshot.unique_identifier == terminal_identifier
    )


@pytest.fixture
def seated_terminal(manager, terminal, student):
    """Approved terminal with the student seated."""
    manager.approve_terminal(terminal.id, actor="proctor")
    return manager.assign_student(terminal.id, student.id, actor="proctor")

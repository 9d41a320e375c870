"""FastAPI server exposing the terminal, student and administrator endpoints."""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import Depends, FastAPI, Header, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
import uvicorn

from exam_hall.constants.about import APP_ABOUT_TEXT, APP_LICENSE, APP_NAME, APP_VERSION
from exam_hall.constants.network_constants import (
    ADMIN_ACTOR_HEADER,
    DEFAULT_HOST,
    DEFAULT_PORT,
    TERMINAL_POLL_INTERVAL_SECONDS,
)
from exam_hall.core.errors import (
    ConflictError,
    ExamHallError,
    IntegrityError,
    NotFoundError,
    ValidationError,
)
from exam_hall.core.exam_manager import ExamManager
from exam_hall.core.models import (
    AnswerEntry,
    ExamResultSnapshot,
    ExamSnapshot,
    ExamStatus,
    LiveStatusRow,
    QuestionCategory,
    QuestionRecord,
    Seated,
    StudentExamView,
    StudentSnapshot,
    TerminalSnapshot,
    TerminalStatusReport,
)

_ERROR_STATUS_CODES: dict[type[ExamHallError], int] = {
    ValidationError: 422,
    NotFoundError: 404,
    ConflictError: 409,
    # "Too Early": the exam is not started yet, the terminal should retry.
    IntegrityError: 425,
}


class RegisterTerminalPayload(BaseModel):
    """Payload schema for terminal registration."""

    name: str


class HeartbeatPayload(BaseModel):
    """Payload schema for a terminal heartbeat with an optional self-reported status."""

    live_status: str | None = None


class AssignStudentPayload(BaseModel):
    student_id: str | None = None


class ExamPayload(BaseModel):
    """Payload schema for scheduling or editing an exam."""

    title: str
    description: str
    start_time: datetime
    duration_minutes: int
    number_of_questions: int | None = None


class AnswerPayload(BaseModel):
    """One answer; ``selected_option`` is null when the question was skipped."""

    question_id: str
    selected_option: int | None = None


class SubmissionPayload(BaseModel):
    answers: list[AnswerPayload] = Field(default_factory=list)


class StudentPayload(BaseModel):
    name: str
    roll_number: str
    class_batch: str
    exam_id: str | None = None


class QuestionPayload(BaseModel):
    text: str
    options: list[str]
    correct_options: list[int]
    weight: float = 1
    negative_marking: bool = False
    category: QuestionCategory = QuestionCategory.MEDIUM
    tags: list[str] = Field(default_factory=list)


def _iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc).isoformat()
    return value.astimezone(timezone.utc).isoformat()


def _terminal_payload(terminal: TerminalSnapshot) -> dict[str, object]:
    seated = terminal.assignment if isinstance(terminal.assignment, Seated) else None
    return {
        "id": terminal.id,
        "name": terminal.name,
        "unique_identifier": terminal.unique_identifier,
        "ip_address": terminal.ip_address,
        "status": terminal.status.value,
        "assigned_student_id": seated.student_id if seated else None,
        "assigned_exam_id": seated.exam_id if seated else None,
        "live_status": terminal.live_status.value,
        "last_seen": _iso(terminal.last_seen),
    }


def _status_report_payload(report: TerminalStatusReport) -> dict[str, object]:
    details: dict[str, object] | None = None
    if report.student_id is not None or report.exam is not None:
        details = {
            "student_id": report.student_id,
            "student_name": report.student_name,
            "student_roll_number": report.student_roll_number,
            "exam": None
            if report.exam is None
            else {
                "id": report.exam.id,
                "title": report.exam.title,
                "start_time": _iso(report.exam.start_time),
                "duration": report.exam.duration,
                "status": report.exam.status.value,
            },
            "exam_already_taken": report.exam_already_taken,
        }
    return {
        "status": report.status.value,
        "live_status": report.live_status.value,
        "name": report.name,
        "details": details,
        "poll_interval_seconds": TERMINAL_POLL_INTERVAL_SECONDS,
    }


def _exam_payload(exam: ExamSnapshot) -> dict[str, object]:
    return {
        "id": exam.id,
        "title": exam.title,
        "description": exam.description,
        "start_time": _iso(exam.start_time),
        "duration": exam.duration,
        "number_of_questions": exam.number_of_questions,
        "status": exam.status.value,
        "question_ids": list(exam.question_ids),
    }


def _student_view_payload(view: StudentExamView) -> dict[str, object]:
    return {
        "already_taken": view.already_taken,
        "exam": None if view.exam is None else _exam_payload(view.exam),
        "questions": [
            {
                "id": question.id,
                "text_html": question.text_html,
                "options_html": list(question.options_html),
                "weight": question.weight,
                "negative_marking": question.negative_marking,
            }
            for question in view.questions
        ],
    }


def _live_row_payload(row: LiveStatusRow) -> dict[str, object]:
    return {
        "terminal_id": row.terminal_id,
        "terminal_name": row.terminal_name,
        "live_status": row.live_status.value,
        "last_seen": _iso(row.last_seen),
        "student_name": row.student_name,
        "student_roll_number": row.student_roll_number,
        "exam_title": row.exam_title,
        "exam_status": row.exam_status.value if row.exam_status is not None else None,
    }


def _result_payload(result: ExamResultSnapshot) -> dict[str, object]:
    return {
        "id": result.id,
        "student_id": result.student_id,
        "exam_id": result.exam_id,
        "student_name": result.student_name,
        "exam_title": result.exam_title,
        "answers": [
            {"question_id": entry.question_id, "selected_option": entry.selected_option}
            for entry in result.answers
        ],
        "score": result.score,
        "total_questions": result.total_questions,
        "completed_at": _iso(result.completed_at),
        "auto_submitted": result.auto_submitted,
    }


def _student_payload(student: StudentSnapshot) -> dict[str, object]:
    return {
        "id": student.id,
        "name": student.name,
        "roll_number": student.roll_number,
        "class_batch": student.class_batch,
        "assigned_exam_id": student.assigned_exam_id,
    }


def _question_payload(question: QuestionRecord) -> dict[str, object]:
    return {
        "id": question.id,
        "text": question.text,
        "options": list(question.options),
        "correct_options": list(question.correct_options),
        "weight": question.weight,
        "negative_marking": question.negative_marking,
        "category": question.category.value,
        "tags": list(question.tags),
    }


def _get_exam_manager_dependency(exam_manager: ExamManager):
    def dependency() -> ExamManager:
        return exam_manager

    return dependency


def _admin_actor(x_admin_user: str = Header(..., alias=ADMIN_ACTOR_HEADER)) -> str:
    return x_admin_user.strip() or "unknown"


def create_api_app(exam_manager: ExamManager) -> FastAPI:
    """Create a FastAPI application wired to the provided exam manager."""
    app = FastAPI(
        title=f"{APP_NAME} API",
        version=APP_VERSION,
        description=APP_ABOUT_TEXT,
        license_info={"name": APP_LICENSE},
    )
    manager_dep = _get_exam_manager_dependency(exam_manager)

    @app.exception_handler(ExamHallError)
    def handle_exam_hall_error(request: Request, exc: ExamHallError) -> JSONResponse:
        status_code = next(
            (code for error_type, code in _ERROR_STATUS_CODES.items() if isinstance(exc, error_type)),
            503,
        )
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})

    # --- Terminal-facing polling endpoints ---

    @app.post("/terminals", status_code=201)
    def register_terminal(
        payload: RegisterTerminalPayload,
        request: Request,
        manager: ExamManager = Depends(manager_dep),
    ) -> dict[str, object]:
        ip_address = request.client.host if request.client else None
        registration = manager.register_terminal(payload.name, ip_address=ip_address)
        return {"identifier": registration.identifier, "status": registration.status.value}

    @app.get("/terminals/{identifier}/status")
    def get_terminal_status(identifier: str, manager: ExamManager = Depends(manager_dep)) -> dict[str, object]:
        return _status_report_payload(manager.get_terminal_status(identifier))

    @app.post("/terminals/{identifier}/heartbeat")
    def report_heartbeat(
        identifier: str,
        payload: HeartbeatPayload,
        manager: ExamManager = Depends(manager_dep),
    ) -> dict[str, object]:
        live_status = manager.report_heartbeat(identifier, payload.live_status)
        return {"live_status": live_status.value}

    # --- Student-facing exam endpoints ---

    @app.get("/exams/{exam_id}/students/{student_id}")
    def fetch_exam_for_student(
        exam_id: str,
        student_id: str,
        manager: ExamManager = Depends(manager_dep),
    ) -> dict[str, object]:
        return _student_view_payload(manager.fetch_exam_for_student(exam_id, student_id))

    @app.post("/exams/{exam_id}/students/{student_id}/submission", status_code=201)
    def submit_exam(
        exam_id: str,
        student_id: str,
        payload: SubmissionPayload,
        manager: ExamManager = Depends(manager_dep),
    ) -> dict[str, object]:
        answers = [
            AnswerEntry(question_id=answer.question_id, selected_option=answer.selected_option)
            for answer in payload.answers
        ]
        summary = manager.submit_exam(exam_id, student_id, answers)
        return {"score": summary.score, "total_questions": summary.total_questions}

    # --- Administrator: terminals ---

    @app.get("/admin/terminals")
    def list_terminals(
        actor: str = Depends(_admin_actor),
        manager: ExamManager = Depends(manager_dep),
    ) -> list[dict[str, object]]:
        return [_terminal_payload(terminal) for terminal in manager.list_terminals()]

    @app.post("/admin/terminals/{terminal_id}/approve")
    def approve_terminal(
        terminal_id: str,
        actor: str = Depends(_admin_actor),
        manager: ExamManager = Depends(manager_dep),
    ) -> dict[str, object]:
        return _terminal_payload(manager.approve_terminal(terminal_id, actor=actor))

    @app.post("/admin/terminals/{terminal_id}/reject")
    def reject_terminal(
        terminal_id: str,
        actor: str = Depends(_admin_actor),
        manager: ExamManager = Depends(manager_dep),
    ) -> dict[str, object]:
        return _terminal_payload(manager.reject_terminal(terminal_id, actor=actor))

    @app.delete("/admin/terminals/{terminal_id}")
    def delete_terminal(
        terminal_id: str,
        actor: str = Depends(_admin_actor),
        manager: ExamManager = Depends(manager_dep),
    ) -> dict[str, object]:
        return {"deleted": manager.delete_terminal(terminal_id, actor=actor)}

    @app.put("/admin/terminals/{terminal_id}/student")
    def assign_student(
        terminal_id: str,
        payload: AssignStudentPayload,
        actor: str = Depends(_admin_actor),
        manager: ExamManager = Depends(manager_dep),
    ) -> dict[str, object]:
        return _terminal_payload(manager.assign_student(terminal_id, payload.student_id, actor=actor))

    @app.get("/admin/live-status")
    def list_live_statuses(
        actor: str = Depends(_admin_actor),
        manager: ExamManager = Depends(manager_dep),
    ) -> list[dict[str, object]]:
        return [_live_row_payload(row) for row in manager.list_live_statuses()]

    # --- Administrator: exams ---

    @app.get("/admin/exams")
    def list_exams(
        status: ExamStatus | None = None,
        actor: str = Depends(_admin_actor),
        manager: ExamManager = Depends(manager_dep),
    ) -> list[dict[str, object]]:
        return [_exam_payload(exam) for exam in manager.list_exams(status)]

    @app.post("/admin/exams", status_code=201)
    def schedule_exam(
        payload: ExamPayload,
        actor: str = Depends(_admin_actor),
        manager: ExamManager = Depends(manager_dep),
    ) -> dict[str, object]:
        exam_id = manager.schedule_exam(
            payload.title,
            payload.description,
            payload.start_time,
            payload.duration_minutes,
            payload.number_of_questions,
            actor=actor,
        )
        return {"exam_id": exam_id}

    @app.put("/admin/exams/{exam_id}")
    def update_exam(
        exam_id: str,
        payload: ExamPayload,
        actor: str = Depends(_admin_actor),
        manager: ExamManager = Depends(manager_dep),
    ) -> dict[str, object]:
        exam = manager.update_exam(
            exam_id,
            payload.title,
            payload.description,
            payload.start_time,
            payload.duration_minutes,
            payload.number_of_questions,
            actor=actor,
        )
        return _exam_payload(exam)

    @app.post("/admin/exams/{exam_id}/start")
    def start_exam(
        exam_id: str,
        actor: str = Depends(_admin_actor),
        manager: ExamManager = Depends(manager_dep),
    ) -> dict[str, object]:
        return _exam_payload(manager.start_exam(exam_id, actor=actor))

    @app.post("/admin/exams/{exam_id}/end")
    def end_exam(
        exam_id: str,
        actor: str = Depends(_admin_actor),
        manager: ExamManager = Depends(manager_dep),
    ) -> dict[str, object]:
        return _exam_payload(manager.end_exam(exam_id, actor=actor))

    @app.delete("/admin/exams/{exam_id}")
    def delete_exam(
        exam_id: str,
        actor: str = Depends(_admin_actor),
        manager: ExamManager = Depends(manager_dep),
    ) -> dict[str, object]:
        return {"deleted": manager.delete_exam(exam_id, actor=actor)}

    @app.get("/admin/results")
    def list_results(
        exam_id: str | None = None,
        actor: str = Depends(_admin_actor),
        manager: ExamManager = Depends(manager_dep),
    ) -> list[dict[str, object]]:
        return [_result_payload(result) for result in manager.list_results(exam_id)]

    @app.post("/admin/expiry-sweep")
    def sweep_expired_exams(
        actor: str = Depends(_admin_actor),
        manager: ExamManager = Depends(manager_dep),
    ) -> dict[str, object]:
        recorded = manager.sweep_expired_exams()
        return {"auto_submitted": [_result_payload(result) for result in recorded]}

    # --- Administrator: roster and question bank ---

    @app.get("/admin/students")
    def list_students(
        actor: str = Depends(_admin_actor),
        manager: ExamManager = Depends(manager_dep),
    ) -> list[dict[str, object]]:
        return [_student_payload(student) for student in manager.list_students()]

    @app.post("/admin/students", status_code=201)
    def add_student(
        payload: StudentPayload,
        actor: str = Depends(_admin_actor),
        manager: ExamManager = Depends(manager_dep),
    ) -> dict[str, object]:
        student = manager.add_student(
            payload.name, payload.roll_number, payload.class_batch, payload.exam_id, actor=actor
        )
        return _student_payload(student)

    @app.put("/admin/students/{student_id}")
    def update_student(
        student_id: str,
        payload: StudentPayload,
        actor: str = Depends(_admin_actor),
        manager: ExamManager = Depends(manager_dep),
    ) -> dict[str, object]:
        student = manager.update_student(
            student_id, payload.name, payload.roll_number, payload.class_batch, payload.exam_id, actor=actor
        )
        return _student_payload(student)

    @app.delete("/admin/students/{student_id}")
    def delete_student(
        student_id: str,
        actor: str = Depends(_admin_actor),
        manager: ExamManager = Depends(manager_dep),
    ) -> dict[str, object]:
        return {"deleted": manager.delete_student(student_id, actor=actor)}

    @app.get("/admin/questions")
    def list_questions(
        actor: str = Depends(_admin_actor),
        manager: ExamManager = Depends(manager_dep),
    ) -> list[dict[str, object]]:
        return [_question_payload(question) for question in manager.list_questions()]

    @app.post("/admin/questions", status_code=201)
    def add_question(
        payload: QuestionPayload,
        actor: str = Depends(_admin_actor),
        manager: ExamManager = Depends(manager_dep),
    ) -> dict[str, object]:
        question = manager.add_question(
            payload.text,
            payload.options,
            payload.correct_options,
            weight=payload.weight,
            negative_marking=payload.negative_marking,
            category=payload.category,
            tags=payload.tags,
            actor=actor,
        )
        return _question_payload(question)

    @app.delete("/admin/questions/{question_id}")
    def delete_question(
        question_id: str,
        actor: str = Depends(_admin_actor),
        manager: ExamManager = Depends(manager_dep),
    ) -> dict[str, object]:
        return {"deleted": manager.delete_question(question_id, actor=actor)}

    return app


def run_api_server(
    exam_manager: ExamManager,
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
) -> None:
    """Serve the API with uvicorn until interrupted."""
    app = create_api_app(exam_manager)
    config = uvicorn.Config(app=app, host=host, port=port, log_level="info")
    server = uvicorn.Server(config)
    server.run()

"""Application entry point for the ExamHall server."""

from __future__ import annotations

import socket

from exam_hall.constants.about import APP_NAME
from exam_hall.core.exam_manager import ExamManager
from exam_hall.core.services.expiry_sweeper import ExpirySweeper
from exam_hall.server.api_server import run_api_server
from exam_hall.storage.database import Database
from exam_hall.utils.logging_config import configure_logging
from exam_hall.utils.settings import load_settings


def _determine_server_url(port: int) -> str:
    """Best-effort determination of the LAN address terminals should poll."""
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.connect(("8.8.8.8", 80))
            ip_address = sock.getsockname()[0]
    except OSError:
        ip_address = "127.0.0.1"
    return f"http://{ip_address}:{port}/"


def main() -> None:
    """Initialize logging and storage, start the expiry sweeper, and serve the API."""
    logger = configure_logging()
    settings = load_settings()
    logger.info("Starting %s server", APP_NAME)

    database = Database(settings.database_url)
    database.create_all()
    exam_manager = ExamManager(database)

    sweeper = ExpirySweeper(exam_manager.sweep_expired_exams, settings.sweep_interval_seconds)
    sweeper.start()
    logger.info("Terminals should poll %s", _determine_server_url(settings.port))

    try:
        run_api_server(exam_manager, host=settings.host, port=settings.port)
    finally:
        sweeper.stop(timeout=5)
        database.dispose()


if __name__ == "__main__":
    main()

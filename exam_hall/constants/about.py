"""Static metadata describing ExamHall."""

APP_NAME = "ExamHall"
APP_VERSION = "0.1"
APP_LICENSE = "MIT License"
APP_ABOUT_TEXT = (
    "ExamHall coordinates supervised exam sessions across lab terminals. "
    "Terminals register and poll for their status, administrators approve them, "
    "seat students and start exams, and every student submits exactly once."
)

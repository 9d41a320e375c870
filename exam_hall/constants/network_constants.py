"""Network configuration constants for the exam hall server."""

DEFAULT_HOST: str = "0.0.0.0"
DEFAULT_PORT: int = 8000
TERMINAL_POLL_INTERVAL_SECONDS: int = 5
ADMIN_ACTOR_HEADER: str = "X-Admin-User"

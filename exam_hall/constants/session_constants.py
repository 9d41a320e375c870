"""Session-related constants shared across the core and the gateway."""

DEFAULT_NUMBER_OF_QUESTIONS: int = 10
NEGATIVE_MARKING_PENALTY: float = 1
LIVE_STATUS_FRESHNESS_SECONDS: int = 30
MIN_TERMINAL_NAME_LENGTH: int = 3
TERMINAL_IDENTIFIER_PREFIX: str = "pc-id-"
TERMINAL_IDENTIFIER_LENGTH: int = 8
UNKNOWN_IP_ADDRESS: str = "N/A"
EXPIRY_GRACE_SECONDS: int = 60
EXPIRY_SWEEP_INTERVAL_SECONDS: int = 30
DEFAULT_DATABASE_URL: str = "sqlite:///examhall.db"
SYSTEM_ACTOR: str = "system"

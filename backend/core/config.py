import os


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int(value: str | None, default: int) -> int:
    if value is None or not value.strip():
        return default
    return int(value)


def _get_float(value: str | None, default: float) -> float:
    if value is None or not value.strip():
        return default
    return float(value)


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if value is None:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]


APP_ENV = os.getenv("APP_ENV", "development")

DATABASE_ECHO = _get_bool(os.getenv("DATABASE_ECHO"), default=False)

CORS_ALLOW_ORIGINS = _get_list(os.getenv("CORS_ALLOW_ORIGINS"), ["http://localhost:4200"])

# Clinic defaults applied when a stored record leaves the value empty.
DEFAULT_TIMEZONE = os.getenv("DEFAULT_TIMEZONE", "Australia/Sydney")
DEFAULT_SLOT_MINUTES = _get_int(os.getenv("DEFAULT_SLOT_MINUTES"), 10)

SUGGESTION_MAX_WORKERS = _get_int(os.getenv("SUGGESTION_MAX_WORKERS"), 8)
SUGGESTION_TIMEOUT_SECONDS = _get_float(os.getenv("SUGGESTION_TIMEOUT_SECONDS"), 10.0)


def validate_runtime_config() -> None:
    if DEFAULT_SLOT_MINUTES <= 0:
        raise RuntimeError("DEFAULT_SLOT_MINUTES must be a positive number of minutes.")
    if SUGGESTION_MAX_WORKERS <= 0:
        raise RuntimeError("SUGGESTION_MAX_WORKERS must be at least 1.")
    if APP_ENV.lower() == "production" and SUGGESTION_TIMEOUT_SECONDS <= 0:
        raise RuntimeError("SUGGESTION_TIMEOUT_SECONDS must be set in production.")

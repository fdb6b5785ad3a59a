"""Enrollment settings pulled from environment variables."""
import os

def _bool_env(name: str, default: str = "false") -> bool:
    value = os.getenv(name, default)
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}

ADMISSIONS_OPEN = _bool_env("ADMISSIONS_OPEN", "true")
ADMISSIONS_REOPEN_DATE = (os.getenv("ADMISSIONS_REOPEN_DATE") or "").strip() or None
ADMISSIONS_NOTIFY_EMAIL = (os.getenv("ADMISSIONS_NOTIFY_EMAIL") or "").strip() or None

ENROLL_API_URL = os.getenv("ENROLL_API_URL", "http://localhost:8080/api/students")
ENROLL_API_TIMEOUT = float(os.getenv("ENROLL_API_TIMEOUT", "15"))

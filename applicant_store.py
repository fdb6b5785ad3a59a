# applicant_store.py
# Applicant table (SQLAlchemy Core) plus the two storage operations the
# enrollment endpoint needs. DSN-first with a local SQLite fallback.

import os
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    func,
    select,
)
from sqlalchemy.engine import URL, Connection, Engine
from sqlalchemy.sql import text

logger = logging.getLogger(__name__)

_SQLITE_FALLBACK_URL = "sqlite:///local_enrollments.db"

metadata = MetaData()

applicants = Table(
    "applicants",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(120), nullable=False),
    Column("father_name", String(120), nullable=False),
    Column("father_number", String(32), nullable=False),
    Column("cnic", String(32), nullable=False),
    Column("qualification", String(50), nullable=False),
    Column("gender", String(20), nullable=False),
    Column("phone", String(32), nullable=False),
    # No unique index: duplicates are guarded by a pre-check only.
    Column("email", String(255), nullable=False, index=True),
    Column("address", Text, nullable=False),
    Column("district", String(120), nullable=False),
    Column("birth_date", String(20), nullable=False),
    Column("courses", JSON, nullable=False),
    Column("priority1", String(120)),
    Column("priority2", String(120)),
    Column("slots", JSON),
    Column("created_at", DateTime(timezone=True)),
    Column("updated_at", DateTime(timezone=True)),
)

# wire key -> column
FIELD_COLUMNS = {
    "name": "name",
    "fatherName": "father_name",
    "fatherNumber": "father_number",
    "cnic": "cnic",
    "qualification": "qualification",
    "gender": "gender",
    "phone": "phone",
    "email": "email",
    "address": "address",
    "district": "district",
    "birthDate": "birth_date",
    "priority1": "priority1",
    "priority2": "priority2",
}

REQUIRED_FIELDS = frozenset(FIELD_COLUMNS) - {"priority1", "priority2"}


class StorageSchemaError(ValueError):
    """Raised when a payload cannot be shaped into an applicant row."""


# ───────────────────────────────────────────────────────────────
# Engine
# ───────────────────────────────────────────────────────────────
def _is_dsn(s: str) -> bool:
    if not s:
        return False
    s = s.strip().lower()
    return s.startswith("postgresql://") or s.startswith("postgresql+psycopg2://") or s.startswith("sqlite:")

def _sqlalchemy_url() -> str | URL:
    # 1) DATABASE_URL wins
    db_url = os.getenv("DATABASE_URL")
    if db_url and _is_dsn(db_url):
        return db_url

    # 2) DSN in INSTANCE_CONNECTION_NAME
    inst = os.getenv("INSTANCE_CONNECTION_NAME", "")
    if inst and _is_dsn(inst):
        return inst

    # 3) Traditional TCP params
    user = os.getenv("DB_USER")
    pwd  = os.getenv("DB_PASS") or os.getenv("DB_PASSWORD")
    name = os.getenv("DB_NAME")
    host = os.getenv("DB_HOST")
    port = os.getenv("DB_PORT")
    if host and user and pwd and name:
        return URL.create(
            drivername="postgresql+psycopg2",
            username=user,
            password=pwd,
            host=host,
            port=int(port) if port else None,
            database=name,
        )

    # 4) Local SQLite
    return _SQLITE_FALLBACK_URL


def _create_engine_with_fallback(url: str | URL) -> Engine:
    try:
        eng = create_engine(url, pool_pre_ping=True, future=True)
        with eng.connect() as conn:
            conn.execute(text("SELECT 1"))
        return eng
    except Exception:
        logger.exception("Primary database unavailable; falling back to SQLite at %s", _SQLITE_FALLBACK_URL)
        return create_engine(_SQLITE_FALLBACK_URL, future=True)


def init_engine(url: str | URL | None = None) -> Engine:
    """Create an engine for ``url`` (or the environment) and make sure the table exists."""
    eng = _create_engine_with_fallback(url or _sqlalchemy_url())
    metadata.create_all(eng, checkfirst=True)
    logger.info("Applicant store ready on %s", eng.dialect.name)
    return eng


_ENGINE: Optional[Engine] = None

def get_engine() -> Engine:
    global _ENGINE
    if _ENGINE is None:
        _ENGINE = init_engine()
    return _ENGINE


# ───────────────────────────────────────────────────────────────
# Documents
# ───────────────────────────────────────────────────────────────
def _scalar(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (dict, list, tuple)):
        raise StorageSchemaError(f"expected a scalar, got {type(value).__name__}")
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def document_from_payload(payload: Any) -> Dict[str, Any]:
    """Shape a wire payload into column values.

    Unknown keys are dropped and scalars are stored as strings. Every scalar
    except the priorities is required; missing or empty values are rejected.
    """
    if not isinstance(payload, dict):
        raise StorageSchemaError("payload must be a JSON object")

    doc: Dict[str, Any] = {}
    for key, column in FIELD_COLUMNS.items():
        doc[column] = _scalar(payload.get(key))
        if key in REQUIRED_FIELDS and not doc[column]:
            raise StorageSchemaError(f"{key} is required")

    courses = payload.get("courses")
    if courses is None:
        courses = []
    if not isinstance(courses, list):
        raise StorageSchemaError("courses must be a list")
    doc["courses"] = [_scalar(c) for c in courses]

    slots = payload.get("slots")
    if slots is not None and not isinstance(slots, dict):
        raise StorageSchemaError("slots must be an object")
    doc["slots"] = {str(k): _scalar(v) for k, v in (slots or {}).items()}

    now = datetime.now(timezone.utc)
    doc["created_at"] = now
    doc["updated_at"] = now
    return doc


def _iso(value: Any) -> Optional[str]:
    if value is None:
        return None
    try:
        return value.isoformat()  # type: ignore[attr-defined]
    except Exception:
        return str(value)


def serialize(row: Dict[str, Any]) -> Dict[str, Any]:
    """Map a stored row back to wire keys."""
    record: Dict[str, Any] = {"id": row.get("id")}
    for key, column in FIELD_COLUMNS.items():
        record[key] = row.get(column)
    record["courses"] = list(row.get("courses") or [])
    record["slots"] = dict(row.get("slots") or {})
    record["createdAt"] = _iso(row.get("created_at"))
    record["updatedAt"] = _iso(row.get("updated_at"))
    return record


# ───────────────────────────────────────────────────────────────
# Operations
# ───────────────────────────────────────────────────────────────
def find_by_email(conn: Connection, email: Optional[str]) -> Optional[Dict[str, Any]]:
    if email is None:
        return None
    stmt = select(applicants).where(applicants.c.email == email).limit(1)
    row = conn.execute(stmt).mappings().first()
    return dict(row) if row else None


def insert_applicant(conn: Connection, document: Dict[str, Any]) -> Dict[str, Any]:
    result = conn.execute(applicants.insert().values(**document))
    stored = dict(document)
    stored["id"] = result.inserted_primary_key[0]
    return stored


def count_applicants(conn: Connection, email: Optional[str] = None) -> int:
    stmt = select(func.count()).select_from(applicants)
    if email is not None:
        stmt = stmt.where(applicants.c.email == email)
    return conn.execute(stmt).scalar_one()

# registration.py (Blueprint: register)
# Enrollment page + JSON create endpoint, with an optional operator email after
# a successful commit.

import os
import logging
import smtplib
import ssl
from email.message import EmailMessage
from datetime import datetime, timezone
from typing import Any, Dict, Tuple

from flask import Blueprint, current_app, flash, jsonify, redirect, render_template, request, url_for
from sqlalchemy.exc import SQLAlchemyError

import applicant_store
from applicant_form import FAILURE_NOTICE, SUCCESS_NOTICE, ApplicantForm
from course_catalog import COURSE_CATALOG, GENDERS, QUALIFICATIONS, SLOTS
from course_settings import ADMISSIONS_NOTIFY_EMAIL, ADMISSIONS_OPEN, ADMISSIONS_REOPEN_DATE

register_bp = Blueprint("register", __name__, template_folder="templates")

# ───────────────────────────────────────────────────────────────
# Email (Gmail SMTP or compatible)
# ───────────────────────────────────────────────────────────────
REG_NOTIFY_ENABLED = (os.getenv("REG_NOTIFY_ENABLED", "false").strip().lower() in {"1", "true", "yes", "y"})
REG_NOTIFY_TO = os.getenv("REG_NOTIFY_TO", "")
EMAIL_BACKEND = os.getenv("EMAIL_BACKEND", "smtp").strip().lower()
SMTP_HOST = os.getenv("SMTP_HOST", "smtp.gmail.com")
SMTP_PORT = int(os.getenv("SMTP_PORT", "465"))
SMTP_USERNAME = os.getenv("SMTP_USERNAME", "")
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD", "")
SMTP_FROM = os.getenv("SMTP_FROM", "")

DUPLICATE_MESSAGE = "Student is already registered"
SERVER_ERROR = "Server error"

logger = logging.getLogger(__name__)


def _compose_reg_email_payload(p: Dict[str, Any]) -> tuple[str, str]:
    created_at = p.get("created_at")
    if isinstance(created_at, datetime):
        created_str = created_at.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M:%S %Z")
    else:
        created_str = str(created_at) if created_at else "N/A"

    name = p.get("name") or "Unknown"
    email = p.get("email") or "N/A"
    courses = ", ".join(p.get("courses") or []) or "N/A"
    slots = p.get("slots") or {}
    slot_lines = "".join(f"  {course}: {slot}\n" for course, slot in slots.items())

    subject = f"New enrollment — {name} ({email})"
    text_body = (
        "A new student has enrolled.\n\n"
        f"Name: {name}\n"
        f"Email: {email}\n"
        f"Phone: {p.get('phone') or 'N/A'}\n"
        f"District: {p.get('district') or 'N/A'}\n"
        f"Qualification: {p.get('qualification') or 'N/A'}\n"
        f"Courses: {courses}\n"
        f"Priorities: {p.get('priority1') or '-'} / {p.get('priority2') or '-'}\n"
        + (f"Slots:\n{slot_lines}" if slot_lines else "")
        + f"Created: {created_str}\n"
    )
    return subject, text_body


def _send_email_smtp(subject: str, text_body: str) -> bool:
    if EMAIL_BACKEND != "smtp":
        logger.warning("EMAIL_BACKEND=%s (expected 'smtp'); skipping SMTP send", EMAIL_BACKEND)
        return False
    if not SMTP_USERNAME or not SMTP_PASSWORD or not REG_NOTIFY_TO:
        logger.warning("SMTP not configured: missing SMTP_USERNAME, SMTP_PASSWORD or REG_NOTIFY_TO")
        return False

    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = SMTP_FROM or SMTP_USERNAME
    msg["To"] = REG_NOTIFY_TO
    msg.set_content(text_body)

    try:
        if SMTP_PORT == 465:
            with smtplib.SMTP_SSL(SMTP_HOST, SMTP_PORT, context=ssl.create_default_context()) as s:
                s.login(SMTP_USERNAME, SMTP_PASSWORD)
                s.send_message(msg)
        else:
            with smtplib.SMTP(SMTP_HOST, SMTP_PORT) as s:
                s.starttls(context=ssl.create_default_context())
                s.login(SMTP_USERNAME, SMTP_PASSWORD)
                s.send_message(msg)
        logger.info("Enrollment email sent to %s via SMTP", REG_NOTIFY_TO)
        return True
    except Exception:
        logger.exception("SMTP send failed")
        return False


def _send_registration_email(record: Dict[str, Any]) -> None:
    if not REG_NOTIFY_ENABLED:
        return
    try:
        subject, text_body = _compose_reg_email_payload(record)
        ok = _send_email_smtp(subject, text_body)
        if not ok:
            logger.warning("Enrollment email send returned False (subject=%r)", subject)
    except Exception:
        logger.exception("Enrollment email failed (non-fatal)")


# ───────────────────────────────────────────────────────────────
# Create
# ───────────────────────────────────────────────────────────────
def register_applicant(engine, payload: Any) -> Tuple[int, Dict[str, Any]]:
    """Check for an existing applicant by email and insert a new one.

    Returns ``(status_code, body)``: 201 with the stored record, 409 when the
    email is already registered, 500 on any other failure. The lookup and the
    insert share a transaction but are not atomic against a concurrent insert
    of the same email.
    """
    if engine is None:
        logger.error("Database engine unavailable when registering applicant")
        return 500, {"success": False, "error": SERVER_ERROR}

    try:
        logger.debug("Received body: %s", payload)
        document = applicant_store.document_from_payload(payload)
        with engine.begin() as conn:
            if applicant_store.find_by_email(conn, document["email"]):
                logger.info("Duplicate enrollment rejected for %s", document["email"])
                return 409, {"success": False, "message": DUPLICATE_MESSAGE}
            stored = applicant_store.insert_applicant(conn, document)
    except applicant_store.StorageSchemaError as exc:
        logger.exception("Malformed enrollment payload: %s", exc)
        return 500, {"success": False, "error": SERVER_ERROR}
    except SQLAlchemyError:
        logger.exception("Error in POST /api/students")
        return 500, {"success": False, "error": SERVER_ERROR}
    except Exception:
        logger.exception("Unexpected error in POST /api/students")
        return 500, {"success": False, "error": SERVER_ERROR}

    try:
        _send_registration_email(stored)
    except Exception:
        logger.exception("Post-commit enrollment email block failed unexpectedly")

    return 201, {"success": True, "data": applicant_store.serialize(stored)}


def _engine():
    engine = current_app.config.get("DB_ENGINE")
    if engine is None:
        engine = applicant_store.get_engine()
        current_app.config["DB_ENGINE"] = engine
    return engine


# ───────────────────────────────────────────────────────────────
# Views
# ───────────────────────────────────────────────────────────────
def _render_closed():
    mailto = None
    if ADMISSIONS_NOTIFY_EMAIL:
        mailto = f"mailto:{ADMISSIONS_NOTIFY_EMAIL}?subject=Notify%20me%20when%20admissions%20open"
    return render_template(
        "admission_closed.html",
        reopen_date=ADMISSIONS_REOPEN_DATE,
        notify_mailto=mailto,
    )


def _render_form(form: ApplicantForm, status: int = 200, alert: str | None = None):
    return render_template(
        "enroll.html",
        alert=alert,
        form=form,
        errors=form.errors,
        courses=COURSE_CATALOG,
        qualifications=QUALIFICATIONS,
        genders=GENDERS,
        slots=SLOTS,
        submitted=request.args.get("submitted") == "1",
    ), status


@register_bp.get("/")
def page():
    if not current_app.config.get("ADMISSIONS_OPEN", ADMISSIONS_OPEN):
        return _render_closed()
    return _render_form(ApplicantForm())


@register_bp.post("/")
def submit():
    if not current_app.config.get("ADMISSIONS_OPEN", ADMISSIONS_OPEN):
        return _render_closed()

    form = ApplicantForm.from_mapping(request.form)
    if form.validate():
        return _render_form(form, 400)

    status, body = register_applicant(_engine(), form.to_payload())
    if status == 201:
        flash(SUCCESS_NOTICE, "success")
        return redirect(url_for("register.page", submitted=1))
    # keep what the applicant typed; a 409 is final, anything else may be resubmitted
    return _render_form(form, status, alert=body.get("message") or FAILURE_NOTICE)


@register_bp.post("/api/students")
def create_student():
    payload = request.get_json(silent=True)
    status, body = register_applicant(_engine(), payload)
    return jsonify(body), status

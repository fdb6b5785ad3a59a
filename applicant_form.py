"""Enrollment form controller.

``ApplicantForm`` holds the field state of one applicant, validates it field by
field, derives the dependent UI state (priority options, slot selectors) and
submits the result as a single JSON POST to the registration endpoint.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, List, Optional

import requests

from course_catalog import COURSE_CATALOG, GENDERS, MAX_COURSES, QUALIFICATIONS, SLOTS
from course_settings import ENROLL_API_TIMEOUT, ENROLL_API_URL

log = logging.getLogger(__name__)

PHONE_RE = re.compile(r"^\+92\d{10}$")
CNIC_RE = re.compile(r"^\d{5}-\d{7}-\d$")
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

SCALAR_FIELDS = (
    "name",
    "fatherName",
    "fatherNumber",
    "cnic",
    "qualification",
    "gender",
    "phone",
    "email",
    "address",
    "district",
    "birthDate",
    "priority1",
    "priority2",
)

SLOT_FIELD_PREFIX = "slot__"

SUCCESS_NOTICE = "Form submitted successfully!"
FAILURE_NOTICE = "Failed to submit form"
NETWORK_FAILURE_NOTICE = "Something went wrong"
INVALID_NOTICE = "Please fix the highlighted fields."

# field -> (min, max, message)
_LENGTHS = {
    "name": (3, 100, "Name is required"),
    "fatherName": (3, 100, "Father/Guardian Name is required"),
    "address": (5, 255, "Address is required"),
    "district": (2, 100, "District is required"),
}


def _s(x: Any) -> str:
    if x is None:
        return ""
    return str(x).strip()


@dataclass
class SubmissionResult:
    """Outcome of ``ApplicantForm.submit`` as shown to the user."""

    ok: bool
    message: str
    status_code: Optional[int] = None
    data: Optional[Dict[str, Any]] = None
    conflict: bool = False

    @property
    def retryable(self) -> bool:
        return not self.ok and not self.conflict


class ApplicantForm:
    def __init__(self, **values: Any) -> None:
        self.values: Dict[str, str] = {field: "" for field in SCALAR_FIELDS}
        self.courses: List[str] = []
        self.slots: Dict[str, str] = {}
        self.errors: Dict[str, str] = {}

        city = values.pop("city", None)
        if city is not None and "district" not in values:
            values["district"] = city
        courses = values.pop("courses", None) or []
        slots = values.pop("slots", None) or {}
        for field, value in values.items():
            self.set(field, value)
        for course in courses:
            course = _s(course)
            if course and course not in self.courses:
                self.courses.append(course)
        # selectors only exist for selected courses
        for course, slot in dict(slots).items():
            if course in self.courses and _s(slot):
                self.slots[course] = _s(slot)

    @classmethod
    def from_mapping(cls, data: Any) -> "ApplicantForm":
        """Build a form from a JSON dict or a ``request.form`` multidict."""
        if hasattr(data, "getlist"):
            values = {k: data.get(k) for k in SCALAR_FIELDS if k in data}
            if "city" in data and "district" not in data:
                values["district"] = data.get("city")
            values["courses"] = [c for c in data.getlist("courses") if c]
            values["slots"] = {
                key[len(SLOT_FIELD_PREFIX):]: data.get(key)
                for key in data.keys()
                if key.startswith(SLOT_FIELD_PREFIX) and data.get(key)
            }
            return cls(**values)

        data = dict(data or {})
        values = {k: data.get(k) for k in SCALAR_FIELDS if k in data}
        if "city" in data and "district" not in data:
            values["district"] = data.get("city")
        courses = data.get("courses") or []
        if isinstance(courses, str):
            courses = [courses]
        values["courses"] = list(courses)
        slots = data.get("slots") or {}
        values["slots"] = dict(slots) if isinstance(slots, dict) else {}
        return cls(**values)

    # ── field state ─────────────────────────────────────────────
    def set(self, field: str, value: Any) -> None:
        if field not in self.values:
            raise KeyError(field)
        self.values[field] = _s(value)

    def __getitem__(self, field: str) -> str:
        return self.values[field]

    def toggle_course(self, course: str) -> bool:
        """Select or deselect ``course``; a third selection is rejected."""
        if course in self.courses:
            self.courses.remove(course)
            self.slots.pop(course, None)
            for field in ("priority1", "priority2"):
                if self.values[field] == course:
                    self.values[field] = ""
            return True
        if course not in COURSE_CATALOG:
            log.debug("Ignoring unknown course %r", course)
            return False
        if len(self.courses) >= MAX_COURSES:
            return False
        self.courses.append(course)
        return True

    def set_slot(self, course: str, slot: Any) -> None:
        if course not in self.courses:
            raise ValueError(f"{course!r} is not a selected course")
        slot = _s(slot)
        if not slot:
            self.slots.pop(course, None)
            return
        if slot not in SLOTS:
            raise ValueError(f"{slot!r} is not a valid slot")
        self.slots[course] = slot

    # ── derived state ───────────────────────────────────────────
    @property
    def can_add_course(self) -> bool:
        return len(self.courses) < MAX_COURSES

    @property
    def priority_visible(self) -> bool:
        return len(self.courses) == MAX_COURSES

    @property
    def priority_options(self) -> List[str]:
        return list(self.courses) if self.priority_visible else []

    @property
    def slot_courses(self) -> List[str]:
        return list(self.courses)

    # ── validation ──────────────────────────────────────────────
    def _check(self, field: str) -> Optional[str]:
        value = self.values.get(field, "")

        if field in _LENGTHS:
            lo, hi, msg = _LENGTHS[field]
            if len(value) < lo:
                return msg
            if len(value) > hi:
                return f"Must be at most {hi} characters"
            return None

        if field == "fatherNumber":
            if not PHONE_RE.match(value):
                return "Father's number must be in +92XXXXXXXXXX format"
        elif field == "phone":
            if not PHONE_RE.match(value):
                return "Phone number must be in +92XXXXXXXXXX format"
        elif field == "cnic":
            if not CNIC_RE.match(value):
                return "CNIC must be in 14242-4466754-9 format"
        elif field == "qualification":
            if value not in QUALIFICATIONS:
                return "Select a valid qualification"
        elif field == "gender":
            if value not in GENDERS:
                return "Select gender"
        elif field == "email":
            if not _EMAIL_RE.match(value) or len(value) > 254:
                return "Invalid email address"
        elif field == "birthDate":
            if not value:
                return "Birth date is required"
            if not _ISO_DATE_RE.match(value):
                return "Enter a valid birth date"
            try:
                born = datetime.strptime(value, "%Y-%m-%d").date()
            except ValueError:
                return "Enter a valid birth date"
            if born > date.today():
                return "Birth date cannot be in the future"
        return None

    def _check_courses(self) -> Dict[str, str]:
        errors: Dict[str, str] = {}
        if not self.courses:
            errors["courses"] = "Select at least one course"
            return errors
        if len(self.courses) > MAX_COURSES:
            errors["courses"] = "Select at most two courses"
            return errors
        if any(c not in COURSE_CATALOG for c in self.courses):
            errors["courses"] = "Select a valid course"
            return errors
        if not self.priority_visible:
            return errors

        p1, p2 = self.values["priority1"], self.values["priority2"]
        if not p1:
            errors["priority1"] = "Select 1st priority"
        elif p1 not in self.courses:
            errors["priority1"] = "Priority must be one of your selected courses"
        if not p2:
            errors["priority2"] = "Select 2nd priority"
        elif p2 not in self.courses:
            errors["priority2"] = "Priority must be one of your selected courses"
        elif p1 and p1 == p2:
            errors["priority2"] = "Priorities must be different courses"
        return errors

    def validate(self) -> Dict[str, str]:
        errors: Dict[str, str] = {}
        for field in SCALAR_FIELDS:
            if field in ("priority1", "priority2"):
                continue
            msg = self._check(field)
            if msg:
                errors[field] = msg
        errors.update(self._check_courses())
        for course, slot in self.slots.items():
            if course not in self.courses or slot not in SLOTS:
                errors["slots"] = "Select Morning or Evening for your selected courses"
                break
        self.errors = errors
        return errors

    @property
    def is_valid(self) -> bool:
        return not self.validate()

    # ── submission ──────────────────────────────────────────────
    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {f: self.values[f] for f in SCALAR_FIELDS}
        payload["courses"] = list(self.courses)
        if not self.priority_visible:
            payload["priority1"] = ""
            payload["priority2"] = ""
        payload["slots"] = {c: s for c, s in self.slots.items() if c in self.courses}
        return payload

    def submit(self, session: Any = None, url: Optional[str] = None) -> SubmissionResult:
        """Validate, then POST the form once. Invalid forms are never sent."""
        if self.validate():
            return SubmissionResult(ok=False, message=INVALID_NOTICE)

        payload = self.to_payload()
        log.debug("Form submitted: %s", payload)
        poster = session if session is not None else requests
        try:
            res = poster.post(
                url or ENROLL_API_URL,
                json=payload,
                headers={"Content-Type": "application/json"},
                timeout=ENROLL_API_TIMEOUT,
            )
        except requests.exceptions.RequestException:
            log.exception("Enrollment submission failed")
            return SubmissionResult(ok=False, message=NETWORK_FAILURE_NOTICE, status_code=0)

        try:
            body = res.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            body = {}

        if 200 <= res.status_code < 300:
            return SubmissionResult(
                ok=True,
                message=SUCCESS_NOTICE,
                status_code=res.status_code,
                data=body.get("data"),
            )
        return SubmissionResult(
            ok=False,
            message=body.get("message") or body.get("error") or FAILURE_NOTICE,
            status_code=res.status_code,
            conflict=res.status_code == 409,
        )

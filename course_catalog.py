"""Shared enrollment catalog.

This module centralizes the fixed choices offered on the enrollment form so the
form controller, the page template and the storage layer stay in sync.
"""
from __future__ import annotations

COURSE_CATALOG = (
    "Digital Forensic & Cyber Security",
    "Digital Marketing & SEO",
    "Graphic Designing",
    "Mobile Development",
    "Web App Development",
)

QUALIFICATIONS = ("MS", "BS", "FA", "FSC", "Matric")
GENDERS = ("Male", "Female")
SLOTS = ("Morning", "Evening")

MAX_COURSES = 2

__all__ = [
    "COURSE_CATALOG",
    "QUALIFICATIONS",
    "GENDERS",
    "SLOTS",
    "MAX_COURSES",
]

#!/usr/bin/env python3
"""Validate an applicant JSON file and submit it to the enrollment endpoint."""

from __future__ import annotations

import argparse
import json
import sys
from typing import List, Optional

from applicant_form import ApplicantForm
from course_settings import ENROLL_API_URL


def _prepare_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Submit one enrollment application from a JSON file."
    )
    parser.add_argument(
        "path",
        help="Path to the applicant JSON file, or '-' to read from stdin.",
    )
    parser.add_argument(
        "--url",
        default=ENROLL_API_URL,
        help=f"Create endpoint to POST to (default: {ENROLL_API_URL}).",
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Only validate the file; do not submit.",
    )
    return parser.parse_args(argv)


def _load(path: str) -> dict:
    if path == "-":
        return json.load(sys.stdin)
    with open(path, encoding="utf-8") as fh:
        return json.load(fh)


def main(argv: Optional[List[str]] = None) -> int:
    args = _prepare_args(argv)
    try:
        data = _load(args.path)
    except (OSError, ValueError) as exc:
        print(f"Could not read {args.path!r}: {exc}", file=sys.stderr)
        return 2
    if not isinstance(data, dict):
        print("Applicant file must contain a JSON object.", file=sys.stderr)
        return 2

    form = ApplicantForm.from_mapping(data)
    errors = form.validate()
    if errors:
        for field, message in errors.items():
            print(f"{field}: {message}", file=sys.stderr)
        return 2
    if args.check:
        print("Applicant is valid.")
        return 0

    result = form.submit(url=args.url)
    if result.ok:
        record_id = (result.data or {}).get("id")
        print(f"{result.message} (id={record_id})")
        return 0
    print(result.message, file=sys.stderr)
    if result.conflict:
        print("This email is already registered; not retrying.", file=sys.stderr)
    return 1


if __name__ == "__main__":
    raise SystemExit(main())

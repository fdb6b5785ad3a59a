import unittest
from unittest.mock import patch

from flask import Flask
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.pool import StaticPool

import applicant_store
import registration


def valid_payload(**overrides):
    payload = {
        "name": "Ali Khan",
        "fatherName": "Imran Khan",
        "fatherNumber": "+923001234567",
        "cnic": "14242-4466754-9",
        "qualification": "BS",
        "gender": "Male",
        "phone": "+923331234567",
        "email": "ali@x.com",
        "address": "House 12, Street 4, Hayatabad",
        "district": "Peshawar",
        "birthDate": "2001-04-12",
        "courses": ["Web App Development"],
        "priority1": "",
        "priority2": "",
        "slots": {"Web App Development": "Evening"},
    }
    payload.update(overrides)
    return payload


def make_app(**config):
    app = Flask(__name__)
    app.secret_key = "test-secret"
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        future=True,
    )
    applicant_store.metadata.create_all(engine)
    app.config.update(DB_ENGINE=engine, ADMISSIONS_OPEN=True)
    app.config.update(config)
    app.register_blueprint(registration.register_bp)
    return app, engine


class CreateStudentEndpointTests(unittest.TestCase):
    def setUp(self):
        self.app, self.engine = make_app()
        self.client = self.app.test_client()

    def _count(self, email=None):
        with self.engine.connect() as conn:
            return applicant_store.count_applicants(conn, email)

    def test_valid_payload_is_created_and_echoed(self):
        payload = valid_payload(
            courses=["Web App Development", "Graphic Designing"],
            priority1="Graphic Designing",
            priority2="Web App Development",
        )
        resp = self.client.post("/api/students", json=payload)
        self.assertEqual(resp.status_code, 201)
        body = resp.get_json()
        self.assertTrue(body["success"])
        data = body["data"]
        for key, value in payload.items():
            self.assertEqual(data[key], value, key)
        self.assertIsNotNone(data["id"])
        self.assertTrue(data["createdAt"])
        self.assertTrue(data["updatedAt"])
        self.assertEqual(self._count(), 1)

    def test_duplicate_email_returns_conflict_without_insert(self):
        first = self.client.post("/api/students", json=valid_payload())
        self.assertEqual(first.status_code, 201)

        second = self.client.post("/api/students", json=valid_payload(name="Someone Else"))
        self.assertEqual(second.status_code, 409)
        self.assertEqual(
            second.get_json(),
            {"success": False, "message": "Student is already registered"},
        )
        self.assertEqual(self._count("ali@x.com"), 1)

    def test_ali_khan_scenario(self):
        resp = self.client.post("/api/students", json=valid_payload())
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(self._count(), 1)

        again = self.client.post("/api/students", json=valid_payload())
        self.assertEqual(again.status_code, 409)
        self.assertEqual(self._count(), 1)

    def test_endpoint_does_not_revalidate_formats(self):
        resp = self.client.post("/api/students", json=valid_payload(phone="0300-1234567", cnic="123"))
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(resp.get_json()["data"]["phone"], "0300-1234567")

    def test_unknown_keys_are_dropped(self):
        resp = self.client.post("/api/students", json=valid_payload(isAdmin=True))
        self.assertEqual(resp.status_code, 201)
        self.assertNotIn("isAdmin", resp.get_json()["data"])

    def test_non_object_payload_is_server_error(self):
        resp = self.client.post("/api/students", data="[1, 2]", content_type="application/json")
        self.assertEqual(resp.status_code, 500)
        self.assertEqual(resp.get_json(), {"success": False, "error": "Server error"})

    def test_unparseable_body_is_server_error(self):
        resp = self.client.post("/api/students", data="{not json", content_type="application/json")
        self.assertEqual(resp.status_code, 500)
        self.assertFalse(resp.get_json()["success"])

    def test_missing_required_field_is_server_error(self):
        payload = valid_payload()
        del payload["name"]
        resp = self.client.post("/api/students", json=payload)
        self.assertEqual(resp.status_code, 500)
        self.assertEqual(resp.get_json()["error"], "Server error")
        self.assertEqual(self._count(), 0)

    def test_storage_failure_is_server_error(self):
        boom = OperationalError("SELECT", {}, Exception("connection refused"))
        with patch("registration.applicant_store.find_by_email", side_effect=boom):
            resp = self.client.post("/api/students", json=valid_payload())
        self.assertEqual(resp.status_code, 500)
        self.assertEqual(resp.get_json(), {"success": False, "error": "Server error"})

    def test_blank_email_is_rejected_every_time(self):
        for _ in range(2):
            resp = self.client.post("/api/students", json=valid_payload(email=""))
            self.assertEqual(resp.status_code, 500)
            self.assertEqual(resp.get_json(), {"success": False, "error": "Server error"})
        self.assertEqual(self._count(), 0)

    def test_blank_required_fields_are_server_error(self):
        resp = self.client.post("/api/students", json=valid_payload(name="", cnic=""))
        self.assertEqual(resp.status_code, 500)
        self.assertEqual(self._count(), 0)

    def test_boolean_scalars_are_cast_like_strings(self):
        resp = self.client.post("/api/students", json=valid_payload(address=True))
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(resp.get_json()["data"]["address"], "true")

    def test_missing_engine_is_server_error(self):
        status, body = registration.register_applicant(None, valid_payload())
        self.assertEqual(status, 500)
        self.assertFalse(body["success"])


class RegistrationEmailTests(unittest.TestCase):
    def setUp(self):
        self.app, self.engine = make_app()
        self.client = self.app.test_client()

    def test_notification_sent_after_commit(self):
        with patch.object(registration, "REG_NOTIFY_ENABLED", True), \
                patch("registration._send_email_smtp", return_value=True) as send:
            resp = self.client.post("/api/students", json=valid_payload())
        self.assertEqual(resp.status_code, 201)
        send.assert_called_once()
        subject, text_body = send.call_args.args
        self.assertIn("Ali Khan", subject)
        self.assertIn("Web App Development: Evening", text_body)

    def test_notification_failure_is_not_fatal(self):
        with patch.object(registration, "REG_NOTIFY_ENABLED", True), \
                patch("registration._send_email_smtp", side_effect=RuntimeError("smtp down")):
            resp = self.client.post("/api/students", json=valid_payload())
        self.assertEqual(resp.status_code, 201)

    def test_no_notification_for_conflict(self):
        self.client.post("/api/students", json=valid_payload())
        with patch.object(registration, "REG_NOTIFY_ENABLED", True), \
                patch("registration._send_email_smtp", return_value=True) as send:
            resp = self.client.post("/api/students", json=valid_payload())
        self.assertEqual(resp.status_code, 409)
        send.assert_not_called()


def form_data(**overrides):
    payload = valid_payload(**overrides)
    data = {k: v for k, v in payload.items() if k not in ("courses", "slots")}
    data["courses"] = payload["courses"]
    for course, slot in payload["slots"].items():
        data[f"slot__{course}"] = slot
    return data


class EnrollmentPageTests(unittest.TestCase):
    def setUp(self):
        self.app, self.engine = make_app()
        self.client = self.app.test_client()

    def test_page_renders_catalog(self):
        resp = self.client.get("/")
        self.assertEqual(resp.status_code, 200)
        html = resp.get_data(as_text=True)
        self.assertIn("Student Enrollment Form", html)
        self.assertIn("Digital Marketing &amp; SEO", html)

    def test_invalid_post_shows_inline_errors(self):
        resp = self.client.post("/", data=form_data(phone="03001234567"))
        self.assertEqual(resp.status_code, 400)
        self.assertIn("Phone number must be in +92XXXXXXXXXX format", resp.get_data(as_text=True))
        with self.engine.connect() as conn:
            self.assertEqual(applicant_store.count_applicants(conn), 0)

    def test_two_courses_without_priorities_is_blocked(self):
        data = form_data(courses=["Web App Development", "Mobile Development"], slots={})
        resp = self.client.post("/", data=data)
        self.assertEqual(resp.status_code, 400)
        html = resp.get_data(as_text=True)
        self.assertIn("Select 1st priority", html)
        self.assertIn("Select 2nd priority", html)

    def test_valid_post_redirects_with_success_notice(self):
        resp = self.client.post("/", data=form_data(), follow_redirects=True)
        self.assertEqual(resp.status_code, 200)
        self.assertIn("Form submitted successfully!", resp.get_data(as_text=True))
        with self.engine.connect() as conn:
            row = applicant_store.find_by_email(conn, "ali@x.com")
        self.assertEqual(row["slots"], {"Web App Development": "Evening"})
        self.assertEqual(row["courses"], ["Web App Development"])

    def test_duplicate_post_keeps_form_and_shows_message(self):
        self.client.post("/", data=form_data())
        resp = self.client.post("/", data=form_data())
        self.assertEqual(resp.status_code, 409)
        html = resp.get_data(as_text=True)
        self.assertIn("Student is already registered", html)
        self.assertIn('value="Ali Khan"', html)

    def test_closed_admissions_page(self):
        app, _ = make_app(ADMISSIONS_OPEN=False)
        client = app.test_client()
        with patch.object(registration, "ADMISSIONS_REOPEN_DATE", "2026-01-15"), \
                patch.object(registration, "ADMISSIONS_NOTIFY_EMAIL", "admissions@example.org"):
            resp = client.get("/")
        html = resp.get_data(as_text=True)
        self.assertEqual(resp.status_code, 200)
        self.assertIn("Admissions Closed", html)
        self.assertIn("2026-01-15", html)
        self.assertIn("mailto:admissions@example.org", html)

    def test_closed_admissions_ignores_form_posts(self):
        app, engine = make_app(ADMISSIONS_OPEN=False)
        resp = app.test_client().post("/", data=form_data())
        self.assertIn("Admissions Closed", resp.get_data(as_text=True))
        with engine.connect() as conn:
            self.assertEqual(applicant_store.count_applicants(conn), 0)


if __name__ == "__main__":
    unittest.main()

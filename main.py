import os, logging
from flask import Flask, Response
from sqlalchemy import text
from werkzeug.middleware.proxy_fix import ProxyFix

import applicant_store
from course_settings import ADMISSIONS_OPEN

# ---------------- App & config ----------------
app = Flask(__name__)
app.secret_key = os.getenv("SECRET_KEY", "dev-secret-change-me")
app.config.update(
    SESSION_COOKIE_SECURE=os.getenv("SESSION_COOKIE_SECURE", "true").strip().lower() in {"1", "true", "yes", "y", "on"},
    SESSION_COOKIE_HTTPONLY=True,
    SESSION_COOKIE_SAMESITE="Lax",
    ADMISSIONS_OPEN=ADMISSIONS_OPEN,
)

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(level=LOG_LEVEL)
log = logging.getLogger("enrollment")

# -------------- DB connection --------------
ENGINE = applicant_store.get_engine()
app.config["DB_ENGINE"] = ENGINE

# -------------- Routes --------------
@app.get("/robots.txt")
def robots_txt() -> Response:
    return Response("User-agent: *\nDisallow:\n", mimetype="text/plain")

@app.get("/healthz")
def healthz():
    try:
        with ENGINE.begin() as c:
            c.execute(text("SELECT 1"))
        return "ok", 200
    except Exception:
        log.exception("Health check failed")
        return "db error", 500

# ---- Blueprints ----
from registration import register_bp
app.register_blueprint(register_bp)

# Trust the hosting proxy so scheme/host are correct
app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)


# ---------------------------------------------------------------
if __name__ == "__main__":
    app.run(host="0.0.0.0", port=int(os.getenv("PORT", 8080)), debug=False)

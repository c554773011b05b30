import os
import tempfile

# The app reads its configuration at import time.
_tmp = tempfile.mkdtemp(prefix="light-ledger-")
os.environ["DATABASE_URL"] = "sqlite:///" + os.path.join(_tmp, "test.db")
os.environ["RATELIMIT_ENABLED"] = "0"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["LEDGER_TIMEZONE"] = "UTC"
os.environ.pop("JWT_AUDIENCE", None)
os.environ.pop("RENDER", None)

import jwt
import pytest

from app import app as flask_app
from achievements import seed_achievements
from extensions import db


@pytest.fixture
def app():
    flask_app.config["TESTING"] = True
    ctx = flask_app.app_context()
    ctx.push()
    db.session.remove()
    db.drop_all()
    db.create_all()
    seed_achievements()
    try:
        yield flask_app
    finally:
        db.session.remove()
        ctx.pop()


@pytest.fixture
def client(app):
    return app.test_client()


def make_token(user_id: str) -> str:
    return jwt.encode({"sub": user_id}, "test-secret", algorithm="HS256")


@pytest.fixture
def auth_headers():
    def _headers(user_id: str = "user-1") -> dict:
        return {"Authorization": f"Bearer {make_token(user_id)}"}
    return _headers

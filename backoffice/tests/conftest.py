import pytest

from backoffice import app as flask_app
from backoffice.services.segment_store import SegmentRepository
from backoffice.services.user_directory import UserDirectory
from segmentkit.models import UserRecord

DIRECTORY = [
    {
        "id": "user-1",
        "roles": ["admin"],
        "status": "active",
        "location": "New York",
        "signup_source": "google",
        "email": "alice@example.com",
        "first_name": "Alice",
        "last_name": "Nguyen",
        "company": "Acme Corp",
        "spend": 150,
    },
    {
        "id": "user-2",
        "roles": ["moderator"],
        "status": "inactive",
        "location": "London",
        "signup_source": "email",
        "email": "bob@example.com",
        "first_name": "Bob",
        "last_name": "Smith",
        "spend": 200,
    },
    {
        "id": "user-3",
        "roles": ["user"],
        "status": "active",
        "location": "Tokyo",
        "signup_source": "github",
        "email": "carol@globex.io",
        "first_name": "Carol",
        "last_name": "Tanaka",
        "company": "Globex",
        "spend": 50,
    },
]


@pytest.fixture(autouse=True)
def configure_test_env(tmp_path, monkeypatch):
    flask_app.app.config.update(TESTING=True, SESSION_COOKIE_SECURE=False)
    talisman = flask_app.app.extensions.get("talisman")
    if talisman:
        talisman.force_https = False
    segments = SegmentRepository(tmp_path / "segments.json")
    users = UserDirectory(tmp_path / "users.json")
    users.replace_all(UserRecord.model_validate(row) for row in DIRECTORY)
    monkeypatch.setattr(flask_app, "SEGMENTS", segments)
    monkeypatch.setattr(flask_app, "USERS", users)
    yield tmp_path


@pytest.fixture
def admin_client():
    client = flask_app.app.test_client()
    with client.session_transaction() as session:
        session["user"] = {"email": "ops@example.com"}
        session["is_admin"] = True
    return client

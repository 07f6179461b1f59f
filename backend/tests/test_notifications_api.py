import os
import sys
from datetime import datetime, timedelta, timezone

from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "0123456789abcdef0123456789abcdef0123456789abcdef0123456789abcdef")

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from app.api import deps
from app.api.assignments import router as assignments_router
from app.api.auth import router as auth_router
from app.api.notifications import router as notifications_router
from app.config import get_settings
from app.database import Base
from app.main import build_alert_scheduler


def _build_test_client(with_scheduler=True):
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    app = FastAPI()
    app.include_router(auth_router, prefix="/api")
    app.include_router(assignments_router, prefix="/api")
    app.include_router(notifications_router, prefix="/api")

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[deps.get_db] = override_get_db
    if with_scheduler:
        app.state.alert_scheduler = build_alert_scheduler(get_settings(), TestingSessionLocal)
    return TestClient(app)


def _auth_headers(client: TestClient, username: str) -> dict:
    client.post(
        "/api/auth/register",
        json={"username": username, "email": f"{username}@example.com", "password": "TestPass123!"},
    )
    login_response = client.post(
        "/api/auth/login",
        json={"username": username, "password": "TestPass123!"},
    )
    assert login_response.status_code == 200
    return {"Authorization": f"Bearer {login_response.json()['access_token']}"}


def _started_assignment(client: TestClient, headers: dict, subject="Biology") -> str:
    now = datetime.now(timezone.utc)
    response = client.post(
        "/api/assignments",
        json={
            "subject": subject,
            "task": "Cell diagram",
            "deadlines": {
                "green": (now - timedelta(seconds=30)).isoformat(),
                "yellow": (now + timedelta(hours=1)).isoformat(),
                "red": (now + timedelta(hours=2)).isoformat(),
            },
        },
        headers=headers,
    )
    assert response.status_code == 201
    return response.json()["id"]


def test_check_fires_green_entry_once_and_fills_inbox():
    client = _build_test_client()
    headers = _auth_headers(client, "student")
    assignment_id = _started_assignment(client, headers)

    first = client.post("/api/notifications/check", headers=headers)
    second = client.post("/api/notifications/check", headers=headers)
    inbox = client.get("/api/notifications", headers=headers).json()

    assert first.json() == {"dispatched": 1}
    assert second.json() == {"dispatched": 0}
    assert len(inbox) == 1
    assert inbox[0]["assignment_id"] == assignment_id
    assert inbox[0]["phase"] == "green"
    assert inbox[0]["urgency"] == "informational"
    assert inbox[0]["title"] == "Start Working: Biology"
    assert inbox[0]["read"] is False
    assert client.get(f"/api/assignments/{assignment_id}", headers=headers).json()["notified"] is True


def test_clear_lets_phase_alert_again():
    client = _build_test_client()
    headers = _auth_headers(client, "clearer")
    _started_assignment(client, headers)
    client.post("/api/notifications/check", headers=headers)

    cleared = client.delete("/api/notifications", headers=headers)

    assert cleared.json() == {"deleted": 1, "reset": 1}
    assert client.get("/api/notifications", headers=headers).json() == []
    assert client.post("/api/notifications/check", headers=headers).json() == {"dispatched": 1}


def test_clear_does_not_reset_other_users():
    client = _build_test_client()
    mine = _auth_headers(client, "mine")
    theirs = _auth_headers(client, "theirs")
    _started_assignment(client, mine)
    _started_assignment(client, theirs)
    client.post("/api/notifications/check", headers=mine)

    assert client.delete("/api/notifications", headers=mine).json() == {"deleted": 1, "reset": 1}
    assert client.post("/api/notifications/check", headers=theirs).json() == {"dispatched": 0}
    assert len(client.get("/api/notifications", headers=theirs).json()) == 1


def test_mark_read_and_read_all():
    client = _build_test_client()
    headers = _auth_headers(client, "reader")
    other = _auth_headers(client, "other")
    _started_assignment(client, headers, subject="One")
    _started_assignment(client, headers, subject="Two")
    client.post("/api/notifications/check", headers=headers)
    first_id = client.get("/api/notifications", headers=headers).json()[0]["id"]

    assert client.post(f"/api/notifications/{first_id}/read", headers=other).status_code == 404
    assert client.post(f"/api/notifications/{first_id}/read", headers=headers).json() == {"success": True}
    assert len(client.get("/api/notifications", params={"unread_only": True}, headers=headers).json()) == 1
    assert client.post("/api/notifications/read-all", headers=headers).json() == {"updated": 1}
    assert client.get("/api/notifications", params={"unread_only": True}, headers=headers).json() == []


def test_completed_assignment_is_not_alerted():
    client = _build_test_client()
    headers = _auth_headers(client, "finisher")
    assignment_id = _started_assignment(client, headers)
    client.patch(f"/api/assignments/{assignment_id}", json={"status": "completed"}, headers=headers)

    assert client.post("/api/notifications/check", headers=headers).json() == {"dispatched": 0}


def test_check_without_scheduler_is_unavailable():
    client = _build_test_client(with_scheduler=False)
    headers = _auth_headers(client, "nobody")

    assert client.post("/api/notifications/check", headers=headers).status_code == 503

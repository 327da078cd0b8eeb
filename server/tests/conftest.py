import json
import os
import tempfile

# Keep the module-level app's storage and downloads out of the working tree
_scratch = tempfile.mkdtemp(prefix="examportal-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_scratch}/default.db")
os.environ.setdefault("DOWNLOAD_DIR", os.path.join(_scratch, "downloads"))

import httpx
import pytest
from fastapi.testclient import TestClient

from examportal.config import Settings
from examportal.database import init_db, make_engine, make_session_factory
from examportal.services.backend_client import BackendClient
from examportal.services.forms import NoticeBoard
from examportal.services.session import SessionContext
from examportal.storage import KeyValueStorage

BACKEND_URL = "http://backend.test"


class FakeBackend:
    """Stands in for the platform REST API behind an httpx.MockTransport."""

    def __init__(self):
        self.routes = {}
        self.requests = []

    def on(self, method, path, status=200, json=None, content=None, headers=None, handler=None):
        if handler is None:
            def handler(request):
                return httpx.Response(status, json=json, content=content, headers=headers)
        self.routes[(method, path)] = handler

    def calls(self, method, path):
        return [r for r in self.requests if r.method == method and r.url.path == path]

    def json_body(self, method, path, index=-1):
        return json.loads(self.calls(method, path)[index].content)

    def __call__(self, request):
        self.requests.append(request)
        handler = self.routes.get((request.method, request.url.path))
        if handler is None:
            return httpx.Response(404, json={"message": f"No route {request.url.path}"})
        return handler(request)

    @property
    def transport(self):
        return httpx.MockTransport(self)


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite:///{tmp_path}/storage.db",
        backend_url=BACKEND_URL,
        download_dir=str(tmp_path / "downloads"),
        poll_interval_seconds=0.05,
    )


@pytest.fixture
def storage(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path}/kv.db")
    init_db(bind=engine)
    return KeyValueStorage(make_session_factory(engine))


@pytest.fixture
def session(storage):
    return SessionContext(storage)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def notices(clock):
    return NoticeBoard(duration=3.0, clock=clock)


@pytest.fixture
def client(backend, session):
    return BackendClient(BACKEND_URL, token_provider=lambda: session.token, transport=backend.transport)


@pytest.fixture
def app_client(settings, backend):
    from examportal.main import create_app

    with TestClient(create_app(settings, transport=backend.transport)) as test_client:
        yield test_client


@pytest.fixture
def login(app_client, backend):
    """Log the app in as `role` through the real login route."""

    def do_login(role, user_id="u-1", name="Test User", exam_name=None):
        backend.on("POST", "/api/login", json={
            "token": f"{role}-token",
            "userType": role,
            "name": name,
            "userId": user_id,
            "olympiadExamName": exam_name,
        })
        response = app_client.post(
            "/api/session/login",
            json={"email": f"{role}@example.com", "password": "password123", "userType": role},
        )
        assert response.status_code == 200, response.text
        return response.json()

    return do_login


def exam_json(exam_id, title, subject="Mathematics", difficulty="Easy", status="active", **extra):
    data = {
        "id": exam_id,
        "title": title,
        "subject": subject,
        "difficulty": difficulty,
        "status": status,
    }
    data.update(extra)
    return data


def task_json(task_id, title="Call school", assigned_to="s-1", status="pending", **extra):
    data = {
        "_id": task_id,
        "title": title,
        "assignedBy": "Admin",
        "assignedTo": assigned_to,
        "dueDate": "2026-11-01",
        "priority": "medium",
        "status": status,
    }
    data.update(extra)
    return data

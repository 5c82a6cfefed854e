import os

# Per-IP limits would leak across tests sharing one client address
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

from datetime import datetime, timezone

import fakeredis
import fakeredis.aioredis
import pytest
from fastapi.testclient import TestClient
from cookshare.main import app
from cookshare.db import Base, init_engine, session_factory
from cookshare.infra import redis_client
from cookshare.models import Collaborator, User
from cookshare.timers import AlertSettings, NotificationPermission, TimerRegistry, get_timer_registry

# --- Test Database Setup ---

SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

# Rebinds cookshare.db before any request, so get_db needs no override
engine = init_engine(SQLALCHEMY_DATABASE_URL)
TestingSessionLocal = session_factory()


@pytest.fixture(autouse=True)
def setup_database():
    """Create tables before each test, drop after."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def mock_redis():
    server = fakeredis.FakeServer()
    # Create fake clients sharing the same server
    async_redis = fakeredis.aioredis.FakeRedis(server=server, decode_responses=True)
    sync_redis = fakeredis.FakeRedis(server=server, decode_responses=True)

    # Force the clients into the infra module
    redis_client._redis_async = async_redis
    redis_client._redis_sync = sync_redis

    yield sync_redis

    redis_client._redis_async = None
    redis_client._redis_sync = None


# --- Timer doubles ---

class ManualHandle:
    def __init__(self, when: float, seq: int, callback):
        self.when = when
        self.seq = seq
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class ManualScheduler:
    """Deterministic stand-in for the event loop clock."""

    def __init__(self):
        self.now = 0.0
        self._seq = 0
        self._handles: list[ManualHandle] = []

    def call_later(self, delay, callback):
        self._seq += 1
        handle = ManualHandle(self.now + delay, self._seq, callback)
        self._handles.append(handle)
        return handle

    @property
    def pending(self) -> list[ManualHandle]:
        return [h for h in self._handles if not h.cancelled]

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = [h for h in self.pending if h.when <= target + 1e-9]
            if not due:
                break
            handle = min(due, key=lambda h: (h.when, h.seq))
            self._handles.remove(handle)
            self.now = handle.when
            handle.callback()
        self.now = target
        self._handles = self.pending


class RecordingDispatcher:
    """AlertDispatcher that records every call; `failing` channels raise."""

    def __init__(self, session_key="test", permission=NotificationPermission.GRANTED, failing=()):
        self.session_key = session_key
        self.permission = permission
        self.failing = set(failing)
        self.calls: list[tuple] = []
        self.answer_on_request = None

    def _record(self, name, *args):
        if name in self.failing:
            raise RuntimeError(f"{name} unavailable")
        self.calls.append((name, *args))

    def names(self) -> list[str]:
        return [c[0] for c in self.calls]

    def count(self, name) -> int:
        return self.names().count(name)

    def notification_permission(self):
        return self.permission

    def request_notification_permission(self):
        self._record("request_permission")
        if self.answer_on_request is not None:
            self.permission = self.answer_on_request
        return self.permission

    def notify(self, payload):
        self._record("notify", payload)

    def play_tone(self):
        self._record("tone")

    def synthesize_beep(self):
        self._record("beep")

    def flash_title(self, text):
        self._record("flash_title", text)

    def restore_title(self):
        self._record("restore_title")

    def show_visual(self, state):
        self._record("visual", state)


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def dispatchers():
    """Session key -> the RecordingDispatcher built for its latest timer."""
    return {}


@pytest.fixture
def registry(scheduler, dispatchers):
    def factory(key, permission):
        d = RecordingDispatcher(key, permission)
        dispatchers[key] = d
        return d

    reg = TimerRegistry(scheduler=scheduler, dispatcher_factory=factory, alert_defaults=AlertSettings())
    yield reg
    reg.shutdown()


# --- App client ---

@pytest.fixture
def client(registry):
    """Test client with the timer registry override."""
    app.dependency_overrides[get_timer_registry] = lambda: registry
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def db_session():
    """Direct database session for setup."""
    session = TestingSessionLocal()
    yield session
    session.close()


def _make_user(db, user_id, email, first_name):
    user = User(id=user_id, email=email, first_name=first_name)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def owner(db_session):
    return _make_user(db_session, "user-owner", "owner@example.com", "Olive")


@pytest.fixture
def editor(db_session):
    return _make_user(db_session, "user-editor", "editor@example.com", "Eddie")


@pytest.fixture
def viewer(db_session):
    return _make_user(db_session, "user-viewer", "viewer@example.com", "Vera")


@pytest.fixture
def stranger(db_session):
    return _make_user(db_session, "user-stranger", "stranger@example.com", "Sam")


def auth(user) -> dict:
    return {"X-User-Id": user.id}


@pytest.fixture
def recipe_payload():
    return {
        "title": "Pancakes",
        "description": "Fluffy weekend pancakes",
        "servings": 4,
        "prep_time": 10,
        "cook_time": 15,
        "tags": ["Breakfast", "sweet", "breakfast"],
        "ingredients": [
            {"name": "Flour", "quantity": "2", "unit": "cups"},
            {"name": "Milk", "quantity": "1.5", "unit": "cups"},
            {"name": "Salt", "quantity": "0.25", "unit": "tsp"},
        ],
        "instructions": [
            {"step_number": 1, "instruction": "Whisk the dry ingredients."},
            {"step_number": 2, "instruction": "Rest the batter.", "timer_minutes": 5},
        ],
    }


@pytest.fixture
def recipe(client, owner, recipe_payload):
    """Private recipe owned by `owner`, created through the API."""
    resp = client.post("/api/recipes", json=recipe_payload, headers=auth(owner))
    assert resp.status_code == 201, resp.text
    return resp.json()


@pytest.fixture
def share(db_session):
    """Give a user an accepted role on a recipe."""
    def _share(recipe_id, user, role):
        db_session.add(Collaborator(
            recipe_id=recipe_id,
            user_id=user.id,
            role=role,
            accepted_at=datetime.now(timezone.utc),
        ))
        db_session.commit()
    return _share

import json
import threading

from fastapi.testclient import TestClient

from conftest import RecordingDispatcher, auth
from cookshare.main import app
from cookshare.realtime.timer_bus import channel_for_session
from cookshare.timers import AlertSettings, AsyncioScheduler, TimerRegistry, VisualState, get_timer_registry


def timer_url(recipe, suffix=""):
    return f"/api/recipes/{recipe['id']}/timer{suffix}"


def start(client, recipe, user, **body):
    return client.post(timer_url(recipe), json={"step_number": 2, **body}, headers=auth(user))


def test_start_timer_uses_step_minutes(client, recipe, owner):
    resp = start(client, recipe, owner)
    assert resp.status_code == 201, resp.text
    data = resp.json()
    assert data["step_number"] == 2
    assert data["description"] == "Rest the batter."
    assert data["total_seconds"] == 300
    assert data["remaining_seconds"] == 300
    assert data["phase"] == "running"
    assert data["emphasis"] == "normal"
    assert data["display"] == "05:00"


def test_start_timer_with_override(client, recipe, owner):
    resp = start(client, recipe, owner, minutes=0.5, description="Quick rest")
    assert resp.json()["total_seconds"] == 30
    assert resp.json()["description"] == "Quick rest"
    assert resp.json()["emphasis"] == "warning"


def test_start_timer_step_without_timer(client, recipe, owner):
    resp = client.post(timer_url(recipe), json={"step_number": 1}, headers=auth(owner))
    assert resp.status_code == 400


def test_start_timer_unknown_step(client, recipe, owner):
    resp = client.post(timer_url(recipe), json={"step_number": 9}, headers=auth(owner))
    assert resp.status_code == 404


def test_start_timer_requires_read_access(client, recipe, stranger):
    assert start(client, recipe, stranger).status_code == 403
    assert client.post(timer_url(recipe), json={"step_number": 2}).status_code == 401


def test_second_timer_conflicts(client, recipe, owner):
    start(client, recipe, owner)
    resp = start(client, recipe, owner, minutes=1)
    assert resp.status_code == 409
    assert resp.json()["detail"].startswith("Timer already active")


def test_timers_are_per_user(client, recipe, owner, viewer, share):
    share(recipe["id"], viewer, "viewer")
    assert start(client, recipe, owner).status_code == 201
    assert start(client, recipe, viewer).status_code == 201
    assert client.get(timer_url(recipe), headers=auth(viewer)).json()["phase"] == "running"


def test_get_timer(client, recipe, owner, scheduler):
    assert client.get(timer_url(recipe), headers=auth(owner)).json() is None
    start(client, recipe, owner)
    scheduler.advance(65)
    data = client.get(timer_url(recipe), headers=auth(owner)).json()
    assert data["remaining_seconds"] == 235
    assert data["display"] == "03:55"
    assert abs(data["progress"] - 65 / 300) < 1e-9


def test_pause_and_resume(client, recipe, owner, scheduler):
    start(client, recipe, owner)
    scheduler.advance(10)

    resp = client.post(timer_url(recipe, "/pause"), headers=auth(owner))
    assert resp.status_code == 200
    assert resp.json()["phase"] == "paused"

    scheduler.advance(100)
    assert client.get(timer_url(recipe), headers=auth(owner)).json()["remaining_seconds"] == 290
    assert client.post(timer_url(recipe, "/pause"), headers=auth(owner)).status_code == 409

    resp = client.post(timer_url(recipe, "/resume"), headers=auth(owner))
    assert resp.status_code == 200
    assert resp.json()["phase"] == "running"
    assert client.post(timer_url(recipe, "/resume"), headers=auth(owner)).status_code == 409

    scheduler.advance(5)
    assert client.get(timer_url(recipe), headers=auth(owner)).json()["remaining_seconds"] == 285


def test_actions_without_timer(client, recipe, owner):
    for suffix in ("/pause", "/resume", "/stop", "/acknowledge"):
        assert client.post(timer_url(recipe, suffix), headers=auth(owner)).status_code == 404


def test_stop_discards(client, recipe, owner, scheduler):
    start(client, recipe, owner)
    assert client.post(timer_url(recipe, "/stop"), headers=auth(owner)).status_code == 204
    assert client.get(timer_url(recipe), headers=auth(owner)).json() is None
    assert scheduler.pending == []
    assert start(client, recipe, owner).status_code == 201


def test_completion_fires_alerts_and_blocks_until_acknowledged(client, recipe, owner, scheduler, dispatchers, registry):
    key = registry.session_key(owner.id, recipe["id"])
    client.patch(timer_url(recipe, "/alerts"), json={"notification_permission": "granted"}, headers=auth(owner))
    start(client, recipe, owner, minutes=0.1)
    scheduler.advance(6)

    data = client.get(timer_url(recipe), headers=auth(owner)).json()
    assert data["phase"] == "completed"
    assert data["remaining_seconds"] == 0

    d = dispatchers[key]
    assert d.count("notify") == 1
    assert d.count("tone") == 1
    assert ("visual", VisualState.FLASH_ON) in d.calls

    assert client.post(timer_url(recipe, "/pause"), headers=auth(owner)).status_code == 409
    assert start(client, recipe, owner).status_code == 409

    assert client.post(timer_url(recipe, "/acknowledge"), headers=auth(owner)).status_code == 204
    tones = d.count("tone")
    scheduler.advance(30)
    assert d.count("tone") == tones
    assert client.get(timer_url(recipe), headers=auth(owner)).json() is None


def test_acknowledge_running_timer_conflicts(client, recipe, owner):
    start(client, recipe, owner)
    assert client.post(timer_url(recipe, "/acknowledge"), headers=auth(owner)).status_code == 409


def test_alert_preferences(client, recipe, owner, scheduler, dispatchers, registry):
    resp = client.get(timer_url(recipe, "/alerts"), headers=auth(owner))
    assert resp.json() == {"sound_enabled": True, "notification_permission": "default"}

    resp = client.patch(
        timer_url(recipe, "/alerts"),
        json={"sound_enabled": False, "notification_permission": "denied"},
        headers=auth(owner),
    )
    assert resp.status_code == 200
    assert resp.json() == {"sound_enabled": False, "notification_permission": "denied"}

    start(client, recipe, owner, minutes=0.1)
    scheduler.advance(6)
    d = dispatchers[registry.session_key(owner.id, recipe["id"])]
    assert d.count("tone") == 0
    assert d.count("notify") == 0
    assert d.count("flash_title") == 1


def test_alert_preferences_validation(client, recipe, owner):
    resp = client.patch(timer_url(recipe, "/alerts"), json={"notification_permission": "maybe"}, headers=auth(owner))
    assert resp.status_code == 422


def test_state_changes_are_published(client, recipe, owner, mock_redis):
    pubsub = mock_redis.pubsub()
    pubsub.subscribe(channel_for_session(f"{owner.id}:{recipe['id']}"))
    pubsub.get_message(timeout=1.0)

    start(client, recipe, owner)
    client.post(timer_url(recipe, "/pause"), headers=auth(owner))
    client.post(timer_url(recipe, "/stop"), headers=auth(owner))

    events = []
    while True:
        msg = pubsub.get_message(ignore_subscribe_messages=True, timeout=0.1)
        if msg is None:
            break
        events.append(json.loads(msg["data"]))
    pubsub.close()

    assert [e["event"] for e in events] == ["started", "paused", "stopped"]
    assert events[0]["timer"]["step_number"] == 2
    assert events[2]["timer"] is None


def test_timer_endpoints_survive_bus_outage(client, recipe, owner, monkeypatch):
    from cookshare.routers import timers

    async def broken(*args, **kwargs):
        raise ConnectionError("redis down")

    monkeypatch.setattr(timers, "publish_timer_event", broken)
    assert start(client, recipe, owner).status_code == 201
    assert client.post(timer_url(recipe, "/stop"), headers=auth(owner)).status_code == 204


def test_start_timer_rejects_sub_second_length(client, recipe, owner):
    resp = start(client, recipe, owner, minutes=0.005)
    assert resp.status_code == 422
    assert "timer length must be positive" in resp.json()["detail"]
    assert client.get(timer_url(recipe), headers=auth(owner)).json() is None


def test_reading_alert_preferences_creates_no_session(client, recipe, owner, registry):
    assert client.get(timer_url(recipe, "/alerts"), headers=auth(owner)).status_code == 200
    assert registry.peek(TimerRegistry.session_key(owner.id, recipe["id"])) is None


class TracedHandle:
    def __init__(self, handle, calls):
        self._handle = handle
        self._calls = calls

    def cancel(self):
        self._calls.append(("cancel", threading.current_thread().name))
        self._handle.cancel()


class ThreadTracingScheduler(AsyncioScheduler):
    """Real loop scheduling that records which thread touches each handle."""

    def __init__(self):
        super().__init__()
        self.calls = []

    def call_later(self, delay, callback):
        self.calls.append(("call_later", threading.current_thread().name))
        return TracedHandle(super().call_later(delay, callback), self.calls)


def test_recipe_delete_cancels_timers_on_the_loop_thread(owner, recipe_payload):
    scheduler = ThreadTracingScheduler()
    registry = TimerRegistry(
        scheduler=scheduler,
        dispatcher_factory=lambda key, permission: RecordingDispatcher(key, permission),
        alert_defaults=AlertSettings(),
    )
    app.dependency_overrides[get_timer_registry] = lambda: registry
    try:
        with TestClient(app) as c:
            created = c.post("/api/recipes", json=recipe_payload, headers=auth(owner)).json()
            assert start(c, created, owner).status_code == 201
            assert c.delete(f"/api/recipes/{created['id']}", headers=auth(owner)).status_code == 204
    finally:
        app.dependency_overrides.clear()
        registry.shutdown()

    assert "cancel" in [op for op, _ in scheduler.calls]
    assert len({thread for _, thread in scheduler.calls}) == 1

import asyncio
import json
import time
from urllib.parse import urlencode

from fastapi.testclient import TestClient

from nexus_news.cache import MemoryCache
from nexus_news.config import Settings
from nexus_news.security import compute_signature
from nexus_news.web import create_app

SECRET = "test-signing-secret"


class RecordingScheduler:
    def __init__(self) -> None:
        self.calls = []

    def schedule(self, request, context) -> str:
        self.calls.append((request, context))
        return "job42"


def _settings(**overrides) -> Settings:
    values = dict(
        slack_enabled=True,
        slack_signing_secret=SECRET,
        slack_bot_token="xoxb-test",
        slack_workspace_ids="T0001",
        slack_rate_limit=2,
    )
    values.update(overrides)
    return Settings(**values)


def _client(**overrides):
    scheduler = RecordingScheduler()
    app = create_app(_settings(**overrides), scheduler=scheduler, cache=MemoryCache())
    return TestClient(app), scheduler


def _command_body(**overrides) -> str:
    params = {
        "team_id": "T0001",
        "user_id": "U12345678",
        "user_name": "ana",
        "channel_id": "C12345678",
        "response_url": "https://hooks.slack.com/commands/T0001/1/abc",
        "text": "category:technology total:3",
    }
    params.update(overrides)
    return urlencode(params)


def _headers(body: str, secret: str = SECRET, ts=None) -> dict:
    ts = str(int(time.time())) if ts is None else str(ts)
    return {
        "Content-Type": "application/x-www-form-urlencoded",
        "X-Slack-Request-Timestamp": ts,
        "X-Slack-Signature": compute_signature(secret, ts, body),
    }


def test_valid_command_is_acknowledged_and_scheduled() -> None:
    client, scheduler = _client()
    body = _command_body()

    resp = client.post("/slack/trending-news", content=body, headers=_headers(body))

    assert resp.status_code == 200
    data = resp.json()
    assert data["response_type"] == "in_channel"
    assert "job42" in json.dumps(data)
    request, context = scheduler.calls[0]
    assert request.category == "technology" and request.total == 3
    assert context.team_id == "T0001"


def test_bad_or_stale_signature_is_rejected_without_scheduling() -> None:
    client, scheduler = _client()
    body = _command_body()

    wrong = client.post("/slack/trending-news", content=body, headers=_headers(body, secret="other"))
    stale = client.post("/slack/trending-news", content=body, headers=_headers(body, ts=int(time.time()) - 600))
    missing = client.post(
        "/slack/trending-news",
        content=body,
        headers={"Content-Type": "application/x-www-form-urlencoded"},
    )

    assert [r.status_code for r in (wrong, stale, missing)] == [401, 401, 401]
    assert "error" in wrong.json()
    assert scheduler.calls == []


def test_disabled_integration_and_foreign_workspace_are_forbidden() -> None:
    body = _command_body()

    client, scheduler = _client(slack_enabled=False)
    assert client.post("/slack/trending-news", content=body, headers=_headers(body)).status_code == 403

    client, scheduler = _client()
    foreign = _command_body(team_id="T9999")
    assert client.post("/slack/trending-news", content=foreign, headers=_headers(foreign)).status_code == 403
    assert scheduler.calls == []


def test_validation_and_rate_limit_errors_are_ephemeral() -> None:
    client, scheduler = _client()

    bad = _command_body(text="category:gossip")
    resp = client.post("/slack/trending-news", content=bad, headers=_headers(bad))
    assert resp.status_code == 200
    assert resp.json()["response_type"] == "ephemeral"
    assert "Unknown category" in resp.json()["text"]

    body = _command_body()
    for _ in range(2):
        client.post("/slack/trending-news", content=body, headers=_headers(body))
    limited = client.post("/slack/trending-news", content=body, headers=_headers(body))
    assert limited.json()["response_type"] == "ephemeral"
    assert "Rate limit exceeded" in limited.json()["text"]
    assert len(scheduler.calls) == 2


def _interactive_body(action_id: str = "rerun_analysis", value: str = '{"text": "category:world total:2"}') -> str:
    payload = {
        "type": "block_actions",
        "team": {"id": "T0001"},
        "user": {"id": "U12345678", "username": "ana"},
        "channel": {"id": "C12345678"},
        "response_url": "https://hooks.slack.com/actions/T0001/1/xyz",
        "actions": [{"action_id": action_id, "value": value}],
    }
    return urlencode({"payload": json.dumps(payload)})


def test_rerun_button_reschedules_the_command() -> None:
    client, scheduler = _client()
    body = _interactive_body()

    resp = client.post("/slack/interactive", content=body, headers=_headers(body))

    assert resp.json()["response_type"] == "in_channel"
    request, context = scheduler.calls[0]
    assert request.category == "world" and request.total == 2
    assert context.response_url == "https://hooks.slack.com/actions/T0001/1/xyz"
    assert context.user_name == "ana"


def test_interactive_rejects_unknown_action_and_bad_payload() -> None:
    client, scheduler = _client()

    unknown = _interactive_body(action_id="something_else")
    assert client.post("/slack/interactive", content=unknown, headers=_headers(unknown)).json() == {
        "text": "❌ Unknown action"
    }

    garbage = urlencode({"payload": "not json", "team_id": "T0001"})
    assert client.post("/slack/interactive", content=garbage, headers=_headers(garbage)).json() == {
        "text": "❌ Invalid request format"
    }

    unsigned = _interactive_body()
    assert client.post("/slack/interactive", content=unsigned, headers=_headers(unsigned, secret="x")).status_code == 401
    assert scheduler.calls == []


def test_healthz() -> None:
    client, _ = _client()
    assert client.get("/healthz").json() == {"status": "ok"}


def test_command_handling_runs_off_the_event_loop() -> None:
    loops = []

    class ThreadRecordingScheduler(RecordingScheduler):
        def schedule(self, request, context) -> str:
            try:
                asyncio.get_running_loop()
                loops.append("event loop")
            except RuntimeError:
                loops.append("worker thread")
            return super().schedule(request, context)

    scheduler = ThreadRecordingScheduler()
    client = TestClient(create_app(_settings(), scheduler=scheduler, cache=MemoryCache()))
    body = _command_body()

    assert client.post("/slack/trending-news", content=body, headers=_headers(body)).status_code == 200
    assert loops == ["worker thread"]

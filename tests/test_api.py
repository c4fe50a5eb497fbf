import asyncio
import dataclasses

import httpx
import pytest
from fastapi.testclient import TestClient

from concierge.chat.chunks import DoneChunk, TextChunk
from concierge.chat.sse import END_FRAME
from concierge.deps import build_services, get_services
from concierge.routes import create_app
from concierge.services.rate_limiter import RateLimitPolicy
from concierge.settings import settings
from concierge.storage import MemoryKeyValueStore
from concierge.tools.calc import run_calc
from tests.utils import FakeClock, FakeProvider

CHAT_BODY = {"version": "v1", "messages": [{"role": "user", "content": "Hello"}]}


def _offline_handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(503, text="offline")


@pytest.fixture
def services():
    clock = FakeClock()
    return build_services(
        kv=MemoryKeyValueStore(clock=clock),
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(_offline_handler)),
        provider=FakeProvider([TextChunk("Hi "), TextChunk("there"), DoneChunk(usage_tokens=5)]),
        rate_limit_policy=RateLimitPolicy(max_requests=3, window_seconds=1.0),
        clock=clock,
    )


@pytest.fixture
def client(services):
    app = create_app()

    async def override_get_services():
        return services

    app.dependency_overrides[get_services] = override_get_services
    with TestClient(app=app, base_url="http://test") as test_client:
        yield test_client


def test_health_is_open(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_roi_tool_returns_reference_figures(client):
    resp = client.post(
        "/tools/roi",
        json={
            "initialInvestment": 1000,
            "monthlyRevenue": 500,
            "monthlyExpenses": 200,
            "timePeriod": 12,
        },
        headers={"x-intelligence-session-id": "s-roi"},
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["ok"] is True
    output = body["output"]
    assert output["monthlyProfit"] == 300
    assert output["totalProfit"] == 3600
    assert output["roi"] == 260
    assert output["paybackPeriod"] == 3.33


def test_calc_retry_with_same_key_runs_handler_once(client, services):
    calls = []

    async def counting_calc(session_id, params):
        calls.append(session_id)
        return await run_calc(session_id, params)

    gateway = services.tool_gateway
    gateway.tools["calc"] = dataclasses.replace(gateway.tools["calc"], handler=counting_calc)
    headers = {"x-intelligence-session-id": "s1", "x-idempotency-key": "k1"}
    payload = {"values": [1, 2, 3], "op": "avg"}

    first = client.post("/tools/calc", json=payload, headers=headers)
    second = client.post("/tools/calc", json=payload, headers=headers)

    assert first.status_code == second.status_code == 200
    assert first.json() == {"ok": True, "output": 2}
    assert second.json() == first.json()
    assert calls == ["s1"]


def test_fourth_call_in_window_is_rate_limited(client):
    headers = {"x-intelligence-session-id": "s-rate"}
    payload = {"values": [1, 2], "op": "sum"}

    statuses = [client.post("/tools/calc", json=payload, headers=headers) for _ in range(4)]

    assert [resp.status_code for resp in statuses[:3]] == [200, 200, 200]
    limited = statuses[3]
    assert limited.status_code == 429
    assert limited.headers["Retry-After"] == "1"
    assert limited.json() == {"ok": False, "error": "Rate limit exceeded", "code": "rate_limited"}


def test_tool_errors_keep_the_tool_envelope(client):
    unknown = client.post("/tools/nope", json={})
    assert unknown.status_code == 404
    assert unknown.json()["ok"] is False

    invalid = client.post("/tools/calc", json={"values": [], "op": "avg"})
    assert invalid.status_code == 400
    assert invalid.json()["code"] == "invalid_input"

    broken = client.post(
        "/tools/calc", content=b"{not json", headers={"content-type": "application/json"}
    )
    assert broken.status_code == 400
    assert broken.json() == {"ok": False, "error": "Invalid JSON body", "code": "invalid_input"}


def test_list_tools(client):
    resp = client.get("/tools")
    assert resp.json() == {"tools": ["calc", "lead-research", "meeting", "roi", "url"]}


def test_chat_streams_sse_frames(client, services):
    resp = client.post("/chat", json=CHAT_BODY, headers={"x-intelligence-session-id": "s-chat"})

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/event-stream")
    assert resp.text == 'data: "Hi "\n\n' + 'data: "there"\n\n' + END_FRAME

    context = client.get("/sessions/s-chat/context").json()["context"]
    assert context["stage"] == "NAME_COLLECTION"
    budget = client.get("/sessions/s-chat/budget").json()
    assert budget["session"]["featureUsage"]["chat"]["tokensUsed"] == 5


def test_chat_rejects_invalid_body(client):
    resp = client.post("/chat", json={"version": "v2", "messages": []})
    assert resp.status_code == 400
    body = resp.json()
    assert body["code"] == "validation_error"
    assert {detail["field"] for detail in body["details"]} == {"version", "messages"}


def test_chat_refuses_exhausted_budget_before_streaming(client, services):
    asyncio.run(services.budget_manager.record_usage("s-spent", "chat", 10_000))

    resp = client.post("/chat", json=CHAT_BODY, headers={"x-intelligence-session-id": "s-spent"})

    assert resp.status_code == 403
    assert resp.headers["content-type"].startswith("application/json")
    assert resp.json()["code"] == "budget_exhausted"


def test_session_lifecycle_and_stage_gate(client):
    created = client.post("/sessions", json={"sessionId": "s9"}).json()
    assert created["sessionId"] == "s9"
    assert created["context"]["stage"] == "GREETING"

    blocked = client.post("/sessions/s9/stage", json={"stage": "BACKGROUND_RESEARCH"}).json()
    assert blocked == {
        "stage": "GREETING",
        "advanced": False,
        "missing": ["email", "name"],
    }

    client.post("/sessions", json={"sessionId": "s9", "lead": {"name": "Ada", "email": "ada@acme.io"}})
    moved = client.post("/sessions/s9/stage", json={"stage": "BACKGROUND_RESEARCH"}).json()
    assert moved == {"stage": "BACKGROUND_RESEARCH", "advanced": True, "missing": []}

    client.post("/tools/calc", json={"values": [1], "op": "sum"}, headers={"x-intelligence-session-id": "s9"})
    activities = client.get("/sessions/s9/activities").json()["activities"]
    assert [item["status"] for item in activities] == ["completed"]

    deleted = client.delete("/sessions/s9").json()
    assert deleted == {"sessionId": "s9", "deleted": True}
    assert client.get("/sessions/s9/context").json()["context"] is None
    assert client.get("/sessions/s9/activities").json()["activities"] == []


def test_stage_change_for_unknown_session_is_404(client):
    resp = client.post("/sessions/missing/stage", json={"stage": "NAME_COLLECTION"})
    assert resp.status_code == 404
    assert resp.json() == {"error": "Unknown session"}


def test_bearer_token_is_enforced_when_configured(client, monkeypatch):
    monkeypatch.setattr(settings, "api_auth_token", "secret-token")

    assert client.post("/tools/calc", json={"values": [1], "op": "sum"}).status_code == 401
    wrong = client.get("/tools", headers={"Authorization": "Bearer nope"})
    assert wrong.status_code == 401
    assert wrong.json() == {"error": "Invalid API token"}

    ok = client.get("/tools", headers={"Authorization": "Bearer secret-token"})
    assert ok.status_code == 200
    assert client.get("/health").status_code == 200

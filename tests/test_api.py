"""Tests for the Ofie Assistant API endpoints."""

import csv
import io
import time

import pytest
from starlette.websockets import WebSocketDisconnect

from conftest import BOT_ID

BASE = "/api/v1/conversations"


def wait_for_messages(client, conversation_id, count, timeout=5.0):
    """Poll until the conversation holds ``count`` messages."""
    deadline = time.time() + timeout
    while True:
        messages = client.get(f"{BASE}/{conversation_id}/messages").json()["messages"]
        if len(messages) >= count or time.time() > deadline:
            return messages
        time.sleep(0.02)


def receive_until(websocket, event_type, limit=10):
    for _ in range(limit):
        event = websocket.receive_json()
        if event["type"] == event_type:
            return event
    raise AssertionError(f"no {event_type} event received")


# ── Service endpoints ─────────────────────────────────

def test_root_endpoint(client):
    resp = client.get("/")
    assert resp.status_code == 200
    data = resp.json()
    assert data["service"] == "Ofie Assistant API"
    assert data["status"] == "operational"


def test_health_endpoint(client):
    data = client.get("/health").json()
    assert data["status"] == "healthy"
    assert data["services"]["queue_running"] is True
    assert data["services"]["providers"] == []


def test_metrics_endpoint(client):
    client.get("/health")
    resp = client.get("/metrics")
    assert resp.status_code == 200
    assert "ofie_http_requests_total" in resp.text


# ── Messages ──────────────────────────────────────────

class TestMessages:
    def test_message_gets_assistant_reply(self, client, bot_conversation, tenant):
        resp = client.post(
            f"{BASE}/{bot_conversation.id}/messages",
            json={"sender_id": tenant.id, "content": "I need a 2 bedroom apartment under $2000"},
        )
        assert resp.status_code == 202
        data = resp.json()
        assert data["response_queued"] is True
        assert data["message"]["sender_role"] == "tenant"

        messages = wait_for_messages(client, bot_conversation.id, 2)
        assert len(messages) == 2
        reply = messages[-1]
        assert reply["sender_id"] == BOT_ID
        assert reply["is_bot"] is True
        assert reply["metadata"]["intent"] == "property_search"
        assert reply["metadata"]["source"] == "fallback"
        assert "- 2 bedroom(s)" in reply["content"]

    def test_human_conversation_not_answered(self, client, human_conversation, tenant):
        resp = client.post(
            f"{BASE}/{human_conversation.id}/messages",
            json={"sender_id": tenant.id, "content": "Is the unit still available?"},
        )
        assert resp.status_code == 202
        assert resp.json()["response_queued"] is False
        time.sleep(0.1)
        assert len(client.get(f"{BASE}/{human_conversation.id}/messages").json()["messages"]) == 1

    def test_unknown_conversation(self, client, tenant):
        resp = client.post(f"{BASE}/missing/messages", json={"sender_id": tenant.id, "content": "hi"})
        assert resp.status_code == 404

    def test_sender_must_participate(self, client, bot_conversation, landlord):
        resp = client.post(
            f"{BASE}/{bot_conversation.id}/messages",
            json={"sender_id": landlord.id, "content": "hello"},
        )
        assert resp.status_code == 403

    @pytest.mark.parametrize("content", ["", "   ", "x" * 5001])
    def test_invalid_content(self, client, bot_conversation, tenant, content):
        resp = client.post(
            f"{BASE}/{bot_conversation.id}/messages",
            json={"sender_id": tenant.id, "content": content},
        )
        assert resp.status_code == 422

    def test_list_with_limit(self, client, human_conversation, tenant):
        for i in range(3):
            client.post(
                f"{BASE}/{human_conversation.id}/messages",
                json={"sender_id": tenant.id, "content": f"note {i}"},
            )
        data = client.get(f"{BASE}/{human_conversation.id}/messages", params={"limit": 2}).json()
        assert data["count"] == 2
        assert [m["content"] for m in data["messages"]] == ["note 1", "note 2"]


# ── Welcome ───────────────────────────────────────────

class TestWelcome:
    def test_welcome_message(self, client, bot_conversation):
        resp = client.post(f"{BASE}/{bot_conversation.id}/welcome")
        assert resp.status_code == 201
        message = resp.json()["message"]
        assert "I'm Ofie Assistant." in message["content"]
        assert "Jane" in message["content"].splitlines()[0]
        assert message["metadata"]["type"] == "welcome_message"

    def test_welcome_requires_assistant(self, client, human_conversation):
        assert client.post(f"{BASE}/{human_conversation.id}/welcome").status_code == 400


# ── Analytics ─────────────────────────────────────────

class TestAnalytics:
    def test_handoff_signal(self, client, bot_conversation):
        data = client.get(f"{BASE}/{bot_conversation.id}/handoff").json()
        assert data["should_handoff"] is False
        assert data["reasons"] == []
        assert data["active_session"] is None

    def test_insights(self, client, bot_conversation, tenant):
        client.post(
            f"{BASE}/{bot_conversation.id}/messages",
            json={"sender_id": tenant.id, "content": "Can I pay rent online?"},
        )
        wait_for_messages(client, bot_conversation.id, 2)

        data = client.get(f"{BASE}/{bot_conversation.id}/insights").json()
        assert data["insights"]["total_messages"] == 2
        assert data["insights"]["intents_covered"] == ["payment_help"]
        assert len(data["confidence_trend"]) == 1
        assert 0 <= data["engagement_score"] <= 100
        assert data["sentiment_trend"]["overall"] == "neutral"


# ── Export ────────────────────────────────────────────

class TestExport:
    @pytest.fixture
    def seeded(self, client, human_conversation, tenant):
        client.post(
            f"{BASE}/{human_conversation.id}/messages",
            json={"sender_id": tenant.id, "content": "Is parking included?"},
        )
        return human_conversation

    def test_json(self, client, seeded):
        resp = client.get(f"{BASE}/{seeded.id}/export", params={"format": "json"})
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("application/json")
        assert resp.json()["messages"][0]["content"] == "Is parking included?"

    def test_csv(self, client, seeded):
        resp = client.get(f"{BASE}/{seeded.id}/export", params={"format": "csv"})
        rows = list(csv.reader(io.StringIO(resp.text)))
        assert rows[0][:4] == ["timestamp", "sender", "role", "content"]
        assert rows[1][1:4] == ["Jane Doe", "user", "Is parking included?"]
        assert "attachment" in resp.headers["content-disposition"]

    def test_txt(self, client, seeded):
        resp = client.get(f"{BASE}/{seeded.id}/export", params={"format": "txt"})
        assert resp.text.startswith(f"Conversation {seeded.id}")
        assert "Jane Doe: Is parking included?" in resp.text

    def test_unsupported_format(self, client, seeded):
        assert client.get(f"{BASE}/{seeded.id}/export", params={"format": "pdf"}).status_code == 400


# ── Follow-ups ────────────────────────────────────────

class TestFollowups:
    def test_schedule(self, client, bot_conversation):
        resp = client.post(
            f"{BASE}/{bot_conversation.id}/followups",
            json={"kind": "weekly_checkin", "delay_minutes": 10},
        )
        assert resp.status_code == 202
        task = resp.json()["task"]
        assert task["kind"] == "weekly_checkin"
        assert task["conversation_id"] == bot_conversation.id

    def test_invalid_kind(self, client, bot_conversation):
        resp = client.post(f"{BASE}/{bot_conversation.id}/followups", json={"kind": "daily_spam"})
        assert resp.status_code == 422

    def test_requires_assistant(self, client, human_conversation):
        resp = client.post(f"{BASE}/{human_conversation.id}/followups", json={"kind": "general"})
        assert resp.status_code == 400


# ── Handoff ───────────────────────────────────────────

class TestHandoffRoutes:
    def test_active_and_resolve(self, client, bot_conversation):
        from api.services import get_services
        from conversation.engagement import HandoffReason, HandoffSignal

        assert client.get("/api/v1/handoff/active").json()["sessions"] == []

        signal = HandoffSignal(reasons={HandoffReason.COMPLEX_QUERIES}, score=0.5)
        get_services().handoff_manager.initiate_handoff(bot_conversation.id, signal)

        sessions = client.get("/api/v1/handoff/active").json()["sessions"]
        assert [s["conversation_id"] for s in sessions] == [bot_conversation.id]
        assert client.get(f"{BASE}/{bot_conversation.id}/handoff").json()["active_session"] is not None

        resp = client.post(f"/api/v1/handoff/resolve/{bot_conversation.id}", json={"notes": "called back"})
        assert resp.status_code == 200
        assert resp.json()["session"]["notes"] == "called back"
        assert client.get("/api/v1/handoff/active").json()["sessions"] == []

    def test_resolve_unknown(self, client):
        assert client.post("/api/v1/handoff/resolve/missing", json={}).status_code == 404


# ── WebSocket channel ─────────────────────────────────

class TestRealtime:
    def test_send_message_over_websocket(self, client, bot_conversation, tenant):
        with client.websocket_connect(f"/api/v1/ws/conversations/{bot_conversation.id}") as ws:
            ws.send_json({"action": "send_message", "sender_id": tenant.id, "content": "hello"})
            new_message = receive_until(ws, "new_message")
            assert new_message["data"]["message"]["content"] == "hello"
            response = receive_until(ws, "bot_response")
            assert response["data"]["message"]["is_bot"] is True
            assert response["data"]["quick_actions"]

    def test_typing_indicator(self, client, bot_conversation, tenant):
        with client.websocket_connect(f"/api/v1/ws/conversations/{bot_conversation.id}") as ws:
            ws.send_json({"action": "typing", "sender_id": tenant.id, "is_typing": True})
            event = receive_until(ws, "typing_indicator")
            assert event["data"]["user_id"] == tenant.id
            assert event["data"]["is_typing"] is True

    def test_unknown_sender_rejected(self, client, bot_conversation):
        with client.websocket_connect(f"/api/v1/ws/conversations/{bot_conversation.id}") as ws:
            ws.send_json({"action": "send_message", "sender_id": "stranger", "content": "hi"})
            assert ws.receive_json()["type"] == "error"

    def test_unknown_conversation_closed(self, client):
        with pytest.raises(WebSocketDisconnect):
            with client.websocket_connect("/api/v1/ws/conversations/missing") as ws:
                ws.receive_json()

    def test_malformed_frames_keep_channel_open(self, client, bot_conversation, tenant):
        from api.services import get_services

        with client.websocket_connect(f"/api/v1/ws/conversations/{bot_conversation.id}") as ws:
            ws.send_text("not json")
            assert ws.receive_json()["data"]["message"] == "Invalid JSON"
            ws.send_json(["send_message", tenant.id])
            assert ws.receive_json()["data"]["message"] == "Expected a JSON object"
            ws.send_json({"action": "typing", "sender_id": tenant.id, "is_typing": True})
            assert receive_until(ws, "typing_indicator")["data"]["user_id"] == tenant.id
        assert get_services().connections.active_count() == 0

"""Tests for API endpoints."""

import asyncio
import json
from urllib.parse import urlencode

import pytest
from fastapi.testclient import TestClient

from chatbridge.clients.twilio import compute_twilio_signature
from chatbridge.config import ConfigurationError, Settings
from chatbridge.dependencies import build_chat_services, get_chat_services
from chatbridge.main import app
from chatbridge.models.conversation import ChatTurn
from chatbridge.models.pending import PendingStatus
from tests.fakes import FakeLLM, make_twilio_client, text_response

WEBHOOK_URL = "https://chat.example.com/api/sms/webhook"


def parse_sse(body: str) -> list:
    """Decode SSE frames into JSON payloads ("[DONE]" stays a string)."""
    events = []
    for frame in body.split("\n\n"):
        if not frame:
            continue
        assert frame.startswith("data: ")
        data = frame[len("data: ") :]
        events.append(data if data == "[DONE]" else json.loads(data))
    return events


@pytest.fixture
def llm():
    return FakeLLM(stream_chunks=["Hello!"])


@pytest.fixture
def services(llm):
    settings = Settings(twilio_auth_token="secret", twilio_webhook_url=WEBHOOK_URL)
    return build_chat_services(settings, llm=llm)


@pytest.fixture
def client(services):
    app.dependency_overrides[get_chat_services] = lambda: services
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestHealthEndpoint:
    """Tests for the health check endpoint."""

    def test_health_check(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["version"] == "0.1.0"
        assert "timestamp" in data


class TestChatEndpoint:
    """Tests for the streaming chat endpoint."""

    def test_hello_example_streams_and_persists(self, client, services):
        response = client.post("/api/chat", json={"message": "hi", "sessionId": "s1", "history": []})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["cache-control"] == "no-cache"
        assert response.headers["connection"] == "keep-alive"
        assert response.text == 'data: {"text":"Hello!"}\n\ndata: [DONE]\n\n'

        saved = asyncio.run(services.chat_store.load("s1"))
        assert saved == [ChatTurn(sender="user", text="hi"), ChatTurn(sender="bot", text="Hello!")]

    def test_history_is_sent_to_model(self, client, llm):
        history = [{"sender": "user", "text": "first"}, {"sender": "bot", "text": "reply"}]
        client.post("/api/chat", json={"message": "second", "history": history})

        messages = llm.stream_calls[0]["messages"]
        assert [(m.role, m.content) for m in messages] == [
            ("user", "first"),
            ("assistant", "reply"),
            ("user", "second"),
        ]

    @pytest.mark.parametrize(
        "body",
        [{}, {"message": ""}, {"message": 42}, {"message": None}, {"sessionId": "s1"}, ["hi"]],
    )
    def test_invalid_message_returns_400_without_model_call(self, client, llm, body):
        response = client.post("/api/chat", json=body)

        assert response.status_code == 400
        assert response.json() == {"error": "Message is required"}
        assert llm.stream_calls == []
        assert llm.calls == []

    def test_null_history_streams(self, client, llm):
        response = client.post("/api/chat", json={"message": "hi", "sessionId": "s1", "history": None})

        assert response.status_code == 200
        assert response.text == 'data: {"text":"Hello!"}\n\ndata: [DONE]\n\n'
        assert [m.content for m in llm.stream_calls[0]["messages"]] == ["hi"]

    def test_malformed_history_returns_400(self, client, llm):
        response = client.post("/api/chat", json={"message": "hi", "history": [{"sender": "alien"}]})

        assert response.status_code == 400
        assert "error" in response.json()
        assert llm.stream_calls == []

    def test_non_json_body_returns_500(self, client):
        response = client.post("/api/chat", content=b"not json", headers={"content-type": "application/json"})

        assert response.status_code == 500
        assert response.json() == {"error": "Failed to process chat message"}

    def test_provider_failure_is_generic_stream_error(self, client, llm, services):
        llm.error = RuntimeError("invalid x-api-key")

        response = client.post("/api/chat", json={"message": "hi", "sessionId": "s1"})

        assert response.status_code == 200
        assert parse_sse(response.text) == [{"type": "error", "message": "An error occurred"}]
        assert "x-api-key" not in response.text
        assert asyncio.run(services.chat_store.load("s1")) is None

    def test_unconfigured_service_returns_500(self):
        def unconfigured():
            raise ConfigurationError("ANTHROPIC_API_KEY is not set")

        app.dependency_overrides[get_chat_services] = unconfigured
        try:
            response = TestClient(app).post("/api/chat", json={"message": "hi"})
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 500
        assert response.json() == {"error": "Chat service not configured"}

    def test_tool_profile_chunks_final_answer(self):
        twilio_client, _ = make_twilio_client()
        llm = FakeLLM(responses=[text_response("This reply is longer than twenty characters.")])
        services = build_chat_services(Settings(), llm=llm, twilio_client=twilio_client)
        app.dependency_overrides[get_chat_services] = lambda: services
        try:
            response = TestClient(app).post("/api/chat", json={"message": "hi", "sessionId": "s9"})
        finally:
            app.dependency_overrides.clear()

        events = parse_sse(response.text)
        assert events[-1] == "[DONE]"
        texts = [event["text"] for event in events[:-1]]
        assert len(texts) == 3
        assert "".join(texts) == "This reply is longer than twenty characters."
        assert [tool.name for tool in llm.calls[0]["tools"]] == ["notify_owner_sms"]


class TestLoadEndpoint:
    """Tests for loading stored history."""

    def test_load_saved_history(self, client):
        client.post("/api/chat", json={"message": "hi", "sessionId": "s1"})

        response = client.post("/api/chat/load", json={"sessionId": "s1"})

        assert response.status_code == 200
        assert response.json() == {"messages": [{"sender": "user", "text": "hi"}, {"sender": "bot", "text": "Hello!"}]}

    def test_load_unknown_session(self, client):
        response = client.post("/api/chat/load", json={"sessionId": "nobody"})

        assert response.status_code == 200
        assert response.json() == {"messages": None}

    def test_load_requires_session_id(self, client):
        response = client.post("/api/chat/load", json={})

        assert response.status_code == 400
        assert response.json() == {"error": "Session ID is required"}


class TestSMSWebhook:
    """Tests for the inbound Twilio webhook."""

    def _post(self, client, params: dict, signature: str | None = None):
        if signature is None:
            signature = compute_twilio_signature("secret", WEBHOOK_URL, params)
        return client.post(
            "/api/sms/webhook",
            content=urlencode(params),
            headers={"content-type": "application/x-www-form-urlencoded", "X-Twilio-Signature": signature},
        )

    def test_reply_is_attached_to_pending_request(self, client, services):
        record = asyncio.run(services.pending_store.create_pending("s1", "toolu_1", "Need a price"))

        response = self._post(client, {"From": "+15550000002", "Body": "Quote them $40"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/xml")
        assert "<Response></Response>" in response.text
        assert record.status == PendingStatus.REPLIED
        assert asyncio.run(services.pending_store.check_reply("s1")) == "Quote them $40"

    def test_invalid_signature_rejected(self, client, services):
        record = asyncio.run(services.pending_store.create_pending("s1", "toolu_1", "Need a price"))

        response = self._post(client, {"From": "+15550000002", "Body": "Quote them $40"}, signature="bogus")

        assert response.status_code == 403
        assert record.status == PendingStatus.PENDING

    def test_reply_without_pending_request_is_ignored(self, client):
        response = self._post(client, {"From": "+15550000002", "Body": "Hello?"})

        assert response.status_code == 200
        assert "<Response></Response>" in response.text

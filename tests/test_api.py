"""Tests for the chat HTTP endpoint."""

import pytest
from fastapi.testclient import TestClient

from pocketledger import __version__, api
from pocketledger.agents import AssistantUnavailableError
from pocketledger.api import RATE_LIMIT_MESSAGE, create_app
from pocketledger.audit import AuditLogger
from pocketledger.config import AppSettings
from pocketledger.orchestrator import ChatFlow
from pocketledger.ratelimit import RateLimiter
from pocketledger.services.storage import InMemoryMessageStorage


NOW = 1_700_000_000_000
HELLO = {"assistantId": "income", "messages": [{"role": "user", "content": "Hi there"}]}


class FakeAgent:
    def __init__(self, error=None):
        self.error = error

    async def reply(self, assistant, context, messages):
        if self.error:
            raise self.error
        return f"{assistant.name} says hello."


def make_client(agent=None):
    flow = ChatFlow(
        agent=agent or FakeAgent(),
        limiter=RateLimiter(clock=lambda: NOW, rng=lambda: 1.0),
        message_storage=InMemoryMessageStorage(),
        audit_logger=AuditLogger(),
        settings=AppSettings(),
    )
    return TestClient(create_app(flow))


@pytest.fixture
def client():
    return make_client()


def post(client, body=HELLO, user="user-1"):
    headers = {"X-User-Id": user} if user else {}
    return client.post("/api/chat", json=body, headers=headers)


class TestChatEndpoint:

    def test_success(self, client):
        response = post(client)

        assert response.status_code == 200
        assert response.json() == {"content": "Income Assistant says hello."}
        assert response.headers["X-RateLimit-Limit"] == "10"
        assert response.headers["X-RateLimit-Remaining"] == "9"
        assert response.headers["X-RateLimit-Reset"] == str(NOW + 3_600_000)
        assert "Retry-After" not in response.headers

    def test_missing_user(self, client):
        response = post(client, user=None)
        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized"}

    def test_malformed_body(self, client):
        response = client.post(
            "/api/chat",
            content=b"{not json",
            headers={"X-User-Id": "user-1", "Content-Type": "application/json"},
        )
        assert response.status_code == 400
        assert response.json() == {"error": "Invalid request body"}

    def test_invalid_messages(self, client):
        response = post(client, {"assistantId": "income", "messages": []})
        assert response.status_code == 400
        assert response.json() == {"error": "At least one message is required"}

    def test_system_only_conversation(self, client):
        body = {"assistantId": "income", "messages": [{"role": "system", "content": "Be brief."}]}
        response = post(client, body)

        assert response.status_code == 400
        assert response.json() == {"error": "At least one user or assistant message is required"}
        assert post(client).headers["X-RateLimit-Remaining"] == "9"

    def test_unknown_assistant(self, client):
        response = post(client, {**HELLO, "assistantId": "tax"})
        assert response.status_code == 400
        assert response.json() == {"error": "Invalid assistant ID"}

    def test_rate_limited(self, client):
        for _ in range(10):
            assert post(client).status_code == 200

        response = post(client)

        assert response.status_code == 429
        assert response.json() == {
            "error": RATE_LIMIT_MESSAGE,
            "limit": 10,
            "remaining": 0,
            "resetTime": NOW + 3_600_000,
            "retryAfter": 3600,
        }
        assert response.headers["Retry-After"] == "3600"
        assert response.headers["X-RateLimit-Remaining"] == "0"

    def test_rate_limit_is_per_user(self, client):
        for _ in range(10):
            post(client)
        assert post(client, user="user-2").status_code == 200

    def test_assistant_failure(self):
        client = make_client(FakeAgent(error=AssistantUnavailableError("quota exceeded")))

        response = post(client)

        assert response.status_code == 500
        assert response.json() == {"error": "Failed to process chat request"}

    def test_unexpected_failure(self):
        client = make_client(FakeAgent(error=RuntimeError("boom")))
        response = post(client)
        assert response.status_code == 500


class TestHealth:

    def test_health(self, client):
        response = client.get("/api/health")
        assert response.json() == {"status": "ok", "version": __version__}


class TestMain:

    def test_serves_app_factory(self, monkeypatch):
        calls = []
        monkeypatch.setattr(api.uvicorn, "run", lambda *args, **kwargs: calls.append((args, kwargs)))

        api.main()

        assert calls == [(
            ("pocketledger.api:create_app",),
            {"factory": True, "host": "0.0.0.0", "port": 8000},
        )]

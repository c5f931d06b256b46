"""
Tests for the HTTP API.
"""

from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient

from src.api import create_app
from src.chatbot import Chatbot
from src.exceptions import BackendUnavailableError
from src.models import Provider


@pytest.fixture
def chatbot(settings, make_provider):
    """Orchestrator whose local backend answers and hosted backend is missing."""
    return Chatbot(
        providers={
            Provider.LOCAL: make_provider(Provider.LOCAL, reply="Local reply."),
            Provider.HOSTED: make_provider(Provider.HOSTED, configured=False),
        },
        settings=settings,
    )


@pytest.fixture
def client(chatbot):
    return TestClient(create_app(chatbot))


class TestChatEndpoint:
    """Tests for POST /chat."""

    def test_chat_success(self, client):
        """A message gets a reply and the provider that produced it."""
        response = client.post("/chat", json={"message": "What is RAG?", "session_id": "sess_1"})

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Local reply."
        assert body["session_id"] == "sess_1"
        assert body["provider"] == "local"
        assert body["status"] == "success"
        assert "timestamp" in body

    def test_session_id_generated(self, client):
        """A missing session id is generated."""
        body = client.post("/chat", json={"message": "hello"}).json()
        assert body["session_id"].startswith("sess_")

    def test_history_passed_through(self, client, chatbot):
        """History items reach the backend in order."""
        client.post(
            "/chat",
            json={
                "message": "and then?",
                "history": [
                    {"role": "user", "content": "first"},
                    {"role": "assistant", "content": "second"},
                ],
            },
        )
        _, _, history = chatbot._providers[Provider.LOCAL].generate.call_args.args
        assert [(h.role, h.content) for h in history] == [("user", "first"), ("assistant", "second")]

    @pytest.mark.parametrize("message", ["", "   "])
    def test_empty_message(self, client, message):
        """Blank messages are rejected with 400."""
        response = client.post("/chat", json={"message": message})

        assert response.status_code == 400
        assert response.json() == {"message": "Message cannot be empty", "status": "error"}

    def test_invalid_json(self, client):
        """Malformed JSON is rejected with 400."""
        response = client.post("/chat", content="{not json", headers={"Content-Type": "application/json"})

        assert response.status_code == 400
        assert response.json() == {"message": "Invalid JSON format", "status": "error"}

    def test_wrong_field_type(self, client):
        """Well-formed JSON with the wrong shape is also a 400."""
        response = client.post("/chat", json={"message": ["not", "a", "string"]})

        assert response.status_code == 400
        assert response.json()["status"] == "error"

    def test_backend_failure_still_succeeds(self, settings, make_provider):
        """Backend trouble falls back to a canned reply, never an error."""
        bot = Chatbot(
            providers={
                Provider.LOCAL: make_provider(Provider.LOCAL, error=BackendUnavailableError("down")),
                Provider.HOSTED: make_provider(Provider.HOSTED, configured=False),
            },
            settings=settings,
        )
        body = TestClient(create_app(bot)).post("/chat", json={"message": "hello"}).json()

        assert body["status"] == "success"
        assert body["provider"] == "dummy"
        assert body["message"]


class TestOtherEndpoints:
    """Tests for /, /rag, /status, /refresh and /health."""

    def test_index(self, client):
        """The root serves an HTML page."""
        response = client.get("/")
        assert response.status_code == 200
        assert "Chatbot Gateway" in response.text

    def test_rag_empty_query(self, client):
        """Blank queries are rejected with 400."""
        response = client.post("/rag", json={"query": " "})
        assert response.status_code == 400
        assert response.json()["message"] == "Query cannot be empty"

    def test_rag_disabled(self, client):
        """Without retrieval the endpoint reports it is off."""
        body = client.post("/rag", json={"query": "refunds"}).json()

        assert body["status"] == "error"
        assert body["message"] == "RAG service not enabled"
        assert "timestamp" in body

    def test_status(self, client):
        """Status reports the active provider."""
        body = client.get("/status").json()
        assert body["current_provider"] == "local"
        assert body["mode"] == "auto"

    def test_refresh(self, client, chatbot):
        """Refresh re-probes and returns the new status."""
        local = chatbot._providers[Provider.LOCAL]
        probes = local.is_available.call_count

        body = client.post("/refresh").json()

        assert local.is_available.call_count == probes + 1
        assert body["status"] == "active"

    def test_health_without_discord(self, client):
        """Health reports the chatbot and a disabled Discord bot."""
        body = client.get("/health").json()

        assert body["status"] == "healthy"
        assert body["chatbot"] == {"ready": True, "mode": "auto", "current_provider": "local"}
        assert body["discord"]["enabled"] is False
        assert "/chat" in body["endpoints"]

    def test_health_with_discord(self, chatbot):
        """A running Discord bot reports its own status."""
        discord_bot = Mock()
        discord_bot.get_status.return_value = {"enabled": True, "status": "connected"}

        body = TestClient(create_app(chatbot, discord_bot=discord_bot)).get("/health").json()

        assert body["discord"] == {"enabled": True, "status": "connected"}

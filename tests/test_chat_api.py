"""Tests for the chat REST API.

The app runs with mock media and millisecond timers (see conftest), so
polling GET /chat observes the connect timer firing.
"""

import time

from fastapi.testclient import TestClient


def wait_for_phase(client: TestClient, phase: str, timeout_s: float = 2.0) -> dict:
    """Poll the session until it reaches `phase`."""
    deadline = time.monotonic() + timeout_s
    while True:
        state = client.get("/chat").json()
        if state["phase"] == phase or time.monotonic() > deadline:
            return state
        time.sleep(0.01)


def connect(client: TestClient) -> dict:
    client.post("/chat/start")
    state = wait_for_phase(client, "connected")
    assert state["phase"] == "connected"
    return state


class TestChatState:
    """Tests for GET /chat."""

    def test_initial_state(self, client: TestClient):
        response = client.get("/chat")
        data = response.json()

        assert response.status_code == 200
        assert data["phase"] == "idle"
        assert data["status_text"] == "Waiting for connection..."
        assert data["is_online"] is False
        assert data["connection_count"] == 0
        assert data["messages"] == []
        assert data["has_stream"] is True
        assert data["video_enabled"] is True
        assert data["audio_enabled"] is True
        assert data["media_error"] is None


class TestChatActions:
    """Tests for start/next/end."""

    def test_start(self, client: TestClient):
        data = client.post("/chat/start").json()

        assert data["phase"] == "connecting"
        assert data["status_text"] == "Connecting..."

    def test_start_connects_with_greeting(self, client: TestClient):
        data = connect(client)

        assert data["is_online"] is True
        assert data["status_text"] == "Connected"
        assert data["connection_count"] == 1
        assert len(data["messages"]) == 1
        assert data["messages"][0]["origin"] == "remote"
        assert data["messages"][0]["text"] == "Hi there! 👋"

    def test_start_ignored_while_connecting(self, client: TestClient):
        client.post("/chat/start")
        data = client.post("/chat/start").json()

        assert data["phase"] in ("connecting", "connected")
        assert data["connection_count"] <= 1

    def test_next(self, client: TestClient):
        connect(client)

        data = client.post("/chat/next").json()
        assert data["phase"] == "connecting"
        assert data["messages"] == []

        data = wait_for_phase(client, "connected")
        assert data["connection_count"] == 2

    def test_next_ignored_when_idle(self, client: TestClient):
        data = client.post("/chat/next").json()
        assert data["phase"] == "idle"

    def test_end(self, client: TestClient):
        connect(client)

        data = client.post("/chat/end").json()

        assert data["phase"] == "idle"
        assert data["messages"] == []

    def test_end_while_connecting_never_connects(self, client: TestClient):
        client.post("/chat/start")
        client.post("/chat/end")

        time.sleep(0.1)
        data = client.get("/chat").json()
        assert data["phase"] == "idle"
        assert data["connection_count"] == 0


class TestSendMessage:
    """Tests for POST /chat/messages."""

    def test_send_when_connected(self, client: TestClient):
        connect(client)

        response = client.post("/chat/messages", json={"text": "  hello  "})
        data = response.json()

        assert response.status_code == 200
        assert data["accepted"] is True
        assert data["message"]["text"] == "hello"
        assert data["message"]["origin"] == "local"
        assert len(data["message"]["display_time"]) == 5
        assert data["state"]["messages"][1]["id"] == data["message"]["id"]

    def test_send_when_idle_ignored(self, client: TestClient):
        data = client.post("/chat/messages", json={"text": "hello"}).json()

        assert data["accepted"] is False
        assert data["message"] is None
        assert data["state"]["messages"] == []

    def test_send_blank_ignored(self, client: TestClient):
        connect(client)

        data = client.post("/chat/messages", json={"text": "   "}).json()

        assert data["accepted"] is False
        assert len(data["state"]["messages"]) == 1

    def test_send_missing_text_rejected(self, client: TestClient):
        response = client.post("/chat/messages", json={})
        assert response.status_code == 422


class TestMediaEndpoints:
    """Tests for media toggles and acquisition."""

    def test_toggle_video(self, client: TestClient):
        data = client.post("/chat/media/video").json()

        assert data["kind"] == "video"
        assert data["enabled"] is False
        assert data["state"]["video_enabled"] is False
        assert data["state"]["audio_enabled"] is True

        data = client.post("/chat/media/video").json()
        assert data["enabled"] is True

    def test_toggle_audio(self, client: TestClient):
        data = client.post("/chat/media/audio").json()

        assert data["kind"] == "audio"
        assert data["enabled"] is False
        assert data["state"]["video_enabled"] is True

    def test_acquire_when_already_held(self, client: TestClient):
        data = client.post("/chat/media/acquire").json()

        assert data["has_stream"] is True
        assert data["media_error"] is None

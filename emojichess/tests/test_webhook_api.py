"""Tests for api/main.py"""

import pytest
from fastapi.testclient import TestClient

from emojichess.api.main import app

PAGE_EVENT = {
    "object": "page",
    "entry": [
        {
            "id": "page-1",
            "time": 1700000000,
            "messaging": [{"sender": {"id": "u1"}, "message": {"text": "e4"}}],
        }
    ],
}


class RecordingService:
    def __init__(self):
        self.events = []

    async def handle_event(self, event):
        self.events.append(event)


@pytest.fixture
def service():
    service = RecordingService()
    app.state.service = service
    yield service
    app.state.service = None


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setenv("VERIFY_TOKEN", "secret")
    # No context manager: the lifespan would launch Stockfish
    return TestClient(app)


def test_verification_echoes_challenge(client):
    resp = client.get(
        "/webhook",
        params={"hub.mode": "subscribe", "hub.verify_token": "secret", "hub.challenge": "1158201444"},
    )
    assert resp.status_code == 200
    assert resp.text == "1158201444"


def test_verification_rejects_wrong_token(client):
    resp = client.get(
        "/webhook",
        params={"hub.mode": "subscribe", "hub.verify_token": "guess", "hub.challenge": "1"},
    )
    assert resp.status_code == 403


def test_verification_requires_mode_and_token(client):
    resp = client.get("/webhook", params={"hub.challenge": "1"})
    assert resp.status_code == 400


def test_page_event_is_handed_to_service(client, service):
    resp = client.post("/webhook", json=PAGE_EVENT)
    assert resp.status_code == 200
    assert resp.text == "EVENT_RECEIVED"
    assert service.events == [{"sender": {"id": "u1"}, "message": {"text": "e4"}}]


def test_non_page_object_is_rejected(client, service):
    resp = client.post("/webhook", json={**PAGE_EVENT, "object": "instagram"})
    assert resp.status_code == 404
    assert service.events == []


def test_event_before_startup_is_unavailable(client):
    app.state.service = None
    resp = client.post("/webhook", json=PAGE_EVENT)
    assert resp.status_code == 503


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}

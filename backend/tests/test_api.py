"""API endpoint tests using FastAPI TestClient."""
import sys
import os
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from fastapi.testclient import TestClient
from main import app
from question_catalog import build_default_catalog
from session_registry import SessionRegistry
from socket_manager import socket_manager


@pytest.fixture(autouse=True)
def clear_state():
    """Fresh registry before each test."""
    saved = socket_manager.registry
    socket_manager.registry = SessionRegistry(build_default_catalog())
    yield
    socket_manager.registry = saved


client = TestClient(app)


# ---------------------------------------------------------------------------
# Health & Root
# ---------------------------------------------------------------------------

class TestHealthEndpoints:
    def test_root(self):
        res = client.get("/")
        assert res.status_code == 200
        assert "running" in res.json()["message"].lower()

    def test_health(self):
        res = client.get("/health")
        assert res.status_code == 200
        assert res.json()["status"] == "healthy"
        assert res.json()["rooms"] == 0


# ---------------------------------------------------------------------------
# Question sets & rooms
# ---------------------------------------------------------------------------

class TestQuestionSets:
    def test_list_sets(self):
        res = client.get("/sets")
        assert res.status_code == 200
        sets = res.json()["sets"]
        assert {"id": "4h8z3k", "title": "General Knowledge", "question_count": 4} in sets


class TestRoomSnapshot:
    def test_unknown_room(self):
        res = client.get("/rooms/NOPE00")
        assert res.status_code == 404
        assert res.json()["detail"] == "Room not found"

    def test_snapshot_of_lobby(self):
        room = socket_manager.registry.create_room("host", "4h8z3k", "timed", time_limit_minutes=2)
        res = client.get(f"/rooms/{room.code.lower()}")
        assert res.status_code == 200
        data = res.json()
        assert data["code"] == room.code
        assert data["status"] == "lobby"
        assert data["gameType"] == "timed"
        assert data["timeLimitMinutes"] == 2
        assert data["startedAt"] is None
        assert [p["identity"] for p in data["players"]] == ["host"]

    def test_health_counts_rooms(self):
        socket_manager.registry.create_room("host", "4h8z3k", "race")
        assert client.get("/health").json()["rooms"] == 1

"""
WebSocket integration tests for full game flows.
Tests: room creation, joining, race to the goal, shop purchases,
disconnects, declined actions and message guards.
Uses FastAPI TestClient against the real app.
"""
import sys
import os

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from fastapi.testclient import TestClient
from main import app
from question_catalog import build_default_catalog
from session_registry import SessionRegistry
from socket_manager import socket_manager
import config


@pytest.fixture(autouse=True)
def clear_state():
    saved_registry = socket_manager.registry
    saved_origins = socket_manager.allowed_origins
    socket_manager.registry = SessionRegistry(build_default_catalog())
    socket_manager.connections.clear()
    socket_manager.locks.clear()
    socket_manager.allowed_origins = []  # disable origin check for tests
    yield
    socket_manager.registry = saved_registry
    socket_manager.connections.clear()
    socket_manager.locks.clear()
    socket_manager.allowed_origins = saved_origins


client = TestClient(app)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def recv_until(ws, msg_type, max_messages=50):
    """Receive messages until we get the expected type. Returns that message."""
    for _ in range(max_messages):
        data = ws.receive_json()
        if data.get("type") == msg_type:
            return data
    raise TimeoutError(f"Never received {msg_type} after {max_messages} messages")


def create_room(ws, host_id="host@example.com", game_type="race", **extra):
    ws.send_json({"type": "create_room", "hostId": host_id, "questionSetId": "4h8z3k",
                  "gameType": game_type, **extra})
    created = recv_until(ws, "room_created")
    recv_until(ws, "lobby_update")
    return created["code"]


def join_room(ws, code, identity, name):
    ws.send_json({"type": "join_room", "code": code, "name": name, "identity": identity})
    return ws.receive_json()


def correct_answer(question):
    return socket_manager.registry.catalog.get_question("4h8z3k", question["id"]).correct_answer


def wrong_answer(question):
    right = correct_answer(question)
    return next(a for a in question["answers"] if a != right)


# ===========================================================================
# Full Game Lifecycle
# ===========================================================================

class TestFullGameLifecycle:
    def test_race_game_to_finish(self):
        with client.websocket_connect("/ws/host-conn") as host_ws:
            code = create_room(host_ws, goalAmount=300)

            with client.websocket_connect("/ws/p1-conn") as p1_ws:
                joined = join_room(p1_ws, code, "alice@example.com", "Alice")
                assert joined["type"] == "join_success"
                assert joined["room"]["code"] == code
                lobby = recv_until(host_ws, "lobby_update")
                assert [p["displayName"] for p in lobby["players"]] == ["Host Player", "Alice"]

                host_ws.send_json({"type": "start_game", "code": code})
                started = recv_until(p1_ws, "game_started")
                assert started["room"]["status"] == "playing"
                question = recv_until(p1_ws, "new_question")["question"]
                assert "correct" not in question

                # Streak: 100, 120, 140 -> 360 crosses 300 on the third answer
                earnings = []
                for _ in range(3):
                    p1_ws.send_json({"type": "submit_answer", "questionId": question["id"],
                                     "answer": correct_answer(question)})
                    feedback = recv_until(p1_ws, "answer_feedback")
                    assert feedback["isCorrect"] is True
                    earnings.append(feedback["earnings"])
                    recv_until(p1_ws, "leaderboard_update")
                    question = recv_until(p1_ws, "new_question")["question"]

                assert earnings == [100, 120, 140]
                finished = recv_until(p1_ws, "game_finished")
                assert finished["winnerName"] == "Alice"
                assert finished["finalRankings"][0]["money"] == 360

                host_finished = recv_until(host_ws, "game_finished")
                assert host_finished["winnerId"] == "alice@example.com"

        res = client.get(f"/rooms/{code}")
        assert res.status_code == 200
        assert res.json()["status"] == "finished"

    def test_wrong_answers_use_insurance_then_break(self):
        with client.websocket_connect("/ws/host-conn") as host_ws:
            code = create_room(host_ws)
            host_ws.send_json({"type": "start_game", "code": code})
            question = recv_until(host_ws, "new_question")["question"]

            host_ws.send_json({"type": "submit_answer", "questionId": question["id"],
                               "answer": wrong_answer(question)})
            saved = recv_until(host_ws, "answer_feedback")
            assert saved["isCorrect"] is False
            assert saved["feedbackText"] == "Wrong! Streak Saved! Insurance used."
            question = recv_until(host_ws, "new_question")["question"]

            host_ws.send_json({"type": "submit_answer", "questionId": question["id"],
                               "answer": wrong_answer(question)})
            broken = recv_until(host_ws, "answer_feedback")
            assert broken["feedbackText"] == "Wrong! Streak Broken."
            assert broken["earnings"] == 0

    def test_shop_purchase_flow(self):
        with client.websocket_connect("/ws/host-conn") as host_ws:
            code = create_room(host_ws)
            host_ws.send_json({"type": "buy_upgrade", "upgradeType": "multiplier"})
            declined = recv_until(host_ws, "shop_feedback")
            assert "Not enough cash" in declined["message"]

            socket_manager.registry.get_room(code).players["host@example.com"].money = 2000
            host_ws.send_json({"type": "buy_upgrade", "upgradeType": "multiplier"})
            assert recv_until(host_ws, "shop_feedback")["message"] == "Multiplier upgraded to Lvl 2!"
            stats = recv_until(host_ws, "player_stats_update")
            assert stats["player"]["multiplierLevel"] == 2
            assert stats["player"]["money"] == 0
            recv_until(host_ws, "leaderboard_update")


# ===========================================================================
# Joining and disconnects
# ===========================================================================

class TestJoinAndDisconnect:
    def test_join_unknown_room(self):
        with client.websocket_connect("/ws/p1-conn") as ws:
            msg = join_room(ws, "ZZZZZZ", "alice", "Alice")
            assert msg["type"] == "join_failed"

    def test_join_after_start(self):
        with client.websocket_connect("/ws/host-conn") as host_ws:
            code = create_room(host_ws)
            host_ws.send_json({"type": "start_game", "code": code})
            recv_until(host_ws, "new_question")
            with client.websocket_connect("/ws/p1-conn") as p1_ws:
                msg = join_room(p1_ws, code, "alice", "Alice")
                assert msg == {"type": "join_failed", "reason": "Room not found or game started."}

    def test_lobby_disconnect_updates_roster(self):
        with client.websocket_connect("/ws/host-conn") as host_ws:
            code = create_room(host_ws)
            with client.websocket_connect("/ws/p1-conn") as p1_ws:
                join_room(p1_ws, code, "alice", "Alice")
                recv_until(host_ws, "lobby_update")
            lobby = recv_until(host_ws, "lobby_update")
            identities = [p["identity"] for p in lobby["players"]]
            assert identities == ["host@example.com"]

    def test_non_host_cannot_start(self):
        with client.websocket_connect("/ws/host-conn") as host_ws:
            code = create_room(host_ws)
            with client.websocket_connect("/ws/p1-conn") as p1_ws:
                join_room(p1_ws, code, "alice", "Alice")
                p1_ws.send_json({"type": "start_game", "code": code})
                err = recv_until(p1_ws, "error")
                assert err["code"] == "NotHost"


# ===========================================================================
# Message guards
# ===========================================================================

class TestMessageGuards:
    def test_malformed_json(self):
        with client.websocket_connect("/ws/c1") as ws:
            ws.send_text("{not json")
            err = ws.receive_json()
            assert err["code"] == "InvalidPayload"

    def test_oversized_message(self):
        with client.websocket_connect("/ws/c1") as ws:
            ws.send_text("x" * (config.MAX_WS_MESSAGE_SIZE + 1))
            err = ws.receive_json()
            assert err["code"] == "MessageTooLarge"

    def test_rate_limited(self):
        with client.websocket_connect("/ws/c1") as ws:
            for _ in range(config.WS_RATE_LIMIT_PER_SEC + 1):
                ws.send_json({"type": "dance"})
            received = [ws.receive_json() for _ in range(config.WS_RATE_LIMIT_PER_SEC + 1)]
            assert any(m["code"] == "RateLimited" for m in received)

    def test_origin_rejected(self):
        socket_manager.allowed_origins = ["http://allowed.example"]
        with pytest.raises(Exception):
            with client.websocket_connect("/ws/c1", headers={"origin": "http://evil.example"}) as ws:
                ws.receive_json()

"""
End-to-end tests over HTTP and WebSocket using FastAPI's TestClient.
"""

import time

import pytest
from fastapi.testclient import TestClient

from app import create_app


@pytest.fixture
def app():
    return create_app()


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


def join(ws, room: str):
    ws.send_json({"type": "join", "room": room})
    return ws.receive_json()


def wait_until(predicate, timeout: float = 2.0):
    # Server-side cleanup may finish just after the client context exits
    deadline = time.monotonic() + timeout
    while not predicate() and time.monotonic() < deadline:
        time.sleep(0.01)
    return predicate()


class TestNegotiate:

    def test_uses_header_identity(self, client):
        response = client.get("/negotiate", headers={"x-user-id": "john doe"})

        assert response.status_code == 200
        assert response.json() == {"url": "ws://testserver/ws?user=john%20doe", "mode": "mock"}

    def test_generates_anonymous_identity(self, client):
        body = client.get("/negotiate").json()

        assert body["mode"] == "mock"
        assert body["url"].startswith("ws://testserver/ws?user=anon-")


class TestWebSocket:

    def test_join_is_acknowledged(self, client, app):
        with client.websocket_connect("/ws?user=x") as ws:
            assert join(ws, "lobby") == {"type": "joined", "room": "lobby"}
            members = app.state.registry.members_of("lobby")
            assert [c.user_id for c in members] == ["x"]

    def test_room_broadcast_reaches_all_members(self, client):
        with client.websocket_connect("/ws?user=x") as x, client.websocket_connect("/ws?user=y") as y:
            join(x, "lobby")
            join(y, "lobby")

            x.send_json({"type": "send", "room": "lobby", "user": "Alice", "text": "hi"})

            for ws in (x, y):
                frame = ws.receive_json()
                assert frame["type"] == "group-message"
                assert frame["room"] == "lobby"
                data = frame["message"]["data"]
                assert (data["user"], data["text"]) == ("Alice", "hi")
                assert isinstance(data["ts"], int)

    def test_bad_frame_does_not_close_socket(self, client):
        with client.websocket_connect("/ws?user=x") as ws:
            ws.send_text("this is not json")
            ws.send_json({"type": "send", "room": "lobby", "user": "Alice", "text": ""})
            assert join(ws, "lobby") == {"type": "joined", "room": "lobby"}

    def test_deeply_nested_frame_does_not_close_socket(self, client, app):
        with client.websocket_connect("/ws?user=x") as ws:
            ws.send_text("[" * 100000 + "]" * 100000)
            assert join(ws, "lobby") == {"type": "joined", "room": "lobby"}
            assert app.state.lifecycle.connection_count == 1

    def test_disconnect_cleans_up(self, client, app):
        with client.websocket_connect("/ws?user=x") as ws:
            join(ws, "lobby")
            join(ws, "general")

        assert wait_until(lambda: app.state.lifecycle.connection_count == 0)
        assert app.state.registry.rooms() == frozenset()


class TestChatEndpoint:

    def test_http_broadcast_reaches_socket_members(self, client):
        with client.websocket_connect("/ws?user=x") as ws:
            join(ws, "lobby")

            response = client.post("/chat", json={"room": "lobby", "user": "Alice", "text": "from http"})

            assert response.status_code == 200
            assert response.json() == {"ok": True, "delivered": 1}
            frame = ws.receive_json()
            assert frame["message"]["data"]["text"] == "from http"
            assert frame["message"]["data"]["user"] == "Alice"

    def test_missing_user_defaults_to_anonymous(self, client):
        with client.websocket_connect("/ws?user=x") as ws:
            join(ws, "lobby")

            client.post("/chat", json={"room": "lobby", "text": "who am i"})

            assert ws.receive_json()["message"]["data"]["user"] == "anonymous"

    @pytest.mark.parametrize(
        "body",
        [
            {"room": "lobby"},
            {"text": "hi"},
            {"room": "", "text": "hi"},
            {"room": 5, "text": "hi"},
            {"room": "lobby", "text": ["hi"]},
        ],
    )
    def test_room_and_text_required(self, client, body):
        response = client.post("/chat", json=body)

        assert response.status_code == 400
        assert response.json() == {"detail": "room/text required"}

    def test_non_string_user_defaults_to_anonymous(self, client):
        with client.websocket_connect("/ws?user=x") as ws:
            join(ws, "lobby")

            response = client.post("/chat", json={"room": "lobby", "user": 7, "text": "hi"})

            assert response.status_code == 200
            assert ws.receive_json()["message"]["data"]["user"] == "anonymous"

    def test_empty_room_delivers_nothing(self, client):
        response = client.post("/chat", json={"room": "ghost", "user": "Alice", "text": "hello?"})

        assert response.json() == {"ok": True, "delivered": 0}


class TestRoomDetails:

    def test_lists_members(self, client):
        with client.websocket_connect("/ws?user=x") as x, client.websocket_connect("/ws?user=y") as y:
            join(x, "lobby")
            join(y, "lobby")

            body = client.get("/rooms/lobby").json()

            assert body == {"room": "lobby", "member_count": 2, "members": ["x", "y"]}

    def test_unknown_room_is_empty(self, client):
        assert client.get("/rooms/ghost").json() == {"room": "ghost", "member_count": 0, "members": []}


class TestHealth:

    def test_reports_counts(self, client):
        with client.websocket_connect("/ws?user=x") as ws:
            join(ws, "lobby")

            body = client.get("/health").json()

        assert body == {"status": "ok", "mode": "mock", "connections": 1, "rooms": 1}

import pytest
from fastapi.testclient import TestClient

from roomchat.core import state
from roomchat.main import app
from roomchat.services.connection_registry import ConnectionRegistry
from roomchat.services.reaper import Reaper, StatsReporter
from roomchat.services.room_directory import RoomDirectory
from roomchat.services.router import MessageRouter


@pytest.fixture
def client(monkeypatch):
    registry = ConnectionRegistry()
    directory = RoomDirectory()
    router = MessageRouter(registry=registry, directory=directory)
    monkeypatch.setattr(state, "connection_registry", registry)
    monkeypatch.setattr(state, "room_directory", directory)
    monkeypatch.setattr(state, "router", router)
    monkeypatch.setattr(state, "reaper", Reaper(registry=registry, router=router, interval=30))
    monkeypatch.setattr(state, "stats_reporter", StatsReporter(registry=registry, directory=directory))
    monkeypatch.setattr(state, "total_connections", 0)

    with TestClient(app) as test_client:
        yield test_client


def join(ws, room_id, user_name):
    ws.send_json({"type": "join", "payload": {"roomId": room_id, "userName": user_name}})


def test_join_and_welcome(client):
    with client.websocket_connect("/") as a:
        join(a, "lobby", "bob")
        welcome = a.receive_json()

    assert welcome["type"] == "system"
    assert welcome["message"] == "Welcome to room lobby. 1 total users including you."
    assert welcome["timeStamp"]


def test_ws_alias_path(client):
    with client.websocket_connect("/ws") as a:
        join(a, "lobby", "bob")
        assert a.receive_json()["type"] == "system"


def test_duplicate_name_scenario(client):
    with client.websocket_connect("/") as a, client.websocket_connect("/") as b:
        join(a, "lobby", "bob")
        a.receive_json()

        join(b, "lobby", "bob")
        assert b.receive_json()["message"] == 'Username was changed to "bob 2" to avoid conflicts'
        assert b.receive_json()["message"] == "Welcome to room lobby. 2 total users including you."
        assert b.receive_json()["message"] == "Other users in room: bob"

        assert a.receive_json()["message"] == "bob 2 joined the room"


def test_chat_scenario(client):
    with client.websocket_connect("/") as a, client.websocket_connect("/") as b:
        join(a, "lobby", "bob")
        a.receive_json()
        join(b, "lobby", "alice")
        for _ in range(2):
            b.receive_json()
        a.receive_json()

        a.send_json({"type": "chat", "payload": {"message": "hi"}})

        for ws in (a, b):
            envelope = ws.receive_json()
            assert envelope["type"] == "chat"
            assert envelope["sender"] == "bob"
            assert envelope["message"] == "hi"
            assert envelope["roomId"] == "lobby"

        assert state.room_directory.get("lobby").message_count == 1


def test_chat_before_join(client):
    with client.websocket_connect("/") as a:
        a.send_json({"type": "chat", "payload": {"message": "hi"}})

        assert a.receive_json() == {"type": "error", "message": "You must join a room first"}
    assert len(state.room_directory) == 0


def test_unknown_type(client):
    with client.websocket_connect("/") as a:
        a.send_json({"type": "shout"})

        assert a.receive_json() == {"type": "error", "message": "Invalid message type"}


def test_malformed_frame_keeps_connection_open(client):
    with client.websocket_connect("/") as a:
        a.send_text("{oops")
        join(a, "lobby", "bob")

        assert a.receive_json()["message"].startswith("Welcome to room lobby")


def test_disconnect_notifies_and_deletes_room(client):
    with client.websocket_connect("/") as a:
        join(a, "lobby", "bob")
        a.receive_json()

        with client.websocket_connect("/") as b:
            join(b, "lobby", "alice")
            b.receive_json()
            b.receive_json()
            a.receive_json()

        assert a.receive_json()["message"] == "alice left the room"
        assert len(state.room_directory.get("lobby").members) == 1

    health = client.get("/health").json()
    assert health == {"status": "healthy", "connections": 0, "rooms": 0}


def test_metrics_reports_rooms(client):
    with client.websocket_connect("/") as a:
        join(a, "lobby", "bob")
        a.receive_json()

        metrics = client.get("/metrics").json()

    assert metrics["active_connections"] == 1
    assert metrics["active_rooms"] == 1
    assert metrics["rooms"] == {"lobby": {"users": 1, "messages": 0}}
    assert metrics["total_connections_opened"] == 1


def test_oversized_and_deeply_nested_frames_keep_sender_in_room(client):
    with client.websocket_connect("/") as a, client.websocket_connect("/") as b:
        join(a, "lobby", "bob")
        a.receive_json()
        join(b, "lobby", "alice")
        for _ in range(2):
            b.receive_json()
        a.receive_json()

        a.send_text('{"type": "chat", "n": ' + "1" * 5000 + "}")
        a.send_text("[" * 100000)
        a.send_json({"type": "chat", "payload": {"message": "still here"}})

        envelope = b.receive_json()
        assert envelope["type"] == "chat"
        assert envelope["sender"] == "bob"
        assert envelope["message"] == "still here"
        assert a.receive_json()["message"] == "still here"
        assert len(state.room_directory.get("lobby").members) == 2


def fail_on(monkeypatch, trigger):
    dispatch = state.router.dispatch

    async def _dispatch(connection_id, socket, raw):
        if raw == trigger:
            raise RuntimeError("socket failure")
        await dispatch(connection_id, socket, raw)

    monkeypatch.setattr(state.router, "dispatch", _dispatch)


def test_transport_error_cleans_up_like_close(client, monkeypatch):
    fail_on(monkeypatch, "boom")

    with client.websocket_connect("/") as a:
        join(a, "lobby", "bob")
        a.receive_json()

        with client.websocket_connect("/") as b:
            join(b, "lobby", "alice")
            b.receive_json()
            b.receive_json()
            a.receive_json()

            b.send_text("boom")
            assert a.receive_json()["message"] == "alice left the room"

        room = state.room_directory.get("lobby")
        assert len(state.connection_registry) == 1
        [member_id] = room.members
        assert state.connection_registry.find(member_id).user_name == "bob"
        assert state.connection_registry.find(member_id).room_id == "lobby"


def test_transport_error_of_last_member_deletes_room(client, monkeypatch):
    fail_on(monkeypatch, "boom")

    with client.websocket_connect("/") as a:
        join(a, "lobby", "bob")
        a.receive_json()
        a.send_text("boom")

    assert "lobby" not in state.room_directory
    assert len(state.connection_registry) == 0

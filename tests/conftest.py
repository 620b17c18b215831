import json

import pytest
from starlette.websockets import WebSocketState

from roomchat.services.connection_registry import ConnectionRegistry
from roomchat.services.room_directory import RoomDirectory
from roomchat.services.router import MessageRouter


class FakeSocket:
    """Records frames sent to it and exposes Starlette-style socket states."""

    def __init__(self):
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED
        self.sent = []

    async def send_text(self, data):
        self.sent.append(json.loads(data))

    def drop(self):
        self.client_state = WebSocketState.DISCONNECTED

    def of_type(self, msg_type):
        return [m for m in self.sent if m["type"] == msg_type]

    def system_messages(self):
        return [m["message"] for m in self.of_type("system")]


class BrokenSocket(FakeSocket):
    async def send_text(self, data):
        raise RuntimeError("connection reset")


@pytest.fixture
def registry():
    return ConnectionRegistry()


@pytest.fixture
def directory():
    return RoomDirectory()


@pytest.fixture
def router(registry, directory):
    return MessageRouter(registry=registry, directory=directory)


@pytest.fixture
def join(router):
    async def _join(connection_id, socket, room_id, user_name):
        frame = {"type": "join", "payload": {"roomId": room_id, "userName": user_name}}
        await router.dispatch(connection_id, socket, json.dumps(frame))
    return _join


@pytest.fixture
def chat(router):
    async def _chat(connection_id, socket, message):
        frame = {"type": "chat", "payload": {"message": message}}
        await router.dispatch(connection_id, socket, json.dumps(frame))
    return _chat

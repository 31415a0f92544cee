import asyncio

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

import educhat.main as main_module
from educhat.database.connection import mongo_db_dependency
from educhat.utils.security import create_access_token

from conftest import EDUCATOR_ID, OTHER_STUDENT_ID, STUDENT_ID


def auth(user_id, role):
    return {"Authorization": f"Bearer {create_access_token(user_id, role)}"}


@pytest.fixture()
def client(db, monkeypatch):
    async def fake_connect(*args, **kwargs):
        return db

    async def fake_close():
        return None

    monkeypatch.setattr(main_module, "connect_to_mongo", fake_connect)
    monkeypatch.setattr(main_module, "close_mongo_connection", fake_close)

    app = main_module.create_app()
    app.dependency_overrides[mongo_db_dependency] = lambda: db
    with TestClient(app) as test_client:
        yield test_client


def open_conversation(client):
    resp = client.post("/conversations", json={"other_user_id": EDUCATOR_ID}, headers=auth(STUDENT_ID, "student"))
    return resp


def send(client, conversation_id, content="hello", sender=STUDENT_ID, role="student", receiver=EDUCATOR_ID):
    return client.post(
        "/messages",
        json={"conversation_id": conversation_id, "receiver_id": receiver, "receiver_role": "Educator", "content": content},
        headers=auth(sender, role),
    )


def test_requires_authentication(client):
    assert client.get("/conversations").status_code == 401
    resp = client.get("/conversations", headers={"Authorization": "Bearer not-a-token"})
    assert resp.status_code == 401


def test_invalid_role_is_forbidden(client):
    resp = client.get("/messages/unread-count", headers=auth(STUDENT_ID, "janitor"))
    assert resp.status_code == 403
    assert resp.json() == {"success": False, "message": "Invalid user type"}


def test_create_conversation_created_then_retrieved(client):
    first = open_conversation(client)
    second = open_conversation(client)

    assert first.status_code == 201
    assert first.json()["message"] == "Conversation created successfully"
    assert second.status_code == 200
    assert second.json()["message"] == "Conversation retrieved successfully"
    assert first.json()["data"]["conversation"]["_id"] == second.json()["data"]["conversation"]["_id"]


def test_educator_cannot_create_conversation(client):
    resp = client.post("/conversations", json={"other_user_id": STUDENT_ID}, headers=auth(EDUCATOR_ID, "educator"))
    assert resp.status_code == 403
    assert resp.json()["message"] == "Only Student can create chat with Educator"


def test_request_validation_lists_fields(client):
    resp = client.post("/conversations", json={}, headers=auth(STUDENT_ID, "student"))
    assert resp.status_code == 400
    assert resp.json()["errors"] == ["other_user_id"]


def test_message_flow_over_http(client):
    conversation_id = open_conversation(client).json()["data"]["conversation"]["_id"]

    for i in range(5):
        resp = send(client, conversation_id, content=f"m{i}")
        assert resp.status_code == 201
        assert resp.json()["data"]["message"]["read_at"] is None

    educator = auth(EDUCATOR_ID, "educator")
    assert client.get("/messages/unread-count", headers=educator).json()["data"] == {"unread_count": 5}

    page = client.get(f"/conversations/{conversation_id}/messages?page=1&limit=2", headers=educator).json()["data"]
    assert [m["content"] for m in page["messages"]] == ["m3", "m4"]
    assert page["total_count"] == 5

    empty = client.get(f"/conversations/{conversation_id}/messages?page=10&limit=2", headers=educator).json()["data"]
    assert empty["messages"] == []
    assert empty["total_count"] == 5

    newest = page["messages"][-1]["_id"]
    read = client.patch(f"/messages/{newest}/read", headers=educator)
    assert read.status_code == 200
    assert read.json()["data"]["message"]["read_at"] is not None
    assert client.patch(f"/messages/{newest}/read", headers=auth(STUDENT_ID, "student")).status_code == 403

    listed = client.get("/conversations", headers=educator).json()["data"]["conversations"]
    assert listed[0]["unread_count"] == 4

    marked = client.patch(f"/conversations/{conversation_id}/read", headers=educator)
    assert marked.json()["data"] == {"conversation_id": conversation_id, "unread_count": 0, "marked": 4}


def test_non_participant_is_forbidden(client):
    conversation_id = open_conversation(client).json()["data"]["conversation"]["_id"]
    outsider = auth(OTHER_STUDENT_ID, "student")

    assert send(client, conversation_id, sender=OTHER_STUDENT_ID).status_code == 403
    assert client.get(f"/conversations/{conversation_id}/messages", headers=outsider).status_code == 403
    assert client.patch(f"/conversations/{conversation_id}/read", headers=outsider).status_code == 403


def test_missing_resources_are_not_found(client):
    student = auth(STUDENT_ID, "student")
    assert send(client, "0" * 24).status_code == 404
    assert client.get("/conversations/nope/messages", headers=student).status_code == 404
    assert client.patch("/messages/nope/read", headers=student).status_code == 404


def test_page_size_is_bounded(client):
    conversation_id = open_conversation(client).json()["data"]["conversation"]["_id"]
    resp = client.get(f"/conversations/{conversation_id}/messages?limit=0", headers=auth(STUDENT_ID, "student"))
    assert resp.status_code == 400
    assert resp.json()["errors"] == ["limit"]


def test_websocket_receives_new_message_and_read_receipt(client):
    conversation_id = open_conversation(client).json()["data"]["conversation"]["_id"]

    with client.websocket_connect(f"/ws/chat?token={create_access_token(STUDENT_ID, 'student')}") as student_ws, \
         client.websocket_connect(f"/ws/chat?token={create_access_token(EDUCATOR_ID, 'educator')}") as educator_ws:
        # round trip so both sockets are registered before sending
        student_ws.send_json({"event": "ping"})
        assert student_ws.receive_json() == {"event": "pong", "data": {}}
        educator_ws.send_json({"event": "ping"})
        assert educator_ws.receive_json() == {"event": "pong", "data": {}}

        message = send(client, conversation_id, content="live").json()["data"]["message"]

        pushed = educator_ws.receive_json()
        assert pushed["event"] == "new_message"
        assert pushed["data"]["message"]["_id"] == message["_id"]

        client.patch(f"/messages/{message['_id']}/read", headers=auth(EDUCATOR_ID, "educator"))
        receipt = student_ws.receive_json()
        assert receipt["event"] == "message_read"
        assert receipt["data"]["message_id"] == message["_id"]


def test_websocket_rejects_missing_or_bad_token(client):
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect("/ws/chat") as ws:
            ws.receive_json()
    assert exc_info.value.code == 4401

    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect("/ws/chat?token=garbage") as ws:
            ws.receive_json()
    assert exc_info.value.code == 4401


def test_websocket_disconnect_unregisters(client):
    token = create_access_token(STUDENT_ID, "student")
    with client.websocket_connect(f"/ws/chat?token={token}") as ws:
        ws.send_json({"event": "ping"})
        ws.receive_json()
        assert client.app.state.connections.lookup(STUDENT_ID) is not None
    # leaving the block waits for the endpoint to finish
    assert client.app.state.connections.lookup(STUDENT_ID) is None


class _TrackedSubscription:

    def __init__(self) -> None:
        self.cancelled = False
        self.finished = False

    async def run(self):
        try:
            await asyncio.Future()
        finally:
            self.finished = True

    async def cancel(self):
        self.cancelled = True


class _TrackingBus:

    enabled = True

    def __init__(self) -> None:
        self.subscriptions = []

    async def subscribe(self, channel, on_message):
        sub = _TrackedSubscription()
        self.subscriptions.append((channel, sub))
        return sub

    async def publish(self, channel, message):
        return None

    async def close(self):
        return None


def test_websocket_relay_task_is_stopped_on_disconnect(client):
    bus = _TrackingBus()
    client.app.state.bus = bus
    token = create_access_token(STUDENT_ID, "student")

    with client.websocket_connect(f"/ws/chat?token={token}") as ws:
        ws.send_json({"event": "ping"})
        ws.receive_json()

    [(channel, sub)] = bus.subscriptions
    assert channel == f"user:{STUDENT_ID}"
    assert sub.cancelled is True
    assert sub.finished is True

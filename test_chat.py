import asyncio
import json

import pytest
from starlette.websockets import WebSocketDisconnect

from app.models.chat import ChatMessage
from app.models.notification import Notification
from app.models.presence import UserPresence
from app.services.websocket_manager import websocket_manager, chat_channel, change_event
from app.utils.security import create_access_token
from conftest import auth_headers


def public_room(client, user, project):
    rooms = client.get(f"/chat/rooms?project_id={project.id}", headers=auth_headers(user)).json()
    return next(room for room in rooms if room["room_type"] == "public")


def post_message(client, user, room_id, **payload):
    return client.post(f"/chat/rooms/{room_id}/messages", json=payload, headers=auth_headers(user))


def test_public_room_is_created_once(client, manager, member, project):
    first = public_room(client, member, project)
    second = public_room(client, manager, project)
    assert first["id"] == second["id"]
    assert first["name"] == "Apollo General"
    assert set(second["participant_ids"]) == {manager.id, member.id}


def test_message_notifies_other_members(client, db, manager, member, project, sent_emails):
    room = public_room(client, member, project)
    response = post_message(client, member, room["id"], content="  Hello team  ")
    assert response.status_code == 201
    message = response.json()
    assert message["content"] == "Hello team"
    assert message["sender_name"] == "Team Member"

    notices = db.query(Notification).all()
    assert [n.user_id for n in notices] == [manager.id]
    assert notices[0].notification_type == "chat_message"
    assert [email["to"] for email in sent_emails] == [[manager.email]]
    assert "Team Member" in sent_emails[0]["subject"]


def test_muted_participants_are_skipped(client, db, manager, member, project, sent_emails):
    room = public_room(client, manager, project)
    muted = client.put(f"/chat/rooms/{room['id']}/mute?muted=true", headers=auth_headers(manager))
    assert muted.json()["muted"] is True

    post_message(client, member, room["id"], content="Anyone?")
    assert db.query(Notification).count() == 0
    assert sent_emails == []


def test_empty_message_is_rejected(client, member, project):
    room = public_room(client, member, project)
    assert post_message(client, member, room["id"], content="   ").status_code == 400


def test_attachment_type_must_be_allowed(client, member, project):
    room = public_room(client, member, project)
    attachment = {"url": "/uploads/chat/x.exe", "name": "x.exe", "type": "application/x-msdownload", "size": 10}
    assert post_message(client, member, room["id"], attachment=attachment).status_code == 400

    pdf = {"url": "/uploads/chat/brief.pdf", "name": "brief.pdf", "type": "application/pdf", "size": 10}
    response = post_message(client, member, room["id"], attachment=pdf)
    assert response.status_code == 201
    assert response.json()["attachment_name"] == "brief.pdf"


def test_attachment_upload(client, member, project):
    room = public_room(client, member, project)
    response = client.post(
        f"/chat/rooms/{room['id']}/attachments",
        files={"file": ("notes.txt", b"meeting notes", "text/plain")},
        headers=auth_headers(member),
    )
    assert response.status_code == 200
    attachment = response.json()
    assert attachment["name"] == "notes.txt"
    assert attachment["size"] == len(b"meeting notes")
    assert attachment["url"].startswith("/uploads/chat/")


def test_reply_must_target_same_room(client, manager, member, project):
    room = public_room(client, member, project)
    private = client.post("/chat/rooms", json={"project_id": project.id, "participant_id": manager.id}, headers=auth_headers(member)).json()
    parent = post_message(client, member, private["id"], content="private").json()

    response = post_message(client, member, room["id"], content="reply", parent_message_id=parent["id"])
    assert response.status_code == 400


def test_private_rooms(client, manager, member, outsider, project):
    headers = auth_headers(member)
    room = client.post("/chat/rooms", json={"project_id": project.id, "participant_id": manager.id}, headers=headers)
    assert room.status_code == 200
    again = client.post("/chat/rooms", json={"project_id": project.id, "participant_id": manager.id}, headers=headers)
    assert again.json()["id"] == room.json()["id"]

    assert client.post("/chat/rooms", json={"project_id": project.id, "participant_id": member.id}, headers=headers).status_code == 400
    assert client.post("/chat/rooms", json={"project_id": project.id, "participant_id": outsider.id}, headers=headers).status_code == 400
    assert client.get(f"/chat/rooms/{room.json()['id']}/messages", headers=auth_headers(outsider)).status_code == 403


def test_unread_counts_and_mark_read(client, manager, member, project):
    room = public_room(client, manager, project)
    post_message(client, member, room["id"], content="one")
    post_message(client, member, room["id"], content="two")

    counts = client.get(f"/chat/unread?project_id={project.id}", headers=auth_headers(manager)).json()
    assert counts["total"] == 2
    assert counts["by_room"][str(room["id"])] == 2

    assert client.post(f"/chat/rooms/{room['id']}/read", headers=auth_headers(manager)).status_code == 200
    assert client.get("/chat/unread/global", headers=auth_headers(manager)).json()["total"] == 0


def test_edit_and_soft_delete(client, db, manager, member, project):
    room = public_room(client, member, project)
    message = post_message(client, member, room["id"], content="draft").json()

    assert client.put(f"/chat/messages/{message['id']}", json={"content": "stolen"}, headers=auth_headers(manager)).status_code == 403
    edited = client.put(f"/chat/messages/{message['id']}", json={"content": "final"}, headers=auth_headers(member)).json()
    assert edited["content"] == "final"
    assert edited["edited_at"] is not None

    assert client.delete(f"/chat/messages/{message['id']}", headers=auth_headers(member)).status_code == 204
    assert client.get(f"/chat/rooms/{room['id']}/messages", headers=auth_headers(member)).json() == []
    db.expire_all()
    assert db.query(ChatMessage).filter(ChatMessage.id == message["id"]).first().deleted_at is not None


def test_chat_settings(client, manager, member, project):
    defaults = client.get(f"/chat/settings/{project.id}", headers=auth_headers(member)).json()
    assert defaults["public_chat_enabled"] is True
    assert defaults["message_retention_days"] == 90

    assert client.put(f"/chat/settings/{project.id}", json={"public_chat_enabled": False}, headers=auth_headers(member)).status_code == 403
    updated = client.put(f"/chat/settings/{project.id}", json={"public_chat_enabled": False}, headers=auth_headers(manager)).json()
    assert updated["public_chat_enabled"] is False

    rooms = client.get(f"/chat/rooms?project_id={project.id}", headers=auth_headers(member)).json()
    assert all(room["room_type"] == "private" for room in rooms)


def token_for(user):
    return create_access_token({"sub": user.email})


def test_websocket_requires_token(client):
    with client.websocket_connect("/ws") as websocket:
        assert websocket.receive_json()["type"] == "error"
        with pytest.raises(WebSocketDisconnect) as exc:
            websocket.receive_json()
    assert exc.value.code == 4401


def test_websocket_subscribe_and_heartbeat(client, db, member, outsider, project):
    room = public_room(client, member, project)

    with client.websocket_connect(f"/ws?token={token_for(member)}") as websocket:
        assert websocket.receive_json()["type"] == "connection"

        websocket.send_json({"type": "subscribe", "channel": chat_channel(room["id"])})
        assert websocket.receive_json() == {"type": "subscribed", "channel": chat_channel(room["id"])}

        websocket.send_json({"type": "subscribe", "channel": "chat-messages-9999"})
        assert websocket.receive_json()["type"] == "error"

        websocket.send_json({"type": "heartbeat"})
        assert websocket.receive_json()["type"] == "pong"

        websocket.send_text("not json")
        assert websocket.receive_json()["message"] == "Invalid JSON"

        websocket.send_json({"type": "dance"})
        assert websocket.receive_json()["type"] == "error"

        presence = db.query(UserPresence).filter(UserPresence.user_id == member.id).first()
        assert presence.status == "online"


def test_outsider_cannot_subscribe_to_project_channels(client, outsider, project):
    with client.websocket_connect(f"/ws?token={token_for(outsider)}") as websocket:
        websocket.receive_json()
        websocket.send_json({"type": "subscribe", "channel": f"unread-messages-{project.id}"})
        assert websocket.receive_json()["type"] == "error"
        websocket.send_json({"type": "subscribe", "channel": "user-presence-changes"})
        assert websocket.receive_json()["type"] == "subscribed"


class RecordingSocket:
    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail

    async def send_text(self, text):
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(json.loads(text))


def test_publish_reaches_subscribers_and_drops_dead_sockets():
    alive, dead = RecordingSocket(), RecordingSocket(fail=True)
    websocket_manager.subscribe(alive, "chat-messages-1")
    websocket_manager.subscribe(dead, "chat-messages-1")
    websocket_manager.subscribe(alive, "chat-messages-2")

    delivered = asyncio.run(websocket_manager.publish("chat-messages-1", change_event("INSERT", "chat_messages", {"id": 7})))

    assert delivered == 1
    assert alive.sent[0]["channel"] == "chat-messages-1"
    assert alive.sent[0]["event"] == "INSERT"
    assert alive.sent[0]["new"] == {"id": 7}
    assert websocket_manager.get_subscriber_count("chat-messages-1") == 1
    assert asyncio.run(websocket_manager.publish("chat-messages-3", {"type": "noop"})) == 0

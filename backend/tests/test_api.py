import pytest
from bson import ObjectId
from starlette.websockets import WebSocketDisconnect


class TestMessagesApi:

    def test_send_requires_auth(self, client):
        resp = client.post("/messages/send", json={"recipientId": "u2", "content": "hello"})
        assert resp.status_code == 401

    def test_send_rejects_bad_token(self, client):
        resp = client.post(
            "/messages/send",
            json={"recipientId": "u2", "content": "hello"},
            headers={"Authorization": "Bearer not-a-jwt"},
        )
        assert resp.status_code == 401

    def test_send_direct_message(self, client, auth_headers):
        resp = client.post("/messages/send", json={"recipientId": "u2", "content": "hello"}, headers=auth_headers("u1"))

        assert resp.status_code == 201
        body = resp.json()
        assert body["sender_id"] == "u1"
        assert body["recipients"] == ["u2"]
        assert body["content"] == "hello"
        assert body["is_group_message"] is False
        assert [r["user_id"] for r in body["read_by"]] == ["u1"]

    def test_send_without_recipient(self, client, auth_headers):
        resp = client.post("/messages/send", json={"content": "hello"}, headers=auth_headers("u1"))

        assert resp.status_code == 422
        assert resp.json() == {"detail": "recipientId is required", "code": "invalid_input", "fields": ["recipientId"]}

    def test_send_to_self_rejected(self, client, auth_headers):
        resp = client.post("/messages/send", json={"recipientId": "u1", "content": "me"}, headers=auth_headers("u1"))

        assert resp.status_code == 422
        assert resp.json()["code"] == "invalid_input"

    def test_group_send(self, client, auth_headers):
        resp = client.post(
            "/messages/group/send",
            json={"recipientIds": ["u2", "u3"], "content": "team"},
            headers=auth_headers("u1"),
        )

        assert resp.status_code == 201
        assert resp.json()["is_group_message"] is True
        for user_id in ("u2", "u3"):
            unread = client.get("/messages/unread", headers=auth_headers(user_id)).json()["messages"]
            assert [m["content"] for m in unread] == ["team"]

    def test_unread_history_and_mark_read(self, client, auth_headers):
        sent = client.post("/messages/send", json={"recipientId": "u2", "content": "one"}, headers=auth_headers("u1")).json()
        client.post("/messages/send", json={"recipientId": "u1", "content": "two"}, headers=auth_headers("u2"))

        unread = client.get("/messages/unread", headers=auth_headers("u2")).json()["messages"]
        assert [m["id"] for m in unread] == [sent["id"]]

        for _ in range(2):
            resp = client.put(f"/messages/read/{sent['id']}", headers=auth_headers("u2"))
            assert resp.status_code == 200
            assert resp.json() == {"message": "Message marked as read"}

        assert client.get("/messages/unread", headers=auth_headers("u2")).json()["messages"] == []

        history_12 = client.get("/messages/conversation/u2", headers=auth_headers("u1")).json()["messages"]
        history_21 = client.get("/messages/conversation/u1", headers=auth_headers("u2")).json()["messages"]
        assert [m["content"] for m in history_12] == ["two", "one"]
        assert history_12 == history_21

    def test_mark_read_unknown_message(self, client, auth_headers):
        resp = client.put(f"/messages/read/{ObjectId()}", headers=auth_headers("u2"))

        assert resp.status_code == 404
        assert resp.json()["code"] == "not_found"

    def test_conversation_list(self, client, auth_headers):
        client.post("/messages/send", json={"recipientId": "u1", "content": "hey"}, headers=auth_headers("u2"))
        client.post("/messages/send", json={"recipientId": "u2", "content": "hi"}, headers=auth_headers("u1"))
        client.post("/messages/send", json={"recipientId": "u1", "content": "yo"}, headers=auth_headers("u3"))

        items = client.get("/conversations", headers=auth_headers("u1")).json()["items"]

        assert [c["id"] for c in items] == ["u3", "u2"]
        assert items[0]["unread_count"] == 1
        assert items[1]["last_message"]["content"] == "hi"
        assert items[1]["unread_count"] == 0
        assert items[1]["participants"] == [{"id": "u2", "username": None, "profile_picture": None}]


class TestRealtime:

    def test_socket_requires_token(self, client):
        with pytest.raises(WebSocketDisconnect) as exc:
            with client.websocket_connect("/messages/ws"):
                pass
        assert exc.value.code == 4401

    def test_identify_without_user_id(self, client, token, auth_headers):
        with client.websocket_connect(f"/messages/ws?token={token('u1')}") as ws:
            ws.send_json({"type": "user_connected"})
            assert ws.receive_json() == {"type": "error", "message": "userId is required"}

        assert client.get("/presence/u1", headers=auth_headers("u2")).json() == {"user_id": "u1", "online": False}

    def test_identify_as_someone_else(self, client, token):
        with client.websocket_connect(f"/messages/ws?token={token('u1')}") as ws:
            ws.send_json({"type": "user_connected", "userId": "u2"})
            assert ws.receive_json()["type"] == "error"

    def test_identify_and_presence(self, client, token, auth_headers):
        with client.websocket_connect(f"/messages/ws?token={token('u1')}") as ws:
            ws.send_json({"type": "user_connected", "userId": "u1"})
            confirmed = ws.receive_json()
            assert confirmed["type"] == "connection_confirmed"
            assert confirmed["userId"] == "u1"
            assert confirmed["connectionId"]

            online = client.get("/presence/u1", headers=auth_headers("u2")).json()
            assert online == {"user_id": "u1", "online": True}

    def test_send_to_online_and_offline_recipient(self, client, token, auth_headers):
        with client.websocket_connect(f"/messages/ws?token={token('u1')}") as ws1, \
                client.websocket_connect(f"/messages/ws?token={token('u2')}") as ws2:
            ws1.send_json({"type": "user_connected", "userId": "u1"})
            ws1.receive_json()
            ws2.send_json({"type": "user_connected", "userId": "u2"})
            ws2.receive_json()

            ws1.send_json({"type": "send_message", "recipientId": "u2", "content": "hello"})
            ack = ws1.receive_json()
            push = ws2.receive_json()

            assert ack["type"] == "message_sent"
            assert ack["deliveredTo"] == ["u2"]
            assert push["type"] == "new_message"
            assert push["message"]["id"] == ack["messageId"]
            assert push["message"]["content"] == "hello"
            assert push["message"]["sender_id"] == "u1"

            ws1.send_json({"type": "send_message", "recipientId": "u3", "content": "are you there?"})
            notice = ws1.receive_json()
            assert notice["type"] == "message_error"
            assert notice["code"] == "recipient_unreachable"

        unread = client.get("/messages/unread", headers=auth_headers("u3")).json()["messages"]
        assert [m["id"] for m in unread] == [notice["messageId"]]

    def test_invalid_payloads_do_not_close_socket(self, client, token):
        with client.websocket_connect(f"/messages/ws?token={token('u1')}") as ws:
            ws.send_json({"type": "send_message", "recipientId": "u2", "content": "too early"})
            assert ws.receive_json()["type"] == "message_error"

            ws.send_json({"type": "user_connected", "userId": "u1"})
            ws.receive_json()

            ws.send_text("{not json")
            assert ws.receive_json() == {"type": "error", "message": "Malformed JSON payload"}

            ws.send_json({"type": "send_message", "content": "no target"})
            rejected = ws.receive_json()
            assert rejected["type"] == "message_error"
            assert rejected["code"] == "invalid_input"

            ws.send_json({"type": "dance"})
            assert ws.receive_json()["type"] == "error"

            ws.send_json({"type": "send_message", "recipientId": "u2", "content": "still here"})
            assert ws.receive_json()["code"] == "recipient_unreachable"

    def test_binary_frame_gets_error_and_socket_stays_open(self, client, token, auth_headers):
        with client.websocket_connect(f"/messages/ws?token={token('u1')}") as ws:
            ws.send_json({"type": "user_connected", "userId": "u1"})
            ws.receive_json()

            ws.send_bytes(b"\x00\x01")
            assert ws.receive_json() == {"type": "error", "message": "Binary frames are not supported"}

            ws.send_json({"type": "send_message", "recipientId": "u2", "content": "after binary"})
            assert ws.receive_json()["code"] == "recipient_unreachable"
            assert client.get("/presence/u1", headers=auth_headers("u2")).json()["online"] is True

    def test_mark_read_over_socket(self, client, token, auth_headers):
        sent = client.post("/messages/send", json={"recipientId": "u2", "content": "read me"}, headers=auth_headers("u1")).json()

        with client.websocket_connect(f"/messages/ws?token={token('u2')}") as ws:
            ws.send_json({"type": "user_connected", "userId": "u2"})
            ws.receive_json()

            ws.send_json({"type": "mark_read", "messageId": sent["id"]})
            assert ws.receive_json() == {"type": "message_read", "messageId": sent["id"]}

            ws.send_json({"type": "mark_read", "messageId": str(ObjectId())})
            missing = ws.receive_json()
            assert missing["type"] == "error"
            assert missing["code"] == "not_found"

        assert client.get("/messages/unread", headers=auth_headers("u2")).json()["messages"] == []

    def test_group_send_over_socket(self, client, token):
        with client.websocket_connect(f"/messages/ws?token={token('u1')}") as ws1, \
                client.websocket_connect(f"/messages/ws?token={token('u2')}") as ws2:
            ws1.send_json({"type": "user_connected", "userId": "u1"})
            ws1.receive_json()
            ws2.send_json({"type": "user_connected", "userId": "u2"})
            ws2.receive_json()

            ws1.send_json({"type": "send_group_message", "recipientIds": ["u2", "u3"], "content": "team"})
            ack = ws1.receive_json()
            push = ws2.receive_json()

            assert ack == {"type": "message_sent", "messageId": push["message"]["id"], "deliveredTo": ["u2"], "pending": ["u3"]}
            assert push["message"]["is_group_message"] is True

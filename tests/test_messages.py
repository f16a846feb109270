def message_ids(response):
    return [message["id"] for message in response.json()]


def test_student_sees_messages_they_sent_or_received(client, login_as):
    login_as("Student")

    assert message_ids(client.get("/api/messages")) == ["msg-1", "msg-2", "msg-3"]
    assert message_ids(client.get("/api/messages", params={"type": "inbox"})) == ["msg-1", "msg-2"]
    assert message_ids(client.get("/api/messages", params={"type": "sent"})) == ["msg-3"]


def test_invalid_box_filter_is_rejected(client, login_as):
    login_as("Student")
    assert client.get("/api/messages", params={"type": "archive"}).status_code == 422


def test_teacher_sends_message(client, login_as):
    login_as("Teacher")
    response = client.post(
        "/api/messages",
        json={"title": "Lab safety", "body": "Bring goggles tomorrow.", "recipients": ["user-1", "user-6"]},
    )
    assert response.status_code == 200
    message = response.json()
    assert message["senderId"] == "user-2"
    assert message["readBy"] == []
    assert message["type"] == "direct"
    assert message["id"].startswith("msg-")

    login_as("Student")
    assert message_ids(client.get("/api/messages", params={"type": "inbox"}))[0] == message["id"]

    login_as("Admin")
    entry = client.get("/api/audits", params={"search": "send_message"}).json()[0]
    assert entry["actorId"] == "user-2"
    assert entry["details"] == {"recipientCount": 2, "messageType": "direct"}


def test_student_cannot_send(client, login_as):
    login_as("Student")
    response = client.post("/api/messages", json={"title": "Hi", "body": "Hello", "recipients": ["user-2"]})
    assert response.status_code == 403


def test_send_requires_recipients(client, login_as):
    login_as("Teacher")
    response = client.post("/api/messages", json={"title": "Hi", "body": "Hello", "recipients": []})
    assert response.status_code == 422


def test_mark_read_is_idempotent(client, login_as):
    login_as("Student")
    assert client.patch("/api/messages/msg-2/read").json() == {"success": True}
    assert client.patch("/api/messages/msg-2/read").json() == {"success": True}

    message = next(m for m in client.get("/api/messages").json() if m["id"] == "msg-2")
    assert message["readBy"] == ["user-1"]


def test_mark_read_keeps_existing_readers(client, login_as):
    login_as("Student")
    client.patch("/api/messages/msg-1/read")

    message = next(m for m in client.get("/api/messages").json() if m["id"] == "msg-1")
    assert message["readBy"] == ["user-2", "user-1"]


def test_mark_read_unknown_message(client, login_as):
    login_as("Student")
    assert client.patch("/api/messages/msg-missing/read").status_code == 404

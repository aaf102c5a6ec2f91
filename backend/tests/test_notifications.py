from __future__ import annotations

import pytest
from fastapi import HTTPException

from app.services import assignment_service, notification_service


def _notify(db, user, title="Xin chào", type="info"):
    row = notification_service.create_notification(db, user_id=user.id, type=type, title=title, message="...")
    db.commit()
    return row


def test_list_filters_and_unread_count(client, db, make_user, auth):
    u = make_user("parent")
    _notify(db, u, "A")
    _notify(db, u, "B", type="warning")
    _notify(db, make_user("parent"), "khác")

    r = client.get("/api/notifications", headers=auth(u))
    data = r.json()["data"]
    assert data["unread_count"] == 2
    assert {n["title"] for n in data["items"]} == {"A", "B"}

    r = client.get("/api/notifications", params={"type": "warning"}, headers=auth(u))
    assert [n["title"] for n in r.json()["data"]["items"]] == ["B"]

    r = client.get("/api/notifications", params={"type": "bogus"}, headers=auth(u))
    assert r.status_code == 400


def test_mark_read_and_read_all(client, db, make_user, auth):
    u = make_user("parent")
    other = make_user("parent")
    n1 = _notify(db, u)
    _notify(db, u)
    foreign = _notify(db, other)

    r = client.patch(f"/api/notifications/{n1.id}/read", json={"is_read": True}, headers=auth(u))
    assert r.json()["data"] == {"id": n1.id, "is_read": True}

    r = client.patch(f"/api/notifications/{foreign.id}/read", json={"is_read": True}, headers=auth(u))
    assert r.status_code == 404

    r = client.post("/api/notifications/read-all", headers=auth(u))
    assert r.json()["data"] == {"updated": 1}
    r = client.get("/api/notifications", params={"is_read": False}, headers=auth(u))
    assert r.json()["data"]["items"] == []


def test_notify_safely_swallows_bad_type(db, make_user):
    u = make_user("parent")
    assert notification_service.notify_safely(db, user_id=u.id, type="nope", title="x", message="y") is None
    row = notification_service.notify_safely(db, user_id=u.id, type="success", title="x", message="y", data={"k": 1})
    db.commit()
    assert row.data == {"k": 1}


def test_admin_broadcast_to_role(client, db, make_user, auth):
    admin = make_user("admin")
    parents = [make_user("parent"), make_user("parent")]
    make_user("student")

    r = client.post(
        "/api/notifications/send",
        json={"title": "Bảo trì", "message": "Hệ thống bảo trì 22h", "type": "warning", "role": "parent"},
        headers=auth(admin),
    )
    assert r.status_code == 200
    assert r.json()["data"] == {"sent": 2, "user_ids": sorted(p.id for p in parents)}


def test_teacher_can_only_message_own_students(db, make_user):
    teacher = make_user("teacher")
    mine = make_user("student")
    theirs = make_user("student")
    assignment_service.link_teacher_student(db, teacher.id, mine.id)

    ids = notification_service.send_notifications(db, teacher, title="Nhắc", message="Làm bài", user_ids=[mine.id])
    assert ids == [mine.id]

    with pytest.raises(HTTPException) as exc:
        notification_service.send_notifications(db, teacher, title="Nhắc", message="x", user_ids=[theirs.id])
    assert exc.value.status_code == 403

    with pytest.raises(HTTPException) as exc:
        notification_service.send_notifications(db, teacher, title="Nhắc", message="x", role="student")
    assert exc.value.status_code == 403


def test_send_requires_recipients(db, make_user):
    admin = make_user("admin")
    with pytest.raises(HTTPException) as exc:
        notification_service.send_notifications(db, admin, title="t", message="m")
    assert exc.value.status_code == 400
    with pytest.raises(HTTPException) as exc:
        notification_service.send_notifications(db, admin, title="t", message="m", user_ids=[999])
    assert exc.value.status_code == 404


def test_parent_cannot_send(client, make_user, auth):
    p = make_user("parent")
    r = client.post("/api/notifications/send", json={"title": "t", "message": "m", "user_ids": [p.id]}, headers=auth(p))
    assert r.status_code == 403

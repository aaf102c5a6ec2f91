from __future__ import annotations

import pytest
from fastapi import HTTPException

from app.models.lesson import Lesson
from app.services import lesson_service


def _lesson(db, author, **kwargs):
    data = {
        "title": "Phép cộng trong phạm vi 10",
        "grade": "Lớp 1",
        "subject": "Toán",
        "content_md": "# Phép cộng\n\n2 + 3 = 5",
    }
    data.update(kwargs)
    return lesson_service.create_lesson(db, author, **data)


def test_create_normalizes_subject(db, make_user):
    t = make_user("teacher")
    lesson = _lesson(db, t, description="  Bài mở đầu ")
    assert lesson.subject == "math"
    assert lesson.description == "Bài mở đầu"
    assert lesson.created_by == t.id
    assert lesson.is_published is True


def test_list_filters_and_paginates(db, make_user):
    t = make_user("teacher")
    for i in range(3):
        _lesson(db, t, title=f"Toán {i}")
    _lesson(db, t, title="Đọc hiểu", subject="Tiếng Việt")
    _lesson(db, t, title="Toán lớp 2", grade="Lớp 2")

    student = make_user("student")
    out = lesson_service.list_lessons(db, student, grade="Lớp 1", subject="toan", page=1, limit=2)
    assert out["pagination"] == {"page": 1, "limit": 2, "total": 3, "pages": 2}
    assert len(out["lessons"]) == 2

    out = lesson_service.list_lessons(db, student, grade="Lớp 1", subject="math", page=2, limit=2)
    assert len(out["lessons"]) == 1

    assert lesson_service.list_lessons(db, student, subject="literature")["pagination"]["total"] == 1


def test_drafts_hidden_from_readers(db, make_user):
    t = make_user("teacher")
    draft = _lesson(db, t, title="Nháp", is_published=False)
    _lesson(db, t, title="Đã xuất bản")

    parent = make_user("parent")
    titles = [x["title"] for x in lesson_service.list_lessons(db, parent)["lessons"]]
    assert titles == ["Đã xuất bản"]
    with pytest.raises(HTTPException) as exc:
        lesson_service.get_lesson(db, parent, draft.id)
    assert exc.value.status_code == 404

    assert lesson_service.list_lessons(db, t)["pagination"]["total"] == 2
    assert lesson_service.get_lesson(db, t, draft.id).title == "Nháp"


def test_only_author_or_admin_edits(db, make_user):
    author = make_user("teacher")
    other = make_user("teacher")
    admin = make_user("admin")
    lesson = _lesson(db, author)

    with pytest.raises(HTTPException) as exc:
        lesson_service.update_lesson(db, other, lesson.id, {"title": "Sửa"})
    assert exc.value.status_code == 403

    out = lesson_service.update_lesson(db, author, lesson.id, {"title": " Sửa lại ", "subject": "Tiếng Anh", "grade": None})
    assert out.title == "Sửa lại"
    assert out.subject == "english"
    assert out.grade == "Lớp 1"

    lesson_service.update_lesson(db, admin, lesson.id, {"is_published": False})
    db.refresh(lesson)
    assert lesson.is_published is False

    with pytest.raises(HTTPException) as exc:
        lesson_service.update_lesson(db, author, 99999, {"title": "x"})
    assert exc.value.status_code == 404


def test_lessons_api_permissions(client, db, make_user, auth):
    teacher = make_user("teacher")
    student = make_user("student")

    body = {"title": "Số đếm", "grade": "Lớp 1", "subject": "Toán", "content_md": "1, 2, 3"}
    r = client.post("/api/lessons", json=body, headers=auth(student))
    assert r.status_code == 403
    assert r.json()["error"]["details"]["permission"] == "lessons.create"

    r = client.post("/api/lessons", json=body, headers=auth(teacher))
    assert r.status_code == 200
    payload = r.json()
    assert payload["error"] is None
    lesson_id = payload["data"]["id"]
    assert payload["data"]["subject"] == "math"

    r = client.post("/api/lessons", json={**body, "content_md": ""}, headers=auth(teacher))
    assert r.status_code == 422

    r = client.get("/api/lessons", params={"grade": "Lớp 1", "subject": "Toán"}, headers=auth(student))
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["pagination"]["total"] == 1
    assert data["lessons"][0]["id"] == lesson_id

    r = client.get(f"/api/lessons/{lesson_id}", headers=auth(student))
    assert r.json()["data"]["content_md"] == "1, 2, 3"

    r = client.patch(f"/api/lessons/{lesson_id}", json={"title": "Số đếm đến 10"}, headers=auth(student))
    assert r.status_code == 403
    r = client.patch(f"/api/lessons/{lesson_id}", json={"title": "Số đếm đến 10"}, headers=auth(teacher))
    assert r.json()["data"]["title"] == "Số đếm đến 10"

    # giáo viên không có quyền xoá
    r = client.delete(f"/api/lessons/{lesson_id}", headers=auth(teacher))
    assert r.status_code == 403
    admin = make_user("admin")
    r = client.delete(f"/api/lessons/{lesson_id}", headers=auth(admin))
    assert r.status_code == 200
    assert db.query(Lesson).count() == 0


def test_lessons_require_login(client):
    r = client.get("/api/lessons")
    assert r.status_code == 401

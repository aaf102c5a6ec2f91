from __future__ import annotations

import pytest
from fastapi import HTTPException

from app.models.notification import Notification
from app.services import assignment_service


@pytest.fixture()
def classroom(db, make_user):
    teacher = make_user("teacher")
    s1 = make_user("student")
    s2 = make_user("student")
    assignment_service.link_teacher_student(db, teacher.id, s1.id)
    assignment_service.link_teacher_student(db, teacher.id, s2.id)
    return teacher, s1, s2


QUESTIONS = [{"question": "3 + 5 = ?", "options": ["A. 7", "B. 8"]}, {"question": "Viết số 12"}]


def test_link_rules(db, make_user):
    teacher = make_user("teacher")
    student = make_user("student")
    parent = make_user("parent")

    with pytest.raises(HTTPException) as exc:
        assignment_service.link_teacher_student(db, parent.id, student.id)
    assert exc.value.status_code == 400
    with pytest.raises(HTTPException) as exc:
        assignment_service.link_teacher_student(db, teacher.id, parent.id)
    assert exc.value.status_code == 400

    assignment_service.link_teacher_student(db, teacher.id, student.id)
    with pytest.raises(HTTPException) as exc:
        assignment_service.link_teacher_student(db, teacher.id, student.id)
    assert exc.value.status_code == 409

    assignment_service.unlink_teacher_student(db, teacher.id, student.id)
    with pytest.raises(HTTPException) as exc:
        assignment_service.unlink_teacher_student(db, teacher.id, student.id)
    assert exc.value.status_code == 404


def test_create_assignment_only_for_linked_students(db, make_user, classroom):
    teacher, s1, _ = classroom
    stranger = make_user("student")
    with pytest.raises(HTTPException) as exc:
        assignment_service.create_assignment(
            db, teacher, title="BT1", subject="math", student_ids=[s1.id, stranger.id], questions=QUESTIONS
        )
    assert exc.value.status_code == 403
    assert exc.value.detail["student_ids"] == [stranger.id]


def test_admin_can_assign_any_student_but_not_unknown(db, make_user):
    admin = make_user("admin")
    s = make_user("student")
    a = assignment_service.create_assignment(
        db, admin, title="BT", subject="math", student_ids=[s.id], questions=QUESTIONS
    )
    assert a.teacher_id == admin.id
    with pytest.raises(HTTPException) as exc:
        assignment_service.create_assignment(
            db, admin, title="BT", subject="math", student_ids=[424242], questions=QUESTIONS
        )
    assert exc.value.status_code == 404
    assert exc.value.detail["code"] == "STUDENT_NOT_FOUND"


def test_full_assignment_cycle(client, db, classroom, auth):
    teacher, s1, s2 = classroom

    r = client.get("/api/teacher/students", headers=auth(teacher))
    assert {x["id"] for x in r.json()["data"]} == {s1.id, s2.id}

    r = client.post(
        "/api/teacher/assignments",
        json={
            "title": "Phép cộng có nhớ",
            "subject": "math",
            "student_ids": [s1.id, s2.id, s1.id],
            "questions": QUESTIONS,
            "answers": ["B. 8", "12"],
        },
        headers=auth(teacher),
    )
    assert r.status_code == 200
    created = r.json()["data"]
    aid = created["id"]
    assert created["student_ids"] == sorted([s1.id, s2.id])
    assert created["answers"] == ["B. 8", "12"]

    # học sinh nhận thông báo, không thấy đáp án
    assert db.query(Notification).filter(Notification.user_id == s1.id, Notification.title == "Bài tập mới").count() == 1
    r = client.get("/api/student/assignments", headers=auth(s1))
    items = r.json()["data"]
    assert [x["id"] for x in items] == [aid]
    assert "answers" not in items[0]
    assert items[0]["submission"]["status"] == "assigned"

    r = client.post(f"/api/student/assignments/{aid}/submit", json={"answers": ["B. 8", "12"]}, headers=auth(s1))
    assert r.status_code == 200
    sub = r.json()["data"]
    assert sub["status"] == "submitted"
    assert sub["submitted_at"]

    r = client.post(f"/api/student/assignments/{aid}/submit", json={"answers": ["A. 7"]}, headers=auth(s1))
    assert r.status_code == 409

    teacher_notes = db.query(Notification).filter(Notification.user_id == teacher.id).all()
    assert [n.title for n in teacher_notes] == ["Bài tập đã được nộp"]

    r = client.get("/api/teacher/assignments", headers=auth(teacher))
    row = r.json()["data"][0]
    assert (row["total_students"], row["submitted_count"], row["graded_count"]) == (2, 1, 0)

    r = client.get(f"/api/teacher/assignments/{aid}/submissions", headers=auth(teacher))
    subs = {x["student_id"]: x for x in r.json()["data"]}
    assert subs[s2.id]["status"] == "assigned"

    # chưa nộp thì không chấm được
    r = client.post(f"/api/teacher/submissions/{subs[s2.id]['id']}/grade", json={"grade": 5}, headers=auth(teacher))
    assert r.status_code == 409

    r = client.post(
        f"/api/teacher/submissions/{sub['id']}/grade",
        json={"grade": 9.5, "feedback": "Tốt lắm"},
        headers=auth(teacher),
    )
    assert r.status_code == 200
    assert r.json()["data"]["status"] == "graded"
    assert r.json()["data"]["grade"] == 9.5

    note = (
        db.query(Notification)
        .filter(Notification.user_id == s1.id, Notification.title == "Kết quả chấm bài")
        .one()
    )
    assert "Điểm số: 9.5/10" in note.message


def test_grade_out_of_range_rejected(client, classroom, auth):
    teacher, s1, _ = classroom
    r = client.post("/api/teacher/submissions/1/grade", json={"grade": 11}, headers=auth(teacher))
    assert r.status_code == 422


def test_grade_service_range(db, classroom):
    teacher, _, _ = classroom
    with pytest.raises(HTTPException) as exc:
        assignment_service.grade_submission(db, teacher, 1, grade=-1)
    assert exc.value.status_code == 400


def test_other_teacher_cannot_see_submissions(client, db, make_user, classroom, auth):
    teacher, s1, _ = classroom
    other = make_user("teacher")
    a = assignment_service.create_assignment(
        db, teacher, title="BT", subject="math", student_ids=[s1.id], questions=QUESTIONS
    )
    r = client.get(f"/api/teacher/assignments/{a.id}/submissions", headers=auth(other))
    assert r.status_code == 404


def test_parent_cannot_use_teacher_routes(client, make_user, auth):
    p = make_user("parent")
    assert client.get("/api/teacher/assignments", headers=auth(p)).status_code == 403
    assert client.post("/api/student/assignments/1/submit", json={"answers": []}, headers=auth(p)).status_code == 403

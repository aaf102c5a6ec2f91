from __future__ import annotations

import pytest
from fastapi import HTTPException

from app.models.daily_exercise_usage import DailyExerciseUsage
from app.models.token_log import TokenLog
from app.services import generation_service, token_service
from app.services.llm_service import LLMResult

USAGE = {"prompt_tokens": 200, "completion_tokens": 100, "total_tokens": 300}


@pytest.fixture()
def fake_json(monkeypatch):
    state = {"obj": {}, "calls": 0}

    def _chat_json(*, messages, **kwargs):
        state["calls"] += 1
        return state["obj"], LLMResult(text="{}", usage=dict(USAGE), model="gpt-4o-mini")

    monkeypatch.setattr(generation_service, "llm_available", lambda: True)
    monkeypatch.setattr(generation_service, "chat_json", _chat_json)
    return state


def test_fix_arithmetic_answer():
    opts = ["A. 7", "B. 8", "C. 9", "D. 10"]
    assert generation_service.fix_arithmetic_answer("5 + 3 = ?", opts, "A. 7") == "B. 8"
    assert generation_service.fix_arithmetic_answer("12 : 4 = ?", ["A. 3", "B. 13"], "B. 13") == "A. 3"
    assert generation_service.fix_arithmetic_answer("5 × 0 = ?", ["A. 0", "B. 5"], "B. 5") == "A. 0"
    # không phải phép tính đơn giản thì giữ nguyên
    assert generation_service.fix_arithmetic_answer("Con mèo có mấy chân?", opts, "C. 9") == "C. 9"
    assert generation_service.fix_arithmetic_answer("9 - 2 = ?", ["A. 17", "B. 11"], "A. 17") == "A. 17"


def test_normalize_subject():
    assert generation_service.normalize_subject("Toán") == "math"
    assert generation_service.normalize_subject("  tiếng   việt ") == "literature"
    with pytest.raises(HTTPException):
        generation_service.normalize_subject("  ")


def test_generate_exercises_cleans_items(fake_json):
    fake_json["obj"] = {
        "exercises": [
            {"question": "2 + 2 = ?", "options": ["A. 3", "B. 4", ""], "answer": "A. 3", "explanation": "đếm"},
            {"question": "   "},
            "rác",
            {"question": "Viết số lớn nhất có một chữ số", "answer": "9"},
        ]
    }
    items, res = generation_service.generate_exercises(subject="math", topic="phép cộng", count=5)
    assert len(items) == 2
    assert items[0]["options"] == ["A. 3", "B. 4"]
    assert items[0]["answer"] == "B. 4"
    assert "options" not in items[1]
    assert res.total_tokens == 300


def test_generate_exercises_validation(fake_json):
    with pytest.raises(HTTPException) as exc:
        generation_service.generate_exercises(subject="math", topic="x", count=0)
    assert exc.value.status_code == 400
    with pytest.raises(HTTPException) as exc:
        generation_service.generate_exercises(subject="math", topic="x", difficulty="extreme")
    assert exc.value.status_code == 400
    fake_json["obj"] = {"exercises": []}
    with pytest.raises(HTTPException) as exc:
        generation_service.generate_exercises(subject="math", topic="x")
    assert exc.value.status_code == 502


def test_unparsable_llm_output_is_502(monkeypatch):
    def _bad(**kwargs):
        raise ValueError("Could not parse JSON")

    monkeypatch.setattr(generation_service, "llm_available", lambda: True)
    monkeypatch.setattr(generation_service, "chat_json", _bad)
    with pytest.raises(HTTPException) as exc:
        generation_service.generate_exercises(subject="math", topic="x")
    assert exc.value.status_code == 502


def test_generate_test_totals_points(fake_json):
    fake_json["obj"] = {
        "title": "Kiểm tra giữa kỳ",
        "questions": [
            {"question": "3 + 4 = ?", "options": ["A. 7", "B. 8"], "answer": "B. 8", "points": 6},
            {"question": "Số liền sau của 9?", "options": ["A. 10"], "answer": "A. 10", "points": "abc"},
        ],
    }
    test, _ = generation_service.generate_test(subject="math", grade="Lớp 1", topic="cộng", question_count=2)
    assert test["title"] == "Kiểm tra giữa kỳ"
    assert test["questions"][0]["answer"] == "A. 7"
    assert test["questions"][1]["points"] == 1.0
    assert test["total_points"] == 7.0


def test_lesson_plan_validation(monkeypatch):
    monkeypatch.setattr(generation_service, "llm_available", lambda: True)
    with pytest.raises(HTTPException):
        generation_service.generate_lesson_plan(subject="math", grade="Lớp 2", topic="", duration=45)
    with pytest.raises(HTTPException):
        generation_service.generate_lesson_plan(subject="math", grade="Lớp 2", topic="Đo độ dài", duration=5)


def test_exercise_endpoint_charges_and_counts(client, db, make_user, auth, fake_json):
    fake_json["obj"] = {"exercises": [{"question": f"Câu {i}", "answer": str(i)} for i in range(3)]}
    u = make_user("parent")
    r = client.post(
        "/api/exercises/generate",
        json={"subject": "math", "topic": "Số đếm", "count": 3},
        headers=auth(u),
    )
    assert r.status_code == 200
    data = r.json()["data"]
    assert len(data["exercises"]) == 3
    assert data["tokens_used"] == 300
    assert data["tokens_remaining"] == 9700
    assert data["daily_usage"]["today_usage"] == 3

    row = db.query(DailyExerciseUsage).filter(DailyExerciseUsage.user_id == u.id).one()
    assert row.count == 3
    assert db.query(TokenLog).filter(TokenLog.feature == "exercises").count() == 1


def test_exercise_endpoint_daily_limit(client, make_user, auth, fake_json, monkeypatch):
    monkeypatch.setattr(token_service.settings, "DAILY_EXERCISE_LIMIT", 0)
    u = make_user("parent")
    r = client.post("/api/exercises/generate", json={"subject": "math", "topic": "Số đếm"}, headers=auth(u))
    assert r.status_code == 429
    assert r.json()["error"]["code"] == "DAILY_LIMIT_REACHED"
    assert fake_json["calls"] == 0


def test_exercise_endpoint_without_llm(client, make_user, auth, monkeypatch):
    monkeypatch.setattr(generation_service, "llm_available", lambda: False)
    u = make_user("parent")
    r = client.post("/api/exercises/generate", json={"subject": "math", "topic": "Số đếm"}, headers=auth(u))
    assert r.status_code == 503


def test_teacher_generates_test(client, db, make_user, auth, fake_json):
    fake_json["obj"] = {"questions": [{"question": "1 + 1 = ?", "options": ["A. 2"], "answer": "A. 2", "points": 10}]}
    t = make_user("teacher")
    r = client.post(
        "/api/teacher/generate-test",
        json={"subject": "Toán", "grade": "Lớp 1", "topic": "Cộng", "question_count": 1},
        headers=auth(t),
    )
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["test"]["subject"] == "math"
    assert data["tokens_remaining"] == 700
    assert db.query(TokenLog).filter(TokenLog.feature == "test").count() == 1


def test_teacher_lesson_plan(client, make_user, auth, monkeypatch):
    monkeypatch.setattr(generation_service, "llm_available", lambda: True)
    monkeypatch.setattr(
        generation_service,
        "chat_completion",
        lambda **kw: LLMResult(text="# Giáo án\n...", usage={"total_tokens": 50}, model="gpt-4o-mini"),
    )
    t = make_user("teacher")
    r = client.post(
        "/api/teacher/generate-lesson-plan",
        json={"subject": "math", "grade": "Lớp 3", "topic": "Nhân chia"},
        headers=auth(t),
    )
    assert r.status_code == 200
    assert r.json()["data"]["lesson_plan"].startswith("# Giáo án")
    assert r.json()["data"]["tokens_used"] == 50


def test_parent_cannot_generate_lessons(client, make_user, auth, fake_json):
    p = make_user("parent")
    r = client.post(
        "/api/teacher/generate-test",
        json={"subject": "math", "grade": "Lớp 1", "topic": "Cộng"},
        headers=auth(p),
    )
    assert r.status_code == 403


def test_exercise_limit_hit_during_generation_is_not_charged(client, db, make_user, auth, monkeypatch):
    monkeypatch.setattr(token_service.settings, "DAILY_EXERCISE_LIMIT", 5)
    u = make_user("parent")

    def _chat_json(*, messages, **kwargs):
        # request khác dùng hết lượt trong lúc đang sinh bài
        token_service.record_exercise_usage(db, u.id, 5)
        return {"exercises": [{"question": "1 + 1 = ?", "answer": "2"}]}, LLMResult(
            text="{}", usage=dict(USAGE), model="gpt-4o-mini"
        )

    monkeypatch.setattr(generation_service, "llm_available", lambda: True)
    monkeypatch.setattr(generation_service, "chat_json", _chat_json)

    r = client.post("/api/exercises/generate", json={"subject": "math", "topic": "Số đếm"}, headers=auth(u))
    assert r.status_code == 429
    assert r.json()["error"]["code"] == "DAILY_LIMIT_REACHED"

    db.expire_all()
    assert db.query(DailyExerciseUsage).filter(DailyExerciseUsage.user_id == u.id).one().count == 5
    assert db.query(TokenLog).count() == 0
    db.refresh(u)
    assert u.token_used_today == 0

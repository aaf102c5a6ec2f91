from __future__ import annotations

from datetime import datetime, timedelta, timezone

from app.models.admin_activity_log import AdminActivityLog
from app.models.token_log import TokenLog
from app.models.user import User
from app.services import admin_service, payment_service, token_service


class _SharedSession:
    def __init__(self, db):
        self._db = db

    def __getattr__(self, name):
        return getattr(self._db, name)

    def close(self):
        pass


def test_stats(client, db, make_user, auth):
    admin = make_user("admin")
    parent = make_user("parent")
    parent.token_used_today = 120
    db.commit()
    r1 = payment_service.create_payment_request(db, parent, package_id="basic", phone="0901234567")
    payment_service.approve(db, r1.id, admin)
    payment_service.create_payment_request(db, parent, package_id="premium", phone="0901234567")

    r = client.get("/api/admin/stats", headers=auth(admin))
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["total_users"] == 2
    assert data["total_revenue"] == 99000
    assert data["pending_payments"] == 1
    assert data["tokens_today"] == 120
    assert data["system_health"] == "good"


def test_token_analytics_with_cost(client, db, make_user, auth):
    admin = make_user("admin")
    parent = make_user("parent")
    token_service.log_token_usage(
        db,
        user_id=parent.id,
        total_tokens=1_500_000,
        prompt_tokens=1_000_000,
        completion_tokens=500_000,
        model="gpt-4o-mini",
        feature="chat_coach",
    )
    parent.token_used_today = 9000
    db.commit()

    r = client.get("/api/admin/token-analytics", params={"period": "week"}, headers=auth(admin))
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["total_tokens"] == 1_500_000
    assert data["estimated_cost_usd"] > 0
    assert data["by_role"]["parent"]["tokens"] == 1_500_000
    assert data["top_users"][0]["user_id"] == parent.id
    assert [x["user_id"] for x in data["near_quota"]] == [parent.id]

    r = client.get("/api/admin/token-analytics", params={"period": "decade"}, headers=auth(admin))
    assert r.status_code == 400


def test_token_analytics_days_follow_quota_timezone(db, make_user, monkeypatch):
    monkeypatch.setattr(token_service.settings, "QUOTA_TIMEZONE", "Asia/Ho_Chi_Minh")
    u = make_user("parent")
    # 20:00 UTC là 03:00 sáng hôm sau ở Việt Nam
    created = (datetime.now(timezone.utc) - timedelta(days=1)).replace(hour=20, minute=0, second=0, microsecond=0)
    db.add(TokenLog(user_id=u.id, total_tokens=40, feature="chat_coach", created_at=created))
    db.commit()

    data = admin_service.get_token_analytics(db, "week")
    assert data["daily"] == [{"date": (created.date() + timedelta(days=1)).isoformat(), "tokens": 40}]


def test_user_management(client, db, make_user, auth):
    admin = make_user("admin")
    h = auth(admin)

    r = client.post(
        "/api/admin/users",
        json={"email": "gv.moi@test.vn", "password": "secret123", "role": "teacher", "full_name": "Cô Lan"},
        headers=h,
    )
    assert r.status_code == 200
    teacher = r.json()["data"]
    assert teacher["role"] == "teacher"
    assert teacher["token_quota"] == 50000

    r = client.get("/api/admin/users", params={"role": "teacher", "search": "lan"}, headers=h)
    assert r.json()["data"]["total"] == 1

    r = client.patch(f"/api/admin/users/{teacher['id']}", json={"plan": "teacher", "is_active": False}, headers=h)
    assert r.status_code == 200
    assert r.json()["data"]["plan"] == "teacher"
    assert r.json()["data"]["token_quota"] == 999999
    assert r.json()["data"]["is_active"] is False

    r = client.patch(f"/api/admin/users/{admin.id}", json={"role": "parent"}, headers=h)
    assert r.status_code == 400
    r = client.patch(f"/api/admin/users/{admin.id}", json={"is_active": False}, headers=h)
    assert r.status_code == 400

    actions = {a.action for a in db.query(AdminActivityLog).all()}
    assert {"user_created", "user_updated"} <= actions

    r = client.get("/api/admin/activity", params={"action": "user_created"}, headers=h)
    assert r.json()["data"]["total"] == 1


def test_token_admin_actions(client, db, make_user, auth):
    admin = make_user("admin")
    u = make_user("parent")
    h = auth(admin)

    r = client.post(f"/api/admin/tokens/{u.id}", json={"action": "add", "amount": 500}, headers=h)
    assert r.json()["data"]["token_quota"] == 10500

    r = client.post(f"/api/admin/tokens/{u.id}", json={"action": "set_quota", "amount": 300}, headers=h)
    assert r.json()["data"]["token_quota"] == 300

    r = client.post(f"/api/admin/tokens/{u.id}", json={"action": "add", "amount": 0}, headers=h)
    assert r.status_code == 400

    token_service.consume_tokens(db, u.id, 200)
    r = client.post(f"/api/admin/tokens/{u.id}", json={"action": "reset"}, headers=h)
    assert r.json()["data"]["token_used_today"] == 0

    r = client.get(f"/api/admin/tokens/{u.id}", headers=h)
    assert r.json()["data"]["remaining"] == 300

    assert client.get("/api/admin/tokens/424242", headers=h).status_code == 404


def test_reset_all_runs_inline_without_queue(client, db, make_user, auth, monkeypatch):
    import app.tasks.quota_tasks as quota_tasks

    admin = make_user("admin")
    stale = make_user("parent")
    stale.token_used_today = 999
    stale.last_reset = token_service.today() - timedelta(days=1)
    db.commit()
    stale_id = stale.id

    # task tự mở và đóng session; dùng chung session của test
    monkeypatch.setattr(quota_tasks, "SessionLocal", lambda: _SharedSession(db))

    r = client.post("/api/admin/tokens/reset-all", headers=auth(admin))
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["queued"] is False
    assert data["result"]["reset_users"] == 1

    row = db.query(User).filter(User.id == stale_id).one()
    assert row.token_used_today == 0
    assert db.query(AdminActivityLog).filter(AdminActivityLog.action == "tokens_reset_all").count() == 1


def test_teacher_student_links(client, make_user, auth):
    admin = make_user("admin")
    teacher = make_user("teacher")
    student = make_user("student")
    h = auth(admin)

    r = client.post("/api/admin/teacher-students", json={"teacher_id": teacher.id, "student_id": student.id}, headers=h)
    assert r.status_code == 200
    r = client.post("/api/admin/teacher-students", json={"teacher_id": teacher.id, "student_id": student.id}, headers=h)
    assert r.status_code == 409

    r = client.get("/api/admin/teacher-students", params={"teacher_id": teacher.id}, headers=h)
    assert [x["student_id"] for x in r.json()["data"]] == [student.id]

    r = client.delete(
        "/api/admin/teacher-students", params={"teacher_id": teacher.id, "student_id": student.id}, headers=h
    )
    assert r.json()["data"] == {"deleted": True}


def test_admin_rate_limit(client, make_user, auth):
    admin = make_user("admin")
    h = auth(admin)
    for _ in range(10):
        assert client.get("/api/admin/stats", headers=h).status_code == 200
    r = client.get("/api/admin/stats", headers=h)
    assert r.status_code == 429
    assert "Retry-After" in r.headers


def test_llm_status_without_config(client, make_user, auth, monkeypatch):
    from app.services import llm_service

    monkeypatch.setattr(llm_service, "llm_available", lambda: False)
    admin = make_user("admin")
    r = client.get("/api/llm/status", headers=auth(admin))
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["llm_available"] is False
    assert "test_response" not in data
    assert "api_key" not in data

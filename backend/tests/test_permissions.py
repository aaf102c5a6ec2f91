from __future__ import annotations

from app.core.permissions import (
    can_access_route,
    get_permissions_for_role,
    has_all_permissions,
    has_any_permission,
    has_permission,
    redirect_for_role,
)
from app.models.admin_activity_log import AdminActivityLog


def test_admin_has_every_permission():
    assert has_permission("admin", "payments.manage")
    assert has_permission("admin", "system.config")
    assert has_all_permissions("admin", ["users.view", "tokens.reset", "ai.generate_lessons"])


def test_role_permission_matrix():
    assert has_permission("teacher", "assignments.grade")
    assert not has_permission("teacher", "payments.manage")
    assert has_permission("parent", "payments.create")
    assert not has_permission("parent", "ai.generate_lessons")
    assert has_permission("student", "assignments.submit")
    assert not has_permission("student", "notifications.send")


def test_unknown_or_empty_role_has_nothing():
    assert get_permissions_for_role(None) == []
    assert get_permissions_for_role("hacker") == []
    assert not has_permission("", "ai.chat")
    assert not has_any_permission(None, ["ai.chat", "lessons.view"])


def test_any_vs_all():
    assert has_any_permission("parent", ["payments.manage", "ai.chat"])
    assert not has_all_permissions("parent", ["payments.manage", "ai.chat"])


def test_can_access_route_exact_and_prefix():
    assert can_access_route("admin", "/admin/payments")
    assert not can_access_route("parent", "/admin/payments")
    assert can_access_route("teacher", "/teacher/grading")
    assert not can_access_route("student", "/teacher/grading")
    # prefix pattern
    assert can_access_route("student", "/api/student/assignments/3/submit")
    assert not can_access_route("parent", "/api/admin/stats")


def test_can_access_route_unmatched_requires_analytics_view():
    assert can_access_route("parent", "/somewhere/else")
    assert not can_access_route("", "/dashboard")
    assert not can_access_route(None, "/somewhere/else")


def test_redirect_for_role():
    assert redirect_for_role("admin") == "/admin"
    assert redirect_for_role("teacher") == "/teacher"
    assert redirect_for_role("parent") == "/dashboard"
    assert redirect_for_role("student") == "/dashboard"
    assert redirect_for_role(None) == "/dashboard"


def test_permissions_me_endpoint(client, make_user, auth):
    teacher = make_user("teacher")
    r = client.get("/api/permissions/me", headers=auth(teacher))
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["role"] == "teacher"
    assert "assignments.grade" in data["permissions"]
    assert data["redirect_to"] == "/teacher"


def test_permissions_check_endpoint(client, make_user, auth):
    parent = make_user("parent")
    r = client.get("/api/permissions/check", params={"path": "/admin/users"}, headers=auth(parent))
    assert r.status_code == 200
    assert r.json()["data"]["allowed"] is False


def test_role_cookie_is_ignored_for_authorisation(client, db, make_user, auth):
    parent = make_user("parent")
    client.cookies.set("user-role", "admin")
    r = client.get("/api/admin/stats", headers=auth(parent))
    assert r.status_code == 403
    assert r.json()["error"]["code"] == "FORBIDDEN"

    # lần truy cập bị từ chối được ghi vào activity log
    row = db.query(AdminActivityLog).filter(AdminActivityLog.action == "access_denied").first()
    assert row is not None
    assert row.user_id == parent.id
    assert row.details["path"] == "/api/admin/stats"


def test_role_change_in_db_takes_effect_without_new_token(client, db, make_user, auth):
    u = make_user("parent")
    headers = auth(u)
    assert client.get("/api/admin/stats", headers=headers).status_code == 403

    u.role = "admin"
    db.commit()
    assert client.get("/api/admin/stats", headers=headers).status_code == 200

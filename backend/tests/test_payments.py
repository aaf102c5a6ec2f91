from __future__ import annotations

import re

import pytest
from fastapi import HTTPException

from app.models.admin_activity_log import AdminActivityLog
from app.models.notification import Notification
from app.models.payment import PaymentStatus, Subscription, SubscriptionStatus
from app.services import payment_service


def test_order_id_format():
    for _ in range(20):
        assert re.fullmatch(r"DH\d{9}", payment_service.generate_order_id())


def test_order_id_collision_gives_up(db, make_user, monkeypatch):
    u = make_user("parent")
    r = payment_service.create_payment_request(db, u, package_id="basic", phone="0901234567")
    monkeypatch.setattr(payment_service, "generate_order_id", lambda: r.order_id)
    with pytest.raises(HTTPException) as exc:
        payment_service.create_payment_request(db, u, package_id="premium", phone="0901234567")
    assert exc.value.status_code == 503


def test_create_request_validation(db, make_user):
    u = make_user("parent")
    for pkg in ("free", "gold"):
        with pytest.raises(HTTPException) as exc:
            payment_service.create_payment_request(db, u, package_id=pkg, phone="0901234567")
        assert exc.value.status_code == 400
    with pytest.raises(HTTPException) as exc:
        payment_service.create_payment_request(db, u, package_id="basic", phone="123")
    assert exc.value.status_code == 400


def test_duplicate_pending_request_conflicts(db, make_user):
    u = make_user("parent")
    payment_service.create_payment_request(db, u, package_id="basic", phone="0901234567")
    with pytest.raises(HTTPException) as exc:
        payment_service.create_payment_request(db, u, package_id="basic", phone="0901234567")
    assert exc.value.status_code == 409
    assert exc.value.detail["code"] == "PENDING_REQUEST_EXISTS"
    # gói khác vẫn được
    payment_service.create_payment_request(db, u, package_id="premium", phone="0901234567")


def test_approve_upgrades_plan_and_subscription(db, make_user):
    admin = make_user("admin")
    u = make_user("parent")
    r = payment_service.create_payment_request(db, u, package_id="premium", phone="0901234567")

    out = payment_service.approve(db, r.id, admin, notes="ok")
    assert out.status == PaymentStatus.approved
    assert out.approved_by == admin.id
    assert out.approved_at is not None

    db.refresh(u)
    assert u.plan == "premium"
    assert u.token_quota == 200000

    sub = payment_service.get_active_subscription(db, u.id)
    assert sub.package_id == "premium"
    assert sub.expires_at is None
    assert sub.payment_request_id == r.id

    note = db.query(Notification).filter(Notification.user_id == u.id).one()
    assert note.title == "Thanh toán đã được duyệt!"
    assert note.data["order_id"] == r.order_id
    assert db.query(AdminActivityLog).filter(AdminActivityLog.action == "payment_approved").count() == 1


def test_second_approval_replaces_previous_subscription(db, make_user):
    admin = make_user("admin")
    u = make_user("parent")
    r1 = payment_service.create_payment_request(db, u, package_id="basic", phone="0901234567")
    payment_service.approve(db, r1.id, admin)
    r2 = payment_service.create_payment_request(db, u, package_id="premium", phone="0901234567")
    payment_service.approve(db, r2.id, admin)

    subs = db.query(Subscription).filter(Subscription.user_id == u.id).order_by(Subscription.id).all()
    assert [s.status for s in subs] == [SubscriptionStatus.replaced, SubscriptionStatus.active]
    assert payment_service.get_current_package(db, u.id) == "premium"


def test_paid_package_never_lowers_quota(db, make_user):
    from app.core.config import settings
    from app.services import token_service

    admin = make_user("admin")
    u = make_user("parent")
    assert u.token_quota == settings.DEFAULT_TOKEN_QUOTA
    r = payment_service.create_payment_request(db, u, package_id="basic", phone="0901234567")
    payment_service.approve(db, r.id, admin)
    db.refresh(u)
    assert u.token_quota == 50000
    assert u.token_quota > settings.DEFAULT_TOKEN_QUOTA

    # quota đã được admin cộng thêm thì giữ nguyên
    v = make_user("parent")
    token_service.set_token_quota(db, v.id, 120000)
    r = payment_service.create_payment_request(db, v, package_id="basic", phone="0901234568")
    payment_service.approve(db, r.id, admin)
    db.refresh(v)
    assert v.plan == "basic"
    assert v.token_quota == 120000


def test_transition_happens_once(db, make_user):
    admin = make_user("admin")
    u = make_user("parent")
    r = payment_service.create_payment_request(db, u, package_id="basic", phone="0901234567")
    payment_service.approve(db, r.id, admin)

    with pytest.raises(HTTPException) as exc:
        payment_service.approve(db, r.id, admin)
    assert exc.value.status_code == 409
    assert exc.value.detail["code"] == "NOT_PENDING"

    with pytest.raises(HTTPException) as exc:
        payment_service.reject(db, r.id, admin, reason="late")
    assert exc.value.status_code == 409

    with pytest.raises(HTTPException) as exc:
        payment_service.approve(db, 99999, admin)
    assert exc.value.status_code == 404


def test_reject_requires_reason_and_leaves_plan(db, make_user):
    admin = make_user("admin")
    u = make_user("parent")
    r = payment_service.create_payment_request(db, u, package_id="basic", phone="0901234567")

    with pytest.raises(HTTPException) as exc:
        payment_service.reject(db, r.id, admin, reason="  ")
    assert exc.value.status_code == 400

    out = payment_service.reject(db, r.id, admin, reason="Không nhận được tiền")
    assert out.status == PaymentStatus.rejected
    assert out.rejected_reason == "Không nhận được tiền"
    db.refresh(u)
    assert u.plan == "free"
    assert payment_service.get_active_subscription(db, u.id) is None
    note = db.query(Notification).filter(Notification.user_id == u.id).one()
    assert "Không nhận được tiền" in note.message


def test_payment_api_flow(client, make_user, auth):
    admin = make_user("admin")
    parent = make_user("parent")

    r = client.post(
        "/api/payments/requests",
        json={"package_id": "basic", "phone": "0901234567", "notes": "con lớp 2"},
        headers=auth(parent),
    )
    assert r.status_code == 200
    data = r.json()["data"]
    order_id = data["order_id"]
    assert data["status"] == "pending"
    assert data["amount"] == 99000
    assert order_id in data["transfer_content"]
    assert data["qr_url"].startswith("https://img.vietqr.io/image/")

    r = client.get(f"/api/payments/status/{order_id}", headers=auth(parent))
    assert r.json()["data"]["status"] == "pending"

    r = client.get("/api/admin/payment-requests", params={"status": "pending"}, headers=auth(admin))
    assert [x["order_id"] for x in r.json()["data"]] == [order_id]
    assert r.json()["data"][0]["user_email"] == parent.email

    r = client.post(f"/api/admin/payment-requests/{data['id']}/approve", headers=auth(admin))
    assert r.status_code == 200
    assert r.json()["data"]["status"] == "approved"

    r = client.post(f"/api/admin/payment-requests/{data['id']}/approve", headers=auth(admin))
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "NOT_PENDING"

    r = client.get("/api/payments/subscription", headers=auth(parent))
    assert r.json()["data"]["package"]["id"] == "basic"
    assert r.json()["data"]["subscription"]["status"] == "active"

    r = client.get("/api/payments/status/" + order_id, headers=auth(parent))
    assert "qr_url" not in r.json()["data"]


def test_other_users_order_is_hidden(client, make_user, auth, db):
    owner = make_user("parent")
    other = make_user("parent")
    r = payment_service.create_payment_request(db, owner, package_id="basic", phone="0901234567")
    resp = client.get(f"/api/payments/status/{r.order_id}", headers=auth(other))
    assert resp.status_code == 404


def test_student_cannot_create_payment(client, make_user, auth):
    student = make_user("student")
    r = client.post(
        "/api/payments/requests",
        json={"package_id": "basic", "phone": "0901234567"},
        headers=auth(student),
    )
    assert r.status_code == 403


def test_reject_endpoint_requires_reason(client, db, make_user, auth):
    admin = make_user("admin")
    u = make_user("parent")
    r = payment_service.create_payment_request(db, u, package_id="basic", phone="0901234567")
    resp = client.post(f"/api/admin/payment-requests/{r.id}/reject", json={}, headers=auth(admin))
    assert resp.status_code == 422
    resp = client.post(
        f"/api/admin/payment-requests/{r.id}/reject", json={"reason": "Sai số tiền"}, headers=auth(admin)
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["rejected_reason"] == "Sai số tiền"

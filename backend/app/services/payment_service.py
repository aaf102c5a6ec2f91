"""Manual bank-transfer payment workflow.

A user files a request for a paid package; the order id goes into the
transfer description so an admin can match the bank statement. An admin
then approves (subscription + plan upgrade) or rejects it. A request only
ever leaves ``pending`` once: the state change is a conditional UPDATE.
"""

from __future__ import annotations

import logging
import random
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import HTTPException
from sqlalchemy import case
from sqlalchemy.orm import Session

from app.core.permissions import Role
from app.models.payment import PaymentRequest, PaymentStatus, Subscription, SubscriptionStatus
from app.models.user import User
from app.services import admin_service, pricing, vietqr
from app.services.notification_service import notify_safely
from app.services.user_service import is_valid_phone, normalize_phone

logger = logging.getLogger(__name__)

ORDER_ID_MAX_ATTEMPTS = 10


def generate_order_id() -> str:
    """'DH' + last 6 digits of epoch-ms + 3 random digits."""
    ts = str(int(time.time() * 1000))[-6:]
    return f"DH{ts}{random.randint(0, 999):03d}"


def _unique_order_id(db: Session) -> str:
    for _ in range(ORDER_ID_MAX_ATTEMPTS):
        oid = generate_order_id()
        if not db.query(PaymentRequest.id).filter(PaymentRequest.order_id == oid).first():
            return oid
    raise HTTPException(status_code=503, detail="Could not allocate an order id, please retry")


def _status(r: PaymentRequest) -> str:
    return str(r.status.value if hasattr(r.status, "value") else r.status)


def payment_out(r: PaymentRequest, *, with_transfer: bool = False) -> Dict[str, Any]:
    pkg = pricing.get_package(r.package_id)
    out: Dict[str, Any] = {
        "id": int(r.id),
        "user_id": int(r.user_id),
        "order_id": r.order_id,
        "package_id": r.package_id,
        "package_display_name": pkg.display_name if pkg else r.package_id,
        "amount": int(r.amount),
        "amount_text": pricing.format_price(int(r.amount)),
        "user_phone": r.user_phone,
        "user_notes": r.user_notes,
        "status": _status(r),
        "admin_notes": r.admin_notes,
        "approved_by": r.approved_by,
        "approved_at": r.approved_at.isoformat() if r.approved_at else None,
        "rejected_reason": r.rejected_reason,
        "created_at": r.created_at.isoformat() if r.created_at else None,
    }
    if with_transfer and _status(r) == PaymentStatus.pending.value:
        content = f"{r.order_id} {r.user_phone}"
        out["qr_url"] = vietqr.generate_payment_qr(r.order_id, r.user_phone, int(r.amount))
        out["transfer_content"] = content
        out["transfer_instructions"] = vietqr.bank_transfer_instructions(int(r.amount), content)
    return out


def create_payment_request(
    db: Session,
    user: User,
    *,
    package_id: str,
    phone: str,
    notes: str | None = None,
) -> PaymentRequest:
    pkg = pricing.get_package(package_id)
    if not pkg or pkg.id == "free":
        raise HTTPException(status_code=400, detail="Invalid package")
    p = normalize_phone(phone)
    if not is_valid_phone(p):
        raise HTTPException(status_code=400, detail="Invalid phone number")

    duplicate = (
        db.query(PaymentRequest.id)
        .filter(
            PaymentRequest.user_id == int(user.id),
            PaymentRequest.package_id == pkg.id,
            PaymentRequest.status == PaymentStatus.pending,
        )
        .first()
    )
    if duplicate:
        raise HTTPException(
            status_code=409,
            detail={"code": "PENDING_REQUEST_EXISTS", "message": "A pending request for this package already exists"},
        )

    r = PaymentRequest(
        user_id=int(user.id),
        order_id=_unique_order_id(db),
        package_id=pkg.id,
        amount=int(pkg.price),
        user_phone=p,
        user_notes=(notes or "").strip() or None,
        status=PaymentStatus.pending,
    )
    db.add(r)
    db.commit()
    db.refresh(r)
    logger.info("payment request created order_id=%s user_id=%s package=%s", r.order_id, user.id, pkg.id)
    return r


def list_user_requests(db: Session, user_id: int) -> List[PaymentRequest]:
    return (
        db.query(PaymentRequest)
        .filter(PaymentRequest.user_id == int(user_id))
        .order_by(PaymentRequest.created_at.desc(), PaymentRequest.id.desc())
        .all()
    )


def get_by_order_id(db: Session, order_id: str, viewer: User) -> PaymentRequest:
    r = db.query(PaymentRequest).filter(PaymentRequest.order_id == str(order_id)).first()
    if not r:
        raise HTTPException(status_code=404, detail="Payment request not found")
    if int(r.user_id) != int(viewer.id) and viewer.role != Role.admin.value:
        # không tiết lộ đơn của người khác
        raise HTTPException(status_code=404, detail="Payment request not found")
    return r


def list_requests(db: Session, status: str | None = None) -> List[Dict[str, Any]]:
    q = db.query(PaymentRequest, User.full_name, User.email).join(User, User.id == PaymentRequest.user_id)
    if status:
        try:
            q = q.filter(PaymentRequest.status == PaymentStatus(status))
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid status")
    rows = q.order_by(PaymentRequest.created_at.desc(), PaymentRequest.id.desc()).all()
    out = []
    for r, name, email in rows:
        item = payment_out(r)
        item["user_name"] = name
        item["user_email"] = email
        out.append(item)
    return out


def _transition(db: Session, request_id: int, values: Dict[str, Any]) -> PaymentRequest:
    """pending -> approved|rejected, at most once."""
    rows = (
        db.query(PaymentRequest)
        .filter(PaymentRequest.id == int(request_id), PaymentRequest.status == PaymentStatus.pending)
        .update(values, synchronize_session=False)
    )
    if rows == 0:
        db.rollback()
        existing = db.query(PaymentRequest).filter(PaymentRequest.id == int(request_id)).first()
        if not existing:
            raise HTTPException(status_code=404, detail="Payment request not found")
        raise HTTPException(
            status_code=409,
            detail={"code": "NOT_PENDING", "message": f"Payment request is already {_status(existing)}"},
        )
    db.expire_all()
    return db.query(PaymentRequest).filter(PaymentRequest.id == int(request_id)).one()


def approve(
    db: Session,
    request_id: int,
    admin: User,
    *,
    notes: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> PaymentRequest:
    now = datetime.now(timezone.utc)
    r = _transition(
        db,
        request_id,
        {
            PaymentRequest.status: PaymentStatus.approved,
            PaymentRequest.approved_by: int(admin.id),
            PaymentRequest.approved_at: now,
            PaymentRequest.admin_notes: notes,
            PaymentRequest.updated_at: now,
        },
    )
    pkg = pricing.get_package(r.package_id)
    if not pkg:
        db.rollback()
        raise HTTPException(status_code=400, detail="Package no longer exists")

    db.query(Subscription).filter(
        Subscription.user_id == int(r.user_id), Subscription.status == SubscriptionStatus.active
    ).update({Subscription.status: SubscriptionStatus.replaced}, synchronize_session=False)
    db.add(
        Subscription(
            user_id=int(r.user_id),
            package_id=pkg.id,
            payment_request_id=int(r.id),
            status=SubscriptionStatus.active,
            started_at=now,
            expires_at=None,
        )
    )
    # quota chỉ tăng: giữ phần admin đã cộng thêm
    quota = int(pkg.token_quota)
    db.query(User).filter(User.id == int(r.user_id)).update(
        {
            User.plan: pkg.id,
            User.token_quota: case((User.token_quota < quota, quota), else_=User.token_quota),
        },
        synchronize_session=False,
    )
    notify_safely(
        db,
        user_id=int(r.user_id),
        type="success",
        title="Thanh toán đã được duyệt!",
        message=f"{pkg.display_name} của bạn đã được kích hoạt. Bạn có thể sử dụng ngay bây giờ!",
        data={"order_id": r.order_id, "package_id": pkg.id},
        action_url="/dashboard",
    )
    admin_service.log_admin_activity(
        db,
        user_id=int(admin.id),
        action="payment_approved",
        details={"payment_request_id": int(r.id), "order_id": r.order_id, "package_id": pkg.id},
        ip_address=ip_address,
        user_agent=user_agent,
        commit=False,
    )
    db.commit()
    db.expire_all()
    logger.info("payment approved order_id=%s by admin_id=%s", r.order_id, admin.id)
    return db.query(PaymentRequest).filter(PaymentRequest.id == int(request_id)).one()


def reject(
    db: Session,
    request_id: int,
    admin: User,
    *,
    reason: str | None,
    notes: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> PaymentRequest:
    reason = (reason or "").strip()
    if not reason:
        raise HTTPException(status_code=400, detail="Rejection reason is required")

    now = datetime.now(timezone.utc)
    r = _transition(
        db,
        request_id,
        {
            PaymentRequest.status: PaymentStatus.rejected,
            PaymentRequest.approved_by: int(admin.id),
            PaymentRequest.approved_at: now,
            PaymentRequest.rejected_reason: reason,
            PaymentRequest.admin_notes: notes,
            PaymentRequest.updated_at: now,
        },
    )
    notify_safely(
        db,
        user_id=int(r.user_id),
        type="error",
        title="Thanh toán bị từ chối",
        message=f"Thanh toán của bạn không thể được xử lý. Lý do: {reason}",
        data={"order_id": r.order_id},
        action_url="/payment",
    )
    admin_service.log_admin_activity(
        db,
        user_id=int(admin.id),
        action="payment_rejected",
        details={"payment_request_id": int(r.id), "order_id": r.order_id, "reason": reason},
        ip_address=ip_address,
        user_agent=user_agent,
        commit=False,
    )
    db.commit()
    db.expire_all()
    logger.info("payment rejected order_id=%s by admin_id=%s", r.order_id, admin.id)
    return db.query(PaymentRequest).filter(PaymentRequest.id == int(request_id)).one()


def get_active_subscription(db: Session, user_id: int) -> Optional[Subscription]:
    return (
        db.query(Subscription)
        .filter(Subscription.user_id == int(user_id), Subscription.status == SubscriptionStatus.active)
        .order_by(Subscription.started_at.desc(), Subscription.id.desc())
        .first()
    )


def get_current_package(db: Session, user_id: int) -> str:
    sub = get_active_subscription(db, user_id)
    return sub.package_id if sub else "free"


def subscription_out(sub: Optional[Subscription]) -> Optional[Dict[str, Any]]:
    if not sub:
        return None
    pkg = pricing.get_package(sub.package_id)
    return {
        "id": int(sub.id),
        "package_id": sub.package_id,
        "package_display_name": pkg.display_name if pkg else sub.package_id,
        "status": str(sub.status.value if hasattr(sub.status, "value") else sub.status),
        "started_at": sub.started_at.isoformat() if sub.started_at else None,
        "expires_at": sub.expires_at.isoformat() if sub.expires_at else None,
    }

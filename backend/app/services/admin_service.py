from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo

from fastapi import HTTPException
from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.permissions import Role, normalize_role
from app.models.admin_activity_log import AdminActivityLog
from app.models.payment import PaymentRequest, PaymentStatus
from app.models.token_log import TokenLog
from app.models.user import User
from app.services import pricing, token_service, user_service

logger = logging.getLogger(__name__)

# USD / 1M tokens (input, output)
MODEL_PRICING = {
    "gpt-4o-mini": (0.15, 0.60),
    "gpt-4o": (2.50, 10.00),
    "gpt-4-turbo": (2.50, 10.00),
}

NEAR_QUOTA_RATIO = 0.8


def log_admin_activity(
    db: Session,
    *,
    user_id: int | None,
    action: str,
    details: dict[str, Any] | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    commit: bool = True,
) -> None:
    if not settings.ADMIN_ENABLE_LOGGING:
        return
    row = AdminActivityLog(
        user_id=user_id,
        action=str(action),
        details=details or {},
        ip_address=ip_address,
        user_agent=(user_agent or "")[:512] or None,
    )
    try:
        # savepoint: lỗi ghi log không được làm hỏng transaction của caller
        with db.begin_nested():
            db.add(row)
    except SQLAlchemyError as e:
        logger.warning("admin activity log failed action=%s: %s", action, e)
        return
    if commit:
        db.commit()


def list_activity(
    db: Session,
    *,
    action: str | None = None,
    user_id: int | None = None,
    limit: int = 50,
    offset: int = 0,
) -> Dict[str, Any]:
    q = db.query(AdminActivityLog)
    if action:
        q = q.filter(AdminActivityLog.action == action)
    if user_id is not None:
        q = q.filter(AdminActivityLog.user_id == int(user_id))
    total = q.count()
    rows = q.order_by(AdminActivityLog.created_at.desc(), AdminActivityLog.id.desc()).offset(int(offset)).limit(int(limit)).all()
    return {
        "total": int(total),
        "items": [
            {
                "id": int(r.id),
                "user_id": r.user_id,
                "action": r.action,
                "details": r.details or {},
                "ip_address": r.ip_address,
                "user_agent": r.user_agent,
                "created_at": r.created_at.isoformat() if r.created_at else None,
            }
            for r in rows
        ],
    }


def _day_start_utc() -> datetime:
    tz = ZoneInfo(settings.QUOTA_TIMEZONE)
    local_midnight = datetime.combine(token_service.today(), datetime.min.time(), tzinfo=tz)
    return local_midnight.astimezone(timezone.utc)


def get_stats(db: Session) -> Dict[str, Any]:
    week_ago = datetime.now(timezone.utc) - timedelta(days=7)

    total_users = int(db.query(func.count(User.id)).scalar() or 0)
    active_users = int(db.query(func.count(User.id)).filter(User.updated_at >= week_ago).scalar() or 0)

    approved = db.query(PaymentRequest).filter(PaymentRequest.status == PaymentStatus.approved)
    total_revenue = int(approved.with_entities(func.coalesce(func.sum(PaymentRequest.amount), 0)).scalar() or 0)
    today_revenue = int(
        approved.filter(PaymentRequest.approved_at >= _day_start_utc())
        .with_entities(func.coalesce(func.sum(PaymentRequest.amount), 0))
        .scalar()
        or 0
    )
    pending = int(
        db.query(func.count(PaymentRequest.id)).filter(PaymentRequest.status == PaymentStatus.pending).scalar() or 0
    )
    tokens_today = int(
        db.query(func.coalesce(func.sum(User.token_used_today), 0))
        .filter(User.last_reset == token_service.today())
        .scalar()
        or 0
    )

    health = "good"
    if pending > 10:
        health = "warning"
    if total_users == 0:
        health = "critical"

    return {
        "total_users": total_users,
        "active_users": active_users,
        "total_revenue": total_revenue,
        "today_revenue": today_revenue,
        "pending_payments": pending,
        "tokens_today": tokens_today,
        "system_health": health,
    }


def estimate_cost_usd(prompt_tokens: int, completion_tokens: int, model: str | None) -> float:
    p_in, p_out = MODEL_PRICING.get(model or "", MODEL_PRICING["gpt-4o-mini"])
    return (int(prompt_tokens or 0) / 1_000_000) * p_in + (int(completion_tokens or 0) / 1_000_000) * p_out


def get_token_analytics(db: Session, period: str = "day") -> Dict[str, Any]:
    since = token_service.period_start(period)
    logs = (
        db.query(TokenLog, User.role, User.email, User.full_name)
        .join(User, User.id == TokenLog.user_id)
        .filter(TokenLog.created_at >= since)
        .all()
    )

    total_tokens = 0
    total_cost = 0.0
    by_role: Dict[str, Dict[str, float]] = {r.value: {"tokens": 0, "cost": 0.0} for r in Role}
    per_user: Dict[int, Dict[str, Any]] = {}
    per_day: Dict[str, int] = {}

    for log, role, email, full_name in logs:
        tokens = int(log.total_tokens or 0)
        cost = estimate_cost_usd(log.prompt_tokens, log.completion_tokens, log.model)
        total_tokens += tokens
        total_cost += cost

        bucket = by_role.setdefault(str(role), {"tokens": 0, "cost": 0.0})
        bucket["tokens"] += tokens
        bucket["cost"] += cost

        u = per_user.setdefault(
            int(log.user_id),
            {"user_id": int(log.user_id), "email": email, "name": full_name, "role": role, "tokens": 0, "requests": 0},
        )
        u["tokens"] += tokens
        u["requests"] += 1

        if log.created_at:
            # cùng mốc ngày với bộ đếm quota
            day = token_service.local_date(log.created_at).isoformat()
            per_day[day] = per_day.get(day, 0) + tokens

    requests = len(logs)
    top_users = sorted(per_user.values(), key=lambda x: x["tokens"], reverse=True)[:10]

    t = token_service.today()
    near_quota: List[Dict[str, Any]] = []
    for u in db.query(User).filter(User.last_reset == t, User.token_quota > 0).all():
        ratio = int(u.token_used_today or 0) / int(u.token_quota)
        if ratio >= NEAR_QUOTA_RATIO:
            near_quota.append(
                {
                    "user_id": int(u.id),
                    "email": u.email,
                    "token_used_today": int(u.token_used_today or 0),
                    "token_quota": int(u.token_quota),
                    "usage_ratio": round(ratio, 3),
                    "exhausted": ratio >= 1.0,
                }
            )

    return {
        "period": period,
        "total_tokens": total_tokens,
        "total_requests": requests,
        "average_per_request": round(total_tokens / requests, 1) if requests else 0,
        "estimated_cost_usd": round(total_cost, 6),
        "active_users": len(per_user),
        "by_role": {k: {"tokens": int(v["tokens"]), "cost": round(v["cost"], 6)} for k, v in by_role.items()},
        "top_users": top_users,
        "daily": [{"date": d, "tokens": per_day[d]} for d in sorted(per_day)],
        "near_quota": near_quota,
    }


# ===== Quản lý người dùng =====


def user_admin_out(u: User) -> Dict[str, Any]:
    return {
        "id": int(u.id),
        "email": u.email,
        "full_name": u.full_name,
        "phone": u.phone,
        "grade": u.grade,
        "role": u.role,
        "is_active": bool(u.is_active),
        "plan": u.plan,
        "token_quota": int(u.token_quota or 0),
        "token_used_today": int(u.token_used_today or 0),
        "last_reset": u.last_reset.isoformat() if u.last_reset else None,
        "created_at": u.created_at.isoformat() if u.created_at else None,
    }


def list_users(
    db: Session,
    *,
    role: str | None = None,
    search: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> Dict[str, Any]:
    q = db.query(User)
    if role:
        r = normalize_role(role)
        if not r:
            raise HTTPException(status_code=400, detail="Invalid role")
        q = q.filter(User.role == r)
    if search:
        like = f"%{search.strip()}%"
        q = q.filter(or_(User.email.ilike(like), User.full_name.ilike(like), User.phone.ilike(like)))
    total = q.count()
    rows = q.order_by(User.created_at.desc(), User.id.desc()).offset(int(offset)).limit(int(limit)).all()
    return {"total": int(total), "items": [user_admin_out(u) for u in rows]}


def update_user(
    db: Session,
    admin: User,
    user_id: int,
    *,
    role: Optional[str] = None,
    is_active: Optional[bool] = None,
    plan: Optional[str] = None,
) -> User:
    u = user_service.get_user(db, user_id)
    is_self = int(u.id) == int(admin.id)

    if role is not None:
        r = normalize_role(role)
        if not r:
            raise HTTPException(status_code=400, detail="Invalid role")
        if is_self and r != Role.admin.value:
            raise HTTPException(status_code=400, detail="Admin cannot remove their own admin role")
        u.role = r
    if is_active is not None:
        if is_self and not is_active:
            raise HTTPException(status_code=400, detail="Admin cannot deactivate themselves")
        u.is_active = bool(is_active)
    if plan is not None:
        pkg = pricing.get_package(plan)
        if not pkg:
            raise HTTPException(status_code=400, detail="Unknown plan")
        u.plan = pkg.id
        u.token_quota = pkg.token_quota

    db.commit()
    db.refresh(u)
    return u

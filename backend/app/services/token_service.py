"""Daily token quota accounting.

Each user has a ``token_quota`` per day and a ``token_used_today`` counter.
The counter is reset lazily: any read or write that finds ``last_reset``
older than today (in ``QUOTA_TIMEZONE``) resets it first. Charging is a
single-row ``UPDATE ... SET used = used + n`` so concurrent requests never
lose an increment.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict
from zoneinfo import ZoneInfo

from fastapi import HTTPException
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.daily_exercise_usage import DailyExerciseUsage
from app.models.token_log import TokenLog
from app.models.user import User

logger = logging.getLogger(__name__)

PERIOD_DAYS = {"day": 1, "week": 7, "month": 30}


def today() -> date:
    return datetime.now(ZoneInfo(settings.QUOTA_TIMEZONE)).date()


def local_date(moment: datetime) -> date:
    """Calendar day of ``moment`` in QUOTA_TIMEZONE (naive values are UTC)."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(ZoneInfo(settings.QUOTA_TIMEZONE)).date()


def period_start(period: str) -> datetime:
    days = PERIOD_DAYS.get(str(period or "").lower())
    if days is None:
        raise HTTPException(status_code=400, detail="period must be one of: day, week, month")
    return datetime.now(timezone.utc) - timedelta(days=days)


def _needs_reset(user: User) -> bool:
    return user.last_reset is None or user.last_reset != today()


def _stale_filter(t: date):
    return or_(User.last_reset.is_(None), User.last_reset != t)


def reset_daily_tokens(db: Session, user_id: int, *, commit: bool = True) -> int:
    rows = (
        db.query(User)
        .filter(User.id == int(user_id))
        .update(
            {User.token_used_today: 0, User.unlocks_used: 0, User.last_reset: today()},
            synchronize_session=False,
        )
    )
    if commit:
        db.commit()
    db.expire_all()
    return int(rows)


def reset_all_daily_tokens(db: Session) -> int:
    """Reset every user whose counter is from a previous day. Returns row count."""

    t = today()
    rows = (
        db.query(User)
        .filter(_stale_filter(t))
        .update(
            {User.token_used_today: 0, User.unlocks_used: 0, User.last_reset: t},
            synchronize_session=False,
        )
    )
    db.commit()
    db.expire_all()
    logger.info("daily quota reset rows=%s", rows)
    return int(rows)


def check_quota(db: Session, user: User) -> Dict[str, Any]:
    if _needs_reset(user):
        reset_daily_tokens(db, int(user.id))
        db.refresh(user)

    total = int(user.token_quota or 0)
    remaining = max(0, total - int(user.token_used_today or 0))
    return {"has_quota": remaining > 0, "remaining": remaining, "total": total}


def get_token_info(db: Session, user: User) -> Dict[str, Any]:
    needs_reset = _needs_reset(user)
    quota = int(user.token_quota or 0)
    used = 0 if needs_reset else int(user.token_used_today or 0)
    return {
        "token_quota": quota,
        "token_used_today": used,
        "remaining": max(0, quota - used),
        "plan": user.plan or "free",
        "last_reset": user.last_reset.isoformat() if user.last_reset else None,
        "needs_reset": needs_reset,
    }


def consume_tokens(db: Session, user_id: int, amount: int, *, commit: bool = True) -> int:
    """Charge ``amount`` tokens to today's counter. Returns tokens remaining."""

    n = max(0, int(amount or 0))
    t = today()
    uid = int(user_id)

    rows = (
        db.query(User)
        .filter(User.id == uid, User.last_reset == t)
        .update({User.token_used_today: User.token_used_today + n}, synchronize_session=False)
    )
    if rows == 0:
        # Counter thuộc ngày cũ: reset và trừ luôn trong cùng transaction
        rows = (
            db.query(User)
            .filter(User.id == uid, _stale_filter(t))
            .update(
                {User.token_used_today: n, User.unlocks_used: 0, User.last_reset: t},
                synchronize_session=False,
            )
        )
    if rows == 0:
        # Request khác vừa reset xong: cộng dồn bình thường
        rows = (
            db.query(User)
            .filter(User.id == uid, User.last_reset == t)
            .update({User.token_used_today: User.token_used_today + n}, synchronize_session=False)
        )
    if rows == 0:
        raise HTTPException(status_code=404, detail="User not found")

    if commit:
        db.commit()
    db.expire_all()

    u = db.query(User).filter(User.id == uid).one()
    remaining = max(0, int(u.token_quota or 0) - int(u.token_used_today or 0))
    if remaining == 0:
        logger.info("token quota exhausted user_id=%s used=%s quota=%s", uid, u.token_used_today, u.token_quota)
    return remaining


def add_tokens(db: Session, user_id: int, amount: int) -> User:
    n = int(amount or 0)
    if n <= 0:
        raise HTTPException(status_code=400, detail="amount must be positive")
    rows = (
        db.query(User)
        .filter(User.id == int(user_id))
        .update({User.token_quota: User.token_quota + n}, synchronize_session=False)
    )
    if rows == 0:
        raise HTTPException(status_code=404, detail="User not found")
    db.commit()
    db.expire_all()
    return db.query(User).filter(User.id == int(user_id)).one()


def set_token_quota(db: Session, user_id: int, quota: int) -> User:
    q = int(quota or 0)
    if q <= 0:
        raise HTTPException(status_code=400, detail="quota must be positive")
    u = db.query(User).filter(User.id == int(user_id)).first()
    if not u:
        raise HTTPException(status_code=404, detail="User not found")
    u.token_quota = q
    db.commit()
    db.refresh(u)
    return u


def log_token_usage(
    db: Session,
    *,
    user_id: int,
    total_tokens: int,
    prompt_tokens: int = 0,
    completion_tokens: int = 0,
    feature: str = "chat",
    model: str | None = None,
    has_image: bool = False,
) -> None:
    try:
        db.add(
            TokenLog(
                user_id=int(user_id),
                total_tokens=int(total_tokens or 0),
                prompt_tokens=int(prompt_tokens or 0),
                completion_tokens=int(completion_tokens or 0),
                feature=str(feature or "chat"),
                model=model,
                has_image=bool(has_image),
            )
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning("log_token_usage failed user_id=%s: %s", user_id, e)
        return
    logger.info("token usage user_id=%s feature=%s total=%s", user_id, feature, total_tokens)


def get_token_stats(db: Session, period: str = "day") -> Dict[str, Any]:
    since = period_start(period)
    total, requests = (
        db.query(func.coalesce(func.sum(TokenLog.total_tokens), 0), func.count(TokenLog.id))
        .filter(TokenLog.created_at >= since)
        .one()
    )
    by_feature = (
        db.query(TokenLog.feature, func.coalesce(func.sum(TokenLog.total_tokens), 0))
        .filter(TokenLog.created_at >= since)
        .group_by(TokenLog.feature)
        .all()
    )
    total = int(total or 0)
    requests = int(requests or 0)
    return {
        "period": period,
        "total_tokens": total,
        "total_requests": requests,
        "average_per_request": round(total / requests, 1) if requests else 0,
        "by_feature": {str(f): int(t or 0) for f, t in by_feature},
    }


# ===== Giới hạn số bài tập mỗi ngày =====


def _usage_row(db: Session, user_id: int, d: date) -> DailyExerciseUsage | None:
    return (
        db.query(DailyExerciseUsage)
        .filter(DailyExerciseUsage.user_id == int(user_id), DailyExerciseUsage.usage_date == d)
        .first()
    )


def _usage_payload(count: int) -> Dict[str, Any]:
    limit = int(settings.DAILY_EXERCISE_LIMIT)
    remaining = max(0, limit - int(count))
    return {"today_usage": int(count), "daily_limit": limit, "remaining": remaining, "can_create": remaining > 0}


def get_daily_usage(db: Session, user_id: int) -> Dict[str, Any]:
    row = _usage_row(db, user_id, today())
    return _usage_payload(int(row.count) if row else 0)


def _bump_usage(db: Session, user_id: int, d: date, n: int) -> int:
    # chỉ cộng khi chưa chạm giới hạn; request được nhận có thể vượt quá
    return (
        db.query(DailyExerciseUsage)
        .filter(
            DailyExerciseUsage.user_id == int(user_id),
            DailyExerciseUsage.usage_date == d,
            DailyExerciseUsage.count < int(settings.DAILY_EXERCISE_LIMIT),
        )
        .update(
            {
                DailyExerciseUsage.count: DailyExerciseUsage.count + n,
                DailyExerciseUsage.last_used: datetime.now(timezone.utc),
            },
            synchronize_session=False,
        )
    )


def record_exercise_usage(db: Session, user_id: int, count: int = 1, *, commit: bool = True) -> Dict[str, Any]:
    """Add ``count`` to today's exercise counter; 429 once the limit is reached."""

    n = max(1, int(count or 1))
    d = today()
    uid = int(user_id)

    rows = _bump_usage(db, uid, d, n)
    if rows == 0 and _usage_row(db, uid, d) is None:
        try:
            with db.begin_nested():
                db.add(DailyExerciseUsage(user_id=uid, usage_date=d, count=n, last_used=datetime.now(timezone.utc)))
            rows = 1
        except IntegrityError:
            # Request khác vừa tạo dòng của hôm nay
            rows = _bump_usage(db, uid, d, n)

    db.expire_all()
    if rows == 0:
        row = _usage_row(db, uid, d)
        current = int(row.count) if row else 0
        raise HTTPException(
            status_code=429,
            detail={"code": "DAILY_LIMIT_REACHED", "message": "Daily limit reached", **_usage_payload(current)},
        )

    if commit:
        db.commit()
    row = _usage_row(db, uid, d)
    return _usage_payload(int(row.count) if row else n)


def require_quota(db: Session, user: User) -> Dict[str, Any]:
    quota = check_quota(db, user)
    if not quota["has_quota"]:
        logger.info("request blocked, quota exhausted user_id=%s", user.id)
        raise HTTPException(
            status_code=429,
            detail={
                "code": "QUOTA_EXCEEDED",
                "message": "Bạn đã hết lượt hôm nay. Vui lòng quay lại vào ngày mai.",
                "quota_exceeded": True,
            },
        )
    return quota


def charge_usage(
    db: Session,
    user_id: int,
    usage: Dict[str, int],
    *,
    feature: str,
    model: str | None = None,
    has_image: bool = False,
) -> int:
    """Consume + log one LLM call. Returns tokens remaining."""
    total = int(usage.get("total_tokens") or 0)
    remaining = consume_tokens(db, user_id, total)
    log_token_usage(
        db,
        user_id=user_id,
        total_tokens=total,
        prompt_tokens=int(usage.get("prompt_tokens") or 0),
        completion_tokens=int(usage.get("completion_tokens") or 0),
        feature=feature,
        model=model,
        has_image=has_image,
    )
    return remaining

from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import HTTPException
from sqlalchemy.orm import Session

from app.core.security import hash_unlock_code, verify_unlock_code_hash
from app.models.user import User
from app.services import token_service

logger = logging.getLogger(__name__)

MIN_CODE_LENGTH = 6


def _refresh_daily(db: Session, user: User) -> None:
    # unlocks_used reset cùng lúc với token counter
    if user.last_reset is None or user.last_reset != token_service.today():
        token_service.reset_daily_tokens(db, int(user.id))
        db.refresh(user)


def get_unlock_info(db: Session, user: User) -> Dict[str, Any]:
    _refresh_daily(db, user)
    quota = int(user.unlock_quota or 0)
    used = int(user.unlocks_used or 0)
    return {
        "unlock_quota": quota,
        "unlocks_used": used,
        "remaining_unlocks": max(0, quota - used),
        "has_unlock_code": bool(user.unlock_code_hash),
    }


def set_unlock_code(db: Session, user: User, code: str | None) -> None:
    code = str(code or "").strip()
    if len(code) < MIN_CODE_LENGTH:
        raise HTTPException(status_code=400, detail=f"Mã unlock phải có ít nhất {MIN_CODE_LENGTH} ký tự")
    user.unlock_code_hash = hash_unlock_code(code)
    db.commit()
    logger.info("unlock code updated user_id=%s", user.id)


def verify_unlock_code(db: Session, user: User, code: str | None) -> Dict[str, Any]:
    code = str(code or "").strip()
    if not code:
        raise HTTPException(status_code=400, detail="Thiếu mã unlock")
    if not user.unlock_code_hash:
        raise HTTPException(status_code=400, detail="Chưa thiết lập mã unlock")

    _refresh_daily(db, user)
    quota = int(user.unlock_quota or 0)
    if int(user.unlocks_used or 0) >= quota:
        raise HTTPException(
            status_code=429,
            detail={"code": "UNLOCK_QUOTA_EXCEEDED", "message": "Đã hết lượt unlock hôm nay", "valid": False},
        )

    if not verify_unlock_code_hash(code, str(user.unlock_code_hash)):
        logger.info("unlock code mismatch user_id=%s", user.id)
        return {"valid": False, "remaining_unlocks": max(0, quota - int(user.unlocks_used or 0))}

    rows = (
        db.query(User)
        .filter(User.id == int(user.id), User.unlocks_used < User.unlock_quota)
        .update({User.unlocks_used: User.unlocks_used + 1}, synchronize_session=False)
    )
    db.commit()
    db.refresh(user)
    if rows == 0:
        raise HTTPException(
            status_code=429,
            detail={"code": "UNLOCK_QUOTA_EXCEEDED", "message": "Đã hết lượt unlock hôm nay", "valid": False},
        )
    return {"valid": True, "remaining_unlocks": max(0, quota - int(user.unlocks_used or 0))}

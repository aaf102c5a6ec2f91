from __future__ import annotations

import logging
import re
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.permissions import Role, normalize_role
from app.core.security import get_password_hash, verify_password
from app.models.user import User
from app.services.token_service import today

logger = logging.getLogger(__name__)

SELF_REGISTER_ROLES = {Role.parent.value, Role.student.value}

_PHONE_STRIP_RE = re.compile(r"[\s\-()]")
_PHONE_RE = re.compile(r"^(\+84|84|0)?[1-9][0-9]{8,9}$")


def normalize_phone(phone: str | None) -> str:
    return _PHONE_STRIP_RE.sub("", str(phone or ""))


def is_valid_phone(phone: str | None) -> bool:
    p = normalize_phone(phone)
    return bool(p) and bool(_PHONE_RE.match(p))


def get_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(User.email == str(email).strip().lower()).first()


def get_user(db: Session, user_id: int) -> User:
    u = db.query(User).filter(User.id == int(user_id)).first()
    if not u:
        raise HTTPException(status_code=404, detail="User not found")
    return u


def default_quota_for_role(role: str) -> int:
    if role == Role.teacher.value:
        return int(settings.TEACHER_TOKEN_QUOTA)
    return int(settings.DEFAULT_TOKEN_QUOTA)


def create_user(
    db: Session,
    *,
    email: str,
    password: str,
    role: str,
    full_name: str | None = None,
    phone: str | None = None,
    grade: str | None = None,
    commit: bool = True,
) -> User:
    r = normalize_role(role)
    if not r:
        raise HTTPException(status_code=400, detail="Invalid role")
    if get_by_email(db, email):
        raise HTTPException(status_code=409, detail="Email already exists")
    if phone and not is_valid_phone(phone):
        raise HTTPException(status_code=400, detail="Invalid phone number")

    u = User(
        email=str(email).strip().lower(),
        full_name=full_name,
        phone=normalize_phone(phone) or None,
        grade=grade,
        role=r,
        password_hash=get_password_hash(password),
        is_active=True,
        plan="free",
        token_quota=default_quota_for_role(r),
        token_used_today=0,
        last_reset=today(),
        unlock_quota=int(settings.DEFAULT_UNLOCK_QUOTA),
        unlocks_used=0,
    )
    db.add(u)
    if commit:
        db.commit()
        db.refresh(u)
    else:
        db.flush()
    logger.info("user created id=%s role=%s", u.id, r)
    return u


def authenticate(db: Session, email: str, password: str) -> User:
    u = get_by_email(db, email)
    if not u or not u.password_hash or not verify_password(password, str(u.password_hash)):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if not bool(u.is_active):
        raise HTTPException(status_code=403, detail="User is inactive")
    return u


def change_password(db: Session, user: User, current_password: str, new_password: str) -> None:
    if not user.password_hash or not verify_password(current_password, str(user.password_hash)):
        raise HTTPException(status_code=400, detail="Current password is incorrect")
    user.password_hash = get_password_hash(new_password)
    db.commit()


def update_profile(
    db: Session,
    user: User,
    *,
    full_name: str | None = None,
    phone: str | None = None,
    grade: str | None = None,
) -> User:
    if full_name is not None:
        user.full_name = full_name.strip() or None
    if phone is not None:
        if phone.strip() and not is_valid_phone(phone):
            raise HTTPException(status_code=400, detail="Invalid phone number")
        user.phone = normalize_phone(phone) or None
    if grade is not None:
        user.grade = grade.strip() or None
    db.commit()
    db.refresh(user)
    return user


def get_email_by_phone(db: Session, phone: str) -> str:
    p = normalize_phone(phone)
    if not is_valid_phone(p):
        raise HTTPException(status_code=400, detail="Invalid phone number")
    u = db.query(User).filter(User.phone == p).first()
    if not u:
        raise HTTPException(status_code=404, detail="No account with this phone number")
    return str(u.email)


def ensure_bootstrap_admin(db: Session) -> Optional[User]:
    """Create the configured admin account if it does not exist (idempotent)."""

    email = (settings.BOOTSTRAP_ADMIN_EMAIL or "").strip().lower()
    password = settings.BOOTSTRAP_ADMIN_PASSWORD or ""
    if not email or not password:
        return None

    u = get_by_email(db, email)
    if u:
        if u.role != Role.admin.value:
            u.role = Role.admin.value
            db.commit()
        return u
    return create_user(db, email=email, password=password, role=Role.admin.value, full_name="Administrator")

"""Common FastAPI dependencies.

Authentication is a Bearer JWT whose ``sub`` is the user id. The role used for
every authorisation decision is the one stored on the ``users`` row, loaded
fresh on each request; the ``user-role`` cookie set by ``/auth/me`` is never
consulted here.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from fastapi import Depends, HTTPException, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from app.core.permissions import Role, has_permission, normalize_role
from app.core.security import read_access_token
from app.db.session import get_db
from app.infra.rate_limit import rate_limiter
from app.models.user import User
from app.services.admin_service import log_admin_activity

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login/form", auto_error=False)

__all__ = [
    "get_db",
    "client_ip",
    "get_current_user_optional",
    "require_user",
    "require_roles",
    "require_admin",
    "require_teacher",
    "require_permission",
    "rate_limit",
]


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else "unknown"


def get_current_user_optional(
    token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> Optional[User]:
    """Return the user behind the Bearer token, or None when absent/invalid."""

    if not token:
        return None
    payload = read_access_token(token)
    if not payload:
        return None
    try:
        uid = int(str(payload.get("sub")))
    except (TypeError, ValueError):
        return None
    return db.query(User).filter(User.id == uid).first()


def require_user(user: Optional[User] = Depends(get_current_user_optional)) -> User:
    if not user:
        raise HTTPException(
            status_code=401,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not bool(user.is_active):
        raise HTTPException(status_code=403, detail="User is inactive")
    return user


def _deny(request: Request, db: Session, user: User, reason: str, **details) -> None:
    logger.warning(
        "access denied user_id=%s role=%s path=%s reason=%s", user.id, user.role, request.url.path, reason
    )
    log_admin_activity(
        db,
        user_id=int(user.id),
        action="access_denied",
        details={"path": request.url.path, "method": request.method, "role": user.role, "reason": reason, **details},
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )


def require_roles(*roles: str) -> Callable[..., User]:
    allowed = {normalize_role(r) for r in roles} - {None}

    def dep(request: Request, user: User = Depends(require_user), db: Session = Depends(get_db)) -> User:
        if normalize_role(user.role) not in allowed:
            _deny(request, db, user, "role", required=sorted(allowed))
            raise HTTPException(
                status_code=403,
                detail={"code": "FORBIDDEN", "message": "Bạn không có quyền truy cập", "required_roles": sorted(allowed)},
            )
        return user

    return dep


require_admin = require_roles(Role.admin.value)
require_teacher = require_roles(Role.teacher.value, Role.admin.value)


def require_permission(permission: str) -> Callable[..., User]:
    def dep(request: Request, user: User = Depends(require_user), db: Session = Depends(get_db)) -> User:
        if not has_permission(user.role, permission):
            _deny(request, db, user, "permission", permission=permission)
            raise HTTPException(
                status_code=403,
                detail={"code": "FORBIDDEN", "message": "Bạn không có quyền thực hiện thao tác này", "permission": permission},
            )
        return user

    return dep


def rate_limit(bucket: str) -> Callable[..., None]:
    """Fixed-window limit per user id, or per client IP when anonymous."""

    def dep(request: Request, user: Optional[User] = Depends(get_current_user_optional)) -> None:
        identifier = f"user:{user.id}" if user else f"ip:{client_ip(request)}"
        result = rate_limiter.check(identifier, bucket)
        if not result.allowed:
            logger.info("rate limited bucket=%s id=%s retry_after=%s", bucket, identifier, result.retry_after)
            raise HTTPException(
                status_code=429,
                detail={
                    "code": "RATE_LIMITED",
                    "message": "Quá nhiều yêu cầu. Vui lòng thử lại sau.",
                    "retry_after": result.retry_after,
                },
                headers=result.headers(),
            )

    return dep

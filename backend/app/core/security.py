from __future__ import annotations

import hashlib
import hmac
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from app.core.config import settings


pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        # malformed / unknown hash format
        return False


TOKEN_TYPE = "access"


def create_access_token(*, subject: str, role: Optional[str] = None, expires_minutes: Optional[int] = None) -> str:
    """Signed JWT whose ``sub`` is the user id.

    ``role`` is a hint for the client UI only; authorisation always reloads the
    role from the database.
    """
    issued = datetime.now(timezone.utc)
    lifetime = timedelta(minutes=int(expires_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    claims: Dict[str, Any] = {"sub": str(subject), "typ": TOKEN_TYPE, "iat": issued, "exp": issued + lifetime}
    if role:
        claims["role"] = role
    return jwt.encode(claims, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def read_access_token(token: str) -> Optional[Dict[str, Any]]:
    """Claims of a valid access token; None when expired, forged or of another type."""
    try:
        claims = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        return None
    if claims.get("typ") != TOKEN_TYPE or not claims.get("sub"):
        return None
    return claims

def hash_unlock_code(code: str) -> str:
    """HMAC-SHA256 digest of a parent's unlock code (hex)."""
    key = (settings.UNLOCK_CODE_SECRET or "").encode("utf-8")
    return hmac.new(key, str(code).encode("utf-8"), hashlib.sha256).hexdigest()


def verify_unlock_code_hash(code: str, hashed: str) -> bool:
    return hmac.compare_digest(hash_unlock_code(code), str(hashed or ""))

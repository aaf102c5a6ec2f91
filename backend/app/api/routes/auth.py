from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from app.api.deps import get_db, rate_limit, require_user
from app.core.config import settings
from app.core.permissions import redirect_for_role
from app.core.security import create_access_token
from app.models.user import User
from app.schemas.auth import (
    AuthResponse,
    ChangePasswordRequest,
    LoginRequest,
    RegisterRequest,
    TokenResponse,
    UserOut,
)
from app.services import user_service


logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])


def user_out(u: User) -> UserOut:
    return UserOut(
        id=int(u.id),
        email=str(u.email),
        full_name=u.full_name,
        phone=u.phone,
        grade=u.grade,
        role=u.role,
        is_active=bool(u.is_active),
        plan=u.plan or "free",
        token_quota=int(u.token_quota or 0),
        token_used_today=int(u.token_used_today or 0),
    )


def set_role_cookie(response: Response, u: User) -> None:
    # Chỉ để frontend ẩn/hiện menu; server luôn đọc role từ DB
    response.set_cookie(
        key=settings.ROLE_COOKIE_NAME,
        value=str(u.role),
        max_age=int(settings.ROLE_COOKIE_MAX_AGE_SEC),
        httponly=False,
        samesite="lax",
        secure=settings.ENV != "dev",
    )


def _auth_payload(response: Response, u: User) -> dict:
    set_role_cookie(response, u)
    token = TokenResponse(access_token=create_access_token(subject=str(u.id), role=u.role))
    return AuthResponse(token=token, user=user_out(u), redirect_to=redirect_for_role(u.role)).model_dump()


@router.post("/auth/register", dependencies=[Depends(rate_limit("auth"))])
def register(request: Request, response: Response, payload: RegisterRequest, db: Session = Depends(get_db)):
    role = (payload.role or "parent").strip().lower()
    if role not in user_service.SELF_REGISTER_ROLES:
        raise HTTPException(status_code=400, detail="Invalid role. Use 'parent' or 'student'.")

    u = user_service.create_user(
        db,
        email=payload.email,
        password=payload.password,
        role=role,
        full_name=payload.full_name,
        phone=payload.phone,
        grade=payload.grade,
    )
    return {"request_id": request.state.request_id, "data": _auth_payload(response, u), "error": None}


@router.post("/auth/login", dependencies=[Depends(rate_limit("auth"))])
def login(request: Request, response: Response, payload: LoginRequest, db: Session = Depends(get_db)):
    u = user_service.authenticate(db, payload.email, payload.password)
    logger.info("login user_id=%s role=%s", u.id, u.role)
    return {"request_id": request.state.request_id, "data": _auth_payload(response, u), "error": None}


@router.post("/auth/login/form", dependencies=[Depends(rate_limit("auth"))])
def login_form(request: Request, form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)):
    # OAuth2PasswordRequestForm uses fields: username, password
    u = user_service.authenticate(db, form_data.username, form_data.password)
    token = TokenResponse(access_token=create_access_token(subject=str(u.id), role=u.role))
    out = {"access_token": token.access_token, "token_type": token.token_type}
    return {"request_id": request.state.request_id, "data": out, "error": None}


@router.get("/auth/me")
def me(request: Request, response: Response, user: User = Depends(require_user)):
    set_role_cookie(response, user)
    out = user_out(user).model_dump()
    out["redirect_to"] = redirect_for_role(user.role)
    return {"request_id": request.state.request_id, "data": out, "error": None}


@router.post("/auth/change-password")
def change_password(
    request: Request,
    payload: ChangePasswordRequest,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    user_service.change_password(db, user, payload.current_password, payload.new_password)
    return {"request_id": request.state.request_id, "data": {"changed": True}, "error": None}

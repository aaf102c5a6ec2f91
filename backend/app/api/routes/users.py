from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from app.api.deps import get_db, rate_limit, require_user
from app.api.routes.auth import user_out
from app.models.user import User
from app.schemas.users import ProfileUpdate
from app.services import payment_service, user_service


router = APIRouter(tags=["users"])


@router.get("/users/me")
def get_me(request: Request, user: User = Depends(require_user), db: Session = Depends(get_db)):
    out = user_out(user).model_dump()
    out["current_package"] = payment_service.get_current_package(db, int(user.id))
    return {"request_id": request.state.request_id, "data": out, "error": None}


@router.patch("/users/me")
def update_me(
    request: Request,
    payload: ProfileUpdate,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    u = user_service.update_profile(db, user, full_name=payload.full_name, phone=payload.phone, grade=payload.grade)
    return {"request_id": request.state.request_id, "data": user_out(u).model_dump(), "error": None}


@router.get("/users/email-by-phone", dependencies=[Depends(rate_limit("auth"))])
def email_by_phone(request: Request, phone: str = Query(..., min_length=9), db: Session = Depends(get_db)):
    """Resolve the login e-mail for the phone-number login form."""
    email = user_service.get_email_by_phone(db, phone)
    return {"request_id": request.state.request_id, "data": {"email": email}, "error": None}

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from app.api.deps import get_db, require_user
from app.models.user import User
from app.schemas.tokens import ExerciseUsageRecord, UnlockCodeAction
from app.services import token_service, unlock_service


router = APIRouter(tags=["tokens"])


@router.get("/tokens/me")
def my_tokens(request: Request, user: User = Depends(require_user), db: Session = Depends(get_db)):
    data = token_service.get_token_info(db, user)
    return {"request_id": request.state.request_id, "data": data, "error": None}


@router.get("/daily-limit")
def daily_limit(request: Request, user: User = Depends(require_user), db: Session = Depends(get_db)):
    data = token_service.get_daily_usage(db, int(user.id))
    return {"request_id": request.state.request_id, "data": data, "error": None}


@router.post("/daily-limit")
def record_daily_usage(
    request: Request,
    payload: ExerciseUsageRecord,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    data = token_service.record_exercise_usage(db, int(user.id), payload.count)
    return {"request_id": request.state.request_id, "data": data, "error": None}


@router.get("/unlock-code")
def unlock_info(request: Request, user: User = Depends(require_user), db: Session = Depends(get_db)):
    data = unlock_service.get_unlock_info(db, user)
    return {"request_id": request.state.request_id, "data": data, "error": None}


@router.post("/unlock-code")
def unlock_action(
    request: Request,
    payload: UnlockCodeAction,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    if payload.action == "set":
        unlock_service.set_unlock_code(db, user, payload.code)
        data = {"updated": True, **unlock_service.get_unlock_info(db, user)}
    else:
        data = unlock_service.verify_unlock_code(db, user, payload.code)
    return {"request_id": request.state.request_id, "data": data, "error": None}

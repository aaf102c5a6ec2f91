from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from app.api.deps import get_db, rate_limit, require_user
from app.models.user import User
from app.schemas.teacher import ExerciseGenerateRequest
from app.services import generation_service, token_service


router = APIRouter(tags=["exercises"])


@router.post("/exercises/generate", dependencies=[Depends(rate_limit("api"))])
def generate_exercises(
    request: Request,
    payload: ExerciseGenerateRequest,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    usage = token_service.get_daily_usage(db, int(user.id))
    if not usage["can_create"]:
        raise HTTPException(
            status_code=429,
            detail={"code": "DAILY_LIMIT_REACHED", "message": "Daily limit reached", **usage},
        )
    token_service.require_quota(db, user)

    items, res = generation_service.generate_exercises(
        subject=payload.subject,
        topic=payload.topic,
        grade=payload.grade,
        count=payload.count,
        difficulty=payload.difficulty,
    )
    # ghi lượt bài tập trước, trừ token sau: cùng một commit
    daily = token_service.record_exercise_usage(db, int(user.id), len(items), commit=False)
    remaining = token_service.charge_usage(db, int(user.id), res.usage, feature="exercises", model=res.model)

    data = {
        "exercises": items,
        "tokens_used": res.total_tokens,
        "tokens_remaining": remaining,
        "daily_usage": daily,
    }
    return {"request_id": request.state.request_id, "data": data, "error": None}

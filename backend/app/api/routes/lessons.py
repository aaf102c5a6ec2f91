from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from app.api.deps import get_db, rate_limit, require_permission
from app.models.user import User
from app.schemas.lessons import LessonCreate, LessonUpdate
from app.services import lesson_service


router = APIRouter(tags=["lessons"], dependencies=[Depends(rate_limit("api"))])


@router.get("/lessons")
def list_lessons(
    request: Request,
    grade: Optional[str] = None,
    subject: Optional[str] = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    user: User = Depends(require_permission("lessons.view")),
    db: Session = Depends(get_db),
):
    data = lesson_service.list_lessons(db, user, grade=grade, subject=subject, page=page, limit=limit)
    return {"request_id": request.state.request_id, "data": data, "error": None}


@router.get("/lessons/{lesson_id}")
def get_lesson(
    request: Request,
    lesson_id: int,
    user: User = Depends(require_permission("lessons.view")),
    db: Session = Depends(get_db),
):
    lesson = lesson_service.get_lesson(db, user, lesson_id)
    return {"request_id": request.state.request_id, "data": lesson_service.lesson_out(lesson), "error": None}


@router.post("/lessons")
def create_lesson(
    request: Request,
    payload: LessonCreate,
    user: User = Depends(require_permission("lessons.create")),
    db: Session = Depends(get_db),
):
    lesson = lesson_service.create_lesson(db, user, **payload.model_dump())
    return {"request_id": request.state.request_id, "data": lesson_service.lesson_out(lesson), "error": None}


@router.patch("/lessons/{lesson_id}")
def update_lesson(
    request: Request,
    lesson_id: int,
    payload: LessonUpdate,
    user: User = Depends(require_permission("lessons.edit")),
    db: Session = Depends(get_db),
):
    lesson = lesson_service.update_lesson(db, user, lesson_id, payload.model_dump(exclude_unset=True))
    return {"request_id": request.state.request_id, "data": lesson_service.lesson_out(lesson), "error": None}


@router.delete("/lessons/{lesson_id}")
def delete_lesson(
    request: Request,
    lesson_id: int,
    user: User = Depends(require_permission("lessons.delete")),
    db: Session = Depends(get_db),
):
    lesson_service.delete_lesson(db, user, lesson_id)
    return {"request_id": request.state.request_id, "data": {"deleted": True, "id": int(lesson_id)}, "error": None}

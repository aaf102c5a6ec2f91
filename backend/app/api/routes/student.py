from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from app.api.deps import get_db, require_permission
from app.models.user import User
from app.schemas.teacher import SubmitPayload
from app.services import assignment_service


router = APIRouter(tags=["student"])


@router.get("/student/assignments")
def my_assignments(
    request: Request,
    user: User = Depends(require_permission("assignments.view")),
    db: Session = Depends(get_db),
):
    data = assignment_service.list_student_assignments(db, user)
    return {"request_id": request.state.request_id, "data": data, "error": None}


@router.post("/student/assignments/{assignment_id}/submit")
def submit_assignment(
    request: Request,
    assignment_id: int,
    payload: SubmitPayload,
    user: User = Depends(require_permission("assignments.submit")),
    db: Session = Depends(get_db),
):
    sa = assignment_service.submit_assignment(db, user, assignment_id, payload.answers)
    return {"request_id": request.state.request_id, "data": assignment_service.submission_out(sa), "error": None}

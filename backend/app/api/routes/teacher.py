from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from app.api.deps import get_db, rate_limit, require_permission, require_teacher
from app.models.user import User
from app.schemas.teacher import AssignmentCreate, GradePayload, LessonPlanRequest, TestGenerateRequest
from app.services import assignment_service, generation_service, token_service


router = APIRouter(tags=["teacher"])


@router.post("/teacher/generate-lesson-plan", dependencies=[Depends(rate_limit("api"))])
def generate_lesson_plan(
    request: Request,
    payload: LessonPlanRequest,
    user: User = Depends(require_permission("ai.generate_lessons")),
    db: Session = Depends(get_db),
):
    token_service.require_quota(db, user)
    plan, res = generation_service.generate_lesson_plan(
        subject=payload.subject, grade=payload.grade, topic=payload.topic, duration=payload.duration
    )
    remaining = token_service.charge_usage(db, int(user.id), res.usage, feature="lesson_plan", model=res.model)
    data = {"lesson_plan": plan, "tokens_used": res.total_tokens, "tokens_remaining": remaining}
    return {"request_id": request.state.request_id, "data": data, "error": None}


@router.post("/teacher/generate-test", dependencies=[Depends(rate_limit("api"))])
def generate_test(
    request: Request,
    payload: TestGenerateRequest,
    user: User = Depends(require_permission("ai.generate_lessons")),
    db: Session = Depends(get_db),
):
    token_service.require_quota(db, user)
    test, res = generation_service.generate_test(
        subject=payload.subject,
        grade=payload.grade,
        topic=payload.topic,
        question_count=payload.question_count,
        duration_minutes=payload.duration_minutes,
    )
    remaining = token_service.charge_usage(db, int(user.id), res.usage, feature="test", model=res.model)
    data = {"test": test, "tokens_used": res.total_tokens, "tokens_remaining": remaining}
    return {"request_id": request.state.request_id, "data": data, "error": None}


@router.get("/teacher/students")
def my_students(request: Request, user: User = Depends(require_teacher), db: Session = Depends(get_db)):
    data = assignment_service.list_my_students(db, user)
    return {"request_id": request.state.request_id, "data": data, "error": None}


@router.post("/teacher/assignments")
def create_assignment(
    request: Request,
    payload: AssignmentCreate,
    user: User = Depends(require_teacher),
    db: Session = Depends(get_db),
):
    a = assignment_service.create_assignment(
        db,
        user,
        title=payload.title,
        subject=payload.subject,
        student_ids=payload.student_ids,
        questions=payload.questions,
        answers=payload.answers,
        grade=payload.grade,
        topic=payload.topic,
        deadline=payload.deadline,
    )
    data = assignment_service.assignment_out(a, include_answers=True)
    data["student_ids"] = sorted(set(payload.student_ids))
    return {"request_id": request.state.request_id, "data": data, "error": None}


@router.get("/teacher/assignments")
def list_assignments(request: Request, user: User = Depends(require_teacher), db: Session = Depends(get_db)):
    data = assignment_service.list_teacher_assignments(db, user)
    return {"request_id": request.state.request_id, "data": data, "error": None}


@router.get("/teacher/assignments/{assignment_id}/submissions")
def list_submissions(
    request: Request,
    assignment_id: int,
    user: User = Depends(require_teacher),
    db: Session = Depends(get_db),
):
    data = assignment_service.list_submissions(db, user, assignment_id)
    return {"request_id": request.state.request_id, "data": data, "error": None}


@router.post("/teacher/submissions/{submission_id}/grade")
def grade_submission(
    request: Request,
    submission_id: int,
    payload: GradePayload,
    user: User = Depends(require_permission("assignments.grade")),
    db: Session = Depends(get_db),
):
    sa = assignment_service.grade_submission(db, user, submission_id, grade=payload.grade, feedback=payload.feedback)
    return {"request_id": request.state.request_id, "data": assignment_service.submission_out(sa), "error": None}

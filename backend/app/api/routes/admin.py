from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from app.api.deps import client_ip, get_db, rate_limit, require_admin
from app.infra.queue import enqueue
from app.models.user import User
from app.schemas.admin import AdminUserCreate, AdminUserUpdate, TeacherStudentLink
from app.schemas.payments import ApprovePayload, RejectPayload
from app.schemas.tokens import TokenAdminAction
from app.services import admin_service, assignment_service, payment_service, token_service, user_service
from app.tasks.quota_tasks import task_reset_all_daily_tokens


router = APIRouter(tags=["admin"], dependencies=[Depends(rate_limit("admin"))])


def _audit(request: Request, db: Session, admin: User, action: str, **details) -> None:
    admin_service.log_admin_activity(
        db,
        user_id=int(admin.id),
        action=action,
        details=details,
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )


@router.get("/admin/stats")
def stats(request: Request, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    data = admin_service.get_stats(db)
    return {"request_id": request.state.request_id, "data": data, "error": None}


@router.get("/admin/token-analytics")
def token_analytics(
    request: Request,
    period: str = "day",
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    data = admin_service.get_token_analytics(db, period)
    return {"request_id": request.state.request_id, "data": data, "error": None}


@router.get("/admin/activity")
def activity(
    request: Request,
    action: Optional[str] = None,
    user_id: Optional[int] = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    data = admin_service.list_activity(db, action=action, user_id=user_id, limit=limit, offset=offset)
    return {"request_id": request.state.request_id, "data": data, "error": None}


# ===== Users =====


@router.get("/admin/users")
def list_users(
    request: Request,
    role: Optional[str] = None,
    search: Optional[str] = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    data = admin_service.list_users(db, role=role, search=search, limit=limit, offset=offset)
    return {"request_id": request.state.request_id, "data": data, "error": None}


@router.post("/admin/users")
def create_user(
    request: Request,
    payload: AdminUserCreate,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    u = user_service.create_user(
        db,
        email=payload.email,
        password=payload.password,
        role=payload.role,
        full_name=payload.full_name,
        phone=payload.phone,
        grade=payload.grade,
    )
    _audit(request, db, admin, "user_created", target_user_id=int(u.id), role=u.role)
    return {"request_id": request.state.request_id, "data": admin_service.user_admin_out(u), "error": None}


@router.patch("/admin/users/{user_id}")
def update_user(
    request: Request,
    user_id: int,
    payload: AdminUserUpdate,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    u = admin_service.update_user(
        db, admin, user_id, role=payload.role, is_active=payload.is_active, plan=payload.plan
    )
    _audit(request, db, admin, "user_updated", target_user_id=int(u.id), **payload.model_dump(exclude_none=True))
    return {"request_id": request.state.request_id, "data": admin_service.user_admin_out(u), "error": None}


# ===== Tokens =====


@router.post("/admin/tokens/reset-all")
def reset_all_tokens(request: Request, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    res = enqueue(task_reset_all_daily_tokens, queue_name="quota")
    _audit(request, db, admin, "tokens_reset_all", queued=bool(res.get("queued")))
    return {"request_id": request.state.request_id, "data": res, "error": None}


@router.get("/admin/tokens/{user_id}")
def user_tokens(
    request: Request,
    user_id: int,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    u = user_service.get_user(db, user_id)
    data = {"user_id": int(u.id), **token_service.get_token_info(db, u)}
    return {"request_id": request.state.request_id, "data": data, "error": None}


@router.post("/admin/tokens/{user_id}")
def manage_user_tokens(
    request: Request,
    user_id: int,
    payload: TokenAdminAction,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    if payload.action == "add":
        u = token_service.add_tokens(db, user_id, int(payload.amount or 0))
    elif payload.action == "set_quota":
        u = token_service.set_token_quota(db, user_id, int(payload.amount or 0))
    else:
        u = user_service.get_user(db, user_id)
        token_service.reset_daily_tokens(db, int(u.id))
        db.refresh(u)

    _audit(request, db, admin, f"tokens_{payload.action}", target_user_id=int(u.id), amount=payload.amount)
    data = {"user_id": int(u.id), **token_service.get_token_info(db, u)}
    return {"request_id": request.state.request_id, "data": data, "error": None}


# ===== Payments =====


@router.get("/admin/payment-requests")
def payment_requests(
    request: Request,
    status: Optional[str] = None,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    data = payment_service.list_requests(db, status)
    return {"request_id": request.state.request_id, "data": data, "error": None}


@router.post("/admin/payment-requests/{request_id}/approve")
def approve_payment(
    request: Request,
    request_id: int,
    payload: Optional[ApprovePayload] = None,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    r = payment_service.approve(
        db,
        request_id,
        admin,
        notes=payload.notes if payload else None,
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    return {"request_id": request.state.request_id, "data": payment_service.payment_out(r), "error": None}


@router.post("/admin/payment-requests/{request_id}/reject")
def reject_payment(
    request: Request,
    request_id: int,
    payload: RejectPayload,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    r = payment_service.reject(
        db,
        request_id,
        admin,
        reason=payload.reason,
        notes=payload.notes,
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    return {"request_id": request.state.request_id, "data": payment_service.payment_out(r), "error": None}


# ===== Teacher - student links =====


@router.get("/admin/teacher-students")
def list_links(
    request: Request,
    teacher_id: Optional[int] = None,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    data = assignment_service.list_links(db, teacher_id)
    return {"request_id": request.state.request_id, "data": data, "error": None}


@router.post("/admin/teacher-students")
def link(
    request: Request,
    payload: TeacherStudentLink,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    row = assignment_service.link_teacher_student(db, payload.teacher_id, payload.student_id)
    _audit(request, db, admin, "teacher_student_linked", teacher_id=payload.teacher_id, student_id=payload.student_id)
    data = {"id": int(row.id), "teacher_id": int(row.teacher_id), "student_id": int(row.student_id)}
    return {"request_id": request.state.request_id, "data": data, "error": None}


@router.delete("/admin/teacher-students")
def unlink(
    request: Request,
    teacher_id: int,
    student_id: int,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    assignment_service.unlink_teacher_student(db, teacher_id, student_id)
    _audit(request, db, admin, "teacher_student_unlinked", teacher_id=teacher_id, student_id=student_id)
    return {"request_id": request.state.request_id, "data": {"deleted": True}, "error": None}

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from app.api.deps import get_db, require_permission, require_user
from app.models.user import User
from app.schemas.notifications import MarkReadPayload, SendNotificationRequest
from app.services import notification_service


router = APIRouter(tags=["notifications"])


@router.get("/notifications")
def get_notifications(
    request: Request,
    type: Optional[str] = None,
    is_read: Optional[bool] = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    data = notification_service.list_notifications(
        db, int(user.id), type=type, is_read=is_read, limit=limit, offset=offset
    )
    return {"request_id": request.state.request_id, "data": data, "error": None}


@router.patch("/notifications/{notification_id}/read")
def mark_notification_read(
    request: Request,
    notification_id: int,
    payload: MarkReadPayload,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    row = notification_service.mark_read(db, int(user.id), notification_id, payload.is_read)
    data = {"id": int(row.id), "is_read": bool(row.is_read)}
    return {"request_id": request.state.request_id, "data": data, "error": None}


@router.post("/notifications/read-all")
def mark_all_read(request: Request, user: User = Depends(require_user), db: Session = Depends(get_db)):
    n = notification_service.mark_all_read(db, int(user.id))
    return {"request_id": request.state.request_id, "data": {"updated": n}, "error": None}


@router.post("/notifications/send")
def send_notifications(
    request: Request,
    payload: SendNotificationRequest,
    user: User = Depends(require_permission("notifications.send")),
    db: Session = Depends(get_db),
):
    ids = notification_service.send_notifications(
        db,
        user,
        title=payload.title,
        message=payload.message,
        type=payload.type,
        user_ids=payload.user_ids,
        role=payload.role,
        action_url=payload.action_url,
    )
    return {"request_id": request.state.request_id, "data": {"sent": len(ids), "user_ids": ids}, "error": None}

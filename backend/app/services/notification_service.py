from __future__ import annotations

import logging
from typing import Any, Iterable, List, Optional

from fastapi import HTTPException
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.permissions import Role, has_permission, normalize_role
from app.models.notification import Notification, NotificationType
from app.models.teacher_student import TeacherStudent
from app.models.user import User

logger = logging.getLogger(__name__)


def create_notification(
    db: Session,
    *,
    user_id: int,
    type: str,
    title: str,
    message: str,
    data: dict[str, Any] | None = None,
    action_url: str | None = None,
) -> Notification:
    """Insert a notification row. Flush only: the caller owns the transaction."""

    notif_type = NotificationType(type)
    row = Notification(
        user_id=int(user_id),
        type=notif_type,
        title=str(title),
        message=str(message),
        payload_json=data or {},
        action_url=action_url,
        is_read=False,
    )
    db.add(row)
    db.flush()
    return row


def notify_safely(db: Session, **kwargs: Any) -> Optional[Notification]:
    """Like create_notification but never breaks the caller's flow."""
    try:
        with db.begin_nested():
            return create_notification(db, **kwargs)
    except (SQLAlchemyError, ValueError) as e:
        logger.warning("notification insert failed user_id=%s: %s", kwargs.get("user_id"), e)
        return None


def notification_out(r: Notification) -> dict:
    return {
        "id": int(r.id),
        "user_id": int(r.user_id),
        "type": str(r.type.value if hasattr(r.type, "value") else r.type),
        "title": r.title,
        "message": r.message,
        "data": r.data,
        "action_url": r.action_url,
        "is_read": bool(r.is_read),
        "created_at": r.created_at.isoformat() if r.created_at else None,
    }


def list_notifications(
    db: Session,
    user_id: int,
    *,
    type: str | None = None,
    is_read: bool | None = None,
    limit: int = 50,
    offset: int = 0,
) -> dict:
    q = db.query(Notification).filter(Notification.user_id == int(user_id))
    if type:
        try:
            q = q.filter(Notification.type == NotificationType(type))
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid notification type")
    if is_read is not None:
        q = q.filter(Notification.is_read.is_(bool(is_read)))

    rows = q.order_by(Notification.created_at.desc(), Notification.id.desc()).offset(int(offset)).limit(int(limit)).all()
    unread = (
        db.query(func.count(Notification.id))
        .filter(Notification.user_id == int(user_id), Notification.is_read.is_(False))
        .scalar()
    )
    return {"items": [notification_out(r) for r in rows], "unread_count": int(unread or 0)}


def mark_read(db: Session, user_id: int, notification_id: int, is_read: bool = True) -> Notification:
    row = db.query(Notification).filter(Notification.id == int(notification_id)).first()
    if not row or int(row.user_id) != int(user_id):
        raise HTTPException(status_code=404, detail="Notification not found")
    row.is_read = bool(is_read)
    db.commit()
    db.refresh(row)
    return row


def mark_all_read(db: Session, user_id: int) -> int:
    rows = (
        db.query(Notification)
        .filter(Notification.user_id == int(user_id), Notification.is_read.is_(False))
        .update({Notification.is_read: True}, synchronize_session=False)
    )
    db.commit()
    return int(rows)


def _teacher_student_ids(db: Session, teacher_id: int) -> set[int]:
    rows = db.query(TeacherStudent.student_id).filter(TeacherStudent.teacher_id == int(teacher_id)).all()
    return {int(r[0]) for r in rows}


def send_notifications(
    db: Session,
    sender: User,
    *,
    title: str,
    message: str,
    type: str = "info",
    user_ids: Iterable[int] | None = None,
    role: str | None = None,
    action_url: str | None = None,
) -> List[int]:
    """Fan out one notification to several recipients.

    Admin: any users or every user of a role. Teacher: only linked students.
    """

    if not has_permission(sender.role, "notifications.send"):
        raise HTTPException(status_code=403, detail="Permission denied")
    try:
        NotificationType(type)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid notification type")

    ids = {int(u) for u in (user_ids or [])}
    is_admin = sender.role == Role.admin.value

    if role:
        r = normalize_role(role)
        if not r:
            raise HTTPException(status_code=400, detail="Invalid role")
        if not is_admin:
            raise HTTPException(status_code=403, detail="Only admin can broadcast to a role")
        ids |= {int(x[0]) for x in db.query(User.id).filter(User.role == r, User.is_active.is_(True)).all()}

    if not ids:
        raise HTTPException(status_code=400, detail="No recipients")

    if not is_admin:
        allowed = _teacher_student_ids(db, int(sender.id))
        outside = ids - allowed
        if outside:
            raise HTTPException(
                status_code=403,
                detail={"code": "NOT_YOUR_STUDENTS", "message": "Recipients must be your students", "user_ids": sorted(outside)},
            )

    existing = {int(x[0]) for x in db.query(User.id).filter(User.id.in_(ids)).all()}
    missing = ids - existing
    if missing:
        raise HTTPException(status_code=404, detail={"code": "USER_NOT_FOUND", "message": "Unknown recipients", "user_ids": sorted(missing)})

    for uid in sorted(existing):
        create_notification(
            db,
            user_id=uid,
            type=type,
            title=title,
            message=message,
            data={"sender_id": int(sender.id)},
            action_url=action_url,
        )
    db.commit()
    logger.info("notifications sent sender_id=%s recipients=%s", sender.id, len(existing))
    return sorted(existing)

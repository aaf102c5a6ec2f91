"""Lesson library: Markdown lessons filtered by grade and subject.

Teachers and admins author lessons; everyone with ``lessons.view`` reads the
published ones. Drafts (``is_published=False``) are visible only to roles that
can edit lessons, and a teacher edits only the lessons they created.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Dict, Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from app.core.permissions import Role, has_permission
from app.models.lesson import Lesson
from app.models.user import User
from app.services.generation_service import normalize_subject

logger = logging.getLogger(__name__)

_EDITABLE = ("title", "grade", "subject", "content_md", "description", "is_published")


def lesson_out(lesson: Lesson) -> Dict[str, Any]:
    return {
        "id": int(lesson.id),
        "title": lesson.title,
        "grade": lesson.grade,
        "subject": lesson.subject,
        "description": lesson.description or "",
        "content_md": lesson.content_md,
        "is_published": bool(lesson.is_published),
        "created_by": int(lesson.created_by) if lesson.created_by is not None else None,
        "created_at": lesson.created_at.isoformat() if lesson.created_at else None,
        "updated_at": lesson.updated_at.isoformat() if lesson.updated_at else None,
    }


def _sees_drafts(user: User) -> bool:
    return has_permission(user.role, "lessons.edit")


def list_lessons(
    db: Session,
    viewer: User,
    *,
    grade: Optional[str] = None,
    subject: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
) -> Dict[str, Any]:
    page = max(1, int(page))
    limit = max(1, int(limit))

    q = db.query(Lesson)
    if not _sees_drafts(viewer):
        q = q.filter(Lesson.is_published.is_(True))
    if grade:
        q = q.filter(Lesson.grade == grade.strip())
    if subject:
        q = q.filter(Lesson.subject == normalize_subject(subject))

    total = q.count()
    rows = q.order_by(Lesson.created_at.desc(), Lesson.id.desc()).offset((page - 1) * limit).limit(limit).all()
    return {
        "lessons": [lesson_out(r) for r in rows],
        "pagination": {"page": page, "limit": limit, "total": total, "pages": math.ceil(total / limit)},
    }


def get_lesson(db: Session, viewer: User, lesson_id: int) -> Lesson:
    lesson = db.query(Lesson).filter(Lesson.id == int(lesson_id)).first()
    if not lesson or (not lesson.is_published and not _sees_drafts(viewer)):
        raise HTTPException(status_code=404, detail="Lesson not found")
    return lesson


def _check_publish(user: User, is_published: Optional[bool]) -> None:
    if is_published and not has_permission(user.role, "lessons.publish"):
        raise HTTPException(status_code=403, detail="Not allowed to publish lessons")


def create_lesson(
    db: Session,
    author: User,
    *,
    title: str,
    grade: str,
    subject: str,
    content_md: str,
    description: str = "",
    is_published: bool = True,
) -> Lesson:
    if not title.strip() or not grade.strip() or not content_md.strip():
        raise HTTPException(status_code=400, detail="title, grade, subject and content_md are required")
    _check_publish(author, is_published)

    lesson = Lesson(
        title=title.strip(),
        grade=grade.strip(),
        subject=normalize_subject(subject),
        content_md=content_md,
        description=(description or "").strip(),
        is_published=bool(is_published),
        created_by=int(author.id),
    )
    db.add(lesson)
    db.commit()
    db.refresh(lesson)
    logger.info("lesson created id=%s by user_id=%s", lesson.id, author.id)
    return lesson


def _owned_lesson(db: Session, user: User, lesson_id: int) -> Lesson:
    lesson = db.query(Lesson).filter(Lesson.id == int(lesson_id)).first()
    if not lesson:
        raise HTTPException(status_code=404, detail="Lesson not found")
    if user.role != Role.admin.value and lesson.created_by != int(user.id):
        raise HTTPException(status_code=403, detail="Only the author can change this lesson")
    return lesson


def update_lesson(db: Session, editor: User, lesson_id: int, changes: Dict[str, Any]) -> Lesson:
    lesson = _owned_lesson(db, editor, lesson_id)
    fields = {k: v for k, v in changes.items() if k in _EDITABLE and v is not None}
    if "is_published" in fields:
        _check_publish(editor, fields["is_published"])
    if "subject" in fields:
        fields["subject"] = normalize_subject(fields["subject"])
    for k in ("title", "grade", "description"):
        if k in fields:
            fields[k] = str(fields[k]).strip()

    for k, v in fields.items():
        setattr(lesson, k, v)
    db.commit()
    db.refresh(lesson)
    return lesson


def delete_lesson(db: Session, actor: User, lesson_id: int) -> None:
    lesson = _owned_lesson(db, actor, lesson_id)
    db.delete(lesson)
    db.commit()
    logger.info("lesson deleted id=%s by user_id=%s", lesson_id, actor.id)

from __future__ import annotations

import time
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List

from fastapi import HTTPException
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.models.conversation import Conversation, Message

DEFAULT_TITLE = "Cuộc trò chuyện mới"
TITLE_MAX_CHARS = 60


def _new_public_id() -> str:
    return f"conv_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def create_conversation(db: Session, user_id: int, *, commit: bool = True) -> Conversation:
    conv = Conversation(public_id=_new_public_id(), user_id=int(user_id), title=DEFAULT_TITLE)
    db.add(conv)
    if commit:
        db.commit()
        db.refresh(conv)
    else:
        db.flush()
    return conv


def get_owned(db: Session, public_id: str, user_id: int) -> Conversation:
    conv = (
        db.query(Conversation)
        .filter(Conversation.public_id == str(public_id), Conversation.user_id == int(user_id))
        .first()
    )
    if not conv:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return conv


def save_message(db: Session, conv: Conversation, role: str, content: str, *, commit: bool = True) -> Message:
    if role not in {"user", "assistant", "system"}:
        raise ValueError(f"invalid message role: {role}")
    msg = Message(conversation_id=int(conv.id), role=role, content=str(content or ""))
    db.add(msg)

    # Tin nhắn đầu tiên của user làm tiêu đề
    if role == "user" and conv.title == DEFAULT_TITLE and (content or "").strip():
        title = " ".join(str(content).split())
        conv.title = title if len(title) <= TITLE_MAX_CHARS else title[: TITLE_MAX_CHARS - 1] + "…"
    conv.updated_at = datetime.now(timezone.utc)

    if commit:
        db.commit()
    else:
        db.flush()
    return msg


def _messages(db: Session, conv: Conversation) -> List[Message]:
    return (
        db.query(Message)
        .filter(Message.conversation_id == int(conv.id))
        .order_by(Message.created_at.asc(), Message.id.asc())
        .all()
    )


def message_out(m: Message) -> Dict[str, Any]:
    return {
        "id": int(m.id),
        "role": m.role,
        "content": m.content,
        "created_at": m.created_at.isoformat() if m.created_at else None,
    }


def get_history(db: Session, public_id: str, user_id: int) -> List[Message]:
    conv = get_owned(db, public_id, user_id)
    return _messages(db, conv)


def recent_context(db: Session, conv: Conversation, limit: int) -> List[Dict[str, str]]:
    """Last ``limit`` user/assistant turns, oldest first."""
    if limit <= 0:
        return []
    rows = (
        db.query(Message)
        .filter(Message.conversation_id == int(conv.id), Message.role.in_(("user", "assistant")))
        .order_by(Message.created_at.desc(), Message.id.desc())
        .limit(int(limit))
        .all()
    )
    return [{"role": m.role, "content": m.content} for m in reversed(rows)]


def list_conversations(db: Session, user_id: int, limit: int = 20) -> List[Dict[str, Any]]:
    counts = (
        db.query(Message.conversation_id, func.count(Message.id).label("n"))
        .group_by(Message.conversation_id)
        .subquery()
    )
    rows = (
        db.query(Conversation, func.coalesce(counts.c.n, 0))
        .outerjoin(counts, counts.c.conversation_id == Conversation.id)
        .filter(Conversation.user_id == int(user_id))
        .order_by(Conversation.updated_at.desc(), Conversation.id.desc())
        .limit(int(limit))
        .all()
    )
    return [
        {
            "conversation_id": c.public_id,
            "title": c.title,
            "message_count": int(n or 0),
            "created_at": c.created_at.isoformat() if c.created_at else None,
            "updated_at": c.updated_at.isoformat() if c.updated_at else None,
        }
        for c, n in rows
    ]


def delete_conversation(db: Session, public_id: str, user_id: int) -> None:
    conv = get_owned(db, public_id, user_id)
    db.query(Message).filter(Message.conversation_id == int(conv.id)).delete(synchronize_session=False)
    db.delete(conv)
    db.commit()

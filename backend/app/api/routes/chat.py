from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from app.api.deps import get_db, rate_limit, require_permission, require_user
from app.models.user import User
from app.schemas.chat import ChatRequest
from app.services import conversation_service, lesson_service
from app.services.tutor_service import tutor_chat


router = APIRouter(tags=["chat"])


@router.post("/chat", dependencies=[Depends(rate_limit("chat"))])
def chat(
    request: Request,
    payload: ChatRequest,
    user: User = Depends(require_permission("ai.chat")),
    db: Session = Depends(get_db),
):
    lesson_content = payload.lesson_content
    # Nội dung gửi kèm được ưu tiên hơn bài học lưu sẵn
    if not lesson_content and payload.lesson_id is not None:
        lesson_content = lesson_service.get_lesson(db, user, payload.lesson_id).content_md

    data = tutor_chat(
        db,
        user,
        message=payload.message,
        mode=payload.mode,
        conversation_id=payload.conversation_id,
        image_data=payload.image_data,
        unlock_code=payload.unlock_code,
        lesson_content=lesson_content,
    )
    return {"request_id": request.state.request_id, "data": data, "error": None}


@router.get("/chat/history")
def chat_history(
    request: Request,
    conversation_id: str = Query(..., min_length=1),
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    rows = conversation_service.get_history(db, conversation_id, int(user.id))
    data = {
        "conversation_id": conversation_id,
        "messages": [conversation_service.message_out(m) for m in rows],
    }
    return {"request_id": request.state.request_id, "data": data, "error": None}


@router.get("/chat/conversations")
def chat_conversations(
    request: Request,
    limit: int = Query(default=20, ge=1, le=100),
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    data = conversation_service.list_conversations(db, int(user.id), limit=limit)
    return {"request_id": request.state.request_id, "data": data, "error": None}


@router.delete("/chat/conversations/{public_id}")
def delete_conversation(
    request: Request,
    public_id: str,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    conversation_service.delete_conversation(db, public_id, int(user.id))
    return {"request_id": request.state.request_id, "data": {"deleted": True}, "error": None}

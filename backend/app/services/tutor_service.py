from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.security import verify_unlock_code_hash
from app.models.user import User
from app.services import conversation_service, token_service
from app.services.llm_service import chat_completion, llm_available


logger = logging.getLogger(__name__)

MODES = {"coach", "solve"}

# Câu chào / xác nhận: trả lời sẵn, không gọi LLM, không trừ token
TRIVIAL_MESSAGES = {"ok", "hi", "hello", "chào", "xin chào", "cảm ơn", "thanks", "bye", "tạm biệt"}
CANNED_REPLY = "Tôi hiểu! Bạn có câu hỏi gì khác không?"
IMAGE_DEFAULT_PROMPT = "Phân tích bài tập trong ảnh này"

_HAS_WORD_RE = re.compile(r"[a-zA-Z0-9À-ỹ]")

COACH_SYSTEM_PROMPT = """Bạn là AI gia sư hỗ trợ phụ huynh dạy con. Nhiệm vụ:
- KHÔNG đưa ra đáp án trực tiếp
- Chỉ hướng dẫn từng bước, gợi ý cách làm
- Đặt câu hỏi để con tự tư duy
- Giúp phụ huynh biết cách giải thích cho con
- Với bài toán đơn giản: chỉ gợi ý ngắn gọn, không giải thích dài
- Với bài toán phức tạp: hướng dẫn chi tiết từng bước
- KHÔNG dùng gạch đầu dòng (-) vì dễ nhầm với dấu trừ
- Nếu có ảnh: chỉ hướng dẫn dựa trên nội dung thực tế trong ảnh
- Đọc kỹ lịch sử trò chuyện để tiếp tục từ nơi đã dừng"""

SOLVE_SYSTEM_PROMPT = """Bạn là AI gia sư hỗ trợ phụ huynh dạy con. Nhiệm vụ:
- Đưa ra lời giải chi tiết từng bước
- Giải thích rõ ràng cách làm
- Đưa ra đáp án cuối cùng
- Hướng dẫn phụ huynh cách dạy con hiểu bài
- Với bài toán đơn giản: chỉ đưa đáp án ngắn gọn
- KHÔNG dùng gạch đầu dòng (-) vì dễ nhầm với dấu trừ
- Nếu có ảnh: đưa ra lời giải dựa trên nội dung thực tế trong ảnh
- Đọc kỹ lịch sử trò chuyện để tiếp tục từ nơi đã dừng"""


def is_meaningful_message(message: str | None) -> bool:
    m = (message or "").strip()
    if len(m) <= 3:
        return False
    if m.lower() in TRIVIAL_MESSAGES:
        return False
    return bool(_HAS_WORD_RE.search(m))


def build_system_prompt(mode: str, lesson_content: str | None = None) -> str:
    prompt = SOLVE_SYSTEM_PROMPT if mode == "solve" else COACH_SYSTEM_PROMPT
    if lesson_content and lesson_content.strip():
        prompt = f"{prompt}\n\nNội dung bài học đang xem:\n{lesson_content.strip()}"
    limit = int(settings.CHAT_SYSTEM_PROMPT_MAX_CHARS)
    if len(prompt) > limit:
        prompt = prompt[:limit] + "..."
    return prompt


def build_messages(
    *,
    system_prompt: str,
    history: List[Dict[str, str]],
    message: str,
    image_data: str | None = None,
) -> List[Dict[str, Any]]:
    messages: List[Dict[str, Any]] = [{"role": "system", "content": system_prompt}]
    messages.extend(history)
    if image_data:
        messages.append(
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": message},
                    {"type": "image_url", "image_url": {"url": image_data}},
                ],
            }
        )
    else:
        messages.append({"role": "user", "content": message})
    return messages


def _check_solve_access(user: User, unlock_code: str | None) -> None:
    if not (unlock_code or "").strip():
        raise HTTPException(
            status_code=403,
            detail={"code": "UNLOCK_REQUIRED", "message": "Cần mã mở khóa để sử dụng chế độ Solve"},
        )
    if not user.unlock_code_hash or not verify_unlock_code_hash(unlock_code.strip(), str(user.unlock_code_hash)):
        logger.info("solve mode denied user_id=%s (bad unlock code)", user.id)
        raise HTTPException(
            status_code=403,
            detail={"code": "UNLOCK_INVALID", "message": "Mã mở khóa không đúng"},
        )


def tutor_chat(
    db: Session,
    user: User,
    *,
    message: str | None,
    mode: str = "coach",
    conversation_id: Optional[str] = None,
    image_data: Optional[str] = None,
    unlock_code: Optional[str] = None,
    lesson_content: Optional[str] = None,
) -> Dict[str, Any]:
    message = (message or "").strip()
    if not message and not image_data:
        raise HTTPException(status_code=400, detail="Thiếu message hoặc ảnh")
    if mode not in MODES:
        raise HTTPException(status_code=400, detail="mode must be 'coach' or 'solve'")
    if mode == "solve":
        _check_solve_access(user, unlock_code)

    billable = is_meaningful_message(message) or bool(image_data)
    if billable:
        token_service.require_quota(db, user)
        if not llm_available():
            raise HTTPException(status_code=503, detail="LLM is not configured")

    if conversation_id:
        conv = conversation_service.get_owned(db, conversation_id, int(user.id))
    else:
        conv = conversation_service.create_conversation(db, int(user.id))

    tokens_used = 0
    if billable:
        prompt_text = message or IMAGE_DEFAULT_PROMPT
        history = conversation_service.recent_context(db, conv, int(settings.CHAT_HISTORY_LIMIT))
        llm_messages = build_messages(
            system_prompt=build_system_prompt(mode, lesson_content),
            history=history,
            message=prompt_text,
            image_data=image_data,
        )
        try:
            res = chat_completion(messages=llm_messages, max_tokens=int(settings.CHAT_MAX_TOKENS))
        except Exception as e:
            raise HTTPException(status_code=502, detail=f"LLM error: {type(e).__name__}") from e
        reply = res.text or CANNED_REPLY
        tokens_used = res.total_tokens
        token_service.charge_usage(
            db, int(user.id), res.usage, feature=f"chat_{mode}", model=res.model, has_image=bool(image_data)
        )
    else:
        reply = CANNED_REPLY

    conversation_service.save_message(db, conv, "user", message or IMAGE_DEFAULT_PROMPT, commit=False)
    conversation_service.save_message(db, conv, "assistant", reply, commit=False)
    db.commit()

    db.refresh(user)
    info = token_service.get_token_info(db, user)
    return {
        "reply": reply,
        "conversation_id": conv.public_id,
        "tokens_used": tokens_used,
        "tokens_remaining": info["remaining"],
        "mode": mode,
        "has_image": bool(image_data),
    }

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field


class ChatRequest(BaseModel):
    message: Optional[str] = Field(default=None, max_length=8000)
    mode: Literal["coach", "solve"] = "coach"
    conversation_id: Optional[str] = None
    # data URL (data:image/png;base64,...) hoặc URL ảnh
    image_data: Optional[str] = None
    unlock_code: Optional[str] = None
    lesson_content: Optional[str] = None
    lesson_id: Optional[int] = None

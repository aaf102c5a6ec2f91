from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class MarkReadPayload(BaseModel):
    is_read: bool = True


class SendNotificationRequest(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    message: str = Field(min_length=1)
    type: Literal["info", "success", "warning", "error"] = "info"
    user_ids: Optional[List[int]] = None
    role: Optional[str] = None
    action_url: Optional[str] = None

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field


class TokenAdminAction(BaseModel):
    action: Literal["add", "set_quota", "reset"]
    amount: Optional[int] = None


class ExerciseUsageRecord(BaseModel):
    count: int = Field(default=1, ge=1, le=100)


class UnlockCodeAction(BaseModel):
    action: Literal["set", "verify"]
    code: Optional[str] = None

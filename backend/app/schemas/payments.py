from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class PaymentRequestCreate(BaseModel):
    package_id: str
    phone: str = Field(min_length=9, max_length=20)
    notes: Optional[str] = Field(default=None, max_length=1000)


class ApprovePayload(BaseModel):
    notes: Optional[str] = None


class RejectPayload(BaseModel):
    reason: str = Field(min_length=1, max_length=1000)
    notes: Optional[str] = None

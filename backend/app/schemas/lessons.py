from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class LessonCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    grade: str = Field(min_length=1, max_length=32)
    subject: str = Field(min_length=1, max_length=64)
    content_md: str = Field(min_length=1)
    description: str = ""
    is_published: bool = True


class LessonUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    grade: Optional[str] = Field(default=None, min_length=1, max_length=32)
    subject: Optional[str] = Field(default=None, min_length=1, max_length=64)
    content_md: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    is_published: Optional[bool] = None

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class AdminUserCreate(BaseModel):
    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=6, max_length=200)
    role: str
    full_name: Optional[str] = None
    phone: Optional[str] = None
    grade: Optional[str] = None


class AdminUserUpdate(BaseModel):
    role: Optional[str] = None
    is_active: Optional[bool] = None
    plan: Optional[str] = None


class TeacherStudentLink(BaseModel):
    teacher_id: int
    student_id: int

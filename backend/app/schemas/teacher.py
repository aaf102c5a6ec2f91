from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class ExerciseGenerateRequest(BaseModel):
    subject: str
    topic: str = Field(min_length=1, max_length=500)
    grade: str = "Lớp 1"
    count: int = 5
    difficulty: Literal["easy", "medium", "hard"] = "medium"


class LessonPlanRequest(BaseModel):
    subject: str
    grade: str
    topic: str
    duration: int = 45


class TestGenerateRequest(BaseModel):
    subject: str
    grade: str
    topic: str
    question_count: int = 10
    duration_minutes: int = 45


class AssignmentCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    subject: str = Field(min_length=1, max_length=64)
    student_ids: List[int] = Field(min_length=1)
    questions: List[Dict[str, Any]] = Field(min_length=1)
    answers: List[Any] = Field(default_factory=list)
    grade: Optional[str] = None
    topic: Optional[str] = None
    deadline: Optional[datetime] = None


class GradePayload(BaseModel):
    grade: float = Field(ge=0, le=10)
    feedback: Optional[str] = None


class SubmitPayload(BaseModel):
    answers: List[Any]

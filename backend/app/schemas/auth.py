from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class RegisterRequest(BaseModel):
    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=6, max_length=200)
    full_name: Optional[str] = None
    role: str = "parent"  # parent|student
    phone: Optional[str] = None
    grade: Optional[str] = None


class LoginRequest(BaseModel):
    email: str
    password: str


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str = Field(min_length=6, max_length=200)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserOut(BaseModel):
    id: int
    email: str
    full_name: Optional[str] = None
    phone: Optional[str] = None
    grade: Optional[str] = None
    role: str = "parent"
    is_active: bool = True
    plan: str = "free"
    token_quota: int = 0
    token_used_today: int = 0


class AuthResponse(BaseModel):
    token: TokenResponse
    user: UserOut
    redirect_to: str = "/dashboard"

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import Boolean, Date, DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base_class import Base


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    full_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(20), nullable=True, index=True)
    # "Lớp 1" .. "Lớp 12"
    grade: Mapped[str | None] = mapped_column(String(32), nullable=True)

    password_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)
    role: Mapped[str] = mapped_column(String(32), nullable=False, default="parent", server_default="parent")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")

    # Gói cước + quota token theo ngày
    plan: Mapped[str] = mapped_column(String(32), nullable=False, default="free", server_default="free")
    token_quota: Mapped[int] = mapped_column(Integer, nullable=False, default=10000, server_default="10000")
    token_used_today: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    last_reset: Mapped[date | None] = mapped_column(Date, nullable=True)

    # Mã mở khóa chế độ "solve" (HMAC digest, không lưu mã gốc)
    unlock_code_hash: Mapped[str | None] = mapped_column(String(128), nullable=True)
    unlock_quota: Mapped[int] = mapped_column(Integer, nullable=False, default=10, server_default="10")
    unlocks_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

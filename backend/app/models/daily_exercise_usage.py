from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import Date, DateTime, ForeignKey, Integer, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base_class import Base


class DailyExerciseUsage(Base):
    __tablename__ = "daily_exercise_usage"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    usage_date: Mapped[date] = mapped_column("date", Date, nullable=False)
    count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_used: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (UniqueConstraint("user_id", "date", name="uq_daily_exercise_user_date"),)

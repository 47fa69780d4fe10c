from __future__ import annotations

from datetime import datetime
from sqlalchemy import ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship
from app.db.base import Base, UTCDateTime, utcnow

RESULT_SUCCESS = "success"
RESULT_TRANSIENT_FAILURE = "transient_failure"
RESULT_PERMANENT_FAILURE = "permanent_failure"
RESULT_SKIPPED = "skipped"


class SentLog(Base):
    """Append-only: one row per delivery attempt outcome."""

    __tablename__ = "sent_logs"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    schedule_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("notification_schedules.id", ondelete="CASCADE"), nullable=False, index=True
    )
    sent_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False, index=True)
    delivery_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    result: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    error_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    attempt: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    schedule_entry: Mapped["ScheduleEntry"] = relationship("ScheduleEntry", back_populates="sent_logs")

from __future__ import annotations

from datetime import datetime
from sqlalchemy import ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from app.db.base import Base, UTCDateTime, utcnow

STATUS_SCHEDULED = "scheduled"
STATUS_SENT = "sent"
STATUS_FAILED = "failed"
STATUS_SKIPPED = "skipped"


class ScheduleEntry(Base):
    """One planned notification. Created by the planner, status-mutated by the dispatcher."""

    __tablename__ = "notification_schedules"
    __table_args__ = (
        Index("ix_notification_schedules_user_scheduled_status", "user_id", "scheduled_at", "status"),
        Index("ix_notification_schedules_status_scheduled", "status", "scheduled_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    mood_session_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("mood_sessions.id", ondelete="CASCADE"), nullable=True, index=True
    )
    scheduled_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    payload_ref: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("affirmations.id", ondelete="SET NULL"), nullable=True
    )
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=STATUS_SCHEDULED)  # scheduled | sent | failed | skipped
    # Retry state survives restarts
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    next_attempt_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    sent_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)

    user: Mapped["User"] = relationship("User", back_populates="schedule_entries")
    affirmation: Mapped["Affirmation | None"] = relationship("Affirmation")
    sent_logs: Mapped[list["SentLog"]] = relationship(
        "SentLog", back_populates="schedule_entry", cascade="all, delete-orphan"
    )

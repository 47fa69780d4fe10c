from __future__ import annotations

from datetime import datetime, time
from sqlalchemy import Boolean, CheckConstraint, ForeignKey, SmallInteger, String, Time
from sqlalchemy.orm import Mapped, mapped_column, relationship
from app.db.base import Base, UTCDateTime, utcnow

DEFAULT_FREQUENCY = 2
DEFAULT_QUIET_START = time(22, 0)
DEFAULT_QUIET_END = time(8, 0)


class NotificationPreferences(Base):
    __tablename__ = "notification_preferences"
    __table_args__ = (
        CheckConstraint("frequency >= 1 AND frequency <= 4", name="ck_notification_preferences_frequency"),
    )

    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    frequency: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=DEFAULT_FREQUENCY)
    quiet_start: Mapped[time] = mapped_column(Time, nullable=False, default=DEFAULT_QUIET_START)
    quiet_end: Mapped[time] = mapped_column(Time, nullable=False, default=DEFAULT_QUIET_END)
    allow_push: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)

    user: Mapped["User"] = relationship("User", back_populates="preferences")

from __future__ import annotations

from datetime import datetime
from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, SmallInteger, String, text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from app.db.base import Base, UTCDateTime, utcnow

STATUS_ACTIVE = "active"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"
TERMINAL_STATUSES = (STATUS_COMPLETED, STATUS_CANCELLED)


class MoodSession(Base):
    __tablename__ = "mood_sessions"
    __table_args__ = (
        CheckConstraint(
            "frequency_per_day >= 1 AND frequency_per_day <= 4", name="ck_mood_sessions_frequency_per_day"
        ),
        Index("ix_mood_sessions_user_status", "user_id", "status"),
        # At most one active session per user
        Index(
            "uq_mood_sessions_user_active",
            "user_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    category_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("affirmation_categories.id", ondelete="RESTRICT"), nullable=False
    )
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=STATUS_ACTIVE)  # active | completed | cancelled
    started_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    ends_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)
    frequency_per_day: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=2)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)

    user: Mapped["User"] = relationship("User", back_populates="mood_sessions")
    category: Mapped["AffirmationCategory"] = relationship("AffirmationCategory")

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

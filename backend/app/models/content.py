"""Content catalog: affirmation categories, affirmations and per-user usage history."""

from __future__ import annotations

from datetime import datetime
from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    SmallInteger,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from app.db.base import Base, UTCDateTime, utcnow


class AffirmationCategory(Base):
    __tablename__ = "affirmation_categories"
    __table_args__ = (UniqueConstraint("key", "locale", name="uq_affirmation_categories_key_locale"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    key: Mapped[str] = mapped_column(String(64), nullable=False)
    locale: Mapped[str] = mapped_column(String(16), nullable=False, default="en")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)

    affirmations: Mapped[list["Affirmation"]] = relationship("Affirmation", back_populates="category")


class Affirmation(Base):
    __tablename__ = "affirmations"
    __table_args__ = (
        CheckConstraint("intensity >= 1 AND intensity <= 3", name="ck_affirmations_intensity"),
        Index("ix_affirmations_category_locale_active", "category_id", "locale", "is_active"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    category_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("affirmation_categories.id", ondelete="CASCADE"), nullable=False
    )
    text: Mapped[str] = mapped_column(Text, nullable=False)
    locale: Mapped[str] = mapped_column(String(16), nullable=False, default="en")
    intensity: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=1)
    tags: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    # Latest instant any user was scheduled this item; informational, cooldown uses ContentUsage
    last_used_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)

    category: Mapped["AffirmationCategory"] = relationship("AffirmationCategory", back_populates="affirmations")


class ContentUsage(Base):
    """One row per affirmation scheduled for a user; drives the per-user cooldown."""

    __tablename__ = "content_usage"
    __table_args__ = (Index("ix_content_usage_user_affirmation", "user_id", "affirmation_id"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    affirmation_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("affirmations.id", ondelete="CASCADE"), nullable=False
    )
    schedule_entry_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("notification_schedules.id", ondelete="CASCADE"), nullable=True, index=True
    )
    used_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

from __future__ import annotations

from datetime import datetime
from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column, relationship
from app.db.base import Base, UTCDateTime, utcnow


class User(Base):
    __tablename__ = "users"

    # Opaque subject id issued by the identity provider
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    locale: Mapped[str] = mapped_column(String(16), nullable=False, default="en", index=True)
    timezone: Mapped[str] = mapped_column(String(64), nullable=False, default="UTC")
    is_subscriber: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)

    preferences: Mapped["NotificationPreferences | None"] = relationship(
        "NotificationPreferences", back_populates="user", uselist=False, cascade="all, delete-orphan"
    )
    subscription: Mapped["Subscription | None"] = relationship(
        "Subscription", back_populates="user", uselist=False, cascade="all, delete-orphan"
    )
    device_tokens: Mapped[list["DeviceToken"]] = relationship(
        "DeviceToken", back_populates="user", cascade="all, delete-orphan"
    )
    mood_sessions: Mapped[list["MoodSession"]] = relationship(
        "MoodSession", back_populates="user", cascade="all, delete-orphan"
    )
    schedule_entries: Mapped[list["ScheduleEntry"]] = relationship(
        "ScheduleEntry", back_populates="user", cascade="all, delete-orphan"
    )
    profile: Mapped["UserProfile | None"] = relationship(
        "UserProfile", back_populates="user", uselist=False, cascade="all, delete-orphan"
    )

"""Pydantic schemas for the /me aggregate and account updates."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict

from app.schemas.mood_session import SessionResponse
from app.schemas.preferences import PreferencesResponse
from app.schemas.profile import ProfileResponse


class AccountUpdateRequest(BaseModel):
    locale: str | None = None
    timezone: str | None = None


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    locale: str
    timezone: str
    is_subscriber: bool
    created_at: datetime


class SubscriptionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    status: str
    renews_at: datetime | None
    last_verified_at: datetime


class ScheduleEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    scheduled_at: datetime
    status: str
    payload_ref: int | None
    mood_session_id: int | None


class MeResponse(BaseModel):
    user: UserResponse
    preferences: PreferencesResponse
    profile: ProfileResponse | None = None
    subscription: SubscriptionResponse | None = None
    active_session: SessionResponse | None = None
    upcoming: list[ScheduleEntryResponse] = []
    delivery_counts: dict[str, int] = {}


class CategoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    key: str
    locale: str

"""Pydantic schemas for the user profile."""

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict


class ProfileUpdateRequest(BaseModel):
    """Partial update; an empty nickname clears it. Rules are checked by the profile service."""

    name: str | None = None
    nickname: str | None = None
    date_of_birth: str | None = None
    birth_hour: int | None = None


class ProfileResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    name: str | None
    nickname: str | None
    date_of_birth: date | None
    birth_hour: int | None
    updated_at: datetime


class NicknameAvailabilityResponse(BaseModel):
    nickname: str
    available: bool

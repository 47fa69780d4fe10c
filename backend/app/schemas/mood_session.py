"""Pydantic schemas for mood sessions."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class SessionStartRequest(BaseModel):
    """Body for starting a mood session. Frequency defaults to the user's preference."""

    category_id: int
    frequency_per_day: int | None = Field(None, ge=1, le=4)
    duration_days: int | None = Field(None, ge=1)


class SessionEndRequest(BaseModel):
    reason: str = Field("completed", max_length=64)


class SessionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    category_id: int
    status: str
    started_at: datetime
    ends_at: datetime
    frequency_per_day: int

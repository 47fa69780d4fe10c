"""Pydantic schemas for notification preferences."""

from datetime import datetime, time

from pydantic import BaseModel, ConfigDict, field_serializer


class PreferencesUpdateRequest(BaseModel):
    """Partial update; validation of ranges and HH:MM happens in the preference gate."""

    frequency: int | None = None
    quiet_start: str | None = None
    quiet_end: str | None = None
    allow_push: bool | None = None


class PreferencesResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    frequency: int
    quiet_start: time
    quiet_end: time
    allow_push: bool
    updated_at: datetime

    @field_serializer("quiet_start", "quiet_end")
    def _hhmm(self, value: time) -> str:
        return f"{value.hour:02d}:{value.minute:02d}"


class PreferencesUpdateResponse(BaseModel):
    preferences: PreferencesResponse
    warnings: list[str] | None = None

"""Pydantic schemas for device token registration."""

from pydantic import BaseModel


class DeviceRegisterRequest(BaseModel):
    token: str
    bundle_id: str
    platform: str | None = None  # "ios"
    device_info: dict | None = None


class DeviceRegisterResponse(BaseModel):
    device_id: int
    is_active: bool
    message: str = "Device token registered successfully."

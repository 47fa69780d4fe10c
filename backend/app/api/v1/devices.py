"""Device token registration (APNs)."""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user
from app.db.session import get_db
from app.models.user import User
from app.schemas.device import DeviceRegisterRequest, DeviceRegisterResponse
from app.services.devices import register_device_token

router = APIRouter(prefix="/devices", tags=["devices"])


@router.post(
    "",
    response_model=DeviceRegisterResponse,
    summary="Register APNs device token",
    responses={401: {"description": "Not authenticated"}, 422: {"description": "Invalid token"}},
)
async def register_device(
    session: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
    body: DeviceRegisterRequest,
):
    """Store the token as the user's only active one."""
    device = await register_device_token(session, user.id, body.token, body.bundle_id, body.platform)
    return DeviceRegisterResponse(device_id=device.id, is_active=device.is_active)

"""APNs device token registry: one active token per user."""

from __future__ import annotations

import logging
import re

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import ValidationError
from app.db.base import utcnow
from app.models.device_token import DeviceToken
from app.services.analytics import log_event
from app.services.preferences import get_or_create_preferences

logger = logging.getLogger(__name__)

APNS_TOKEN_RE = re.compile(r"^[a-fA-F0-9]{64}$")
SUPPORTED_PLATFORMS = ("ios",)
MAX_BUNDLE_ID_LENGTH = 200


def validate_registration(token: str | None, bundle_id: str | None, platform: str | None) -> list[str]:
    errors: list[str] = []
    if not token or not isinstance(token, str):
        errors.append("Token is required and must be a string")
    elif not APNS_TOKEN_RE.match(token):
        errors.append("Token must be a 64-character hexadecimal string")
    if not bundle_id or not isinstance(bundle_id, str):
        errors.append("Bundle ID is required and must be a string")
    elif len(bundle_id) > MAX_BUNDLE_ID_LENGTH:
        errors.append(f"Bundle ID must be less than {MAX_BUNDLE_ID_LENGTH} characters")
    if platform is not None and platform not in SUPPORTED_PLATFORMS:
        errors.append('Platform must be "ios"')
    return errors


async def register_device_token(
    session: AsyncSession,
    user_id: str,
    token: str,
    bundle_id: str,
    platform: str | None = None,
) -> DeviceToken:
    """Upsert by token (moving it to this user if needed), activate it and deactivate the user's others."""
    errors = validate_registration(token, bundle_id, platform)
    if errors:
        raise ValidationError("Validation failed", errors=errors)
    token = token.lower()
    now = utcnow()
    r = await session.execute(select(DeviceToken).where(DeviceToken.token == token).with_for_update())
    device = r.scalar_one_or_none()
    if device is None:
        device = DeviceToken(user_id=user_id, token=token, bundle_id=bundle_id)
        session.add(device)
    elif device.user_id != user_id:
        logger.info("Devices: token moved from user_id=%s to user_id=%s", device.user_id, user_id)
        device.user_id = user_id
    device.bundle_id = bundle_id
    device.platform = platform or "ios"
    device.is_active = True
    device.updated_at = now
    await session.flush()

    await session.execute(
        update(DeviceToken)
        .where(DeviceToken.user_id == user_id, DeviceToken.id != device.id, DeviceToken.is_active.is_(True))
        .values(is_active=False, updated_at=now)
    )
    await get_or_create_preferences(session, user_id)
    await log_event(session, user_id, "device_registered", {"platform": device.platform, "bundle_id": bundle_id})
    return device


async def get_active_token(session: AsyncSession, user_id: str) -> DeviceToken | None:
    r = await session.execute(
        select(DeviceToken)
        .where(DeviceToken.user_id == user_id, DeviceToken.is_active.is_(True))
        .order_by(DeviceToken.updated_at.desc(), DeviceToken.id.desc())
        .limit(1)
    )
    return r.scalar_one_or_none()

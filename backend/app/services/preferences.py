"""Preference gate: validated notification preferences; every accepted change re-plans the user."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import InvalidPreferences, ValidationError
from app.db.base import utcnow
from app.models.device_token import DeviceToken
from app.models.preferences import NotificationPreferences
from app.services.analytics import log_event
from app.services.planner import get_active_session, plan_user
from app.services.slots import parse_time_of_day, quiet_period_minutes, validate_frequency

logger = logging.getLogger(__name__)

LONG_QUIET_PERIOD_MINUTES = 14 * 60
LONG_QUIET_WARNING = "Quiet period is longer than 14 hours - you may miss important notifications"


@dataclass
class PreferencesUpdate:
    preferences: NotificationPreferences
    warnings: list[str] = field(default_factory=list)
    fields_updated: list[str] = field(default_factory=list)


async def get_or_create_preferences(session: AsyncSession, user_id: str) -> NotificationPreferences:
    r = await session.execute(select(NotificationPreferences).where(NotificationPreferences.user_id == user_id))
    prefs = r.scalar_one_or_none()
    if prefs is None:
        prefs = NotificationPreferences(user_id=user_id)
        session.add(prefs)
        await session.flush()
    return prefs


async def set_push_tokens_active(session: AsyncSession, user_id: str, allow_push: bool) -> int:
    """
    allow_push=False deactivates every token of the user.
    allow_push=True reactivates the most recently updated token, if any. Returns rows touched.
    """
    now = utcnow()
    if not allow_push:
        r = await session.execute(
            update(DeviceToken)
            .where(DeviceToken.user_id == user_id, DeviceToken.is_active.is_(True))
            .values(is_active=False, updated_at=now)
        )
        return r.rowcount or 0
    r = await session.execute(
        select(DeviceToken)
        .where(DeviceToken.user_id == user_id)
        .order_by(DeviceToken.updated_at.desc(), DeviceToken.id.desc())
        .limit(1)
    )
    token = r.scalar_one_or_none()
    if token is None:
        return 0
    token.is_active = True
    token.updated_at = now
    await session.flush()
    return 1


async def update_preferences(
    session: AsyncSession,
    user_id: str,
    *,
    frequency: int | None = None,
    quiet_start: str | None = None,
    quiet_end: str | None = None,
    allow_push: bool | None = None,
    now: datetime | None = None,
    rng: random.Random | None = None,
) -> PreferencesUpdate:
    """
    Validate everything first, then apply. On ValidationError nothing has been changed.
    Frequency changes are copied onto the active session so the re-plan uses them.
    """
    errors: list[str] = []
    parsed_start = parsed_end = None
    if frequency is not None:
        try:
            validate_frequency(frequency)
        except InvalidPreferences:
            errors.append("Frequency must be a number between 1 and 4")
    if quiet_start is not None:
        try:
            parsed_start = parse_time_of_day(quiet_start)
        except InvalidPreferences:
            errors.append("Quiet start must be in HH:MM format (24-hour)")
    if quiet_end is not None:
        try:
            parsed_end = parse_time_of_day(quiet_end)
        except InvalidPreferences:
            errors.append("Quiet end must be in HH:MM format (24-hour)")
    if allow_push is not None and not isinstance(allow_push, bool):
        errors.append("Allow push must be a boolean")
    if errors:
        raise ValidationError("Validation failed", errors=errors)

    prefs = await get_or_create_preferences(session, user_id)
    result = PreferencesUpdate(preferences=prefs)
    if frequency is not None and frequency != prefs.frequency:
        prefs.frequency = frequency
        result.fields_updated.append("frequency")
        active = await get_active_session(session, user_id, lock=True)
        if active is not None:
            active.frequency_per_day = frequency
    if parsed_start is not None and parsed_start != prefs.quiet_start:
        prefs.quiet_start = parsed_start
        result.fields_updated.append("quiet_start")
    if parsed_end is not None and parsed_end != prefs.quiet_end:
        prefs.quiet_end = parsed_end
        result.fields_updated.append("quiet_end")
    if allow_push is not None:
        if allow_push != prefs.allow_push:
            result.fields_updated.append("allow_push")
        prefs.allow_push = allow_push
        await set_push_tokens_active(session, user_id, allow_push)
    await session.flush()

    if quiet_period_minutes(prefs.quiet_start, prefs.quiet_end) > LONG_QUIET_PERIOD_MINUTES:
        result.warnings.append(LONG_QUIET_WARNING)

    if result.fields_updated:
        await plan_user(session, user_id, now=now, rng=rng)
    await log_event(
        session,
        user_id,
        "notification_preferences_updated",
        {
            "fields_updated": result.fields_updated,
            "frequency": prefs.frequency,
            "allow_push": prefs.allow_push,
            "warnings_count": len(result.warnings),
        },
    )
    logger.info("Preferences: user_id=%s updated %s", user_id, result.fields_updated or "nothing")
    return result

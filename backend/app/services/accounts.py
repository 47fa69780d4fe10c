"""User rows keyed by the identity provider's subject, and the /me aggregate."""

from __future__ import annotations

import logging
import random
import re
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import InvalidPreferences, ValidationError
from app.db.base import utcnow
from app.models.notification_schedule import STATUS_SCHEDULED, ScheduleEntry
from app.models.subscription import Subscription
from app.models.user import User
from app.services.analytics import log_event
from app.services.planner import get_active_session, plan_user
from app.services.preferences import get_or_create_preferences
from app.services.profiles import get_profile
from app.services.slots import resolve_zone

logger = logging.getLogger(__name__)

LOCALE_RE = re.compile(r"^[a-z]{2,3}(?:[-_][A-Za-z0-9]{2,8})?$")
UPCOMING_LIMIT = 10


async def ensure_user(session: AsyncSession, user_id: str) -> User:
    """Provision the app-side user row on first sight of a subject id."""
    user = await session.get(User, user_id)
    if user is None:
        user = User(id=user_id)
        session.add(user)
        await session.flush()
        logger.info("Accounts: provisioned user_id=%s", user_id)
    return user


async def update_account(
    session: AsyncSession,
    user: User,
    *,
    locale: str | None = None,
    timezone: str | None = None,
    now: datetime | None = None,
    rng: random.Random | None = None,
) -> User:
    """Change locale / timezone; either one invalidates the plan."""
    errors: list[str] = []
    if locale is not None and not LOCALE_RE.match(locale):
        errors.append("Locale must look like 'en' or 'en-US'")
    if timezone is not None:
        try:
            resolve_zone(timezone)
        except InvalidPreferences:
            errors.append(f"Unknown timezone: {timezone}")
    if errors:
        raise ValidationError("Validation failed", errors=errors)

    changed = []
    if locale is not None and locale != user.locale:
        user.locale = locale
        changed.append("locale")
    if timezone is not None and timezone != user.timezone:
        user.timezone = timezone
        changed.append("timezone")
    await session.flush()
    if changed:
        await plan_user(session, user.id, now=now, rng=rng)
        await log_event(session, user.id, "account_updated", {"fields_updated": changed})
    return user


async def build_me(session: AsyncSession, user: User, now: datetime | None = None) -> dict:
    """Everything the client needs in one read: account, profile, preferences, subscription, session, plan."""
    now = now or utcnow()
    prefs = await get_or_create_preferences(session, user.id)
    profile = await get_profile(session, user.id)
    r = await session.execute(select(Subscription).where(Subscription.user_id == user.id))
    sub = r.scalar_one_or_none()
    active = await get_active_session(session, user.id)
    r = await session.execute(
        select(ScheduleEntry)
        .where(
            ScheduleEntry.user_id == user.id,
            ScheduleEntry.status == STATUS_SCHEDULED,
            ScheduleEntry.scheduled_at > now,
        )
        .order_by(ScheduleEntry.scheduled_at)
        .limit(UPCOMING_LIMIT)
    )
    upcoming = list(r.scalars().all())
    r = await session.execute(
        select(ScheduleEntry.status, func.count())
        .where(ScheduleEntry.user_id == user.id)
        .group_by(ScheduleEntry.status)
    )
    counts = {status: count for status, count in r.all()}
    return {
        "user": user,
        "preferences": prefs,
        "profile": profile,
        "subscription": sub,
        "active_session": active,
        "upcoming": upcoming,
        "delivery_counts": counts,
    }

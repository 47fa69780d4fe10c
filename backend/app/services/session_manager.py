"""
Mood sessions: at most one active session per user.
Starting a session cancels the previous one; ending one skips its unsent schedule entries.
"""
from __future__ import annotations

import logging
import random
from datetime import datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.errors import Conflict, NotEntitled, NotFound, ValidationError
from app.db.base import utcnow
from app.models.mood_session import (
    STATUS_ACTIVE,
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    MoodSession,
)
from app.models.notification_schedule import STATUS_SCHEDULED, STATUS_SKIPPED, ScheduleEntry
from app.models.preferences import DEFAULT_FREQUENCY, NotificationPreferences
from app.services import content_catalog, entitlements
from app.services.analytics import log_event
from app.services.planner import SKIP_SESSION_ENDED, get_active_session, plan_user

logger = logging.getLogger(__name__)

REASON_COMPLETED = "completed"


async def _skip_unsent_entries(session: AsyncSession, mood_session_id: int) -> int:
    """Every still-scheduled entry of the session becomes skipped, including due ones not yet sent."""
    r = await session.execute(
        update(ScheduleEntry)
        .where(
            ScheduleEntry.mood_session_id == mood_session_id,
            ScheduleEntry.status == STATUS_SCHEDULED,
        )
        .values(status=STATUS_SKIPPED, last_error=SKIP_SESSION_ENDED, updated_at=utcnow())
    )
    return r.rowcount or 0


async def _close(session: AsyncSession, mood_session: MoodSession, status: str) -> int:
    if mood_session.is_terminal:
        raise Conflict(f"Session {mood_session.id} is already {mood_session.status}")
    mood_session.status = status
    skipped = await _skip_unsent_entries(session, mood_session.id)
    await session.flush()
    return skipped


async def start_session(
    session: AsyncSession,
    user_id: str,
    category_id: int,
    frequency_per_day: int | None = None,
    duration_days: int | None = None,
    *,
    now: datetime | None = None,
    rng: random.Random | None = None,
) -> MoodSession:
    """Cancel any active session, insert a new one and plan its schedule, all in the caller's transaction."""
    now = now or utcnow()
    duration_days = settings.default_session_days if duration_days is None else duration_days
    if not 1 <= duration_days <= settings.max_session_days:
        raise ValidationError(f"Duration must be between 1 and {settings.max_session_days} days")
    if frequency_per_day is None:
        r = await session.execute(
            select(NotificationPreferences.frequency).where(NotificationPreferences.user_id == user_id)
        )
        frequency_per_day = r.scalar_one_or_none() or DEFAULT_FREQUENCY
    if isinstance(frequency_per_day, bool) or not 1 <= frequency_per_day <= 4:
        raise ValidationError("Frequency must be a number between 1 and 4")

    if not await entitlements.is_current_subscriber(session, user_id):
        raise NotEntitled("User must be a subscriber to start mood sessions")
    category = await content_catalog.get_active_category(session, category_id)
    if category is None:
        raise NotFound("Category not found")

    previous = await get_active_session(session, user_id, lock=True)
    if previous is not None:
        skipped = await _close(session, previous, STATUS_CANCELLED)
        logger.info(
            "Session: cancelled session_id=%s for user_id=%s (%s entries skipped)", previous.id, user_id, skipped
        )

    mood_session = MoodSession(
        user_id=user_id,
        category_id=category.id,
        status=STATUS_ACTIVE,
        started_at=now,
        ends_at=now + timedelta(days=duration_days),
        frequency_per_day=frequency_per_day,
    )
    session.add(mood_session)
    try:
        await session.flush()
    except IntegrityError as e:
        # Another request activated a session for this user between our lock and insert
        raise Conflict("Another session was started concurrently; retry") from e

    await plan_user(session, user_id, now=now, rng=rng)
    await log_event(
        session,
        user_id,
        "mood_session_started",
        {
            "session_id": mood_session.id,
            "category": category.key,
            "frequency_per_day": frequency_per_day,
            "duration_days": duration_days,
            "replaced_session_id": previous.id if previous else None,
        },
    )
    logger.info("Session: started session_id=%s for user_id=%s", mood_session.id, user_id)
    return mood_session


async def end_session(
    session: AsyncSession,
    session_id: int,
    user_id: str,
    reason: str = REASON_COMPLETED,
) -> MoodSession:
    """Complete or cancel the caller's active session; unsent entries are skipped before returning."""
    r = await session.execute(
        select(MoodSession)
        .where(
            MoodSession.id == session_id,
            MoodSession.user_id == user_id,
            MoodSession.status == STATUS_ACTIVE,
        )
        .with_for_update()
    )
    mood_session = r.scalar_one_or_none()
    if mood_session is None:
        raise NotFound("No active mood session found for user")
    status = STATUS_COMPLETED if reason == REASON_COMPLETED else STATUS_CANCELLED
    skipped = await _close(session, mood_session, status)
    await log_event(
        session,
        user_id,
        "mood_session_ended",
        {"session_id": mood_session.id, "status": status, "reason": reason, "skipped_entries": skipped},
    )
    logger.info("Session: session_id=%s -> %s (%s entries skipped)", mood_session.id, status, skipped)
    return mood_session


async def complete_expired_sessions(session: AsyncSession, now: datetime | None = None) -> int:
    """Active sessions past ends_at become completed."""
    now = now or utcnow()
    r = await session.execute(
        select(MoodSession)
        .where(MoodSession.status == STATUS_ACTIVE, MoodSession.ends_at <= now)
        .with_for_update()
    )
    expired = list(r.scalars().all())
    for mood_session in expired:
        await _close(session, mood_session, STATUS_COMPLETED)
    if expired:
        logger.info("Session: completed %s expired sessions", len(expired))
    return len(expired)


async def run_session_maintenance_job() -> None:
    """Scheduled job: close sessions whose ends_at has passed."""
    from app.db.session import async_session_maker

    async with async_session_maker() as session:
        try:
            await complete_expired_sessions(session)
            await session.commit()
        except Exception as e:
            logger.exception("Session: maintenance job failed: %s", e)
            await session.rollback()

"""
Schedule planner: build or refresh a user's notification plan for the active mood session.
Re-run on session start, preference/timezone change and by the daily refresh job.
"""
from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.errors import NoEligibleContent, NotFound
from app.db.base import utcnow
from app.models.mood_session import STATUS_ACTIVE, MoodSession
from app.models.notification_schedule import STATUS_SCHEDULED, STATUS_SKIPPED, ScheduleEntry
from app.models.preferences import DEFAULT_QUIET_END, DEFAULT_QUIET_START, NotificationPreferences
from app.models.user import User
from app.services import content_catalog
from app.services.slots import compute_slots, parse_time_of_day, resolve_zone, validate_frequency

logger = logging.getLogger(__name__)

SKIP_NO_CONTENT = "no_eligible_content"
SKIP_SUPERSEDED = "superseded"
SKIP_SESSION_ENDED = "session_ended"


@dataclass
class PlanResult:
    created: int = 0
    without_content: int = 0
    superseded: int = 0
    unchanged: bool = False


def _is_current_plan(entry: ScheduleEntry, now: datetime) -> bool:
    """Future entries the planner owns: still scheduled, or skipped for lack of content."""
    if entry.scheduled_at <= now:
        return False
    if entry.status == STATUS_SCHEDULED:
        return True
    return entry.status == STATUS_SKIPPED and entry.last_error == SKIP_NO_CONTENT


async def get_active_session(session: AsyncSession, user_id: str, *, lock: bool = False) -> MoodSession | None:
    q = select(MoodSession).where(MoodSession.user_id == user_id, MoodSession.status == STATUS_ACTIVE)
    if lock:
        q = q.with_for_update()
    r = await session.execute(q)
    return r.scalar_one_or_none()


async def plan_user(
    session: AsyncSession,
    user_id: str,
    *,
    now: datetime | None = None,
    rng: random.Random | None = None,
) -> PlanResult:
    """
    Compute slots for the remaining lifetime of the user's active session and persist them.
    Raises InvalidPreferences before writing anything when the inputs cannot be planned.
    """
    now = now or utcnow()
    user = await session.get(User, user_id)
    if user is None:
        raise NotFound("User not found")
    mood_session = await get_active_session(session, user_id, lock=True)
    if mood_session is None:
        logger.debug("Planner: user_id=%s has no active session, nothing to plan", user_id)
        return PlanResult()

    r = await session.execute(select(NotificationPreferences).where(NotificationPreferences.user_id == user_id))
    prefs = r.scalar_one_or_none()
    zone = resolve_zone(user.timezone)
    quiet_start = parse_time_of_day(prefs.quiet_start if prefs else DEFAULT_QUIET_START)
    quiet_end = parse_time_of_day(prefs.quiet_end if prefs else DEFAULT_QUIET_END)
    frequency = validate_frequency(mood_session.frequency_per_day)

    r = await session.execute(
        select(ScheduleEntry)
        .where(ScheduleEntry.mood_session_id == mood_session.id)
        .order_by(ScheduleEntry.scheduled_at, ScheduleEntry.id)
        .with_for_update()
    )
    existing = list(r.scalars().all())
    current = [e for e in existing if _is_current_plan(e, now)]
    history = [e for e in existing if e not in current and e.last_error != SKIP_SUPERSEDED]
    last_kept = max((e.scheduled_at for e in history), default=None)

    horizon_start = max(now, mood_session.started_at)
    slots = compute_slots(zone, quiet_start, quiet_end, frequency, horizon_start, mood_session.ends_at)
    if last_kept is not None:
        slots = [s for s in slots if s > last_kept]

    if [e.scheduled_at for e in current] == slots:
        return PlanResult(unchanged=True)

    result = PlanResult()
    if current:
        for entry in current:
            entry.status = STATUS_SKIPPED
            entry.payload_ref = None
            entry.last_error = SKIP_SUPERSEDED
        await content_catalog.release_usage(session, [e.id for e in current])
        result.superseded = len(current)
        await session.flush()

    if not slots:
        return result

    cooldown = timedelta(days=settings.content_cooldown_days)
    candidates = await content_catalog.load_candidates(
        session, mood_session.category_id, user.locale, lock=True
    )
    usage = await content_catalog.load_usage(
        session,
        user_id,
        [a.id for a in candidates],
        slots[0] - cooldown,
        slots[-1] + cooldown,
    )
    for slot_at in slots:
        try:
            affirmation = content_catalog.pick_affirmation(candidates, usage, slot_at, cooldown, rng)
        except NoEligibleContent:
            affirmation = None
        entry = ScheduleEntry(
            user_id=user_id,
            mood_session_id=mood_session.id,
            scheduled_at=slot_at,
            payload_ref=affirmation.id if affirmation else None,
            status=STATUS_SCHEDULED if affirmation else STATUS_SKIPPED,
            last_error=None if affirmation else SKIP_NO_CONTENT,
        )
        session.add(entry)
        await session.flush()
        if affirmation is None:
            result.without_content += 1
            continue
        await content_catalog.record_usage(session, user_id, affirmation, entry.id, slot_at)
        usage.setdefault(affirmation.id, []).append(slot_at)
        result.created += 1
    await session.flush()
    logger.info(
        "Planner: user_id=%s session_id=%s created=%s without_content=%s superseded=%s",
        user_id,
        mood_session.id,
        result.created,
        result.without_content,
        result.superseded,
    )
    return result


async def replan_active_sessions(now: datetime | None = None) -> int:
    """Daily rolling refresh: re-run the planner for every user with an active session."""
    from app.db.session import async_session_maker

    async with async_session_maker() as session:
        r = await session.execute(select(MoodSession.user_id).where(MoodSession.status == STATUS_ACTIVE))
        user_ids = [row[0] for row in r.all()]

    planned = 0
    for user_id in user_ids:
        async with async_session_maker() as session:
            try:
                await plan_user(session, user_id, now=now)
                await session.commit()
                planned += 1
            except Exception as e:
                logger.exception("Planner: refresh failed for user_id=%s: %s", user_id, e)
                await session.rollback()
    return planned

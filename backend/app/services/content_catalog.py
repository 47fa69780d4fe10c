"""Content catalog: eligible affirmations and the per-user 30-day cooldown."""

from __future__ import annotations

import random
from collections import defaultdict
from datetime import datetime, timedelta

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import NoEligibleContent
from app.models.content import Affirmation, AffirmationCategory, ContentUsage


async def list_categories(session: AsyncSession, locale: str | None = None) -> list[AffirmationCategory]:
    """Active categories, optionally for one locale."""
    q = select(AffirmationCategory).where(AffirmationCategory.is_active.is_(True))
    if locale:
        q = q.where(AffirmationCategory.locale == locale)
    r = await session.execute(q.order_by(AffirmationCategory.key))
    return list(r.scalars().all())


async def get_active_category(session: AsyncSession, category_id: int) -> AffirmationCategory | None:
    r = await session.execute(
        select(AffirmationCategory).where(
            AffirmationCategory.id == category_id,
            AffirmationCategory.is_active.is_(True),
        )
    )
    return r.scalar_one_or_none()


async def load_candidates(
    session: AsyncSession,
    category_id: int,
    locale: str,
    *,
    lock: bool = False,
) -> list[Affirmation]:
    """
    Active affirmations of an active category in the given locale.
    With lock=True the rows are locked so concurrent planners stamp last_used_at one at a time.
    """
    q = (
        select(Affirmation)
        .join(AffirmationCategory, Affirmation.category_id == AffirmationCategory.id)
        .where(
            Affirmation.category_id == category_id,
            Affirmation.locale == locale,
            Affirmation.is_active.is_(True),
            AffirmationCategory.is_active.is_(True),
        )
        .order_by(Affirmation.id)
    )
    if lock:
        q = q.with_for_update(of=Affirmation)
    r = await session.execute(q)
    return list(r.scalars().all())


async def load_usage(
    session: AsyncSession,
    user_id: str,
    affirmation_ids: list[int],
    since: datetime,
    until: datetime,
) -> dict[int, list[datetime]]:
    """Instants at which this user was given each affirmation, within [since, until]."""
    if not affirmation_ids:
        return {}
    r = await session.execute(
        select(ContentUsage.affirmation_id, ContentUsage.used_at).where(
            ContentUsage.user_id == user_id,
            ContentUsage.affirmation_id.in_(affirmation_ids),
            ContentUsage.used_at >= since,
            ContentUsage.used_at <= until,
        )
    )
    usage: dict[int, list[datetime]] = defaultdict(list)
    for affirmation_id, used_at in r.all():
        usage[affirmation_id].append(used_at)
    return usage


def is_cooling_down(uses: list[datetime], slot_at: datetime, cooldown: timedelta) -> bool:
    return any(abs(slot_at - used_at) < cooldown for used_at in uses)


def pick_affirmation(
    candidates: list[Affirmation],
    usage: dict[int, list[datetime]],
    slot_at: datetime,
    cooldown: timedelta,
    rng: random.Random | None = None,
) -> Affirmation:
    """Uniform random choice among candidates not used by the user within `cooldown` of slot_at."""
    eligible = [a for a in candidates if not is_cooling_down(usage.get(a.id, []), slot_at, cooldown)]
    if not eligible:
        raise NoEligibleContent(f"no eligible affirmation for slot {slot_at.isoformat()}")
    return (rng or random).choice(eligible)


async def record_usage(
    session: AsyncSession,
    user_id: str,
    affirmation: Affirmation,
    schedule_entry_id: int,
    used_at: datetime,
) -> None:
    """Stamp selection time: per-user history row plus the item's global last_used_at."""
    session.add(
        ContentUsage(
            user_id=user_id,
            affirmation_id=affirmation.id,
            schedule_entry_id=schedule_entry_id,
            used_at=used_at,
        )
    )
    if affirmation.last_used_at is None or affirmation.last_used_at < used_at:
        affirmation.last_used_at = used_at


async def release_usage(session: AsyncSession, schedule_entry_ids: list[int]) -> None:
    """Drop cooldown rows of entries that were superseded before sending."""
    if not schedule_entry_ids:
        return
    await session.execute(delete(ContentUsage).where(ContentUsage.schedule_entry_id.in_(schedule_entry_ids)))

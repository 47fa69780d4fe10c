"""Subscription entitlement: who may start mood sessions. Receipt verification happens upstream."""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import ValidationError
from app.db.base import utcnow
from app.models.subscription import ENTITLED_STATUSES, Subscription
from app.models.user import User

logger = logging.getLogger(__name__)

SUBSCRIPTION_STATUSES = ("active", "grace", "lapsed", "revoked")


async def is_current_subscriber(session: AsyncSession, user_id: str) -> bool:
    r = await session.execute(select(User.is_subscriber).where(User.id == user_id))
    return bool(r.scalar_one_or_none())


async def update_subscription_status(
    session: AsyncSession,
    user_id: str,
    status: str,
    *,
    renews_at: datetime | None = None,
    revoked_at: datetime | None = None,
    original_transaction_id: str | None = None,
    reason: str | None = None,
) -> Subscription:
    """Upsert the subscription row and recompute users.is_subscriber."""
    if status not in SUBSCRIPTION_STATUSES:
        raise ValidationError(f"Unknown subscription status: {status}")
    user = await session.get(User, user_id)
    if user is None:
        user = User(id=user_id)
        session.add(user)
        await session.flush()
    r = await session.execute(select(Subscription).where(Subscription.user_id == user_id))
    sub = r.scalar_one_or_none()
    if sub is None:
        sub = Subscription(user_id=user_id)
        session.add(sub)
    sub.status = status
    sub.renews_at = renews_at
    sub.revoked_at = revoked_at
    if original_transaction_id:
        sub.original_transaction_id = original_transaction_id
    sub.reason = reason
    sub.last_verified_at = utcnow()
    user.is_subscriber = status in ENTITLED_STATUSES
    await session.flush()
    logger.info("Entitlement: user_id=%s status=%s", user_id, status)
    return sub


async def expire_subscriptions(session: AsyncSession, now: datetime | None = None) -> int:
    """Active/grace subscriptions past renews_at become lapsed; users lose is_subscriber."""
    now = now or utcnow()
    r = await session.execute(
        select(Subscription.user_id).where(
            Subscription.status.in_(ENTITLED_STATUSES),
            Subscription.renews_at.isnot(None),
            Subscription.renews_at < now,
        )
    )
    user_ids = [row[0] for row in r.all()]
    if not user_ids:
        return 0
    await session.execute(
        update(Subscription)
        .where(Subscription.user_id.in_(user_ids))
        .values(status="lapsed", updated_at=now)
    )
    await session.execute(
        update(User)
        .where(User.id.in_(user_ids), User.is_subscriber.is_(True))
        .values(is_subscriber=False, updated_at=now)
    )
    logger.info("Entitlement: expired %s subscriptions", len(user_ids))
    return len(user_ids)


async def run_expire_subscriptions_job() -> None:
    """Scheduled job wrapper for expire_subscriptions."""
    from app.db.session import async_session_maker

    async with async_session_maker() as session:
        try:
            await expire_subscriptions(session)
            await session.commit()
        except Exception as e:
            logger.exception("Entitlement: expiry job failed: %s", e)
            await session.rollback()

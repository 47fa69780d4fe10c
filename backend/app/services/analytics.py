"""Insert-only analytics sink."""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.analytics_event import AnalyticsEvent

logger = logging.getLogger(__name__)


async def log_event(
    session: AsyncSession,
    user_id: str | None,
    name: str,
    props: dict | None = None,
) -> None:
    session.add(AnalyticsEvent(user_id=user_id, name=name, props=props or {}))
    await session.flush()
    logger.debug("Analytics: %s user_id=%s", name, user_id)

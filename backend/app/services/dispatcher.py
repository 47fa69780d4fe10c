"""
Delivery dispatcher: every tick, send due schedule entries to the push gateway.

Per entry: own transaction, row locked. Transient failures retry with exponential backoff inside the
tick, then the entry waits for a later tick (next_attempt_at) until the grace window closes.
Users are processed concurrently; one user's entries go out in scheduled_at order.
"""
from __future__ import annotations

import asyncio
import logging
from collections import Counter as Tally
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Awaitable, Callable

from prometheus_client import Counter, Histogram
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import settings
from app.core.errors import PermanentDeliveryError, TransientDeliveryError
from app.db.base import utcnow
from app.models.content import Affirmation, AffirmationCategory
from app.models.notification_schedule import (
    STATUS_FAILED,
    STATUS_SCHEDULED,
    STATUS_SENT,
    STATUS_SKIPPED,
    ScheduleEntry,
)
from app.models.preferences import NotificationPreferences
from app.models.sent_log import (
    RESULT_PERMANENT_FAILURE,
    RESULT_SKIPPED,
    RESULT_SUCCESS,
    RESULT_TRANSIENT_FAILURE,
    SentLog,
)
from app.services.devices import get_active_token
from app.services.push_gateway import PushGateway, build_payload

logger = logging.getLogger(__name__)

SKIP_PUSH_DISABLED = "push_disabled"
SKIP_NO_ACTIVE_TOKEN = "no_active_token"
SKIP_NO_CONTENT = "no_content"
FAIL_GRACE_ELAPSED = "grace_window_elapsed"

OUTCOME_SENT = "sent"
OUTCOME_FAILED = "failed"
OUTCOME_SKIPPED = "skipped"
OUTCOME_RETRY = "retry"
OUTCOME_ERROR = "error"

DELIVERIES = Counter(
    "notification_deliveries_total",
    "Delivery attempt outcomes by result",
    ["result"],
)
DELIVERY_LATENCY = Histogram(
    "notification_delivery_latency_seconds",
    "Seconds from scheduled_at to successful send",
    buckets=(5, 15, 30, 60, 120, 300, 600, 900, 1800),
)


@dataclass
class DispatchStats:
    due: int = 0
    outcomes: Tally = field(default_factory=Tally)

    def record(self, outcome: str | None) -> None:
        if outcome:
            self.outcomes[outcome] += 1


class Dispatcher:
    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        gateway: PushGateway,
        *,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        batch_size: int | None = None,
        max_attempts: int | None = None,
        backoff_base_seconds: float | None = None,
        retry_delay_seconds: int | None = None,
        grace_minutes: int | None = None,
        concurrency: int | None = None,
    ):
        self.session_maker = session_maker
        self.gateway = gateway
        self.clock = clock
        self.sleep = sleep
        self.batch_size = batch_size or settings.dispatch_batch_size
        self.max_attempts = max(1, max_attempts or settings.dispatch_max_attempts)
        self.backoff_base = (
            settings.dispatch_backoff_base_seconds if backoff_base_seconds is None else backoff_base_seconds
        )
        self.retry_delay = timedelta(
            seconds=settings.dispatch_retry_delay_seconds if retry_delay_seconds is None else retry_delay_seconds
        )
        self.grace = timedelta(minutes=settings.dispatch_grace_minutes if grace_minutes is None else grace_minutes)
        self.concurrency = concurrency or settings.dispatch_concurrency

    async def due_entries(self, now: datetime) -> list[tuple[int, str]]:
        async with self.session_maker() as session:
            r = await session.execute(
                select(ScheduleEntry.id, ScheduleEntry.user_id)
                .where(
                    ScheduleEntry.status == STATUS_SCHEDULED,
                    ScheduleEntry.scheduled_at <= now,
                    or_(ScheduleEntry.next_attempt_at.is_(None), ScheduleEntry.next_attempt_at <= now),
                )
                .order_by(ScheduleEntry.scheduled_at, ScheduleEntry.id)
                .limit(self.batch_size)
            )
            return [(row[0], row[1]) for row in r.all()]

    async def tick(self, now: datetime | None = None) -> DispatchStats:
        """Process one bounded batch of due entries."""
        now = now or self.clock()
        due = await self.due_entries(now)
        stats = DispatchStats(due=len(due))
        if not due:
            return stats
        by_user: dict[str, list[int]] = {}
        for entry_id, user_id in due:
            by_user.setdefault(user_id, []).append(entry_id)

        sem = asyncio.Semaphore(self.concurrency)

        async def run_for_user(entry_ids: list[int]) -> None:
            async with sem:
                for entry_id in entry_ids:
                    stats.record(await self.process_entry(entry_id))

        await asyncio.gather(*[run_for_user(ids) for ids in by_user.values()])
        logger.info("Dispatcher: due=%s users=%s outcomes=%s", stats.due, len(by_user), dict(stats.outcomes))
        return stats

    async def process_entry(self, entry_id: int) -> str | None:
        """Handle one entry in its own transaction. Never raises: a broken entry must not stop the batch."""
        async with self.session_maker() as session:
            try:
                outcome = await self._process(session, entry_id)
                await session.commit()
                return outcome
            except Exception as e:
                logger.exception("Dispatcher: entry_id=%s failed unexpectedly: %s", entry_id, e)
                await session.rollback()
                return OUTCOME_ERROR

    def _log(
        self,
        session: AsyncSession,
        entry: ScheduleEntry,
        result: str,
        *,
        error_code: str | None = None,
        delivery_id: str | None = None,
    ) -> None:
        session.add(
            SentLog(
                schedule_id=entry.id,
                sent_at=self.clock(),
                result=result,
                error_code=error_code,
                delivery_id=delivery_id,
                attempt=entry.attempts,
            )
        )
        DELIVERIES.labels(result=result).inc()

    def _skip(self, session: AsyncSession, entry: ScheduleEntry, reason: str) -> str:
        entry.status = STATUS_SKIPPED
        entry.last_error = reason
        entry.next_attempt_at = None
        self._log(session, entry, RESULT_SKIPPED, error_code=reason)
        logger.debug("Dispatcher: entry_id=%s skipped (%s)", entry.id, reason)
        return OUTCOME_SKIPPED

    async def _process(self, session: AsyncSession, entry_id: int) -> str | None:
        r = await session.execute(
            select(ScheduleEntry)
            .where(ScheduleEntry.id == entry_id, ScheduleEntry.status == STATUS_SCHEDULED)
            .with_for_update(skip_locked=True)
        )
        entry = r.scalar_one_or_none()
        if entry is None:
            # Taken by another worker, or cancelled since selection
            return None
        now = self.clock()
        if entry.next_attempt_at is not None and entry.next_attempt_at > now:
            return None
        deadline = entry.scheduled_at + self.grace

        r = await session.execute(
            select(NotificationPreferences.allow_push).where(NotificationPreferences.user_id == entry.user_id)
        )
        allow_push = r.scalar_one_or_none()
        if allow_push is False:
            return self._skip(session, entry, SKIP_PUSH_DISABLED)
        if entry.payload_ref is None:
            return self._skip(session, entry, SKIP_NO_CONTENT)
        token = await get_active_token(session, entry.user_id)
        if token is None:
            return self._skip(session, entry, SKIP_NO_ACTIVE_TOKEN)
        if now >= deadline:
            # Covers both never-attempted and retrying entries
            entry.status = STATUS_FAILED
            entry.last_error = FAIL_GRACE_ELAPSED
            entry.next_attempt_at = None
            self._log(session, entry, RESULT_PERMANENT_FAILURE, error_code=FAIL_GRACE_ELAPSED)
            logger.warning("Dispatcher: entry_id=%s missed its grace window, not sent", entry.id)
            return OUTCOME_FAILED

        affirmation = await session.get(Affirmation, entry.payload_ref)
        if affirmation is None:
            return self._skip(session, entry, SKIP_NO_CONTENT)
        category = await session.get(AffirmationCategory, affirmation.category_id)
        payload = build_payload(entry.id, affirmation.text, category.key if category else None, affirmation.id)

        for attempt in range(self.max_attempts):
            entry.attempts += 1
            try:
                delivery_id = await self.gateway.send(token.token, payload)
            except PermanentDeliveryError as e:
                entry.status = STATUS_FAILED
                entry.last_error = e.error_code
                entry.next_attempt_at = None
                token.is_active = False
                self._log(session, entry, RESULT_PERMANENT_FAILURE, error_code=e.error_code)
                logger.info(
                    "Dispatcher: entry_id=%s permanent failure (%s); token_id=%s deactivated",
                    entry.id,
                    e.error_code,
                    token.id,
                )
                return OUTCOME_FAILED
            except TransientDeliveryError as e:
                entry.last_error = e.error_code
                self._log(session, entry, RESULT_TRANSIENT_FAILURE, error_code=e.error_code)
                logger.info(
                    "Dispatcher: entry_id=%s attempt %s transient failure (%s)", entry.id, entry.attempts, e.error_code
                )
                if attempt + 1 < self.max_attempts:
                    await self.sleep(self.backoff_base * (2**attempt))
                continue
            sent_at = self.clock()
            entry.status = STATUS_SENT
            entry.sent_at = sent_at
            entry.last_error = None
            entry.next_attempt_at = None
            self._log(session, entry, RESULT_SUCCESS, delivery_id=delivery_id or None)
            DELIVERY_LATENCY.observe(max(0.0, (sent_at - entry.scheduled_at).total_seconds()))
            return OUTCOME_SENT

        now = self.clock()
        if now >= deadline:
            entry.status = STATUS_FAILED
            entry.next_attempt_at = None
            logger.warning("Dispatcher: entry_id=%s failed after %s attempts (grace elapsed)", entry.id, entry.attempts)
            return OUTCOME_FAILED
        rounds = max(1, entry.attempts // self.max_attempts)
        entry.next_attempt_at = min(now + self.retry_delay * (2 ** (rounds - 1)), deadline)
        return OUTCOME_RETRY


_dispatcher: Dispatcher | None = None


def init_dispatcher(session_maker: async_sessionmaker[AsyncSession], gateway: PushGateway) -> Dispatcher:
    global _dispatcher
    _dispatcher = Dispatcher(session_maker, gateway)
    return _dispatcher


async def run_dispatch_tick() -> None:
    """Scheduled job: one dispatcher tick with the app-wide dispatcher."""
    if _dispatcher is None:
        raise RuntimeError("Dispatcher not initialized; ensure app lifespan has run init_dispatcher().")
    try:
        await _dispatcher.tick()
    except Exception as e:
        logger.exception("Dispatcher: tick failed: %s", e)

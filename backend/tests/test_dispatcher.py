"""Tests for the delivery dispatcher: skips, success, permanent and transient failures, isolation."""

from datetime import timedelta

import httpx
import pytest
from sqlalchemy import select

from app.core.errors import TransientDeliveryError
from app.db.session import async_session_maker
from app.models.device_token import DeviceToken
from app.models.notification_schedule import (
    STATUS_FAILED,
    STATUS_SCHEDULED,
    STATUS_SENT,
    STATUS_SKIPPED,
    ScheduleEntry,
)
from app.models.sent_log import (
    RESULT_PERMANENT_FAILURE,
    RESULT_SKIPPED,
    RESULT_SUCCESS,
    RESULT_TRANSIENT_FAILURE,
    SentLog,
)
from app.services.dispatcher import (
    FAIL_GRACE_ELAPSED,
    SKIP_NO_ACTIVE_TOKEN,
    SKIP_NO_CONTENT,
    SKIP_PUSH_DISABLED,
    Dispatcher,
)
from app.services.push_gateway import HttpPushGateway

from conftest import NOW, TOKEN_A, TOKEN_B, FakeGateway


class RecordingSleep:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def _dispatcher(gateway, sleep=None, now=NOW) -> Dispatcher:
    return Dispatcher(
        async_session_maker,
        gateway,
        clock=lambda: now,
        sleep=sleep or RecordingSleep(),
        max_attempts=3,
        backoff_base_seconds=0.5,
        retry_delay_seconds=60,
        grace_minutes=15,
        concurrency=1,
    )


async def _add_entry(user_id: str, affirmation_id: int | None, scheduled_at=None, **fields) -> int:
    async with async_session_maker() as session:
        entry = ScheduleEntry(
            user_id=user_id,
            scheduled_at=scheduled_at or NOW - timedelta(minutes=1),
            payload_ref=affirmation_id,
            **fields,
        )
        session.add(entry)
        await session.commit()
        return entry.id


async def _entry(entry_id: int) -> ScheduleEntry:
    async with async_session_maker() as session:
        return await session.get(ScheduleEntry, entry_id)


async def _logs(entry_id: int) -> list[SentLog]:
    async with async_session_maker() as session:
        r = await session.execute(select(SentLog).where(SentLog.schedule_id == entry_id).order_by(SentLog.id))
        return list(r.scalars().all())


@pytest.mark.asyncio
async def test_due_entry_is_sent(make_user, make_category, fake_gateway):
    user_id = await make_user(token=TOKEN_A)
    _, (affirmation_id, *_) = await make_category(count=2)
    entry_id = await _add_entry(user_id, affirmation_id)

    stats = await _dispatcher(fake_gateway).tick(NOW)

    assert stats.due == 1
    assert stats.outcomes["sent"] == 1
    entry = await _entry(entry_id)
    assert entry.status == STATUS_SENT
    assert entry.sent_at == NOW
    assert entry.attempts == 1
    token, payload = fake_gateway.calls[0]
    assert token == TOKEN_A
    assert payload["body"] == "calm affirmation 0"
    assert payload["data"] == {"schedule_id": entry_id, "affirmation_id": affirmation_id, "category": "calm"}
    logs = await _logs(entry_id)
    assert [(log.result, log.delivery_id) for log in logs] == [(RESULT_SUCCESS, "delivery-1")]


@pytest.mark.asyncio
async def test_future_and_retry_pending_entries_are_not_due(make_user, make_category, fake_gateway):
    user_id = await make_user(token=TOKEN_A)
    _, (affirmation_id, *_) = await make_category(count=2)
    await _add_entry(user_id, affirmation_id, scheduled_at=NOW + timedelta(minutes=5))
    await _add_entry(user_id, affirmation_id, next_attempt_at=NOW + timedelta(seconds=30), attempts=3)

    stats = await _dispatcher(fake_gateway).tick(NOW)
    assert stats.due == 0
    assert fake_gateway.calls == []


@pytest.mark.asyncio
async def test_push_disabled_is_skipped(make_user, make_category, fake_gateway):
    user_id = await make_user(token=TOKEN_A, allow_push=False)
    _, (affirmation_id, *_) = await make_category(count=1)
    entry_id = await _add_entry(user_id, affirmation_id)

    await _dispatcher(fake_gateway).tick(NOW)

    entry = await _entry(entry_id)
    assert entry.status == STATUS_SKIPPED
    assert entry.last_error == SKIP_PUSH_DISABLED
    assert [(log.result, log.error_code) for log in await _logs(entry_id)] == [(RESULT_SKIPPED, SKIP_PUSH_DISABLED)]
    assert fake_gateway.calls == []


@pytest.mark.asyncio
async def test_no_active_token_is_skipped(make_user, make_category, fake_gateway):
    user_id = await make_user()
    _, (affirmation_id, *_) = await make_category(count=1)
    entry_id = await _add_entry(user_id, affirmation_id)

    await _dispatcher(fake_gateway).tick(NOW)

    entry = await _entry(entry_id)
    assert entry.status == STATUS_SKIPPED
    assert entry.last_error == SKIP_NO_ACTIVE_TOKEN
    assert fake_gateway.calls == []


@pytest.mark.asyncio
async def test_missing_payload_is_skipped(make_user, fake_gateway):
    user_id = await make_user(token=TOKEN_A)
    entry_id = await _add_entry(user_id, None)

    await _dispatcher(fake_gateway).tick(NOW)

    entry = await _entry(entry_id)
    assert entry.status == STATUS_SKIPPED
    assert entry.last_error == SKIP_NO_CONTENT


@pytest.mark.asyncio
async def test_invalid_token_fails_entry_and_deactivates_token(make_user, make_category, invalid_token_gateway):
    user_id = await make_user(token=TOKEN_A)
    _, (affirmation_id, *_) = await make_category(count=1)
    entry_id = await _add_entry(user_id, affirmation_id)

    stats = await _dispatcher(invalid_token_gateway).tick(NOW)

    assert stats.outcomes["failed"] == 1
    entry = await _entry(entry_id)
    assert entry.status == STATUS_FAILED
    assert entry.last_error == "invalid_token"
    logs = await _logs(entry_id)
    assert [(log.result, log.error_code) for log in logs] == [(RESULT_PERMANENT_FAILURE, "invalid_token")]
    async with async_session_maker() as session:
        token = (await session.execute(select(DeviceToken).where(DeviceToken.token == TOKEN_A))).scalar_one()
    assert token.is_active is False


@pytest.mark.asyncio
async def test_transient_failures_retry_then_wait_for_next_tick(make_user, make_category):
    user_id = await make_user(token=TOKEN_A)
    _, (affirmation_id, *_) = await make_category(count=1)
    entry_id = await _add_entry(user_id, affirmation_id)
    gateway = FakeGateway([TransientDeliveryError("unreachable")] * 3)
    sleep = RecordingSleep()

    stats = await _dispatcher(gateway, sleep).tick(NOW)

    assert stats.outcomes["retry"] == 1
    assert len(gateway.calls) == 3
    assert sleep.delays == [0.5, 1.0]
    entry = await _entry(entry_id)
    assert entry.status == STATUS_SCHEDULED
    assert entry.attempts == 3
    assert entry.next_attempt_at == NOW + timedelta(seconds=60)
    logs = await _logs(entry_id)
    assert [log.result for log in logs] == [RESULT_TRANSIENT_FAILURE] * 3
    assert [log.attempt for log in logs] == [1, 2, 3]


@pytest.mark.asyncio
async def test_transient_then_success_within_tick(make_user, make_category):
    user_id = await make_user(token=TOKEN_A)
    _, (affirmation_id, *_) = await make_category(count=1)
    entry_id = await _add_entry(user_id, affirmation_id)
    gateway = FakeGateway([TransientDeliveryError("rate_limited"), "apns-42"])

    await _dispatcher(gateway).tick(NOW)

    entry = await _entry(entry_id)
    assert entry.status == STATUS_SENT
    assert entry.attempts == 2
    logs = await _logs(entry_id)
    assert [(log.result, log.error_code, log.delivery_id) for log in logs] == [
        (RESULT_TRANSIENT_FAILURE, "rate_limited", None),
        (RESULT_SUCCESS, None, "apns-42"),
    ]


@pytest.mark.asyncio
async def test_retry_delay_never_passes_grace_deadline(make_user, make_category):
    user_id = await make_user(token=TOKEN_A)
    _, (affirmation_id, *_) = await make_category(count=1)
    scheduled_at = NOW - timedelta(minutes=14, seconds=30)
    entry_id = await _add_entry(user_id, affirmation_id, scheduled_at=scheduled_at)
    gateway = FakeGateway([TransientDeliveryError("unreachable")] * 3)

    await _dispatcher(gateway).tick(NOW)

    entry = await _entry(entry_id)
    assert entry.status == STATUS_SCHEDULED
    assert entry.next_attempt_at == scheduled_at + timedelta(minutes=15)


@pytest.mark.asyncio
async def test_retrying_entry_past_grace_fails_without_sending(make_user, make_category, fake_gateway):
    user_id = await make_user(token=TOKEN_A)
    _, (affirmation_id, *_) = await make_category(count=1)
    entry_id = await _add_entry(
        user_id,
        affirmation_id,
        scheduled_at=NOW - timedelta(minutes=20),
        attempts=3,
        next_attempt_at=NOW - timedelta(seconds=1),
    )

    stats = await _dispatcher(fake_gateway).tick(NOW)

    assert stats.outcomes["failed"] == 1
    assert fake_gateway.calls == []
    entry = await _entry(entry_id)
    assert entry.status == STATUS_FAILED
    assert entry.attempts == 3
    assert entry.last_error == FAIL_GRACE_ELAPSED
    assert entry.next_attempt_at is None
    logs = await _logs(entry_id)
    assert [(log.result, log.error_code) for log in logs] == [(RESULT_PERMANENT_FAILURE, FAIL_GRACE_ELAPSED)]


@pytest.mark.asyncio
async def test_retry_landing_on_grace_deadline_fails(make_user, make_category):
    user_id = await make_user(token=TOKEN_A)
    _, (affirmation_id, *_) = await make_category(count=1)
    scheduled_at = NOW - timedelta(minutes=14, seconds=30)
    entry_id = await _add_entry(user_id, affirmation_id, scheduled_at=scheduled_at)
    gateway = FakeGateway([TransientDeliveryError("unreachable")] * 3)

    await _dispatcher(gateway).tick(NOW)
    deadline = scheduled_at + timedelta(minutes=15)
    await _dispatcher(gateway, now=deadline).tick(deadline)

    assert len(gateway.calls) == 3
    entry = await _entry(entry_id)
    assert entry.status == STATUS_FAILED
    assert entry.last_error == FAIL_GRACE_ELAPSED


@pytest.mark.asyncio
async def test_never_attempted_entry_past_grace_is_not_sent(make_user, make_category, fake_gateway):
    user_id = await make_user(token=TOKEN_A)
    _, (affirmation_id, *_) = await make_category(count=1)
    entry_id = await _add_entry(user_id, affirmation_id, scheduled_at=NOW - timedelta(hours=2))

    await _dispatcher(fake_gateway).tick(NOW)

    entry = await _entry(entry_id)
    assert entry.status == STATUS_FAILED
    assert entry.last_error == FAIL_GRACE_ELAPSED
    assert fake_gateway.calls == []


@pytest.mark.asyncio
async def test_one_broken_entry_does_not_stop_the_batch(make_user, make_category):
    first = await make_user("user-1", token=TOKEN_A)
    second = await make_user("user-2", token=TOKEN_B)
    _, (affirmation_id, *_) = await make_category(count=1)
    broken_id = await _add_entry(first, affirmation_id, scheduled_at=NOW - timedelta(minutes=2))
    ok_id = await _add_entry(second, affirmation_id)
    gateway = FakeGateway([RuntimeError("boom"), "delivery-ok"])

    stats = await _dispatcher(gateway).tick(NOW)

    assert stats.outcomes["error"] == 1
    assert stats.outcomes["sent"] == 1
    broken = await _entry(broken_id)
    assert broken.status == STATUS_SCHEDULED
    assert broken.attempts == 0
    assert (await _entry(ok_id)).status == STATUS_SENT


@pytest.mark.asyncio
async def test_user_entries_go_out_in_time_order(make_user, make_category, fake_gateway):
    user_id = await make_user(token=TOKEN_A)
    _, (first_aff, second_aff) = await make_category(count=2)
    later = await _add_entry(user_id, second_aff, scheduled_at=NOW - timedelta(minutes=1))
    earlier = await _add_entry(user_id, first_aff, scheduled_at=NOW - timedelta(minutes=5))

    await _dispatcher(fake_gateway).tick(NOW)

    assert [payload["data"]["schedule_id"] for _, payload in fake_gateway.calls] == [earlier, later]


@pytest.mark.asyncio
async def test_plain_text_gateway_reply_is_sent_once(make_user, make_category):
    user_id = await make_user(token=TOKEN_A)
    _, (affirmation_id, *_) = await make_category(count=1)
    entry_id = await _add_entry(user_id, affirmation_id)
    posts = []

    def handler(request: httpx.Request) -> httpx.Response:
        posts.append(request)
        return httpx.Response(200, text="OK")

    gateway = HttpPushGateway(
        url="https://push.test/v1/push",
        api_key="gw-key",
        timeout=2.0,
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    dispatcher = _dispatcher(gateway)
    for _ in range(3):
        await dispatcher.tick(NOW)

    assert len(posts) == 1
    entry = await _entry(entry_id)
    assert entry.status == STATUS_SENT
    assert entry.attempts == 1
    assert [log.result for log in await _logs(entry_id)] == [RESULT_SUCCESS]

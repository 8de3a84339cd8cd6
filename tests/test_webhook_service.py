# tests/test_webhook_service.py
"""
Webhook delivery tests against an in-memory httpx transport:
signing, retries with backoff, terminal failure, serialization of
concurrent attempts and the APScheduler-backed retry scheduler.

Run with: pytest tests/test_webhook_service.py -v
"""

import asyncio
import json
import uuid
from datetime import timedelta, timezone

import httpx
import pytest

from lead_qualifier.core.security import verify_signature
from lead_qualifier.models.activity import Actions
from lead_qualifier.models.webhook import DeliveryStatus, Webhook, WebhookDelivery, WebhookEvent
from lead_qualifier.repositories.activity_repo import ActivityLogRepository
from lead_qualifier.services.webhook_service import (
    RetryScheduler,
    WebhookDispatcher,
    backoff_interval,
    serialize_delivery,
)


# ============================================================================
# FIXTURES
# ============================================================================

class Subscriber:
    """Scripted subscriber: answers with the queued status codes, then 200."""

    def __init__(self, *statuses):
        self.statuses = list(statuses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status = self.statuses.pop(0) if self.statuses else 200
        return httpx.Response(status, text="ok" if status < 300 else "upstream unavailable")


def make_dispatcher(session_factory, clock, subscriber, **kwargs):
    return WebhookDispatcher(
        session_factory=session_factory,
        transport=httpx.MockTransport(subscriber),
        clock=clock,
        retry_base_seconds=60,
        retry_max_seconds=3600,
        **kwargs,
    )


async def load_delivery(session_factory, delivery_id):
    async with session_factory() as session:
        return await session.get(WebhookDelivery, delivery_id)


async def create_delivery(session_factory, webhook, clock):
    async with session_factory() as session:
        delivery = WebhookDelivery(
            webhook_id=webhook.id,
            org_id=webhook.org_id,
            event=WebhookEvent.LEAD_QUALIFIED,
            payload={"lead": {"id": "lead-1"}},
            next_retry_at=clock(),
            created_at=clock(),
        )
        session.add(delivery)
        await session.commit()
        return delivery.id


PAYLOAD = {"lead": {"email": "dana@acme.io"}, "qualification": {"score": 82.5, "label": "hot"}}


# ============================================================================
# TEST: Backoff
# ============================================================================

class TestBackoff:

    @pytest.mark.parametrize("attempts,seconds", [
        (1, 60),
        (2, 120),
        (3, 240),
        (6, 1920),
        (7, 3600),
        (30, 3600),
    ])
    def test_exponential_with_cap(self, attempts, seconds):
        assert backoff_interval(attempts, 60, 3600) == timedelta(seconds=seconds)


# ============================================================================
# TEST: Emit and deliver
# ============================================================================

class TestDelivery:

    async def test_emit_delivers_signed_payload(self, session_factory, clock, webhook, org_id):
        subscriber = Subscriber()
        dispatcher = make_dispatcher(session_factory, clock, subscriber)

        delivery_ids = await dispatcher.emit(org_id, WebhookEvent.LEAD_QUALIFIED, PAYLOAD)
        await dispatcher.drain()

        assert len(delivery_ids) == 1
        assert len(subscriber.requests) == 1
        request = subscriber.requests[0]
        body = json.loads(request.content)
        assert body["event"] == WebhookEvent.LEAD_QUALIFIED
        assert body["payload"] == PAYLOAD
        assert body["delivery_id"] == str(delivery_ids[0])
        assert request.headers["X-Webhook-Event"] == WebhookEvent.LEAD_QUALIFIED
        assert verify_signature(request.content, "whsec_test", request.headers["X-Webhook-Signature"])
        assert not verify_signature(request.content, "wrong-secret", request.headers["X-Webhook-Signature"])

        delivery = await load_delivery(session_factory, delivery_ids[0])
        assert delivery.status == DeliveryStatus.DELIVERED
        assert delivery.attempt_count == 1
        assert delivery.delivered_at == clock.now
        assert delivery.next_retry_at is None

    async def test_no_subscription_no_delivery(self, session_factory, clock, webhook, org_id):
        subscriber = Subscriber()
        dispatcher = make_dispatcher(session_factory, clock, subscriber)

        assert await dispatcher.emit(org_id, WebhookEvent.LEAD_UPDATED, PAYLOAD) == []
        assert subscriber.requests == []

    async def test_retries_until_success(self, session_factory, clock, webhook, org_id):
        subscriber = Subscriber(500, 502)
        dispatcher = make_dispatcher(session_factory, clock, subscriber)

        [delivery_id] = await dispatcher.emit(org_id, WebhookEvent.LEAD_QUALIFIED, PAYLOAD)
        await dispatcher.drain()

        delivery = await load_delivery(session_factory, delivery_id)
        assert delivery.status == DeliveryStatus.PENDING
        assert delivery.attempt_count == 1
        assert delivery.response_status == 500
        assert delivery.response_body == "upstream unavailable"
        assert delivery.next_retry_at == clock.now + timedelta(seconds=60)

        # Not due yet
        assert await dispatcher.attempt(delivery_id) is None

        clock.advance(seconds=60)
        assert await dispatcher.attempt(delivery_id) == DeliveryStatus.PENDING
        delivery = await load_delivery(session_factory, delivery_id)
        assert delivery.next_retry_at == clock.now + timedelta(seconds=120)

        clock.advance(seconds=120)
        assert await dispatcher.attempt(delivery_id) == DeliveryStatus.DELIVERED

        delivery = await load_delivery(session_factory, delivery_id)
        assert delivery.attempt_count == 3
        assert delivery.delivered_at == clock.now
        assert delivery.error_message is None
        assert len(subscriber.requests) == 3
        # Same bytes and signature on every attempt
        assert len({request.content for request in subscriber.requests}) == 1
        assert len({request.headers["X-Webhook-Signature"] for request in subscriber.requests}) == 1

        # Delivered rows drop out of later sweeps
        clock.advance(hours=2)
        assert await dispatcher.sweep() == 0
        assert await dispatcher.attempt(delivery_id) is None
        assert len(subscriber.requests) == 3

    async def test_terminal_failure_after_max_attempts(self, session_factory, session, clock, webhook, org_id):
        subscriber = Subscriber(503, 503, 503, 503)
        dispatcher = make_dispatcher(session_factory, clock, subscriber, max_attempts=3)

        [delivery_id] = await dispatcher.emit(org_id, WebhookEvent.LEAD_QUALIFIED, PAYLOAD)
        await dispatcher.drain()
        for _ in range(2):
            clock.advance(hours=1)
            await dispatcher.attempt(delivery_id)

        delivery = await load_delivery(session_factory, delivery_id)
        assert delivery.status == DeliveryStatus.FAILED
        assert delivery.attempt_count == 3
        assert delivery.failed_at == clock.now
        assert delivery.next_retry_at is None

        clock.advance(hours=1)
        assert await dispatcher.attempt(delivery_id) is None
        assert len(subscriber.requests) == 3

        audit = await ActivityLogRepository(session).get_by_action(org_id, Actions.WEBHOOK_FAILED)
        assert [entry.entity_id for entry in audit] == [delivery_id]
        assert audit[0].meta_data["attempts"] == 3

    async def test_transport_errors_are_retried(self, session_factory, clock, webhook, org_id):
        def unreachable(request):
            raise httpx.ConnectError("connection refused", request=request)

        dispatcher = make_dispatcher(session_factory, clock, unreachable)

        [delivery_id] = await dispatcher.emit(org_id, WebhookEvent.LEAD_QUALIFIED, PAYLOAD)
        await dispatcher.drain()

        delivery = await load_delivery(session_factory, delivery_id)
        assert delivery.status == DeliveryStatus.PENDING
        assert delivery.response_status is None
        assert "ConnectError" in delivery.error_message

    async def test_inactive_subscription_fails_delivery(self, session_factory, session, clock, webhook):
        delivery_id = await create_delivery(session_factory, webhook, clock)
        webhook.is_active = False
        session.add(webhook)
        await session.commit()
        subscriber = Subscriber()
        dispatcher = make_dispatcher(session_factory, clock, subscriber)

        assert await dispatcher.attempt(delivery_id) == DeliveryStatus.FAILED
        assert subscriber.requests == []

    async def test_concurrent_attempts_send_once(self, session_factory, clock, webhook):
        delivery_id = await create_delivery(session_factory, webhook, clock)
        subscriber = Subscriber()
        dispatcher = make_dispatcher(session_factory, clock, subscriber)

        results = await asyncio.gather(*(dispatcher.attempt(delivery_id) for _ in range(3)))

        assert results.count(DeliveryStatus.DELIVERED) == 1
        assert results.count(None) == 2
        assert len(subscriber.requests) == 1
        delivery = await load_delivery(session_factory, delivery_id)
        assert delivery.attempt_count == 1

    def test_serialized_body_is_stable(self, clock, webhook):
        delivery = WebhookDelivery(
            webhook_id=webhook.id,
            org_id=webhook.org_id,
            event=WebhookEvent.LEAD_QUALIFIED,
            payload=PAYLOAD,
            created_at=clock(),
        )

        body = json.loads(serialize_delivery(delivery))

        assert body["timestamp"] == "2026-01-15T12:00:00Z"
        assert serialize_delivery(delivery) == serialize_delivery(delivery)


# ============================================================================
# TEST: Recovery
# ============================================================================

class TestRecovery:

    async def test_sweep_attempts_due_deliveries(self, session_factory, clock, webhook):
        due = await create_delivery(session_factory, webhook, clock)
        clock.advance(minutes=5)
        later = await create_delivery(session_factory, webhook, clock)
        clock.advance(minutes=-5)
        subscriber = Subscriber()
        dispatcher = make_dispatcher(session_factory, clock, subscriber)

        assert await dispatcher.sweep() == 1

        assert (await load_delivery(session_factory, due)).status == DeliveryStatus.DELIVERED
        assert (await load_delivery(session_factory, later)).status == DeliveryStatus.PENDING

    async def test_failed_attempt_becomes_a_retry_job(self, session_factory, clock, webhook):
        delivery_id = await create_delivery(session_factory, webhook, clock)
        dispatcher = make_dispatcher(session_factory, clock, Subscriber(500))
        scheduler = RetryScheduler(dispatcher, sweep_interval=30)

        await dispatcher.attempt(delivery_id)

        job = scheduler.get_retry_job(delivery_id)
        assert len(scheduler) == 1
        assert job.args == (delivery_id,)
        assert job.trigger.run_date == (clock.now + timedelta(seconds=60)).replace(tzinfo=timezone.utc)

        # The job runs the next attempt once it is due
        clock.advance(seconds=60)
        assert await job.func(*job.args) == DeliveryStatus.DELIVERED
        assert (await load_delivery(session_factory, delivery_id)).status == DeliveryStatus.DELIVERED

    def test_rescheduling_replaces_the_retry_job(self, session_factory, clock):
        scheduler = RetryScheduler(make_dispatcher(session_factory, clock, Subscriber()))
        first, second = uuid.uuid4(), uuid.uuid4()

        scheduler.schedule(first, clock.now + timedelta(seconds=10))
        scheduler.schedule(first, clock.now + timedelta(seconds=15))
        scheduler.schedule(second, clock.now + timedelta(seconds=20))

        assert len(scheduler) == 2
        run_date = scheduler.get_retry_job(first).trigger.run_date
        assert run_date == (clock.now + timedelta(seconds=15)).replace(tzinfo=timezone.utc)

    async def test_recover_schedules_pending_retries(self, session_factory, clock, webhook):
        delivery_id = await create_delivery(session_factory, webhook, clock)
        scheduler = RetryScheduler(make_dispatcher(session_factory, clock, Subscriber()))

        assert await scheduler.recover() == 1

        assert scheduler.get_retry_job(delivery_id) is not None

    async def test_start_registers_interval_sweep(self, session_factory, clock):
        scheduler = RetryScheduler(make_dispatcher(session_factory, clock, Subscriber()), sweep_interval=30)

        await scheduler.start()
        try:
            sweep = scheduler.job_scheduler.get_job(RetryScheduler.SWEEP_JOB_ID)
            assert sweep.trigger.interval == timedelta(seconds=30)
            assert len(scheduler) == 0
        finally:
            await scheduler.stop()

        assert not scheduler.job_scheduler.running

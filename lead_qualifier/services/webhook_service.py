"""
Webhook service - signed, at-least-once delivery of lead events to subscribers.

Each emitted event becomes one WebhookDelivery row per matching subscription.
Attempts for one row are serialized (keyed asyncio lock in-process, row lock
with SKIP LOCKED across workers), so attempt_count and next_retry_at stay
consistent and a delivered row is never sent again. Failed attempts are
retried with capped exponential backoff by the RetryScheduler (APScheduler
jobs) until they succeed or reach the attempt cap, which is a terminal, audited state.
"""
import asyncio
import json
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Optional, Dict, Any, List, Callable

import httpx
from apscheduler.job import Job
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from lead_qualifier.config import settings
from lead_qualifier.core.exceptions import DeliveryError
from lead_qualifier.core.security import sign_payload
from lead_qualifier.database import async_session_factory
from lead_qualifier.models.activity import Actions
from lead_qualifier.models.webhook import Webhook, WebhookDelivery, DeliveryStatus
from lead_qualifier.repositories.activity_repo import ActivityLogRepository
from lead_qualifier.repositories.webhook_repo import WebhookRepository, WebhookDeliveryRepository

logger = logging.getLogger(__name__)


def backoff_interval(attempt_count: int, base: float = None, maximum: float = None) -> timedelta:
    """Delay before the next attempt after `attempt_count` failures: base * 2^(n-1), capped."""
    base = settings.WEBHOOK_RETRY_BASE_SECONDS if base is None else base
    maximum = settings.WEBHOOK_RETRY_MAX_SECONDS if maximum is None else maximum
    seconds = min(base * (2 ** max(0, attempt_count - 1)), maximum)
    return timedelta(seconds=seconds)


def serialize_delivery(delivery: WebhookDelivery) -> bytes:
    """Exact bytes that are signed and sent. Stable across retries of the same delivery."""
    body = {
        "event": delivery.event,
        "payload": delivery.payload,
        "timestamp": delivery.created_at.isoformat() + "Z",
        "delivery_id": str(delivery.id),
    }
    return json.dumps(body, separators=(",", ":"), default=str).encode("utf-8")


class WebhookDispatcher:
    """
    Emits events and performs delivery attempts.

    Collaborators are injectable for tests: `session_factory` (async
    sessions), `client` or `transport` (httpx) and `clock` (naive UTC now).
    """

    def __init__(
        self,
        session_factory=None,
        client: Optional[httpx.AsyncClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Optional[Callable[[], datetime]] = None,
        max_attempts: Optional[int] = None,
        retry_base_seconds: Optional[float] = None,
        retry_max_seconds: Optional[float] = None,
    ):
        self.session_factory = session_factory or async_session_factory
        self.clock = clock or datetime.utcnow
        self.max_attempts = max_attempts or settings.WEBHOOK_MAX_ATTEMPTS
        self.retry_base_seconds = (
            settings.WEBHOOK_RETRY_BASE_SECONDS if retry_base_seconds is None else retry_base_seconds
        )
        self.retry_max_seconds = (
            settings.WEBHOOK_RETRY_MAX_SECONDS if retry_max_seconds is None else retry_max_seconds
        )
        self.scheduler: Optional["RetryScheduler"] = None

        self._client = client
        self._owns_client = client is None
        self._transport = transport
        self._locks: Dict[uuid.UUID, list] = {}
        self._tasks = set()

    # --- HTTP ---

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=settings.WEBHOOK_TIMEOUT_SECONDS,
                transport=self._transport,
                follow_redirects=False,
            )
        return self._client

    async def aclose(self):
        """Wait for in-flight attempts, then close the HTTP client if we created it."""
        await self.drain()
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _headers(self, delivery: WebhookDelivery, body: bytes, secret: str) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "X-Webhook-Signature": sign_payload(body, secret),
            "X-Webhook-Event": delivery.event,
            "X-Webhook-Timestamp": delivery.created_at.isoformat() + "Z",
            "X-Webhook-Delivery": str(delivery.id),
        }
        if settings.WEBHOOK_USER_AGENT:
            headers["User-Agent"] = settings.WEBHOOK_USER_AGENT
        return headers

    async def _send(self, webhook: Webhook, delivery: WebhookDelivery) -> httpx.Response:
        """POST one delivery. Raises DeliveryError on transport errors and non-2xx answers."""
        body = serialize_delivery(delivery)
        try:
            response = await self._get_client().post(
                webhook.url,
                content=body,
                headers=self._headers(delivery, body, webhook.secret),
            )
        except httpx.HTTPError as e:
            raise DeliveryError(f"{e.__class__.__name__}: {e}") from e

        if not response.is_success:
            raise DeliveryError(
                f"Subscriber answered HTTP {response.status_code}",
                status_code=response.status_code,
                response_body=response.text,
            )
        return response

    # --- Emit ---

    async def emit(self, org_id: uuid.UUID, event: str, payload: Dict[str, Any]) -> List[uuid.UUID]:
        """
        Create one delivery per active subscription of the event and schedule
        the first attempts. Returns the new delivery ids without waiting for them.
        """
        async with self.session_factory() as session:
            webhooks = await WebhookRepository(session).get_subscribed(org_id, event)
            if not webhooks:
                return []

            now = self.clock()
            deliveries = [
                WebhookDelivery(
                    webhook_id=webhook.id,
                    org_id=org_id,
                    event=event,
                    payload=payload,
                    status=DeliveryStatus.PENDING,
                    # Due immediately, so the sweep recovers it if the first attempt never runs
                    next_retry_at=now,
                    created_at=now,
                    updated_at=now,
                )
                for webhook in webhooks
            ]
            for delivery in deliveries:
                session.add(delivery)
            await session.commit()
            delivery_ids = [delivery.id for delivery in deliveries]

        logger.info(f"Emitted {event} for org {org_id}: {len(delivery_ids)} deliveries")
        for delivery_id in delivery_ids:
            self._spawn(self.attempt(delivery_id))
        return delivery_ids

    # --- Attempts ---

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task):
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Webhook attempt crashed: {task.exception()!r}")

    async def drain(self):
        """Wait until every scheduled attempt has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    @asynccontextmanager
    async def _delivery_lock(self, delivery_id: uuid.UUID):
        entry = self._locks.get(delivery_id)
        if entry is None:
            entry = self._locks[delivery_id] = [asyncio.Lock(), 0]
        entry[1] += 1
        try:
            async with entry[0]:
                yield
        finally:
            entry[1] -= 1
            if entry[1] == 0:
                self._locks.pop(delivery_id, None)

    async def attempt(self, delivery_id: uuid.UUID) -> Optional[str]:
        """
        Attempt one delivery if it is pending and due.

        Returns the resulting status, or None when the attempt was skipped
        (already delivered or failed, not yet due, or locked by another worker).
        """
        async with self._delivery_lock(delivery_id):
            async with self.session_factory() as session:
                return await self._attempt_locked(session, delivery_id)

    async def _attempt_locked(self, session, delivery_id: uuid.UUID) -> Optional[str]:
        delivery = await WebhookDeliveryRepository(session).get_for_attempt(delivery_id, skip_locked=True)
        if delivery is None or delivery.status != DeliveryStatus.PENDING:
            return None

        now = self.clock()
        if delivery.next_retry_at is not None and delivery.next_retry_at > now:
            return None

        webhook = await session.get(Webhook, delivery.webhook_id)
        if webhook is None or not webhook.is_active:
            await self._mark_failed(session, delivery, now, "Subscription is no longer active")
            await session.commit()
            return delivery.status

        delivery.attempt_count += 1
        delivery.updated_at = now
        try:
            response = await self._send(webhook, delivery)
        except DeliveryError as e:
            delivery.response_status = e.status_code
            delivery.response_body = self._truncate(e.response_body)
            delivery.error_message = e.message
            if delivery.attempt_count >= self.max_attempts:
                await self._mark_failed(session, delivery, now, e.message)
            else:
                delivery.next_retry_at = now + backoff_interval(
                    delivery.attempt_count, self.retry_base_seconds, self.retry_max_seconds
                )
                logger.warning(
                    f"Webhook delivery {delivery.id} attempt {delivery.attempt_count}/{self.max_attempts} "
                    f"failed ({e.message}); retry at {delivery.next_retry_at.isoformat()}"
                )
        else:
            delivery.status = DeliveryStatus.DELIVERED
            delivery.response_status = response.status_code
            delivery.response_body = self._truncate(response.text)
            delivery.error_message = None
            delivery.next_retry_at = None
            if delivery.delivered_at is None:
                delivery.delivered_at = now
            logger.info(f"Webhook delivery {delivery.id} delivered on attempt {delivery.attempt_count}")

        session.add(delivery)
        await session.commit()

        if delivery.status == DeliveryStatus.PENDING and self.scheduler is not None:
            self.scheduler.schedule(delivery.id, delivery.next_retry_at)
        return delivery.status

    async def _mark_failed(self, session, delivery: WebhookDelivery, now: datetime, reason: str):
        delivery.status = DeliveryStatus.FAILED
        delivery.failed_at = now
        delivery.next_retry_at = None
        delivery.error_message = reason
        session.add(delivery)
        await ActivityLogRepository(session).log(
            org_id=delivery.org_id,
            action=Actions.WEBHOOK_FAILED,
            entity_type="webhook_delivery",
            entity_id=delivery.id,
            description=f"Webhook delivery failed permanently after {delivery.attempt_count} attempts",
            meta_data={
                "webhook_id": str(delivery.webhook_id),
                "event": delivery.event,
                "attempts": delivery.attempt_count,
                "last_status": delivery.response_status,
            },
            commit=False,
        )
        logger.error(
            f"Webhook delivery {delivery.id} (webhook {delivery.webhook_id}, org {delivery.org_id}) "
            f"failed permanently after {delivery.attempt_count} attempts: {reason}"
        )

    def _truncate(self, text: Optional[str]) -> Optional[str]:
        if text is None:
            return None
        return text[:settings.WEBHOOK_RESPONSE_BODY_LIMIT]

    # --- Recovery ---

    async def sweep(self, limit: Optional[int] = None) -> int:
        """Attempt every pending delivery whose retry time has passed. Returns how many were due."""
        limit = limit or settings.WEBHOOK_SWEEP_BATCH_SIZE
        async with self.session_factory() as session:
            due = await WebhookDeliveryRepository(session).get_due(self.clock(), limit=limit)
            due_ids = [delivery.id for delivery in due]

        if due_ids:
            logger.info(f"Webhook sweep: {len(due_ids)} deliveries due")
            await asyncio.gather(*(self.attempt(delivery_id) for delivery_id in due_ids))
        return len(due_ids)


class RetryScheduler:
    """
    Runs retries at their next_retry_at on an APScheduler AsyncIOScheduler.

    Each failed attempt becomes a `date` job for its delivery. An `interval`
    job sweeps the next_retry_at index and recovers anything no job covers
    (restarts, other workers, emits whose first attempt never ran).
    """

    SWEEP_JOB_ID = "webhook_retry_sweep"

    def __init__(
        self,
        dispatcher: WebhookDispatcher,
        sweep_interval: Optional[float] = None,
        job_scheduler: Optional[AsyncIOScheduler] = None,
    ):
        self.dispatcher = dispatcher
        self.sweep_interval = sweep_interval or settings.WEBHOOK_SWEEP_INTERVAL_SECONDS
        # next_retry_at values are naive UTC
        self.job_scheduler = job_scheduler or AsyncIOScheduler(timezone="UTC")
        dispatcher.scheduler = self

    @staticmethod
    def job_id(delivery_id: uuid.UUID) -> str:
        return f"webhook_retry:{delivery_id}"

    def __len__(self) -> int:
        return len(self.retry_jobs())

    def retry_jobs(self) -> List[Job]:
        return [job for job in self.job_scheduler.get_jobs() if job.id != self.SWEEP_JOB_ID]

    def get_retry_job(self, delivery_id: uuid.UUID) -> Optional[Job]:
        return self.job_scheduler.get_job(self.job_id(delivery_id))

    def schedule(self, delivery_id: uuid.UUID, due_at: datetime):
        """Attempt the delivery at `due_at`. Replaces an earlier schedule for the same delivery."""
        job_id = self.job_id(delivery_id)
        if self.job_scheduler.get_job(job_id) is not None:
            self.job_scheduler.remove_job(job_id)
        self.job_scheduler.add_job(
            self.dispatcher.attempt,
            trigger="date",
            run_date=due_at,
            args=[delivery_id],
            id=job_id,
            name=f"Webhook retry {delivery_id}",
            misfire_grace_time=None,
        )

    async def recover(self) -> int:
        """Schedule every pending retry found in the database."""
        async with self.dispatcher.session_factory() as session:
            pending = await WebhookDeliveryRepository(session).get_pending_schedule()
        for delivery in pending:
            self.schedule(delivery.id, delivery.next_retry_at)
        if pending:
            logger.info(f"Retry scheduler recovered {len(pending)} pending deliveries")
        return len(pending)

    async def start(self):
        if self.job_scheduler.running:
            logger.info("Webhook retry scheduler already running")
            return
        await self.recover()
        self.job_scheduler.add_job(
            self.dispatcher.sweep,
            trigger="interval",
            seconds=self.sweep_interval,
            id=self.SWEEP_JOB_ID,
            name="Webhook retry sweep",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.job_scheduler.start()
        logger.info(f"Webhook retry scheduler started (sweep every {self.sweep_interval}s)")

    async def stop(self):
        if self.job_scheduler.running:
            self.job_scheduler.shutdown(wait=False)
            logger.info("Webhook retry scheduler stopped")


# Dispatcher factory
_current_dispatcher: WebhookDispatcher = None


def get_webhook_dispatcher() -> WebhookDispatcher:
    """Get the process-wide dispatcher instance."""
    global _current_dispatcher
    if _current_dispatcher is None:
        _current_dispatcher = WebhookDispatcher()
    return _current_dispatcher


def set_webhook_dispatcher(dispatcher: Optional[WebhookDispatcher]) -> None:
    """Set the dispatcher (for testing or a custom transport)."""
    global _current_dispatcher
    _current_dispatcher = dispatcher

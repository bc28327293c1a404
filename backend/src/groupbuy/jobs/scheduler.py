"""Scheduled settlement jobs.

Each job loads its batch, then handles the items one at a time: take the
aggregate's Redis lock, re-check its state in a fresh unit of work, apply the
transition and commit. A failing item is logged and counted; the rest of the
batch still runs.
"""

import logging
import time
from dataclasses import dataclass
from datetime import date, timedelta
from typing import AsyncContextManager, Awaitable, Callable, Protocol, runtime_checkable
from uuid import UUID

from groupbuy.middleware.metrics import record_job_duration, record_job_items
from groupbuy.models import CampaignStatus, PaymentIntent, PaymentIntentStatus
from groupbuy.repositories import UnitOfWork
from groupbuy.services.campaign_lifecycle_service import CampaignLifecycleService
from groupbuy.services.invoice_service import InvoiceService
from groupbuy.services.payment_intent_service import MAX_RETRIES, PaymentIntentService
from groupbuy.services.redis_service import RedisService

logger = logging.getLogger(__name__)

UnitOfWorkFactory = Callable[[], AsyncContextManager[UnitOfWork]]

SUCCEEDED = "succeeded"
FAILED = "failed"
SKIPPED = "skipped"


@dataclass
class JobResult:
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0

    @property
    def total(self) -> int:
        return self.succeeded + self.failed + self.skipped

    def count(self, outcome: str) -> None:
        setattr(self, outcome, getattr(self, outcome) + 1)


@runtime_checkable
class PaymentRetryCallback(Protocol):
    """Hands a payment intent that was moved to PROCESSING to the payment gateway.

    The gateway reports back later through ``record_gateway_outcome``. Raising
    counts the attempt as failed.
    """

    async def __call__(self, payment_intent: PaymentIntent) -> None:
        ...


class LoggingPaymentRetryCallback:
    """Default callback used when no gateway is wired in."""

    async def __call__(self, payment_intent: PaymentIntent) -> None:
        logger.info(
            f"Payment intent {payment_intent.payment_intent_id} ready for gateway retry "
            f"(amount {payment_intent.amount}, retry_count {payment_intent.retry_count})"
        )


class SettlementScheduler:
    """Runs the periodic lifecycle, payment and invoice jobs."""

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        redis_service: RedisService,
        grace_period_days: int = 3,
        trigger_days_before_end: int = 2,
        max_retries: int = MAX_RETRIES,
        invoice_prefix: str = "INV",
        invoice_due_days: int = 30,
        lock_ttl: int = 30,
        retry_callback: PaymentRetryCallback | None = None,
        clock: Callable[[], date] = date.today,
    ):
        """Initialize the scheduler.

        Args:
            uow_factory: Opens a fresh unit of work; one is used per item
            redis_service: Provides the per-aggregate locks
            grace_period_days: Passed to the lifecycle service
            trigger_days_before_end: Grace period starts this many days before end_date
            max_retries: Retry ladder length
            invoice_prefix: Invoice number prefix
            invoice_due_days: Days until an issued invoice is due
            lock_ttl: Seconds a per-aggregate lock is held at most
            retry_callback: Payment gateway collaborator
            clock: Returns today's date
        """
        self.uow_factory = uow_factory
        self.redis_service = redis_service
        self.grace_period_days = grace_period_days
        self.trigger_days_before_end = trigger_days_before_end
        self.max_retries = max_retries
        self.invoice_prefix = invoice_prefix
        self.invoice_due_days = invoice_due_days
        self.lock_ttl = lock_ttl
        self.retry_callback = retry_callback or LoggingPaymentRetryCallback()
        self.clock = clock

    # ==================== Service Wiring ====================

    def _invoice_service(self, uow: UnitOfWork) -> InvoiceService:
        return InvoiceService(uow, self.invoice_prefix, self.invoice_due_days)

    def _payment_service(self, uow: UnitOfWork) -> PaymentIntentService:
        return PaymentIntentService(uow, self.max_retries, clock=self.clock)

    def _lifecycle_service(self, uow: UnitOfWork) -> CampaignLifecycleService:
        return CampaignLifecycleService(
            uow,
            grace_period_days=self.grace_period_days,
            invoice_service=self._invoice_service(uow),
            payment_intent_service=self._payment_service(uow),
            clock=self.clock,
        )

    # ==================== Jobs ====================

    async def trigger_grace_periods(self, today: date | None = None) -> JobResult:
        """Move ACTIVE campaigns ending within the trigger window into GRACE_PERIOD."""
        today = today or self.clock()
        cutoff = today + timedelta(days=self.trigger_days_before_end)

        async with self.uow_factory() as uow:
            campaigns = await uow.campaigns.find_active_ending_on_or_before(cutoff)
            campaign_ids = [c.campaign_id for c in campaigns]

        async def start(uow: UnitOfWork, campaign_id: UUID) -> bool:
            service = self._lifecycle_service(uow)
            campaign = await service.get_campaign(campaign_id)
            if campaign.status != CampaignStatus.ACTIVE:
                return False
            await service.start_grace_period(campaign_id)
            return True

        return await self._run_batch("grace_period_trigger", "campaign", campaign_ids, start)

    async def evaluate_campaigns(self, today: date | None = None) -> JobResult:
        """Lock or cancel GRACE_PERIOD campaigns whose grace period has ended."""
        today = today or self.clock()

        async with self.uow_factory() as uow:
            campaigns = await uow.campaigns.find_grace_period_ended_before(today)
            campaign_ids = [c.campaign_id for c in campaigns]

        async def evaluate(uow: UnitOfWork, campaign_id: UUID) -> bool:
            service = self._lifecycle_service(uow)
            campaign = await service.get_campaign(campaign_id)
            if campaign.status != CampaignStatus.GRACE_PERIOD:
                return False
            campaign = await service.evaluate_campaign(campaign_id)
            logger.info(f"Campaign {campaign_id} evaluated: {campaign.status.name}")
            return True

        return await self._run_batch("campaign_evaluation", "campaign", campaign_ids, evaluate)

    async def retry_failed_payments(self) -> JobResult:
        """Retry FAILED_RETRY_1/2 intents and escalate exhausted FAILED_RETRY_3 intents to AR."""
        retryable = (PaymentIntentStatus.FAILED_RETRY_1, PaymentIntentStatus.FAILED_RETRY_2)

        async with self.uow_factory() as uow:
            intents = await uow.payment_intents.find_by_statuses(
                [*retryable, PaymentIntentStatus.FAILED_RETRY_3]
            )
            intent_ids = [i.payment_intent_id for i in intents]

        logger.info(f"Found {len(intent_ids)} failed payments to retry or escalate")

        async def retry(uow: UnitOfWork, payment_intent_id: UUID) -> bool:
            service = self._payment_service(uow)
            intent = await service.get_payment_intent(payment_intent_id)

            if intent.status == PaymentIntentStatus.FAILED_RETRY_3:
                if intent.retry_count < self.max_retries:
                    return False
                await service.mark_as_sent_to_ar(payment_intent_id)
                return True

            if intent.status not in retryable or intent.retry_count >= self.max_retries:
                return False

            intent = await service.update_payment_status(
                payment_intent_id, PaymentIntentStatus.PROCESSING
            )
            try:
                await self.retry_callback(intent)
            except Exception:
                await service.record_gateway_outcome(payment_intent_id, succeeded=False)
                raise
            return True

        return await self._run_batch("payment_retry", "payment_intent", intent_ids, retry)

    async def mark_overdue_invoices(self, today: date | None = None) -> JobResult:
        today = today or self.clock()
        result = JobResult()
        started = time.perf_counter()

        lock_resource = "job:invoice_overdue"
        acquired, owner_id = await self.redis_service.acquire_lock(lock_resource, ttl=self.lock_ttl)
        if not acquired:
            logger.debug("Overdue invoice job already running elsewhere, skipping")
            result.skipped = 1
        else:
            try:
                async with self.uow_factory() as uow:
                    result.succeeded = await self._invoice_service(uow).mark_overdue_invoices(today)
            except Exception as e:
                logger.error(f"Error marking overdue invoices: {e}")
                result.failed = 1
            finally:
                await self.redis_service.release_lock(lock_resource, owner_id)

        self._report("invoice_overdue", result, started)
        return result

    # ==================== Batch Processing ====================

    async def _run_batch(
        self,
        job: str,
        kind: str,
        ids: list[UUID],
        action: Callable[[UnitOfWork, UUID], Awaitable[bool]],
    ) -> JobResult:
        result = JobResult()
        started = time.perf_counter()
        for item_id in ids:
            result.count(await self._run_item(job, f"{kind}:{item_id}", item_id, action))
        self._report(job, result, started)
        return result

    async def _run_item(
        self,
        job: str,
        resource: str,
        item_id: UUID,
        action: Callable[[UnitOfWork, UUID], Awaitable[bool]],
    ) -> str:
        acquired, owner_id = await self.redis_service.acquire_lock(resource, ttl=self.lock_ttl)
        if not acquired:
            logger.debug(f"[{job}] {resource} is locked by another worker, skipping")
            return SKIPPED

        try:
            async with self.uow_factory() as uow:
                applied = await action(uow, item_id)
            return SUCCEEDED if applied else SKIPPED
        except Exception as e:
            logger.error(f"[{job}] Failed to process {resource}: {e}")
            return FAILED
        finally:
            await self.redis_service.release_lock(resource, owner_id)

    @staticmethod
    def _report(job: str, result: JobResult, started: float) -> None:
        record_job_items(job, result.succeeded, result.failed, result.skipped)
        record_job_duration(job, time.perf_counter() - started)
        logger.info(
            f"[{job}] completed. Succeeded: {result.succeeded}, "
            f"Failed: {result.failed}, Skipped: {result.skipped}"
        )

"""Tests for the scheduled settlement jobs."""

import uuid
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from builders import (
    TODAY,
    make_brackets,
    make_campaign,
    make_invoice,
    make_payment_intent,
    make_pledge,
)
from fakes import fake_uow_factory
from groupbuy.jobs.scheduler import JobResult, LoggingPaymentRetryCallback, SettlementScheduler
from groupbuy.models import CampaignStatus, Invoice, InvoiceStatus, PaymentIntentStatus
from groupbuy.services.redis_service import RedisService

S = PaymentIntentStatus


@pytest.fixture
def retry_callback() -> AsyncMock:
    return AsyncMock(return_value=None)


@pytest.fixture
def scheduler(store, mock_redis, retry_callback) -> SettlementScheduler:
    return SettlementScheduler(
        fake_uow_factory(store),
        RedisService(mock_redis),
        grace_period_days=3,
        trigger_days_before_end=2,
        retry_callback=retry_callback,
        clock=lambda: TODAY,
    )


def put_grace_campaign(store, committed):
    campaign = make_campaign(
        CampaignStatus.GRACE_PERIOD,
        end_date=TODAY - timedelta(days=4),
        grace_period_end_date=TODAY - timedelta(days=1),
    )
    for entity in (campaign, *make_brackets(campaign.campaign_id)):
        store.put(entity)
    for quantity in committed:
        store.put(make_pledge(campaign.campaign_id, quantity))
    return campaign


class TestJobResult:

    def test_counts(self):
        result = JobResult()
        result.count("succeeded")
        result.count("succeeded")
        result.count("failed")
        result.count("skipped")

        assert (result.succeeded, result.failed, result.skipped) == (2, 1, 1)
        assert result.total == 4


class TestGracePeriodTrigger:

    @pytest.mark.asyncio
    async def test_starts_grace_period_within_window(self, scheduler, store):
        ending = make_campaign(CampaignStatus.ACTIVE, end_date=TODAY + timedelta(days=2))
        later = make_campaign(CampaignStatus.ACTIVE, end_date=TODAY + timedelta(days=10))
        store.put(ending)
        store.put(later)

        result = await scheduler.trigger_grace_periods()

        assert (result.succeeded, result.failed, result.skipped) == (1, 0, 0)
        assert ending.status == CampaignStatus.GRACE_PERIOD
        assert ending.grace_period_end_date == ending.end_date + timedelta(days=3)
        assert later.status == CampaignStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_locked_campaign_is_skipped(self, scheduler, store, mock_redis):
        campaign = make_campaign(CampaignStatus.ACTIVE, end_date=TODAY)
        store.put(campaign)
        mock_redis.set = AsyncMock(return_value=None)

        result = await scheduler.trigger_grace_periods()

        assert result.skipped == 1
        assert campaign.status == CampaignStatus.ACTIVE


class TestCampaignEvaluation:

    @pytest.mark.asyncio
    async def test_locks_or_cancels_each_campaign(self, scheduler, store):
        viable = put_grace_campaign(store, [7, 8])
        short = put_grace_campaign(store, [3, 5])

        result = await scheduler.evaluate_campaigns()

        assert result.succeeded == 2
        assert viable.status == CampaignStatus.LOCKED
        assert short.status == CampaignStatus.CANCELLED
        invoices = store.rows(Invoice)
        assert len(invoices) == 2
        assert {i.campaign_id for i in invoices} == {viable.campaign_id}

    @pytest.mark.asyncio
    async def test_grace_period_ending_today_waits(self, scheduler, store):
        campaign = put_grace_campaign(store, [15])
        campaign.grace_period_end_date = TODAY

        result = await scheduler.evaluate_campaigns()

        assert result.total == 0
        assert campaign.status == CampaignStatus.GRACE_PERIOD

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_the_batch(self, scheduler, store, mock_redis):
        broken = make_campaign(
            CampaignStatus.GRACE_PERIOD,
            grace_period_end_date=TODAY - timedelta(days=2),
        )
        store.put(broken)
        viable = put_grace_campaign(store, [20])

        result = await scheduler.evaluate_campaigns()

        assert (result.succeeded, result.failed) == (1, 1)
        assert broken.status == CampaignStatus.GRACE_PERIOD
        assert viable.status == CampaignStatus.LOCKED
        release = mock_redis.register_script.return_value
        assert release.await_count == 2


class TestPaymentRetry:

    @pytest.mark.asyncio
    async def test_retries_and_escalates(self, scheduler, store, retry_callback):
        retrying = make_payment_intent(S.FAILED_RETRY_1, retry_count=1)
        exhausted = make_payment_intent(S.FAILED_RETRY_3, retry_count=3)
        succeeded = make_payment_intent(S.SUCCEEDED, retry_count=1)
        for intent in (retrying, exhausted, succeeded):
            store.put(intent)

        result = await scheduler.retry_failed_payments()

        assert (result.succeeded, result.failed, result.skipped) == (2, 0, 0)
        assert retrying.status == S.PROCESSING
        assert retrying.retry_count == 1
        retry_callback.assert_awaited_once_with(retrying)
        assert exhausted.status == S.SENT_TO_AR
        assert succeeded.status == S.SUCCEEDED

    @pytest.mark.asyncio
    async def test_inconsistent_retry_count_is_skipped(self, scheduler, store):
        intent = make_payment_intent(S.FAILED_RETRY_3, retry_count=2)
        store.put(intent)

        result = await scheduler.retry_failed_payments()

        assert result.skipped == 1
        assert intent.status == S.FAILED_RETRY_3

    @pytest.mark.asyncio
    async def test_callback_failure_counts_a_retry(self, scheduler, store, retry_callback):
        intent = make_payment_intent(S.FAILED_RETRY_2, retry_count=2)
        store.put(intent)
        retry_callback.side_effect = ConnectionError("gateway down")

        result = await scheduler.retry_failed_payments()

        assert result.failed == 1
        assert intent.status == S.FAILED_RETRY_3
        assert intent.retry_count == 3

    @pytest.mark.asyncio
    async def test_default_callback_only_logs(self, store, mock_redis):
        intent = make_payment_intent(S.FAILED_RETRY_1, retry_count=1)
        store.put(intent)
        scheduler = SettlementScheduler(fake_uow_factory(store), RedisService(mock_redis))

        assert isinstance(scheduler.retry_callback, LoggingPaymentRetryCallback)
        result = await scheduler.retry_failed_payments()

        assert result.succeeded == 1
        assert intent.status == S.PROCESSING


class TestOverdueInvoices:

    @pytest.mark.asyncio
    async def test_marks_overdue(self, scheduler, store):
        overdue = make_invoice(
            make_pledge(uuid.uuid4(), 2), None, issue_date=TODAY - timedelta(days=45)
        )
        store.put(overdue)

        result = await scheduler.mark_overdue_invoices()

        assert result.succeeded == 1
        assert overdue.status == InvoiceStatus.OVERDUE

    @pytest.mark.asyncio
    async def test_skipped_while_another_worker_runs(self, scheduler, store, mock_redis):
        mock_redis.set = AsyncMock(return_value=None)

        result = await scheduler.mark_overdue_invoices()

        assert result.skipped == 1
        mock_redis.register_script.return_value.assert_not_awaited()

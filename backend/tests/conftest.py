"""Pytest configuration and fixtures for testing."""

from datetime import date, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from builders import TODAY, make_brackets, make_campaign
from fakes import FakeStore, FakeUnitOfWork
from groupbuy.models import Campaign, CampaignStatus


@pytest.fixture
def today() -> date:
    return TODAY


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def uow(store: FakeStore) -> FakeUnitOfWork:
    """In-memory unit of work over an empty store."""
    return FakeUnitOfWork(store)


# Mock Redis client fixture
@pytest.fixture
def mock_redis() -> AsyncMock:
    """Create a mock Redis client."""
    redis = AsyncMock()

    redis.get = AsyncMock(return_value=None)
    redis.set = AsyncMock(return_value=True)
    redis.setex = AsyncMock(return_value=True)
    redis.delete = AsyncMock(return_value=1)

    # register_script is synchronous and returns an awaitable script object
    release_script = AsyncMock(return_value=1)
    redis.register_script = MagicMock(return_value=release_script)

    return redis


@pytest.fixture
def active_campaign(uow: FakeUnitOfWork) -> Campaign:
    """ACTIVE campaign with brackets [10,50]@100 and [51,-]@80."""
    campaign = make_campaign(CampaignStatus.ACTIVE)
    uow.seed(campaign, *make_brackets(campaign.campaign_id))
    return campaign


@pytest.fixture
def grace_campaign(uow: FakeUnitOfWork) -> Campaign:
    """GRACE_PERIOD campaign with the default brackets, grace period ended yesterday."""
    campaign = make_campaign(
        CampaignStatus.GRACE_PERIOD,
        end_date=TODAY - timedelta(days=4),
        grace_period_end_date=TODAY - timedelta(days=1),
    )
    uow.seed(campaign, *make_brackets(campaign.campaign_id))
    return campaign

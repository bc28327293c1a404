"""API dependencies: database session, unit of work and engine services.

Configuration values are read here and passed to the services as explicit
constructor arguments.
"""

from typing import Annotated

from fastapi import Depends
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from groupbuy.core.config import settings
from groupbuy.core.database import get_db
from groupbuy.core.redis import get_redis
from groupbuy.repositories import SqlAlchemyUnitOfWork, UnitOfWork
from groupbuy.services.bracket_service import DiscountBracketService
from groupbuy.services.campaign_lifecycle_service import CampaignLifecycleService
from groupbuy.services.invoice_service import InvoiceService
from groupbuy.services.payment_intent_service import PaymentIntentService
from groupbuy.services.pledge_service import PledgeService
from groupbuy.services.redis_service import RedisService, get_redis_service as build_redis_service


async def get_redis_service(
    redis: Annotated[Redis, Depends(get_redis)],
) -> RedisService:
    return await build_redis_service(redis)


async def get_uow(
    db: Annotated[AsyncSession, Depends(get_db)],
) -> UnitOfWork:
    return SqlAlchemyUnitOfWork(db)


# Type aliases for cleaner dependency injection
UnitOfWorkDep = Annotated[UnitOfWork, Depends(get_uow)]
RedisServiceDep = Annotated[RedisService, Depends(get_redis_service)]


async def get_invoice_service(uow: UnitOfWorkDep) -> InvoiceService:
    return InvoiceService(
        uow,
        invoice_prefix=settings.INVOICE_NUMBER_PREFIX,
        due_days=settings.INVOICE_DUE_DAYS,
    )


async def get_payment_intent_service(uow: UnitOfWorkDep) -> PaymentIntentService:
    return PaymentIntentService(uow, max_retries=settings.PAYMENT_MAX_RETRIES)


async def get_lifecycle_service(
    uow: UnitOfWorkDep,
    invoice_service: Annotated[InvoiceService, Depends(get_invoice_service)],
    payment_intent_service: Annotated[PaymentIntentService, Depends(get_payment_intent_service)],
) -> CampaignLifecycleService:
    """Get CampaignLifecycleService instance sharing the request's unit of work."""
    return CampaignLifecycleService(
        uow,
        grace_period_days=settings.GRACE_PERIOD_DAYS,
        invoice_service=invoice_service,
        payment_intent_service=payment_intent_service,
    )


async def get_bracket_service(
    uow: UnitOfWorkDep,
    redis_service: RedisServiceDep,
) -> DiscountBracketService:
    return DiscountBracketService(
        uow,
        redis_service=redis_service,
        progress_cache_ttl=settings.BRACKET_PROGRESS_CACHE_TTL_SECONDS,
    )


async def get_pledge_service(uow: UnitOfWorkDep) -> PledgeService:
    return PledgeService(uow)


LifecycleServiceDep = Annotated[CampaignLifecycleService, Depends(get_lifecycle_service)]
BracketServiceDep = Annotated[DiscountBracketService, Depends(get_bracket_service)]
PledgeServiceDep = Annotated[PledgeService, Depends(get_pledge_service)]
InvoiceServiceDep = Annotated[InvoiceService, Depends(get_invoice_service)]
PaymentIntentServiceDep = Annotated[PaymentIntentService, Depends(get_payment_intent_service)]

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Awaitable, Callable

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from groupbuy.api.v1 import campaigns, invoices, payment_intents, pledges
from groupbuy.core.config import settings
from groupbuy.core.database import async_session_maker
from groupbuy.core.redis import close_redis, get_redis
from groupbuy.jobs.scheduler import JobResult, SettlementScheduler
from groupbuy.middleware.metrics import PrometheusMiddleware, metrics_endpoint
from groupbuy.repositories import unit_of_work_factory
from groupbuy.schemas import ErrorResponse
from groupbuy.services.exceptions import (
    CampaignValidationError,
    ConcurrentModificationError,
    GroupBuyError,
    IllegalStateError,
    InvalidInvoiceStatusTransitionError,
    InvalidPaymentStatusTransitionError,
    InvalidStateTransitionError,
    InvoiceValidationError,
    NotFoundError,
    PledgeValidationError,
    UnknownStatusError,
)
from groupbuy.services.redis_service import RedisService

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

# Background task control
_scheduler_tasks: list[asyncio.Task] = []


async def build_scheduler() -> SettlementScheduler:
    redis = await get_redis()
    return SettlementScheduler(
        unit_of_work_factory(async_session_maker),
        RedisService(redis),
        grace_period_days=settings.GRACE_PERIOD_DAYS,
        trigger_days_before_end=settings.GRACE_PERIOD_TRIGGER_DAYS_BEFORE_END,
        max_retries=settings.PAYMENT_MAX_RETRIES,
        invoice_prefix=settings.INVOICE_NUMBER_PREFIX,
        invoice_due_days=settings.INVOICE_DUE_DAYS,
        lock_ttl=settings.JOB_LOCK_TTL_SECONDS,
    )


async def scheduler_loop(
    name: str,
    interval: int,
    job: Callable[[], Awaitable[JobResult]],
):
    """Run ``job`` every ``interval`` seconds until cancelled."""
    while True:
        try:
            await job()
            await asyncio.sleep(interval)

        except asyncio.CancelledError:
            logger.info(f"{name} loop cancelled")
            break
        except Exception as e:
            logger.error(f"Error in {name} loop: {e}")
            await asyncio.sleep(interval)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    logger.info("Starting application...")

    if settings.SCHEDULER_ENABLED:
        logger.info("Starting scheduler loops...")
        scheduler = await build_scheduler()
        loops = [
            ("grace_period_trigger", settings.GRACE_PERIOD_CHECK_INTERVAL_SECONDS,
             scheduler.trigger_grace_periods),
            ("campaign_evaluation", settings.CAMPAIGN_EVALUATION_INTERVAL_SECONDS,
             scheduler.evaluate_campaigns),
            ("payment_retry", settings.PAYMENT_RETRY_INTERVAL_SECONDS,
             scheduler.retry_failed_payments),
            ("invoice_overdue", settings.INVOICE_OVERDUE_INTERVAL_SECONDS,
             scheduler.mark_overdue_invoices),
        ]
        for name, interval, job in loops:
            _scheduler_tasks.append(asyncio.create_task(scheduler_loop(name, interval, job)))

    yield

    logger.info("Stopping background tasks")
    for task in _scheduler_tasks:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
    _scheduler_tasks.clear()
    await close_redis()


app = FastAPI(
    title="Group Buy Settlement Engine",
    version="1.0.0",
    description="Campaign lifecycle, invoicing and payment collection for group buying",
    lifespan=lifespan,
)

# Prometheus Metrics Middleware (must be first to capture all requests)
app.add_middleware(PrometheusMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Domain error -> HTTP status. First match wins.
ERROR_STATUS: list[tuple[type[GroupBuyError], int]] = [
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConcurrentModificationError, status.HTTP_409_CONFLICT),
    (InvalidStateTransitionError, status.HTTP_409_CONFLICT),
    (InvalidPaymentStatusTransitionError, status.HTTP_409_CONFLICT),
    (InvalidInvoiceStatusTransitionError, status.HTTP_409_CONFLICT),
    (IllegalStateError, status.HTTP_409_CONFLICT),
    (CampaignValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (InvoiceValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (PledgeValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (UnknownStatusError, status.HTTP_422_UNPROCESSABLE_ENTITY),
]


def status_for(exc: GroupBuyError) -> int:
    for exc_type, code in ERROR_STATUS:
        if isinstance(exc, exc_type):
            return code
    return status.HTTP_400_BAD_REQUEST


@app.exception_handler(GroupBuyError)
async def groupbuy_error_handler(request: Request, exc: GroupBuyError) -> JSONResponse:
    code = status_for(exc)
    if code >= 409:
        logger.warning(f"{request.method} {request.url.path} -> {code}: {exc}")
    return JSONResponse(
        status_code=code,
        content=ErrorResponse(
            detail=str(exc),
            error=type(exc).__name__,
            retryable=isinstance(exc, ConcurrentModificationError),
        ).model_dump(by_alias=True),
    )


# Include API routers
app.include_router(campaigns.router, prefix="/api/v1/campaigns", tags=["campaigns"])
app.include_router(pledges.router, prefix="/api/v1/pledges", tags=["pledges"])
app.include_router(invoices.router, prefix="/api/v1/invoices", tags=["invoices"])
app.include_router(
    payment_intents.router, prefix="/api/v1/payment-intents", tags=["payment-intents"]
)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


# Prometheus metrics endpoint
app.add_route("/metrics", metrics_endpoint)

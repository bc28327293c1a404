from groupbuy.repositories.protocols import (
    CampaignRepository,
    DiscountBracketRepository,
    FulfillmentRepository,
    InvoiceRepository,
    PaymentIntentRepository,
    PledgeRepository,
    UnitOfWork,
)
from groupbuy.repositories.sql import SqlAlchemyUnitOfWork, unit_of_work_factory

__all__ = [
    "CampaignRepository",
    "DiscountBracketRepository",
    "PledgeRepository",
    "InvoiceRepository",
    "PaymentIntentRepository",
    "FulfillmentRepository",
    "UnitOfWork",
    "SqlAlchemyUnitOfWork",
    "unit_of_work_factory",
]

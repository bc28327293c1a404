"""Read-only fulfillment gate consulted before a campaign completes."""

from collections import defaultdict
from typing import Iterable
from uuid import UUID

from groupbuy.models import CampaignFulfillment, DeliveryStatus
from groupbuy.repositories import UnitOfWork


class FulfillmentService:

    def __init__(self, uow: UnitOfWork):
        self.uow = uow

    async def find_all_by_campaign_id(self, campaign_id: UUID) -> list[CampaignFulfillment]:
        return await self.uow.fulfillments.find_by_campaign_id(campaign_id)

    async def are_all_delivered(self, campaign_id: UUID, pledge_ids: Iterable[UUID]) -> bool:
        """True when every pledge has fulfillment rows and all of them are DELIVERED.

        A pledge without any fulfillment row counts as not delivered.
        """
        by_pledge: dict[UUID, list[CampaignFulfillment]] = defaultdict(list)
        for fulfillment in await self.find_all_by_campaign_id(campaign_id):
            by_pledge[fulfillment.pledge_id].append(fulfillment)

        for pledge_id in pledge_ids:
            rows = by_pledge.get(pledge_id)
            if not rows:
                return False
            if any(row.delivery_status != DeliveryStatus.DELIVERED for row in rows):
                return False
        return True

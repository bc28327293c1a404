"""Seed data script for development and manual testing.

Creates:
- 1 ACTIVE campaign with three discount brackets ($120 / $100 / $80)
- N organizations, each with a PENDING pledge on that campaign
- 1 DRAFT campaign with brackets, ready to be published

Environment Variables:
    CAMPAIGN_DAYS_LEFT: Days until the active campaign ends (default: 5)
    PLEDGE_COUNT: Number of organizations pledging (default: 5)
    RESET_DATA: Set to "true" to clear all engine tables before seeding (default: false)

Usage:
    uv run python -m scripts.seed_data

    # Campaign that enters its grace period on the next scheduler tick
    RESET_DATA=true CAMPAIGN_DAYS_LEFT=1 uv run python -m scripts.seed_data
"""

import asyncio
import os
import random
import uuid
from datetime import date, timedelta
from decimal import Decimal

CAMPAIGN_DAYS_LEFT = int(os.getenv("CAMPAIGN_DAYS_LEFT", "5"))
PLEDGE_COUNT = int(os.getenv("PLEDGE_COUNT", "5"))
RESET_DATA = os.getenv("RESET_DATA", "false").lower() == "true"

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from groupbuy.core.database import async_session_maker, engine
from groupbuy.models import (
    Campaign,
    CampaignStatus,
    DiscountBracket,
    Pledge,
    PledgeStatus,
)
from scripts.reset_db import TABLES

# (min_quantity, max_quantity, unit_price)
BRACKET_TABLE = [
    (10, 19, Decimal("120.00")),
    (20, 49, Decimal("100.00")),
    (50, None, Decimal("80.00")),
]


async def reset_all(session: AsyncSession) -> None:
    print("Resetting engine tables...")
    for table in TABLES:
        await session.execute(text(f"DELETE FROM {table}"))
    await session.commit()
    print("  Cleared " + ", ".join(TABLES))


def build_brackets(campaign_id: uuid.UUID) -> list[DiscountBracket]:
    return [
        DiscountBracket(
            bracket_id=uuid.uuid4(),
            campaign_id=campaign_id,
            min_quantity=low,
            max_quantity=high,
            unit_price=price,
            bracket_order=order,
        )
        for order, (low, high, price) in enumerate(BRACKET_TABLE)
    ]


async def seed_active_campaign(session: AsyncSession, supplier_id: uuid.UUID) -> Campaign:
    print("Seeding active campaign...")
    today = date.today()
    campaign = Campaign(
        campaign_id=uuid.uuid4(),
        supplier_id=supplier_id,
        title="Bulk nitrile gloves (case of 1000)",
        description="Group purchase for member clinics",
        product_details={"sku": "GLV-NIT-1000", "unit": "case"},
        target_quantity=BRACKET_TABLE[0][0],
        start_date=today - timedelta(days=7),
        end_date=today + timedelta(days=CAMPAIGN_DAYS_LEFT),
        status=CampaignStatus.ACTIVE,
    )
    session.add(campaign)
    session.add_all(build_brackets(campaign.campaign_id))

    for _ in range(PLEDGE_COUNT):
        session.add(Pledge(
            pledge_id=uuid.uuid4(),
            campaign_id=campaign.campaign_id,
            organization_id=uuid.uuid4(),
            quantity=random.randint(1, 8),
            status=PledgeStatus.PENDING,
        ))

    await session.commit()

    print(f"  Created campaign: {campaign.campaign_id}")
    print(f"    End date: {campaign.end_date}")
    print(f"    Pledges: {PLEDGE_COUNT}")
    return campaign


async def seed_draft_campaign(session: AsyncSession, supplier_id: uuid.UUID) -> Campaign:
    print("Seeding draft campaign...")
    today = date.today()
    campaign = Campaign(
        campaign_id=uuid.uuid4(),
        supplier_id=supplier_id,
        title="Surgical masks (box of 50)",
        target_quantity=BRACKET_TABLE[0][0],
        start_date=today,
        end_date=today + timedelta(days=14),
        status=CampaignStatus.DRAFT,
    )
    session.add(campaign)
    session.add_all(build_brackets(campaign.campaign_id))
    await session.commit()

    print(f"  Created campaign: {campaign.campaign_id}")
    return campaign


async def main():
    print("=" * 60)
    print("Group-Buy Settlement Engine - Seed Data Script")
    print("=" * 60)
    print(f"  RESET_DATA: {RESET_DATA}")
    print(f"  CAMPAIGN_DAYS_LEFT: {CAMPAIGN_DAYS_LEFT}")
    print(f"  PLEDGE_COUNT: {PLEDGE_COUNT}")
    print("=" * 60)

    supplier_id = uuid.uuid4()
    async with async_session_maker() as session:
        if RESET_DATA:
            await reset_all(session)
        active = await seed_active_campaign(session, supplier_id)
        draft = await seed_draft_campaign(session, supplier_id)

    print("=" * 60)
    print("Seed data complete!")
    print(f"  Supplier: {supplier_id}")
    print(f"  Active Campaign: {active.campaign_id}")
    print(f"  Draft Campaign: {draft.campaign_id}")
    print("=" * 60)
    print("")
    print("Publish the draft campaign with:")
    print(f"  curl -X POST http://localhost:8000/api/v1/campaigns/{draft.campaign_id}/publish")

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())

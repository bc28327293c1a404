"""Discount bracket evaluation: price tiers and the minimum viable quantity.

Lookups never mutate state. Brackets are only written while a campaign is
still a DRAFT, through ``replace_brackets``.
"""

import logging
import uuid
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional, Sequence
from uuid import UUID

from groupbuy.models import CampaignStatus, DiscountBracket, PledgeStatus
from groupbuy.repositories import UnitOfWork
from groupbuy.services.exceptions import CampaignNotFoundError, CampaignValidationError
from groupbuy.services.redis_service import RedisService

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")
TWO_PLACES = Decimal("0.01")


def find_bracket_for_quantity(
    brackets: Sequence[DiscountBracket], quantity: int
) -> Optional[DiscountBracket]:
    """Return the bracket whose range contains ``quantity``.

    A quantity below the first bracket (campaign not yet viable) resolves to
    the first bracket so callers can still display its price.

    Args:
        brackets: Brackets of one campaign, in any order
        quantity: Total pledged quantity

    Returns:
        Matching bracket, or None if there are no brackets
    """
    if not brackets:
        return None
    ordered = sorted(brackets, key=lambda b: b.bracket_order)
    for bracket in ordered:
        if bracket.contains(quantity):
            return bracket
    return ordered[0]


def find_next_bracket(
    brackets: Sequence[DiscountBracket], quantity: int
) -> Optional[DiscountBracket]:
    """Return the bracket after the one containing ``quantity``, None at the top tier."""
    current = find_bracket_for_quantity(brackets, quantity)
    if current is None:
        return None
    later = [b for b in brackets if b.bracket_order > current.bracket_order]
    return min(later, key=lambda b: b.bracket_order) if later else None


def validate_bracket_partition(brackets: Sequence[DiscountBracket]) -> None:
    """Check the authoring contract for a campaign's bracket set.

    Brackets must be given in order 0..n-1, be contiguous and non-overlapping,
    carry positive unit prices, and only the last one may (and must) be
    unbounded.

    Raises:
        CampaignValidationError: Naming the first violated rule
    """
    if not brackets:
        raise CampaignValidationError("At least one discount bracket is required")

    for index, bracket in enumerate(brackets):
        if bracket.bracket_order != index:
            raise CampaignValidationError(
                f"Bracket order must be strictly increasing from 0, "
                f"got {bracket.bracket_order} at position {index}"
            )
        if bracket.unit_price is None or bracket.unit_price <= 0:
            raise CampaignValidationError(
                f"Bracket {index} unit price must be positive"
            )
        if bracket.min_quantity < 0:
            raise CampaignValidationError(
                f"Bracket {index} minimum quantity must not be negative"
            )

        is_last = index == len(brackets) - 1
        if bracket.max_quantity is None:
            if not is_last:
                raise CampaignValidationError(
                    f"Only the last bracket may be unbounded (bracket {index})"
                )
        else:
            if is_last:
                raise CampaignValidationError(
                    "The last bracket must be unbounded (max quantity must be empty)"
                )
            if bracket.max_quantity <= bracket.min_quantity:
                raise CampaignValidationError(
                    f"Bracket {index} max quantity must be greater than min quantity"
                )

        if index > 0:
            previous = brackets[index - 1]
            if bracket.min_quantity != previous.max_quantity + 1:
                raise CampaignValidationError(
                    f"Brackets {index - 1} and {index} must be contiguous: expected min "
                    f"quantity {previous.max_quantity + 1}, got {bracket.min_quantity}"
                )


def calculate_percentage_to_next_tier(
    total: int,
    current: Optional[DiscountBracket],
    next_bracket: Optional[DiscountBracket],
) -> Decimal:
    """Progress from the current tier's minimum towards the next tier's, 0-100 with 2 dp."""
    if current is None:
        return Decimal("0")
    if next_bracket is None:
        return Decimal("100.00")

    span = next_bracket.min_quantity - current.min_quantity
    if span <= 0:
        return Decimal("0")

    # Below the current tier (not yet viable) counts as no progress
    progress = Decimal(max(total - current.min_quantity, 0)) * HUNDRED / Decimal(span)
    return progress.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class BracketSnapshot:
    """Detached copy of a bracket, safe to cache and serialize."""

    bracket_id: UUID
    min_quantity: int
    max_quantity: Optional[int]
    unit_price: Decimal
    bracket_order: int

    @classmethod
    def from_bracket(cls, bracket: DiscountBracket) -> "BracketSnapshot":
        return cls(
            bracket_id=bracket.bracket_id,
            min_quantity=bracket.min_quantity,
            max_quantity=bracket.max_quantity,
            unit_price=bracket.unit_price,
            bracket_order=bracket.bracket_order,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "bracket_id": str(self.bracket_id),
            "min_quantity": self.min_quantity,
            "max_quantity": self.max_quantity,
            "unit_price": str(self.unit_price),
            "bracket_order": self.bracket_order,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BracketSnapshot":
        return cls(
            bracket_id=UUID(data["bracket_id"]),
            min_quantity=data["min_quantity"],
            max_quantity=data["max_quantity"],
            unit_price=Decimal(data["unit_price"]),
            bracket_order=data["bracket_order"],
        )


@dataclass(frozen=True)
class BracketProgress:
    campaign_id: UUID
    total_pledged: int
    current_bracket: Optional[BracketSnapshot]
    next_bracket: Optional[BracketSnapshot]
    percentage_to_next_tier: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "campaign_id": str(self.campaign_id),
            "total_pledged": self.total_pledged,
            "current_bracket": self.current_bracket.to_dict() if self.current_bracket else None,
            "next_bracket": self.next_bracket.to_dict() if self.next_bracket else None,
            "percentage_to_next_tier": str(self.percentage_to_next_tier),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BracketProgress":
        current = data.get("current_bracket")
        nxt = data.get("next_bracket")
        return cls(
            campaign_id=UUID(data["campaign_id"]),
            total_pledged=data["total_pledged"],
            current_bracket=BracketSnapshot.from_dict(current) if current else None,
            next_bracket=BracketSnapshot.from_dict(nxt) if nxt else None,
            percentage_to_next_tier=Decimal(data["percentage_to_next_tier"]),
        )


class DiscountBracketService:
    """Read side of the bracket table, plus DRAFT-time authoring."""

    def __init__(
        self,
        uow: UnitOfWork,
        redis_service: RedisService | None = None,
        progress_cache_ttl: int = 5,
    ):
        """Initialize bracket service.

        Args:
            uow: Unit of work providing the repositories
            redis_service: Optional Redis service for the progress snapshot cache
            progress_cache_ttl: Snapshot lifetime in seconds
        """
        self.uow = uow
        self.redis_service = redis_service
        self.progress_cache_ttl = progress_cache_ttl

    async def get_all_brackets(self, campaign_id: UUID) -> list[DiscountBracket]:
        return await self.uow.brackets.find_by_campaign_id(campaign_id)

    async def find_first_bracket_min_quantity(self, campaign_id: UUID) -> int:
        """Minimum viable quantity: min quantity of bracket 0, or 0 without brackets."""
        brackets = await self.get_all_brackets(campaign_id)
        return brackets[0].min_quantity if brackets else 0

    async def get_current_bracket(
        self, campaign_id: UUID, quantity: int
    ) -> Optional[DiscountBracket]:
        brackets = await self.get_all_brackets(campaign_id)
        return find_bracket_for_quantity(brackets, quantity)

    async def get_next_bracket(
        self, campaign_id: UUID, quantity: int
    ) -> Optional[DiscountBracket]:
        brackets = await self.get_all_brackets(campaign_id)
        return find_next_bracket(brackets, quantity)

    async def get_unit_price_for_quantity(
        self, campaign_id: UUID, quantity: int
    ) -> Optional[Decimal]:
        bracket = await self.get_current_bracket(campaign_id, quantity)
        return bracket.unit_price if bracket else None

    async def calculate_total_pledged(self, campaign_id: UUID) -> int:
        """Sum of COMMITTED pledge quantities."""
        return await self.uow.pledges.sum_quantity(campaign_id, [PledgeStatus.COMMITTED])

    async def get_bracket_progress(self, campaign_id: UUID) -> BracketProgress:
        """Progress of an ACTIVE campaign towards its next price tier.

        Raises:
            CampaignNotFoundError: Campaign missing or not publicly visible
        """
        campaign = await self.uow.campaigns.get(campaign_id)
        if campaign is None:
            raise CampaignNotFoundError(f"Campaign not found: {campaign_id}")
        if campaign.status != CampaignStatus.ACTIVE:
            raise CampaignNotFoundError("Campaign is not available for public viewing")

        if self.redis_service is not None:
            cached = await self.redis_service.get_cached_bracket_progress(str(campaign_id))
            if cached:
                return BracketProgress.from_dict(cached)

        total = await self.calculate_total_pledged(campaign_id)
        brackets = await self.get_all_brackets(campaign_id)
        current = find_bracket_for_quantity(brackets, total)
        next_bracket = find_next_bracket(brackets, total)

        progress = BracketProgress(
            campaign_id=campaign_id,
            total_pledged=total,
            current_bracket=BracketSnapshot.from_bracket(current) if current else None,
            next_bracket=BracketSnapshot.from_bracket(next_bracket) if next_bracket else None,
            percentage_to_next_tier=calculate_percentage_to_next_tier(total, current, next_bracket),
        )

        if self.redis_service is not None:
            await self.redis_service.cache_bracket_progress(
                str(campaign_id), progress.to_dict(), self.progress_cache_ttl
            )
        return progress

    async def replace_brackets(
        self, campaign_id: UUID, brackets: Sequence[DiscountBracket]
    ) -> list[DiscountBracket]:
        """Replace the bracket table of a DRAFT campaign.

        Raises:
            CampaignNotFoundError: Campaign does not exist
            CampaignValidationError: Campaign is not a DRAFT, or the set breaks the partition rules
        """
        campaign = await self.uow.campaigns.get(campaign_id)
        if campaign is None:
            raise CampaignNotFoundError(f"Campaign not found: {campaign_id}")
        if campaign.status != CampaignStatus.DRAFT:
            raise CampaignValidationError(
                f"Discount brackets can only be changed while the campaign is DRAFT "
                f"(current: {campaign.status.name})"
            )

        ordered = sorted(brackets, key=lambda b: b.bracket_order)
        validate_bracket_partition(ordered)
        for bracket in ordered:
            bracket.campaign_id = campaign_id
            if bracket.bracket_id is None:
                bracket.bracket_id = uuid.uuid4()

        try:
            await self.uow.brackets.replace_for_campaign(campaign_id, ordered)
            campaign.touch()
            await self.uow.commit()
        except Exception:
            await self.uow.rollback()
            raise

        logger.info(f"Replaced {len(ordered)} discount brackets for campaign {campaign_id}")
        return ordered

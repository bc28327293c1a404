"""Status enums shared by models, services and API schemas."""

import enum

from sqlalchemy import Enum as SAEnum

from groupbuy.services.exceptions import UnknownStatusError


class StatusEnum(str, enum.Enum):
    """String-valued status with case-insensitive lookup."""

    @classmethod
    def parse(cls, value):
        """Resolve ``value`` to a member, ignoring case and surrounding whitespace.

        Raises:
            UnknownStatusError: If no member matches
        """
        if isinstance(value, cls):
            return value
        key = value.strip().lower() if isinstance(value, str) else None
        member = cls._value2member_map_.get(key)
        if member is None:
            raise UnknownStatusError(cls.__name__, value)
        return member


class CampaignStatus(StatusEnum):
    DRAFT = "draft"
    ACTIVE = "active"
    GRACE_PERIOD = "grace_period"
    LOCKED = "locked"
    CANCELLED = "cancelled"
    DONE = "done"

    @property
    def is_terminal(self) -> bool:
        return self in (CampaignStatus.CANCELLED, CampaignStatus.DONE)


class PledgeStatus(StatusEnum):
    PENDING = "pending"
    COMMITTED = "committed"
    WITHDRAWN = "withdrawn"


class InvoiceStatus(StatusEnum):
    SENT = "sent"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class PaymentIntentStatus(StatusEnum):
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED_RETRY_1 = "failed_retry_1"
    FAILED_RETRY_2 = "failed_retry_2"
    FAILED_RETRY_3 = "failed_retry_3"
    SENT_TO_AR = "sent_to_ar"
    COLLECTED_VIA_AR = "collected_via_ar"
    WRITTEN_OFF = "written_off"

    @property
    def is_terminal(self) -> bool:
        return self in (
            PaymentIntentStatus.SUCCEEDED,
            PaymentIntentStatus.COLLECTED_VIA_AR,
            PaymentIntentStatus.WRITTEN_OFF,
        )

    @classmethod
    def failed_retry(cls, retry_count: int) -> "PaymentIntentStatus":
        """Status naming the ``retry_count``-th failed attempt (1..3)."""
        try:
            return cls(f"failed_retry_{retry_count}")
        except ValueError:
            raise ValueError(f"Invalid retry count: {retry_count}") from None


class DeliveryStatus(StatusEnum):
    PENDING = "pending"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    FAILED = "failed"


def status_type(enum_cls: type[StatusEnum], name: str) -> SAEnum:
    """Column type storing the enum's lowercase value as VARCHAR."""
    return SAEnum(
        enum_cls,
        name=name,
        native_enum=False,
        length=20,
        values_callable=lambda members: [m.value for m in members],
    )

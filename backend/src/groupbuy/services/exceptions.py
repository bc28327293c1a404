"""
Domain exceptions for the campaign lifecycle and settlement engine.

Every failure is raised before anything is committed. The HTTP layer maps
the families below onto status codes (see ``groupbuy.main``).
"""


class GroupBuyError(Exception):
    """Base exception for engine errors."""
    pass


# ---- Not found ---------------------------------------------------------------

class NotFoundError(GroupBuyError):
    """An aggregate referenced by id does not exist."""
    pass


class CampaignNotFoundError(NotFoundError):
    pass


class PaymentIntentNotFoundError(NotFoundError):
    pass


class InvoiceNotFoundError(NotFoundError):
    pass


class PledgeNotFoundError(NotFoundError):
    pass


# ---- Campaign lifecycle ------------------------------------------------------

class InvalidStateTransitionError(GroupBuyError):
    """The requested campaign status change is not an edge of the lifecycle graph."""

    def __init__(self, current, target, message: str | None = None):
        self.current = current
        self.target = target
        if message is None:
            message = f"Cannot transition campaign from {current.name} to {target.name}"
        super().__init__(message)


class CampaignValidationError(GroupBuyError):
    """A transition precondition failed. The message names the violated rule."""
    pass


# ---- Pledges -----------------------------------------------------------------

class PledgeValidationError(GroupBuyError):
    pass


# ---- Payments ----------------------------------------------------------------

class InvalidPaymentStatusTransitionError(GroupBuyError):
    """The requested payment intent status change is not an edge of the workflow graph."""

    def __init__(self, current, target):
        self.current = current
        self.target = target
        super().__init__(f"Invalid status transition from {current.name} to {target.name}")


class IllegalStateError(GroupBuyError):
    """Payment workflow misuse: retry limit reached, wrong state for escalation, etc."""
    pass


# ---- Invoices ----------------------------------------------------------------

class InvoiceValidationError(GroupBuyError):
    pass


class InvalidInvoiceStatusTransitionError(GroupBuyError):

    def __init__(self, current, target):
        self.current = current
        self.target = target
        super().__init__(f"Invalid invoice status transition from {current.name} to {target.name}")


# ---- Infrastructure ----------------------------------------------------------

class ConcurrentModificationError(GroupBuyError):
    """A concurrent writer changed the same aggregate first. Safe to retry."""
    pass


class UnknownStatusError(GroupBuyError, ValueError):
    """A status string did not match any member of the status enum."""

    def __init__(self, enum_name: str, value):
        self.enum_name = enum_name
        self.value = value
        super().__init__(f"{value!r} is not a valid {enum_name}")

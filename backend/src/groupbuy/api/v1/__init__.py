"""API v1 routers."""

from groupbuy.api.v1 import campaigns, invoices, payment_intents, pledges

__all__ = ["campaigns", "invoices", "payment_intents", "pledges"]

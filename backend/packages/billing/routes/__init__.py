"""Billing API routes."""

from packages.billing.routes import billing, webhooks, plans, subscriptions

__all__ = ["billing", "webhooks", "plans", "subscriptions"]

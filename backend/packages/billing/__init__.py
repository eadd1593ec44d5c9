"""
Billing package - credit ledger, subscriptions, free trials and payments.

This package integrates with:
- Razorpay: orders, recurring subscriptions and webhooks

Balances live in a per-customer projection next to an append-only ledger;
every mutation writes both in one transaction under the customer row lock.
"""

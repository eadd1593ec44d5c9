from fastapi import APIRouter

from api.v1.routes import (
    health,
)
from packages.billing.routes import billing, webhooks, plans, subscriptions

api_router = APIRouter()

# Health check (no auth required)
api_router.include_router(health.router, prefix="/health", tags=["health"])

# Webhooks (no auth - signature verified internally)
api_router.include_router(webhooks.router, tags=["webhooks"])

# Plans (no auth - public pricing info)
api_router.include_router(plans.router, prefix="/billing/plans", tags=["billing"])

# Internal billing API, reached only from inside the cluster
api_router.include_router(billing.router, prefix="/billing", tags=["billing"])
api_router.include_router(
    subscriptions.router, prefix="/subscriptions", tags=["subscriptions"]
)

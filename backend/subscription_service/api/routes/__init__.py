# API Routes Module
from subscription_service.api.routes import (
    admin,
    limits,
    plans,
    subscriptions,
    webhooks,
)

__all__ = [
    "admin",
    "limits",
    "plans",
    "subscriptions",
    "webhooks",
]

#!/usr/bin/env python3
"""
Seed Plan Catalog Script

Creates or refreshes the STARTER, PROFESSIONAL and ENTERPRISE plans.
Safe to re-run: existing plans are updated in place by code.

Usage:
    cd backend
    python scripts/seed_plans.py
"""

import asyncio
import logging
import sys
from decimal import Decimal
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from subscription_service.config.settings import settings
from subscription_service.domain.subscription import Plan, PlanTier
from subscription_service.infrastructure.db.unit_of_work import SubscriptionUnitOfWork

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


DEFAULT_PLANS = [
    Plan(
        code="STARTER",
        name="Starter",
        tier=PlanTier.STARTER,
        description="Plan de prueba para equipos pequeños",
        price_monthly=Decimal("0"),
        price_annual=Decimal("0"),
        currency="COP",
        max_contacts=500,
        max_users=3,
        max_pipelines=1,
        max_deals=100,
        max_storage_gb=1,
        sort_order=1,
    ),
    Plan(
        code="PROFESSIONAL",
        name="Professional",
        tier=PlanTier.PROFESSIONAL,
        description="Para equipos comerciales en crecimiento",
        price_monthly=Decimal("49000"),
        price_annual=Decimal("490000"),
        currency="COP",
        max_contacts=5000,
        max_users=10,
        max_pipelines=5,
        max_deals=1000,
        max_storage_gb=10,
        is_featured=True,
        sort_order=2,
    ),
    Plan(
        code="ENTERPRISE",
        name="Enterprise",
        tier=PlanTier.ENTERPRISE,
        description="Sin límites de contactos, usuarios ni pipelines",
        price_monthly=Decimal("199000"),
        price_annual=Decimal("1990000"),
        currency="COP",
        max_contacts=None,
        max_users=None,
        max_pipelines=None,
        max_deals=None,
        max_storage_gb=100,
        sort_order=3,
    ),
]


async def seed_plans() -> dict:
    """Upsert every default plan."""
    stats = {"seeded": 0}
    async with SubscriptionUnitOfWork() as uow:
        for plan in DEFAULT_PLANS:
            await uow.plans.upsert(plan)
            stats["seeded"] += 1
    return stats


if __name__ == "__main__":
    result = asyncio.run(seed_plans())
    logger.info(f"Plan catalog seeded: {result}")

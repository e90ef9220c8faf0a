"""
Plan Repository

Read side of the plan catalog.
"""

import logging
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from subscription_service.domain.subscription import Plan, PlanTier
from subscription_service.infrastructure.db.models.plan import PlanModel
from subscription_service.infrastructure.db.repositories.base_repository import BaseRepository
from subscription_service.infrastructure.exceptions import PlanNotFoundError


logger = logging.getLogger(__name__)


class PlanRepository(BaseRepository[PlanModel]):
    """Catalog lookups returning immutable Plan domain models."""

    def __init__(self, session: AsyncSession):
        super().__init__(PlanModel, session)

    async def get_by_code(self, code: str) -> Optional[Plan]:
        """
        Get a plan by its unique code.

        Args:
            code: Plan code, case-insensitive

        Returns:
            Plan or None
        """
        stmt = select(PlanModel).where(PlanModel.code == code.strip().upper())
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._to_domain(model) if model else None

    async def get_by_tier(self, tier: PlanTier) -> Optional[Plan]:
        """Get the active plan of a tier."""
        stmt = (
            select(PlanModel)
            .where(PlanModel.tier == tier.value, PlanModel.active == True)  # noqa: E712
            .order_by(PlanModel.sort_order)
            .limit(1)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._to_domain(model) if model else None

    async def require_by_code(self, code: str) -> Plan:
        plan = await self.get_by_code(code)
        if plan is None:
            raise PlanNotFoundError(f"Plan not found: {code}")
        return plan

    async def require_by_tier(self, tier: PlanTier) -> Plan:
        plan = await self.get_by_tier(tier)
        if plan is None:
            raise PlanNotFoundError(f"No active plan for tier {tier.value}")
        return plan

    async def list_active(self) -> List[Plan]:
        """Active plans in display order."""
        stmt = (
            select(PlanModel)
            .where(PlanModel.active == True)  # noqa: E712
            .order_by(PlanModel.sort_order, PlanModel.code)
        )
        return [self._to_domain(model) for model in await self._list(stmt)]

    async def upsert(self, plan: Plan) -> Plan:
        """Insert or refresh a catalog row by code (used by seeding only)."""
        stmt = select(PlanModel).where(PlanModel.code == plan.code)
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()

        values = plan.model_dump(exclude={"id"})
        if model is None:
            model = await self._insert(PlanModel(**values))
            logger.info(f"Created plan {plan.code}")
        else:
            for field, value in values.items():
                setattr(model, field, value)
            await self._session.flush()
            logger.info(f"Updated plan {plan.code}")
        return self._to_domain(model)

    # =========================================================================
    # Mapping
    # =========================================================================

    @staticmethod
    def _to_domain(model: PlanModel) -> Plan:
        return Plan(
            id=model.id,
            code=model.code,
            name=model.name,
            tier=PlanTier(model.tier),
            description=model.description,
            price_monthly=model.price_monthly,
            price_annual=model.price_annual,
            currency=model.currency,
            max_contacts=model.max_contacts,
            max_users=model.max_users,
            max_pipelines=model.max_pipelines,
            max_deals=model.max_deals,
            max_storage_gb=model.max_storage_gb,
            paypal_plan_id_monthly=model.paypal_plan_id_monthly,
            paypal_plan_id_annual=model.paypal_plan_id_annual,
            active=model.active,
            is_featured=model.is_featured,
            sort_order=model.sort_order,
        )

"""
Plan Catalog Routes

Public read-only access to the active plans.
"""

from typing import List

from fastapi import APIRouter, Depends

from subscription_service.api.dependencies import get_uow_factory
from subscription_service.domain.subscription import PlanResponse
from subscription_service.infrastructure.db.unit_of_work import UnitOfWorkFactory


router = APIRouter()


@router.get("/plans", response_model=List[PlanResponse])
async def list_plans(uow_factory: UnitOfWorkFactory = Depends(get_uow_factory)):
    """Active plans in display order."""
    async with uow_factory() as uow:
        plans = await uow.plans.list_active()
    return [PlanResponse.from_plan(plan) for plan in plans]


@router.get("/plans/{code}", response_model=PlanResponse)
async def get_plan(code: str, uow_factory: UnitOfWorkFactory = Depends(get_uow_factory)):
    """Single plan by code. 404 when unknown."""
    async with uow_factory() as uow:
        plan = await uow.plans.require_by_code(code)
    return PlanResponse.from_plan(plan)

"""
Subscription Repository

Data access layer for subscription persistence.
Lookups can take a row lock so that transitions on one subscription
are serialized for the lifetime of the surrounding transaction.
"""

import logging
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from subscription_service.domain.subscription import (
    BillingPeriod,
    Subscription,
    SubscriptionStatus,
)
from subscription_service.infrastructure.db.models.plan import PlanModel
from subscription_service.infrastructure.db.models.subscription import SubscriptionModel
from subscription_service.infrastructure.db.repositories.base_repository import BaseRepository
from subscription_service.infrastructure.db.repositories.plan_repository import PlanRepository
from subscription_service.infrastructure.exceptions import (
    DuplicateError,
    SubscriptionNotFoundError,
)


logger = logging.getLogger(__name__)

# Columns copied verbatim between the entity and the row
_STATE_FIELDS = (
    "organization_id",
    "trial_start_date",
    "trial_end_date",
    "is_trial_used",
    "paypal_subscription_id",
    "paypal_payer_id",
    "paypal_agreement_id",
    "paypal_email",
    "current_period_start",
    "current_period_end",
    "next_billing_date",
    "canceled_at",
    "ended_at",
    "status_changed_at",
    "amount",
    "currency",
)


class SubscriptionRepository(BaseRepository[SubscriptionModel]):
    """
    Repository for subscription data access.

    Returns Subscription domain models with their plan attached.
    """

    def __init__(self, session: AsyncSession):
        super().__init__(SubscriptionModel, session)

    # =========================================================================
    # Query Methods
    # =========================================================================

    def _joined(self, for_update: bool = False):
        stmt = select(SubscriptionModel, PlanModel).join(
            PlanModel, SubscriptionModel.plan_id == PlanModel.id
        )
        if for_update:
            stmt = stmt.with_for_update(of=SubscriptionModel)
        return stmt

    async def _one(self, stmt) -> Optional[Subscription]:
        result = await self._session.execute(stmt)
        row = result.first()
        if row is None:
            return None
        model, plan = row
        return self._to_domain(model, plan)

    async def _many(self, stmt) -> List[Subscription]:
        result = await self._session.execute(stmt)
        return [self._to_domain(model, plan) for model, plan in result.all()]

    async def get_by_organization_id(
        self, organization_id: int, for_update: bool = False
    ) -> Optional[Subscription]:
        """
        Get subscription by organization ID.

        Args:
            organization_id: Organization owning the subscription
            for_update: Lock the row until the transaction ends

        Returns:
            Subscription domain model or None
        """
        stmt = self._joined(for_update).where(
            SubscriptionModel.organization_id == organization_id
        )
        return await self._one(stmt)

    async def require_by_organization_id(
        self, organization_id: int, for_update: bool = False
    ) -> Subscription:
        subscription = await self.get_by_organization_id(organization_id, for_update)
        if subscription is None:
            raise SubscriptionNotFoundError(
                f"No subscription found for organization {organization_id}"
            )
        return subscription

    async def get_by_id(self, subscription_id: UUID, for_update: bool = False) -> Optional[Subscription]:
        stmt = self._joined(for_update).where(SubscriptionModel.id == subscription_id)
        return await self._one(stmt)

    async def get_by_paypal_subscription_id(
        self, paypal_subscription_id: str, for_update: bool = False
    ) -> Optional[Subscription]:
        """Get subscription by the provider's subscription id."""
        stmt = self._joined(for_update).where(
            SubscriptionModel.paypal_subscription_id == paypal_subscription_id
        )
        return await self._one(stmt)

    # =========================================================================
    # Scan Queries
    # =========================================================================

    async def find_expired_trials(self, now: datetime) -> List[Subscription]:
        """TRIALING subscriptions whose trial end is in the past."""
        stmt = self._joined().where(
            SubscriptionModel.status == SubscriptionStatus.TRIALING.value,
            SubscriptionModel.trial_end_date < now,
        ).order_by(SubscriptionModel.trial_end_date)
        return await self._many(stmt)

    async def find_trials_ending_between(
        self, start: datetime, end: datetime
    ) -> List[Subscription]:
        """TRIALING subscriptions whose trial ends within [start, end)."""
        stmt = self._joined().where(
            SubscriptionModel.status == SubscriptionStatus.TRIALING.value,
            SubscriptionModel.trial_end_date >= start,
            SubscriptionModel.trial_end_date < end,
        ).order_by(SubscriptionModel.trial_end_date)
        return await self._many(stmt)

    async def find_in_status_since(
        self, status: SubscriptionStatus, cutoff: datetime
    ) -> List[Subscription]:
        """Subscriptions that entered `status` before `cutoff`."""
        stmt = self._joined().where(
            SubscriptionModel.status == status.value,
            SubscriptionModel.status_changed_at < cutoff,
        ).order_by(SubscriptionModel.status_changed_at)
        return await self._many(stmt)

    async def find_canceled_due_to_end(self, now: datetime) -> List[Subscription]:
        """CANCELED subscriptions whose granted window has run out."""
        window_end = func.coalesce(
            SubscriptionModel.ended_at,
            SubscriptionModel.current_period_end,
            SubscriptionModel.trial_end_date,
        )
        stmt = self._joined().where(
            SubscriptionModel.status == SubscriptionStatus.CANCELED.value,
            or_(window_end.is_(None), window_end <= now),
        )
        return await self._many(stmt)

    # =========================================================================
    # Mutation Methods
    # =========================================================================

    async def add(self, subscription: Subscription) -> Subscription:
        """
        Insert a new subscription.

        Raises:
            DuplicateError: the organization already has a subscription
        """
        model = SubscriptionModel(plan_id=subscription.plan.id, status=subscription.status.value)
        self._apply(model, subscription)
        try:
            model = await self._insert(model)
        except IntegrityError as e:
            raise DuplicateError(
                f"Organization {subscription.organization_id} already has a subscription",
                operation="insert",
                table="subscriptions",
                original_error=e,
            )
        logger.info(f"Created subscription {model.id} for organization {model.organization_id}")
        return subscription.model_copy(
            update={"id": model.id, "created_at": model.created_at, "updated_at": model.updated_at}
        )

    async def save(self, subscription: Subscription) -> Subscription:
        """Write the entity's current state back to its row."""
        model = await self.get_model(subscription.id)
        if model is None:
            raise SubscriptionNotFoundError(f"Subscription {subscription.id} not found")
        self._apply(model, subscription)
        await self._session.flush()
        return subscription.model_copy(update={"updated_at": model.updated_at})

    # =========================================================================
    # Mapping
    # =========================================================================

    @staticmethod
    def _apply(model: SubscriptionModel, subscription: Subscription) -> None:
        model.plan_id = subscription.plan.id
        model.status = subscription.status.value
        model.billing_period = subscription.billing_period.value
        for field in _STATE_FIELDS:
            setattr(model, field, getattr(subscription, field))

    @staticmethod
    def _to_domain(model: SubscriptionModel, plan: PlanModel) -> Subscription:
        """Convert database model to domain model."""
        return Subscription(
            id=model.id,
            plan=PlanRepository._to_domain(plan),
            status=SubscriptionStatus(model.status),
            billing_period=BillingPeriod(model.billing_period),
            created_at=model.created_at,
            updated_at=model.updated_at,
            **{field: getattr(model, field) for field in _STATE_FIELDS},
        )

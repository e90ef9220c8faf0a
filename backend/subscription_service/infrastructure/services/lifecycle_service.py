"""
Subscription Lifecycle Service

The state machine's application layer. Each operation runs one unit of
work that locks the subscription row, applies a transition on the domain
entity and commits. Status sync and event publishing happen afterwards,
outside the transaction, and never undo or fail the transition.
"""

import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable, Optional

from subscription_service.config.settings import Settings, get_settings
from subscription_service.domain.subscription import (
    BillingPeriod,
    PlanTier,
    Subscription,
    utc_now,
)
from subscription_service.infrastructure.db.unit_of_work import (
    UnitOfWorkFactory,
    get_unit_of_work,
)
from subscription_service.infrastructure.exceptions import (
    DuplicateError,
    TrialAlreadyUsedError,
)
from subscription_service.infrastructure.integrations import (
    OrganizationSyncClient,
    SubscriptionEventPublisher,
)


logger = logging.getLogger(__name__)

Notify = Callable[[SubscriptionEventPublisher], Awaitable]
Clock = Callable[[], datetime]


class LifecycleDispatcher:
    """
    Post-commit side effects of a transition.

    Every outbound call runs under its own timeout; failures are logged
    and reported through the return value only.
    """

    def __init__(
        self,
        sync_client: Optional[OrganizationSyncClient] = None,
        publisher: Optional[SubscriptionEventPublisher] = None,
        timeout: Optional[float] = None,
    ):
        self.sync_client = sync_client or OrganizationSyncClient()
        self.publisher = publisher or SubscriptionEventPublisher()
        self.timeout = timeout if timeout is not None else get_settings().integration_timeout_seconds

    async def push_status(self, subscription: Subscription) -> bool:
        try:
            await asyncio.wait_for(
                self.sync_client.push_status(
                    subscription.organization_id,
                    subscription.status,
                    subscription.trial_end_date,
                ),
                timeout=self.timeout,
            )
            return True
        except Exception as e:
            logger.error(
                f"[LIFECYCLE] Status sync failed for organization {subscription.organization_id}: {e}",
                exc_info=True,
            )
            return False

    async def notify(self, subscription: Subscription, notify: Notify) -> bool:
        try:
            await asyncio.wait_for(notify(self.publisher), timeout=self.timeout)
            return True
        except Exception as e:
            logger.error(
                f"[LIFECYCLE] Event publish failed for organization {subscription.organization_id}: {e}",
                exc_info=True,
            )
            return False

    async def dispatch(self, subscription: Subscription, notify: Optional[Notify] = None) -> None:
        """Sync the new status, then emit the transition's event."""
        await self.push_status(subscription)
        if notify is not None:
            await self.notify(subscription, notify)


class SubscriptionLifecycleManager:
    """
    Named lifecycle transitions for one-subscription-per-organization.

    Domain errors (invalid transition, downgrade, trial reuse, not found)
    propagate to the caller. No-op transitions return None and emit nothing.
    """

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory = get_unit_of_work,
        dispatcher: Optional[LifecycleDispatcher] = None,
        clock: Clock = utc_now,
        settings: Optional[Settings] = None,
    ):
        self.uow_factory = uow_factory
        self.dispatcher = dispatcher or LifecycleDispatcher()
        self.clock = clock
        self.settings = settings or get_settings()

    # =========================================================================
    # Queries
    # =========================================================================

    async def get_by_organization_id(self, organization_id: int) -> Subscription:
        async with self.uow_factory() as uow:
            return await uow.subscriptions.require_by_organization_id(organization_id)

    async def find_by_provider_subscription_id(self, paypal_subscription_id: str) -> Optional[Subscription]:
        async with self.uow_factory() as uow:
            return await uow.subscriptions.get_by_paypal_subscription_id(paypal_subscription_id)

    # =========================================================================
    # Customer-driven transitions
    # =========================================================================

    async def start_trial(self, organization_id: int, owner_email: Optional[str] = None) -> Subscription:
        """
        Provision the one-time trial on the STARTER plan.

        Raises:
            TrialAlreadyUsedError: the organization already consumed its trial
            DuplicateError: the organization already has a subscription
            PlanNotFoundError: the catalog has no STARTER plan
        """
        now = self.clock()
        async with self.uow_factory() as uow:
            existing = await uow.subscriptions.get_by_organization_id(organization_id, for_update=True)
            if existing is not None:
                if existing.is_trial_used:
                    raise TrialAlreadyUsedError(organization_id)
                raise DuplicateError(
                    f"Organization {organization_id} already has a subscription",
                    operation="insert",
                    table="subscriptions",
                )

            plan = await uow.plans.require_by_tier(PlanTier.STARTER)
            subscription = Subscription.start_trial(
                organization_id,
                plan,
                now,
                trial_days=self.settings.trial_days,
                currency=plan.currency,
            )
            subscription = await uow.subscriptions.add(subscription)

        logger.info(
            f"[LIFECYCLE] Trial started for organization {organization_id}, "
            f"ends {subscription.trial_end_date.isoformat()}"
        )
        await self.dispatcher.dispatch(
            subscription, lambda p: p.publish_trial_started(subscription, owner_email)
        )
        return subscription

    async def activate(
        self,
        organization_id: int,
        plan_code: str,
        billing_period: BillingPeriod,
        paypal_subscription_id: Optional[str] = None,
        paypal_payer_id: Optional[str] = None,
        paypal_agreement_id: Optional[str] = None,
        paypal_email: Optional[str] = None,
    ) -> Subscription:
        """Payment captured: start the paid billing window."""
        now = self.clock()
        async with self.uow_factory() as uow:
            subscription = await uow.subscriptions.require_by_organization_id(organization_id, for_update=True)
            plan = await uow.plans.require_by_code(plan_code)
            subscription.activate(
                plan,
                billing_period,
                now,
                paypal_subscription_id=paypal_subscription_id,
                paypal_payer_id=paypal_payer_id,
                paypal_agreement_id=paypal_agreement_id,
                paypal_email=paypal_email,
            )
            subscription = await uow.subscriptions.save(subscription)

        logger.info(
            f"[LIFECYCLE] Organization {organization_id} activated on {plan.code} "
            f"({billing_period.value}) until {subscription.current_period_end.isoformat()}"
        )
        await self.dispatcher.dispatch(
            subscription, lambda p: p.publish_subscription_activated(subscription)
        )
        return subscription

    async def upgrade_plan(
        self, organization_id: int, plan_code: str, billing_period: BillingPeriod
    ) -> Subscription:
        """
        Replace the plan of an active subscription with an equal or higher tier.

        Raises:
            DowngradeNotAllowedError: target tier is lower than the current one
            InvalidTransitionError: subscription is not ACTIVE
        """
        async with self.uow_factory() as uow:
            subscription = await uow.subscriptions.require_by_organization_id(organization_id, for_update=True)
            plan = await uow.plans.require_by_code(plan_code)
            previous_plan_code = subscription.plan.code
            subscription.change_plan(plan, billing_period)
            subscription = await uow.subscriptions.save(subscription)

        logger.info(
            f"[LIFECYCLE] Organization {organization_id} changed plan "
            f"{previous_plan_code} -> {plan.code} ({billing_period.value})"
        )
        await self.dispatcher.dispatch(
            subscription, lambda p: p.publish_plan_changed(subscription, previous_plan_code)
        )
        return subscription

    async def cancel(
        self, organization_id: int, immediate: bool = False, reason: Optional[str] = None
    ) -> Subscription:
        """
        Cancel now or at the end of the granted window.

        Cancelling an already canceled subscription returns it unchanged
        and emits nothing.
        """
        now = self.clock()
        async with self.uow_factory() as uow:
            subscription = await uow.subscriptions.require_by_organization_id(organization_id, for_update=True)
            if not subscription.cancel(now, immediate=immediate):
                logger.warning(f"[LIFECYCLE] Organization {organization_id} is already canceled")
                return subscription
            subscription = await uow.subscriptions.save(subscription)

        logger.info(
            f"[LIFECYCLE] Organization {organization_id} canceled "
            f"({'immediately' if immediate else 'at period end'})"
        )
        await self.dispatcher.dispatch(
            subscription,
            lambda p: p.publish_subscription_canceled(subscription, reason=reason, immediate=immediate),
        )
        return subscription

    # =========================================================================
    # Time and provider driven transitions
    # =========================================================================

    async def _guarded(
        self,
        organization_id: int,
        transition: Callable[[Subscription, datetime], bool],
        action: str,
    ) -> Optional[Subscription]:
        """Apply a transition that is a no-op outside its source states."""
        now = self.clock()
        async with self.uow_factory() as uow:
            subscription = await uow.subscriptions.require_by_organization_id(organization_id, for_update=True)
            if not transition(subscription, now):
                logger.warning(
                    f"[LIFECYCLE] Skipping {action} for organization {organization_id}: "
                    f"not due in status {subscription.status.value}"
                )
                return None
            subscription = await uow.subscriptions.save(subscription)

        logger.info(f"[LIFECYCLE] Organization {organization_id} {action} -> {subscription.status.value}")
        return subscription

    async def expire_trial(self, organization_id: int) -> Optional[Subscription]:
        """TRIALING -> GRACE_PERIOD. None when the subscription is not trialing."""
        subscription = await self._guarded(
            organization_id, lambda s, now: s.expire_trial(now), "expire trial"
        )
        if subscription is not None:
            await self.dispatcher.dispatch(subscription, lambda p: p.publish_trial_expired(subscription))
        return subscription

    async def suspend(
        self,
        organization_id: int,
        reason: str = "grace_period_ended",
        entered_before: Optional[datetime] = None,
    ) -> Optional[Subscription]:
        """
        GRACE_PERIOD or PAST_DUE -> SUSPENDED.

        With ``entered_before`` the subscription is only suspended when it
        has been in its current state since before that instant.
        """
        subscription = await self._guarded(
            organization_id, lambda s, now: s.suspend(now, entered_before), "suspend"
        )
        if subscription is not None:
            await self.dispatcher.dispatch(
                subscription, lambda p: p.publish_subscription_suspended(subscription, reason)
            )
        return subscription

    async def end_subscription(self, organization_id: int) -> Optional[Subscription]:
        """CANCELED -> ENDED once the granted window ran out."""
        subscription = await self._guarded(
            organization_id, lambda s, now: s.end(now), "end"
        )
        if subscription is not None:
            await self.dispatcher.dispatch(
                subscription, lambda p: p.publish_subscription_ended(subscription)
            )
        return subscription

    async def mark_past_due(self, organization_id: int, reason: Optional[str] = None) -> Optional[Subscription]:
        """Provider denied a payment on an ACTIVE subscription."""
        subscription = await self._guarded(
            organization_id, lambda s, now: s.mark_past_due(now), "mark past due"
        )
        if subscription is not None:
            await self.dispatcher.dispatch(
                subscription, lambda p: p.publish_payment_failed(subscription, reason)
            )
        return subscription

    async def recover_payment(self, organization_id: int) -> Optional[Subscription]:
        """Provider completed a payment on a PAST_DUE subscription."""
        subscription = await self._guarded(
            organization_id, lambda s, now: s.recover_payment(now), "recover payment"
        )
        if subscription is not None:
            await self.dispatcher.dispatch(
                subscription, lambda p: p.publish_payment_recovered(subscription)
            )
        return subscription

    async def cancel_by_provider(self, organization_id: int) -> Optional[Subscription]:
        """Provider reported the agreement cancelled. Leaves ended_at to the scan."""
        subscription = await self._guarded(
            organization_id, lambda s, now: s.cancel_by_provider(now), "provider cancel"
        )
        if subscription is not None:
            await self.dispatcher.dispatch(
                subscription,
                lambda p: p.publish_subscription_canceled(subscription, reason="provider_cancelled"),
            )
        return subscription


# Global instance (lazy initialization)
_lifecycle_manager: Optional[SubscriptionLifecycleManager] = None


def get_lifecycle_manager() -> SubscriptionLifecycleManager:
    """Get or create the lifecycle manager instance."""
    global _lifecycle_manager
    if _lifecycle_manager is None:
        _lifecycle_manager = SubscriptionLifecycleManager()
    return _lifecycle_manager

"""
Subscription Domain Models

Domain models for subscription management following Clean Architecture.
Enums, the Plan value object, the Subscription entity (lifecycle state
machine) and the request/response DTOs of the subscription bounded context.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID

from dateutil.relativedelta import relativedelta
from pydantic import BaseModel, Field

from subscription_service.infrastructure.exceptions import (
    DowngradeNotAllowedError,
    InvalidTransitionError,
)


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class PlanTier(str, Enum):
    """Ordered plan tiers. Upgrade legality is decided by `level`."""
    STARTER = "STARTER"
    PROFESSIONAL = "PROFESSIONAL"
    ENTERPRISE = "ENTERPRISE"

    @property
    def level(self) -> int:
        return _TIER_LEVELS[self]

    def next_tier(self) -> Optional["PlanTier"]:
        """Tier recommended when this one runs out of room."""
        for tier in PlanTier:
            if tier.level == self.level + 1:
                return tier
        return None


_TIER_LEVELS = {
    PlanTier.STARTER: 1,
    PlanTier.PROFESSIONAL: 2,
    PlanTier.ENTERPRISE: 3,
}


class SubscriptionStatus(str, Enum):
    """Subscription lifecycle status."""
    TRIALING = "TRIALING"
    ACTIVE = "ACTIVE"
    GRACE_PERIOD = "GRACE_PERIOD"
    SUSPENDED = "SUSPENDED"
    PAST_DUE = "PAST_DUE"
    CANCELED = "CANCELED"
    ENDED = "ENDED"


ACCESS_STATUSES = frozenset({
    SubscriptionStatus.ACTIVE,
    SubscriptionStatus.TRIALING,
    SubscriptionStatus.GRACE_PERIOD,
})


class BillingPeriod(str, Enum):
    """Billing period for subscriptions."""
    MONTHLY = "MONTHLY"
    ANNUAL = "ANNUAL"

    def advance(self, start: datetime) -> datetime:
        """End of a billing window that starts at `start`."""
        if self is BillingPeriod.ANNUAL:
            return start + relativedelta(years=1)
        return start + relativedelta(months=1)


class FeatureCode(str, Enum):
    """Countable features guarded by plan limits."""
    CONTACTS = "CONTACTS"
    USERS = "USERS"
    PIPELINES = "PIPELINES"
    DEALS = "DEALS"
    STORAGE = "STORAGE"

    @classmethod
    def parse(cls, value: str) -> Optional["FeatureCode"]:
        """Resolve a caller supplied code; unknown codes give None."""
        try:
            return cls(value.strip().upper())
        except ValueError:
            return None


# Features shown in the limits summary and accepted by the limit engine
LIMITED_FEATURES = (
    FeatureCode.CONTACTS,
    FeatureCode.USERS,
    FeatureCode.PIPELINES,
    FeatureCode.DEALS,
)


# =============================================================================
# Domain Entities
# =============================================================================

class Plan(BaseModel):
    """Catalog plan. Read-only from the lifecycle's point of view."""
    id: Optional[UUID] = None
    code: str
    name: str
    tier: PlanTier
    description: Optional[str] = None
    price_monthly: Decimal = Decimal("0")
    price_annual: Optional[Decimal] = None
    currency: str = "COP"
    max_contacts: Optional[int] = None
    max_users: Optional[int] = None
    max_pipelines: Optional[int] = None
    max_deals: Optional[int] = None
    max_storage_gb: Optional[int] = None
    paypal_plan_id_monthly: Optional[str] = None
    paypal_plan_id_annual: Optional[str] = None
    active: bool = True
    is_featured: bool = False
    sort_order: int = 0

    class Config:
        from_attributes = True
        frozen = True

    def limit_for(self, feature_code: FeatureCode) -> Optional[int]:
        """Numeric limit for a feature. None means unlimited."""
        return {
            FeatureCode.CONTACTS: self.max_contacts,
            FeatureCode.USERS: self.max_users,
            FeatureCode.PIPELINES: self.max_pipelines,
            FeatureCode.DEALS: self.max_deals,
            FeatureCode.STORAGE: self.max_storage_gb,
        }.get(feature_code)

    def price_for(self, billing_period: BillingPeriod) -> Decimal:
        """Price charged per billing window. Annual falls back to 12x monthly."""
        if billing_period is BillingPeriod.ANNUAL:
            if self.price_annual is not None:
                return self.price_annual
            return self.price_monthly * 12
        return self.price_monthly


class Subscription(BaseModel):
    """
    Core subscription entity and lifecycle state machine.

    Fields are only changed through the transition methods below; each one
    validates the current status, updates the derived fields and stamps
    `status_changed_at` when the status moves.
    """
    id: Optional[UUID] = None
    organization_id: int
    plan: Plan
    status: SubscriptionStatus
    billing_period: BillingPeriod = BillingPeriod.MONTHLY
    trial_start_date: Optional[datetime] = None
    trial_end_date: Optional[datetime] = None
    is_trial_used: bool = False
    paypal_subscription_id: Optional[str] = None
    paypal_payer_id: Optional[str] = None
    paypal_agreement_id: Optional[str] = None
    paypal_email: Optional[str] = None
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    next_billing_date: Optional[datetime] = None
    canceled_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    status_changed_at: Optional[datetime] = None
    amount: Optional[Decimal] = None
    currency: str = "COP"
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
        validate_assignment = True

    # -------------------------------------------------------------------------
    # Derived predicates
    # -------------------------------------------------------------------------

    def can_access(self) -> bool:
        return self.status in ACCESS_STATUSES

    def is_read_only(self) -> bool:
        return self.status == SubscriptionStatus.GRACE_PERIOD

    def is_active(self) -> bool:
        return self.status == SubscriptionStatus.ACTIVE

    def is_trialing(self) -> bool:
        return self.status == SubscriptionStatus.TRIALING

    def days_left_in_trial(self, now: Optional[datetime] = None) -> int:
        """Whole days until the trial ends, rounded up. 0 outside a trial."""
        if not self.is_trialing() or self.trial_end_date is None:
            return 0
        remaining = self.trial_end_date - (now or utc_now())
        if remaining <= timedelta(0):
            return 0
        days, rest = divmod(remaining, timedelta(days=1))
        return days + (1 if rest else 0)

    def period_end(self) -> Optional[datetime]:
        """End of the window the organization has already been granted."""
        return self.current_period_end or self.trial_end_date

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    @classmethod
    def start_trial(
        cls,
        organization_id: int,
        plan: Plan,
        now: datetime,
        trial_days: int,
        currency: str = "COP",
    ) -> "Subscription":
        """Create a fresh trialing subscription on the given (starter) plan."""
        return cls(
            organization_id=organization_id,
            plan=plan,
            status=SubscriptionStatus.TRIALING,
            billing_period=BillingPeriod.MONTHLY,
            trial_start_date=now,
            trial_end_date=now + timedelta(days=trial_days),
            is_trial_used=True,
            amount=Decimal("0"),
            currency=currency,
            status_changed_at=now,
        )

    def _move_to(self, status: SubscriptionStatus, now: datetime) -> None:
        if self.status != status:
            self.status = status
            self.status_changed_at = now

    def activate(
        self,
        plan: Plan,
        billing_period: BillingPeriod,
        now: datetime,
        paypal_subscription_id: Optional[str] = None,
        paypal_payer_id: Optional[str] = None,
        paypal_agreement_id: Optional[str] = None,
        paypal_email: Optional[str] = None,
    ) -> None:
        """Start a paid billing window after the provider captured payment."""
        if self.status == SubscriptionStatus.ACTIVE:
            raise InvalidTransitionError(self.status.value, "activate")

        self.plan = plan
        self.billing_period = billing_period
        self.paypal_subscription_id = paypal_subscription_id
        self.paypal_payer_id = paypal_payer_id
        self.paypal_agreement_id = paypal_agreement_id
        if paypal_email:
            self.paypal_email = paypal_email
        self.current_period_start = now
        self.current_period_end = billing_period.advance(now)
        self.next_billing_date = self.current_period_end
        self.amount = plan.price_for(billing_period)
        self.currency = plan.currency
        self.canceled_at = None
        self.ended_at = None
        self._move_to(SubscriptionStatus.ACTIVE, now)

    def change_plan(self, plan: Plan, billing_period: BillingPeriod) -> None:
        """Move an active subscription to an equal or higher tier."""
        if self.status != SubscriptionStatus.ACTIVE:
            raise InvalidTransitionError(self.status.value, "upgrade")
        if plan.tier.level < self.plan.tier.level:
            raise DowngradeNotAllowedError(self.plan.code, plan.code)

        self.plan = plan
        self.billing_period = billing_period
        self.amount = plan.price_for(billing_period)

    def expire_trial(self, now: datetime) -> bool:
        """TRIALING -> GRACE_PERIOD once the trial ended. False (no-op) otherwise."""
        if self.status != SubscriptionStatus.TRIALING:
            return False
        if self.trial_end_date is not None and self.trial_end_date >= now:
            return False
        self._move_to(SubscriptionStatus.GRACE_PERIOD, now)
        return True

    def suspend(self, now: datetime, entered_before: Optional[datetime] = None) -> bool:
        """
        GRACE_PERIOD or PAST_DUE -> SUSPENDED. Returns False otherwise.

        With ``entered_before`` the current state must have been entered
        before that instant.
        """
        if self.status not in (SubscriptionStatus.GRACE_PERIOD, SubscriptionStatus.PAST_DUE):
            return False
        if (
            entered_before is not None
            and self.status_changed_at is not None
            and self.status_changed_at >= entered_before
        ):
            return False
        self._move_to(SubscriptionStatus.SUSPENDED, now)
        return True

    def cancel(self, now: datetime, immediate: bool = False) -> bool:
        """
        Cancel now (ended immediately) or at the end of the granted window.

        Returns False for an already canceled subscription, leaving its
        cancellation and end dates untouched.
        """
        if self.status == SubscriptionStatus.ENDED:
            raise InvalidTransitionError(self.status.value, "cancel")
        if self.status == SubscriptionStatus.CANCELED:
            return False

        self.canceled_at = now
        self.ended_at = now if immediate else None
        self._move_to(SubscriptionStatus.CANCELED, now)
        return True

    def cancel_by_provider(self, now: datetime) -> bool:
        """Cancellation reported by the payment provider. No-op once canceled."""
        if self.status in (SubscriptionStatus.CANCELED, SubscriptionStatus.ENDED):
            return False
        self.canceled_at = now
        self._move_to(SubscriptionStatus.CANCELED, now)
        return True

    def mark_past_due(self, now: datetime) -> bool:
        """ACTIVE -> PAST_DUE after the provider denied a payment."""
        if self.status != SubscriptionStatus.ACTIVE:
            return False
        self._move_to(SubscriptionStatus.PAST_DUE, now)
        return True

    def recover_payment(self, now: datetime) -> bool:
        """PAST_DUE -> ACTIVE once a payment completes, rolling the window forward."""
        if self.status != SubscriptionStatus.PAST_DUE:
            return False
        if self.current_period_end is None or self.current_period_end <= now:
            self.current_period_start = now
            self.current_period_end = self.billing_period.advance(now)
            self.next_billing_date = self.current_period_end
        self._move_to(SubscriptionStatus.ACTIVE, now)
        return True

    def end(self, now: datetime) -> bool:
        """CANCELED -> ENDED once the granted window ran out. False before that."""
        if self.status != SubscriptionStatus.CANCELED:
            return False
        window_end = self.ended_at or self.period_end()
        if window_end is not None and window_end > now:
            return False
        self.ended_at = window_end or now
        self._move_to(SubscriptionStatus.ENDED, now)
        return True


# =============================================================================
# Request/Response DTOs
# =============================================================================

class StartTrialRequest(BaseModel):
    """Request DTO for provisioning a trial at onboarding."""
    organization_id: int = Field(..., gt=0, description="Organization requesting onboarding")
    owner_email: Optional[str] = Field(default=None, description="Owner contact for trial emails")


class ActivateSubscriptionRequest(BaseModel):
    """Payment success callback forwarded by the checkout collaborator."""
    organization_id: int = Field(..., gt=0)
    plan_code: str = Field(..., min_length=1, description="Paid plan code")
    billing_period: BillingPeriod = Field(default=BillingPeriod.MONTHLY)
    paypal_subscription_id: str = Field(..., min_length=1)
    paypal_payer_id: Optional[str] = None
    paypal_agreement_id: Optional[str] = None
    paypal_email: Optional[str] = None


class UpgradePlanRequest(BaseModel):
    """Request DTO for changing to an equal or higher plan."""
    organization_id: int = Field(..., gt=0)
    plan_code: str = Field(..., min_length=1, description="Target plan code")
    billing_period: BillingPeriod = Field(default=BillingPeriod.MONTHLY)


class CancelSubscriptionRequest(BaseModel):
    """Request DTO for cancelling a subscription."""
    organization_id: int = Field(..., gt=0)
    immediate: bool = Field(default=False, description="End access now instead of at period end")
    reason: Optional[str] = Field(default=None, max_length=500)


class PlanResponse(BaseModel):
    """Catalog entry as shown to customers."""
    code: str
    name: str
    tier: PlanTier
    description: Optional[str] = None
    price_monthly: Decimal
    price_annual: Optional[Decimal] = None
    currency: str
    max_contacts: Optional[int] = None
    max_users: Optional[int] = None
    max_pipelines: Optional[int] = None
    max_deals: Optional[int] = None
    max_storage_gb: Optional[int] = None
    is_featured: bool = False

    @classmethod
    def from_plan(cls, plan: Plan) -> "PlanResponse":
        return cls.model_validate(plan.model_dump())


class SubscriptionResponse(BaseModel):
    """Response DTO for a subscription with its derived flags."""
    id: Optional[UUID] = None
    organization_id: int
    plan_code: str
    plan_name: str
    plan_tier: PlanTier
    status: SubscriptionStatus
    billing_period: BillingPeriod
    trial_start_date: Optional[datetime] = None
    trial_end_date: Optional[datetime] = None
    is_trial_used: bool
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    next_billing_date: Optional[datetime] = None
    canceled_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    amount: Optional[Decimal] = None
    currency: str
    days_left_in_trial: int = Field(description="Whole days left in the trial")
    can_access: bool
    is_read_only: bool = Field(description="Grace period: reads allowed, writes blocked")
    is_active: bool

    @classmethod
    def from_subscription(
        cls, subscription: Subscription, now: Optional[datetime] = None
    ) -> "SubscriptionResponse":
        return cls(
            id=subscription.id,
            organization_id=subscription.organization_id,
            plan_code=subscription.plan.code,
            plan_name=subscription.plan.name,
            plan_tier=subscription.plan.tier,
            status=subscription.status,
            billing_period=subscription.billing_period,
            trial_start_date=subscription.trial_start_date,
            trial_end_date=subscription.trial_end_date,
            is_trial_used=subscription.is_trial_used,
            current_period_start=subscription.current_period_start,
            current_period_end=subscription.current_period_end,
            next_billing_date=subscription.next_billing_date,
            canceled_at=subscription.canceled_at,
            ended_at=subscription.ended_at,
            amount=subscription.amount,
            currency=subscription.currency,
            days_left_in_trial=subscription.days_left_in_trial(now),
            can_access=subscription.can_access(),
            is_read_only=subscription.is_read_only(),
            is_active=subscription.is_active(),
        )

"""
Lifecycle Event Models

Every outbound notification shares one envelope (who, which subscription,
when) and carries exactly one payload variant, discriminated by `kind`.
"""

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Literal, Optional, Union
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from subscription_service.domain.subscription import BillingPeriod, utc_now


class TrialStarted(BaseModel):
    kind: Literal["trial_started"] = "trial_started"
    trial_end_date: Optional[datetime] = None
    owner_email: Optional[str] = None


class TrialExpiring(BaseModel):
    kind: Literal["trial_expiring"] = "trial_expiring"
    days_left: int
    trial_end_date: Optional[datetime] = None


class TrialExpired(BaseModel):
    kind: Literal["trial_expired"] = "trial_expired"


class SubscriptionActivated(BaseModel):
    kind: Literal["subscription_activated"] = "subscription_activated"
    plan_code: str
    billing_period: BillingPeriod
    amount: Optional[Decimal] = None
    currency: str


class PlanChanged(BaseModel):
    kind: Literal["plan_changed"] = "plan_changed"
    previous_plan_code: str
    plan_code: str
    billing_period: BillingPeriod


class SubscriptionCanceled(BaseModel):
    kind: Literal["subscription_canceled"] = "subscription_canceled"
    reason: Optional[str] = None
    immediate: bool = False


class SubscriptionSuspended(BaseModel):
    kind: Literal["subscription_suspended"] = "subscription_suspended"
    reason: str


class SubscriptionEnded(BaseModel):
    kind: Literal["subscription_ended"] = "subscription_ended"
    ended_at: Optional[datetime] = None


class PaymentFailed(BaseModel):
    kind: Literal["payment_failed"] = "payment_failed"
    provider_subscription_id: Optional[str] = None
    reason: Optional[str] = None


class PaymentRecovered(BaseModel):
    kind: Literal["payment_recovered"] = "payment_recovered"
    provider_subscription_id: Optional[str] = None


EventPayload = Annotated[
    Union[
        TrialStarted,
        TrialExpiring,
        TrialExpired,
        SubscriptionActivated,
        PlanChanged,
        SubscriptionCanceled,
        SubscriptionSuspended,
        SubscriptionEnded,
        PaymentFailed,
        PaymentRecovered,
    ],
    Field(discriminator="kind"),
]


class LifecycleEvent(BaseModel):
    """Envelope shared by every lifecycle notification."""
    event_id: UUID = Field(default_factory=uuid4)
    event_type: str
    organization_id: int
    subscription_id: Optional[UUID] = None
    timestamp: datetime = Field(default_factory=utc_now)
    idempotency_key: Optional[str] = None
    payload: EventPayload

    @classmethod
    def wrap(
        cls,
        organization_id: int,
        subscription_id: Optional[UUID],
        payload: EventPayload,
        idempotency_key: Optional[str] = None,
    ) -> "LifecycleEvent":
        return cls(
            event_type=payload.kind.upper(),
            organization_id=organization_id,
            subscription_id=subscription_id,
            idempotency_key=idempotency_key,
            payload=payload,
        )


def trial_reminder_key(subscription_id: Optional[UUID], days_left: int, trial_end_date: Optional[datetime]) -> str:
    """Deterministic key letting consumers drop re-sent reminders."""
    end = trial_end_date.date().isoformat() if trial_end_date else "none"
    return f"trial_expiring:{subscription_id}:{days_left}:{end}"

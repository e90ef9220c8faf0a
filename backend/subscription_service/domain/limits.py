"""
Feature Limit Engine

Pure evaluation of a usage request against the subscription's plan limits.
Nothing here touches the database; callers supply the current count
(either from the request or from the Usage Ledger's latest record).
"""

from decimal import Decimal, ROUND_FLOOR, ROUND_HALF_UP
from typing import Optional

from pydantic import BaseModel, Field

from subscription_service.domain.subscription import (
    LIMITED_FEATURES,
    FeatureCode,
    Plan,
    Subscription,
)


SOFT_LIMIT_RATIO = Decimal("1.10")

_RATIO_SCALE = Decimal("0.0001")
_DISPLAY_SCALE = Decimal("0.01")


# =============================================================================
# Localized messages
# =============================================================================

FEATURE_NAMES = {
    "es": {
        FeatureCode.CONTACTS: "contactos",
        FeatureCode.USERS: "usuarios",
        FeatureCode.PIPELINES: "pipelines",
        FeatureCode.DEALS: "deals",
    },
    "en": {
        FeatureCode.CONTACTS: "contacts",
        FeatureCode.USERS: "users",
        FeatureCode.PIPELINES: "pipelines",
        FeatureCode.DEALS: "deals",
    },
}

MESSAGES = {
    "es": {
        "generic_feature": "recursos",
        "inactive": "Tu suscripción ha expirado. Por favor, renueva tu plan para continuar.",
        "limit_reached": (
            "Has alcanzado el límite de {feature} de tu plan {plan}. "
            "Actualiza a un plan superior para continuar."
        ),
    },
    "en": {
        "generic_feature": "resources",
        "inactive": "Your subscription has expired. Please renew your plan to continue.",
        "limit_reached": (
            "You have reached the {feature} limit of your {plan} plan. "
            "Upgrade to a higher plan to continue."
        ),
    },
}

REASON_INACTIVE = "Subscription is not active"
REASON_LIMIT_EXCEEDED = "Feature limit exceeded"


def _catalog(locale: str) -> dict:
    return MESSAGES.get(locale, MESSAGES["es"])


def feature_display_name(feature: Optional[FeatureCode], locale: str = "es") -> str:
    names = FEATURE_NAMES.get(locale, FEATURE_NAMES["es"])
    if feature in names:
        return names[feature]
    return _catalog(locale)["generic_feature"]


def upgrade_message(feature: Optional[FeatureCode], plan: Plan, locale: str = "es") -> str:
    return _catalog(locale)["limit_reached"].format(
        feature=feature_display_name(feature, locale),
        plan=plan.name,
    )


# =============================================================================
# Arithmetic helpers
# =============================================================================

def soft_limit(max_limit: int, ratio: Decimal = SOFT_LIMIT_RATIO) -> int:
    """Largest count tolerated before a hard denial: floor(max * ratio)."""
    return int((Decimal(max_limit) * ratio).to_integral_value(rounding=ROUND_FLOOR))


def usage_percentage(current: int, max_limit: Optional[int]) -> Decimal:
    """current / max * 100 with a 4-digit ratio, shown with 2 decimals."""
    if not max_limit:
        return Decimal("0.00")
    ratio = (Decimal(current) / Decimal(max_limit)).quantize(_RATIO_SCALE, rounding=ROUND_HALF_UP)
    return (ratio * 100).quantize(_DISPLAY_SCALE, rounding=ROUND_HALF_UP)


def remaining(current: int, max_limit: Optional[int]) -> Optional[int]:
    if max_limit is None:
        return None
    return max(0, max_limit - current)


def can_create(current: int, max_limit: Optional[int], ratio: Decimal = SOFT_LIMIT_RATIO) -> bool:
    if max_limit is None:
        return True
    return current < soft_limit(max_limit, ratio)


def recommended_plan_code(plan: Plan) -> Optional[str]:
    next_tier = plan.tier.next_tier()
    return next_tier.value if next_tier else None


# =============================================================================
# Decision
# =============================================================================

class LimitDecision(BaseModel):
    """Outcome of a limit evaluation."""
    allowed: bool
    feature_code: str
    current_usage: Optional[int] = None
    max_limit: Optional[int] = None
    remaining: Optional[int] = None
    usage_percentage: Decimal = Field(default=Decimal("0.00"))
    soft_warning: bool = Field(default=False, description="Allowed, but inside the 100-110% band")
    reason: Optional[str] = None
    upgrade_message: Optional[str] = None
    recommended_plan: Optional[str] = None


def evaluate(
    subscription: Subscription,
    plan: Plan,
    feature_code: str,
    current_count: int,
    increment_by: int = 1,
    soft_limit_ratio: Decimal = SOFT_LIMIT_RATIO,
    locale: str = "es",
) -> LimitDecision:
    """
    Decide whether `increment_by` more units of a feature may be created.

    Args:
        subscription: Subscription whose state gates access
        plan: Plan whose limits apply
        feature_code: Feature being created (unknown codes are unlimited)
        current_count: Units already in use
        increment_by: Units about to be created
        soft_limit_ratio: Tolerance over the stated limit
        locale: Language of the upgrade messages

    Returns:
        LimitDecision
    """
    if current_count < 0 or increment_by < 0:
        raise ValueError("current_count and increment_by must be non-negative")

    messages = _catalog(locale)
    feature = FeatureCode.parse(feature_code)
    code = feature.value if feature else feature_code

    if subscription.is_read_only() or not subscription.can_access():
        return LimitDecision(
            allowed=False,
            feature_code=code,
            current_usage=current_count,
            reason=REASON_INACTIVE,
            upgrade_message=messages["inactive"],
        )

    max_limit = plan.limit_for(feature) if feature in LIMITED_FEATURES else None
    if max_limit is None:
        return LimitDecision(
            allowed=True,
            feature_code=code,
            current_usage=current_count,
        )

    projected = current_count + increment_by

    if projected > soft_limit(max_limit, soft_limit_ratio):
        return LimitDecision(
            allowed=False,
            feature_code=code,
            current_usage=current_count,
            max_limit=max_limit,
            remaining=0,
            usage_percentage=usage_percentage(current_count, max_limit),
            reason=REASON_LIMIT_EXCEEDED,
            upgrade_message=upgrade_message(feature, plan, locale),
            recommended_plan=recommended_plan_code(plan),
        )

    near_limit = projected > max_limit
    return LimitDecision(
        allowed=True,
        feature_code=code,
        current_usage=current_count,
        max_limit=max_limit,
        remaining=remaining(projected, max_limit),
        usage_percentage=usage_percentage(projected, max_limit),
        soft_warning=near_limit,
        upgrade_message=upgrade_message(feature, plan, locale) if near_limit else None,
        recommended_plan=recommended_plan_code(plan) if near_limit else None,
    )

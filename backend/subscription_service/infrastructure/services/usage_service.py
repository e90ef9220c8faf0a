"""
Usage Service

Usage Ledger writes and feature-limit queries. Recording stores raw
counts; the soft-limit tolerance is only applied when evaluating.
"""

import logging
from datetime import datetime
from typing import Callable, List, Optional

from subscription_service.config.settings import Settings, get_settings
from subscription_service.domain import limits
from subscription_service.domain.subscription import (
    LIMITED_FEATURES,
    FeatureCode,
    utc_now,
)
from subscription_service.domain.usage import (
    FeatureLimitValidationResponse,
    FeatureUsage,
    UsageLimitsResponse,
    UsageRecord,
    ValidateFeatureLimitRequest,
)
from subscription_service.infrastructure.db.unit_of_work import (
    UnitOfWorkFactory,
    get_unit_of_work,
)
from subscription_service.infrastructure.exceptions import (
    FeatureLimitExceededError,
    ValidationError,
)


logger = logging.getLogger(__name__)


def normalize_feature_code(feature_code: str) -> str:
    feature = FeatureCode.parse(feature_code)
    return feature.value if feature else feature_code.strip().upper()


class UsageService:
    """
    Feature usage tracking and limit validation for organizations.

    Reads always go through the latest committed ledger entry; no counter
    is cached between calls.
    """

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory = get_unit_of_work,
        clock: Callable[[], datetime] = utc_now,
        settings: Optional[Settings] = None,
    ):
        self.uow_factory = uow_factory
        self.clock = clock
        self.settings = settings or get_settings()

    # =========================================================================
    # Ledger
    # =========================================================================

    async def record_usage(self, organization_id: int, feature_code: str, current_count: int) -> UsageRecord:
        """
        Append a usage snapshot for an organization's feature.

        Args:
            organization_id: Organization reporting the count
            feature_code: Feature being counted
            current_count: Units currently in use

        Returns:
            Stored UsageRecord
        """
        if current_count < 0:
            raise ValidationError(
                "current_count must be non-negative",
                details={"current_count": current_count},
            )

        code = normalize_feature_code(feature_code)
        async with self.uow_factory() as uow:
            subscription = await uow.subscriptions.require_by_organization_id(organization_id)
            feature = FeatureCode.parse(code)
            plan_limit = subscription.plan.limit_for(feature) if feature else None

            record = await uow.usage.append(
                UsageRecord(
                    subscription_id=subscription.id,
                    feature_code=code,
                    usage_count=current_count,
                    plan_limit=plan_limit,
                    usage_percentage=limits.usage_percentage(current_count, plan_limit),
                    recorded_at=self.clock(),
                    limit_exceeded=plan_limit is not None and current_count > plan_limit,
                )
            )

        if record.limit_exceeded:
            logger.warning(
                f"[USAGE] Organization {organization_id} over {code} limit: "
                f"{current_count}/{plan_limit}"
            )
        else:
            logger.debug(f"[USAGE] Recorded {code}={current_count} for organization {organization_id}")
        return record

    async def get_current_usage(self, organization_id: int, feature_code: str) -> int:
        """Latest recorded count for a feature, 0 when nothing was recorded."""
        code = normalize_feature_code(feature_code)
        async with self.uow_factory() as uow:
            subscription = await uow.subscriptions.require_by_organization_id(organization_id)
            latest = await uow.usage.get_latest(subscription.id, code)
        return latest.usage_count if latest else 0

    async def get_usage_history(
        self, organization_id: int, feature_code: str, limit: int = 50
    ) -> List[UsageRecord]:
        code = normalize_feature_code(feature_code)
        async with self.uow_factory() as uow:
            subscription = await uow.subscriptions.require_by_organization_id(organization_id)
            return await uow.usage.get_history(subscription.id, code, limit=limit)

    # =========================================================================
    # Limits
    # =========================================================================

    async def validate_feature_limit(
        self,
        request: ValidateFeatureLimitRequest,
        enforce: bool = False,
        locale: Optional[str] = None,
    ) -> FeatureLimitValidationResponse:
        """
        Evaluate a creation request against the organization's plan.

        Args:
            request: Feature, current count (optional) and increment
            enforce: Raise FeatureLimitExceededError instead of returning a denial
            locale: Language of upgrade messages

        Returns:
            FeatureLimitValidationResponse
        """
        code = normalize_feature_code(request.feature_code)
        async with self.uow_factory() as uow:
            subscription = await uow.subscriptions.require_by_organization_id(request.organization_id)
            current_count = request.current_count
            if current_count is None:
                latest = await uow.usage.get_latest(subscription.id, code)
                current_count = latest.usage_count if latest else 0

        decision = limits.evaluate(
            subscription,
            subscription.plan,
            code,
            current_count,
            increment_by=request.increment_by,
            soft_limit_ratio=self.settings.soft_limit_ratio,
            locale=locale or self.settings.default_locale,
        )

        if not decision.allowed:
            logger.warning(
                f"[USAGE] Denied {code} for organization {request.organization_id}: "
                f"{decision.reason} ({current_count}+{request.increment_by}/{decision.max_limit})"
            )
            if enforce:
                raise FeatureLimitExceededError(
                    decision.upgrade_message or decision.reason,
                    feature_code=decision.feature_code,
                    current_usage=current_count,
                    max_limit=decision.max_limit,
                    recommended_plan=decision.recommended_plan,
                )
        elif decision.soft_warning:
            logger.info(
                f"[USAGE] Organization {request.organization_id} inside soft limit band for {code}"
            )

        return FeatureLimitValidationResponse.model_validate(decision.model_dump())

    async def get_current_limits(self, organization_id: int) -> UsageLimitsResponse:
        """Usage bar data for every limited feature of the organization's plan."""
        ratio = self.settings.soft_limit_ratio
        async with self.uow_factory() as uow:
            subscription = await uow.subscriptions.require_by_organization_id(organization_id)
            features = []
            for feature in LIMITED_FEATURES:
                latest = await uow.usage.get_latest(subscription.id, feature.value)
                current = latest.usage_count if latest else 0
                max_limit = subscription.plan.limit_for(feature)
                features.append(
                    FeatureUsage(
                        feature_code=feature.value,
                        max_limit=max_limit,
                        current=current,
                        remaining=limits.remaining(current, max_limit),
                        can_create=limits.can_create(current, max_limit, ratio),
                    )
                )

        return UsageLimitsResponse(
            organization_id=organization_id,
            plan_code=subscription.plan.code,
            plan_name=subscription.plan.name,
            is_read_only=subscription.is_read_only(),
            features=features,
        )


# Global instance (lazy initialization)
_usage_service: Optional[UsageService] = None


def get_usage_service() -> UsageService:
    """Get or create the usage service instance."""
    global _usage_service
    if _usage_service is None:
        _usage_service = UsageService()
    return _usage_service

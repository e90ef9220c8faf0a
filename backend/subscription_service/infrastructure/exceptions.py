"""
Custom Exceptions for the Subscription Service

Hierarchical exception classes for proper error handling across layers.
Domain errors are reported to callers; integration errors are recovered locally.
"""

from typing import Optional, Dict, Any


class SubscriptionServiceError(Exception):
    """Base exception for all subscription service errors."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.original_error = original_error

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details
        }


class ValidationError(SubscriptionServiceError):
    """Raised when input validation fails."""
    pass


class DatabaseError(SubscriptionServiceError):
    """Raised when database operations fail."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        table: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if operation:
            details["operation"] = operation
        if table:
            details["table"] = table
        super().__init__(message, details, original_error)


class NotFoundError(DatabaseError):
    """Raised when a requested resource is not found."""
    pass


class SubscriptionNotFoundError(NotFoundError):
    """Raised when an organization or subscription id has no subscription."""

    def __init__(self, message: str = "Subscription not found"):
        super().__init__(message, operation="select", table="subscriptions")


class PlanNotFoundError(NotFoundError):
    """Raised when the plan catalog has no plan for a code or tier."""

    def __init__(self, message: str = "Plan not found"):
        super().__init__(message, operation="select", table="plans")


class DuplicateError(DatabaseError):
    """Raised when attempting to create a duplicate resource."""
    pass


# =============================================================================
# Domain Errors
# =============================================================================

class SubscriptionError(SubscriptionServiceError):
    """Raised when a lifecycle operation is not valid for a subscription."""
    pass


class InvalidTransitionError(SubscriptionError):
    """Raised when a transition is attempted from a state that does not allow it."""

    def __init__(self, current_status: str, action: str):
        super().__init__(
            f"Cannot {action} a subscription in status {current_status}",
            details={"current_status": current_status, "action": action},
        )


class TrialAlreadyUsedError(SubscriptionError):
    """Raised when an organization requests a second trial."""

    def __init__(self, organization_id: int):
        super().__init__(
            "Organization has already used its trial",
            details={"organization_id": organization_id},
        )


class DowngradeNotAllowedError(SubscriptionError):
    """Raised when a plan change would lower the subscription tier."""

    def __init__(self, current_plan: str, target_plan: str):
        super().__init__(
            f"Cannot downgrade from {current_plan} to {target_plan}",
            details={"current_plan": current_plan, "target_plan": target_plan},
        )


class FeatureLimitExceededError(SubscriptionServiceError):
    """
    Raised when a feature usage request goes past the plan's soft limit.

    Carries enough data for callers to render an upgrade prompt.
    """

    def __init__(
        self,
        message: str,
        feature_code: Optional[str] = None,
        current_usage: Optional[int] = None,
        max_limit: Optional[int] = None,
        recommended_plan: Optional[str] = None,
    ):
        details = {
            "code": "FEATURE_LIMIT_EXCEEDED",
            "feature_code": feature_code,
            "current_usage": current_usage,
            "max_limit": max_limit,
        }
        if recommended_plan:
            details["recommended_plan"] = recommended_plan
        super().__init__(message, details)
        self.feature_code = feature_code
        self.current_usage = current_usage
        self.max_limit = max_limit
        self.recommended_plan = recommended_plan


class PaymentProcessingError(SubscriptionServiceError):
    """Raised when a payment provider callback cannot be processed."""
    pass


# =============================================================================
# Integration Errors (never surfaced to callers)
# =============================================================================

class IntegrationError(SubscriptionServiceError):
    """Raised when a best-effort outbound call fails."""

    def __init__(
        self,
        message: str,
        service: Optional[str] = None,
        operation: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if service:
            details["service"] = service
        if operation:
            details["operation"] = operation
        super().__init__(message, details, original_error)


class ExternalSyncError(IntegrationError):
    """Raised when pushing status to the organization service fails."""
    pass


class EventPublishError(IntegrationError):
    """Raised when a lifecycle event cannot be delivered."""
    pass


class ConfigurationError(SubscriptionServiceError):
    """Raised when configuration is missing or invalid."""

    def __init__(
        self,
        message: str,
        missing_keys: Optional[list] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if missing_keys:
            details["missing_keys"] = missing_keys
        super().__init__(message, details, original_error)

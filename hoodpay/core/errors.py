"""
Error taxonomy for the billing and reconciliation paths.

Webhook handling acknowledges everything except VerificationError and
storage faults; initiation endpoints turn these into client errors.
"""
from typing import Optional


class BillingError(Exception):
    """Base class for billing errors."""


class VerificationError(BillingError):
    """Bad or missing signature, or no signing secret for the tenant."""


class MalformedEventError(BillingError):
    """A verified event whose payload is missing required fields."""


class NotFoundError(BillingError):
    entity = "resource"

    def __init__(self, identifier: Optional[object] = None, message: Optional[str] = None):
        self.identifier = identifier
        super().__init__(message or f"{self.entity.capitalize()} not found: {identifier}")


class CommunityNotFound(NotFoundError):
    entity = "community"


class UserNotFound(NotFoundError):
    entity = "user"


class SubscriptionNotFound(NotFoundError):
    entity = "subscription"


class InvalidAmount(BillingError):
    """Negative amounts, fee percentages outside 0-100, or unpriced communities."""


class NoValidPrice(BillingError):
    """The price catalog could neither resolve nor create a provider price."""


class NoManageableSubscription(BillingError):
    """No subscription with a provider customer reference for the portal."""


class MembershipError(BillingError):
    pass


class SideEffectError(BillingError):
    """Notification or ally-graph failure; always caught and logged."""

from hoodpay.schemas.stripe import (
    EventKind, ProviderEvent, parse_event,
    CheckoutSessionRequest, PortalSessionRequest, SessionUrlResponse, WebhookAck,
)
from hoodpay.schemas.subscription import SubscriptionResponse, CancelSubscriptionRequest, SubscriptionCheckResponse, AllyResponse

__all__ = [
    "EventKind", "ProviderEvent", "parse_event",
    "CheckoutSessionRequest", "PortalSessionRequest", "SessionUrlResponse", "WebhookAck",
    "SubscriptionResponse", "CancelSubscriptionRequest", "SubscriptionCheckResponse", "AllyResponse"
]

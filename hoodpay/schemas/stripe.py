"""
Typed Stripe webhook events and the billing API request/response schemas.

Only the five event types the reconciler handles are modelled; anything else
is acknowledged and dropped before validation.
"""
from pydantic import BaseModel, Field, TypeAdapter, ValidationError, model_validator
from typing import Annotated, Dict, List, Literal, Optional, Union
from datetime import datetime
import enum
import uuid

from hoodpay.core.errors import MalformedEventError


class EventKind(str, enum.Enum):
    CHECKOUT_COMPLETED = "checkout_completed"
    SUBSCRIPTION_UPDATED = "subscription_updated"
    SUBSCRIPTION_DELETED = "subscription_deleted"
    PAYMENT_FAILED = "payment_failed"
    PAYMENT_SUCCEEDED = "payment_succeeded"


STRIPE_EVENT_KINDS = {
    "checkout.session.completed": EventKind.CHECKOUT_COMPLETED,
    "customer.subscription.updated": EventKind.SUBSCRIPTION_UPDATED,
    "customer.subscription.deleted": EventKind.SUBSCRIPTION_DELETED,
    "invoice.payment_failed": EventKind.PAYMENT_FAILED,
    "invoice.payment_succeeded": EventKind.PAYMENT_SUCCEEDED,
}


# --- Provider objects -------------------------------------------------------

class CheckoutMetadata(BaseModel):
    user_id: uuid.UUID = Field(alias="userId")
    community_id: uuid.UUID = Field(alias="communityId")


class CheckoutSessionObject(BaseModel):
    id: str
    subscription: Optional[str] = None
    customer: Optional[str] = None
    amount_total: Optional[int] = None  # cents
    payment_status: Optional[str] = None
    currency: str = "usd"
    metadata: CheckoutMetadata


class SubscriptionObject(BaseModel):
    id: str
    status: str
    customer: Optional[str] = None
    current_period_end: Optional[int] = None  # Unix timestamp


class InvoiceObject(BaseModel):
    id: str
    subscription: str
    customer: Optional[str] = None
    amount_due: int = 0  # cents
    amount_paid: int = 0  # cents
    currency: str = "usd"

    @model_validator(mode="before")
    @classmethod
    def _subscription_from_parent(cls, data):
        # Newer API versions move the subscription id under parent.subscription_details
        if isinstance(data, dict) and not data.get("subscription"):
            parent = data.get("parent") or {}
            details = parent.get("subscription_details") or {}
            if details.get("subscription"):
                data = {**data, "subscription": details["subscription"]}
        return data


# --- Events -----------------------------------------------------------------

class _EventBase(BaseModel):
    id: str
    created: Optional[int] = None  # Unix timestamp
    account: Optional[str] = None

    @property
    def kind(self) -> EventKind:
        return STRIPE_EVENT_KINDS[self.type]

    @property
    def created_at(self) -> Optional[datetime]:
        return datetime.utcfromtimestamp(self.created) if self.created else None


class CheckoutSessionData(BaseModel):
    object: CheckoutSessionObject


class SubscriptionData(BaseModel):
    object: SubscriptionObject


class InvoiceData(BaseModel):
    object: InvoiceObject


class CheckoutCompletedEvent(_EventBase):
    type: Literal["checkout.session.completed"]
    data: CheckoutSessionData


class SubscriptionUpdatedEvent(_EventBase):
    type: Literal["customer.subscription.updated"]
    data: SubscriptionData


class SubscriptionDeletedEvent(_EventBase):
    type: Literal["customer.subscription.deleted"]
    data: SubscriptionData


class PaymentFailedEvent(_EventBase):
    type: Literal["invoice.payment_failed"]
    data: InvoiceData


class PaymentSucceededEvent(_EventBase):
    type: Literal["invoice.payment_succeeded"]
    data: InvoiceData


ProviderEvent = Annotated[
    Union[
        CheckoutCompletedEvent,
        SubscriptionUpdatedEvent,
        SubscriptionDeletedEvent,
        PaymentFailedEvent,
        PaymentSucceededEvent,
    ],
    Field(discriminator="type"),
]

_event_adapter = TypeAdapter(ProviderEvent)


def parse_event(payload: dict) -> Optional[ProviderEvent]:
    """
    Validate a verified webhook payload into a typed event.

    Returns None for event types we do not handle. Raises MalformedEventError
    when a handled type is missing required fields.
    """
    if not isinstance(payload, dict):
        raise MalformedEventError("Event payload is not an object")
    if payload.get("type") not in STRIPE_EVENT_KINDS:
        return None
    try:
        return _event_adapter.validate_python(payload)
    except ValidationError as e:
        raise MalformedEventError(f"Malformed {payload.get('type')} event {payload.get('id')}: {e}") from e


# --- API schemas ------------------------------------------------------------

class CheckoutSessionRequest(BaseModel):
    communityId: uuid.UUID


class PortalSessionRequest(BaseModel):
    subscriptionId: Optional[uuid.UUID] = None


class SessionUrlResponse(BaseModel):
    url: str


class WebhookAck(BaseModel):
    received: bool = True


class ValidatePriceRequest(BaseModel):
    priceId: str


class PriceValidationResponse(BaseModel):
    priceId: str
    isValid: bool


class PriceSyncResponse(BaseModel):
    validCommunities: int
    invalidCommunities: int


class PayoutResponse(BaseModel):
    id: uuid.UUID
    community_id: uuid.UUID
    subscription_id: uuid.UUID
    status: str
    total_amount: int
    platform_fee: int
    creator_amount: int
    platform_fee_percentage: int
    creator_fee_percentage: int
    currency: str
    stripe_invoice_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class EarningsStats(BaseModel):
    totalEarnings: float  # dollars
    totalPayouts: int
    averagePayout: float  # dollars
    pendingBalance: float  # dollars


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class PayoutHistoryResponse(BaseModel):
    payouts: List[PayoutResponse]
    pagination: Pagination
    stats: EarningsStats
    statusCounts: Dict[str, int]  # total plus one count per payout status


class CommunityEarnings(BaseModel):
    communityId: uuid.UUID
    communityName: str
    totalEarnings: float
    totalPayouts: int
    pendingBalance: float
    payoutAccountStatus: str


class EarningsOverviewResponse(BaseModel):
    communities: List[CommunityEarnings]
    totalEarnings: float
    totalPending: float


class PayoutAccountStatusResponse(BaseModel):
    accountId: Optional[str] = None
    status: str
    chargesEnabled: bool = False
    payoutsEnabled: bool = False
    detailsSubmitted: bool = False
    earnings: EarningsStats
    platformFee: int
    creatorFee: int


class ConnectAccountRequest(BaseModel):
    communityId: uuid.UUID
    accountType: Literal["express", "standard"] = "express"
    country: str = "US"


class ConnectAccountResponse(BaseModel):
    accountId: str
    onboardingUrl: str
    status: str


class OnboardingLinkResponse(BaseModel):
    onboardingUrl: str
    expiresAt: Optional[int] = None  # Unix timestamp


class LoginLinkResponse(BaseModel):
    loginUrl: str

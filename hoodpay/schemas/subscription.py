from pydantic import BaseModel
from typing import Optional
from datetime import datetime
import uuid


class SubscriptionResponse(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    community_id: uuid.UUID
    status: str
    amount_cents: int
    payment_method: str
    start_date: datetime
    end_date: Optional[datetime] = None
    last_payment_attempt: Optional[datetime] = None
    stripe_subscription_id: Optional[str] = None

    class Config:
        from_attributes = True


class CancelSubscriptionRequest(BaseModel):
    communityId: Optional[uuid.UUID] = None
    subscriptionId: Optional[uuid.UUID] = None


class SubscriptionCheckResponse(BaseModel):
    isSubscribed: bool
    subscription: Optional[SubscriptionResponse] = None


class AllyResponse(BaseModel):
    userId: uuid.UUID
    since: datetime

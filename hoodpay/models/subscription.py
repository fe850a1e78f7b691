from sqlalchemy import Column, String, DateTime, Integer, ForeignKey, Uuid, Index, text
import enum
import uuid
from datetime import datetime
from hoodpay.db.session import Base


class SubscriptionStatus(str, enum.Enum):
    ACTIVE = "active"
    CANCELED = "canceled"
    EXPIRED = "expired"  # Reserved: only set by an explicit external signal
    PAYMENT_FAILED = "payment_failed"


class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    community_id = Column(Uuid(as_uuid=True), ForeignKey("communities.id"), nullable=False, index=True)
    status = Column(String, default=SubscriptionStatus.ACTIVE.value, nullable=False, index=True)
    amount_cents = Column(Integer, nullable=False)  # Minor units, as charged by the provider
    payment_method = Column(String, default="stripe", nullable=False)  # stripe, manual
    start_date = Column(DateTime, default=datetime.utcnow, nullable=False)
    end_date = Column(DateTime, nullable=True)
    last_payment_attempt = Column(DateTime, nullable=True)
    failed_payment_count = Column(Integer, default=0, nullable=False)
    last_paid_invoice_id = Column(String, nullable=True)
    last_payment_succeeded_at = Column(DateTime, nullable=True)  # Provider event time of the last paid invoice
    stripe_subscription_id = Column(String, nullable=True, index=True)
    stripe_customer_id = Column(String, nullable=True, index=True)
    stripe_status = Column(String, nullable=True)  # Provider-side status, cached from subscription.updated
    current_period_end = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        # At most one active subscription per (user, community)
        Index(
            "uq_subscriptions_active_pair",
            "user_id",
            "community_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
    )

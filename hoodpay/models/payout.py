from sqlalchemy import Column, String, DateTime, Integer, ForeignKey, Text, Uuid, CheckConstraint, Index
from sqlalchemy.orm import validates
import enum
import uuid
from datetime import datetime
from hoodpay.db.session import Base


class PayoutStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


# paymentDetails columns are written once at creation
_IMMUTABLE_DETAILS = (
    "total_amount",
    "platform_fee",
    "creator_amount",
    "platform_fee_percentage",
    "creator_fee_percentage",
)


class Payout(Base):
    __tablename__ = "payouts"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    creator_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    community_id = Column(Uuid(as_uuid=True), ForeignKey("communities.id"), nullable=False, index=True)
    subscription_id = Column(Uuid(as_uuid=True), ForeignKey("subscriptions.id"), nullable=False, index=True)
    stripe_connect_account_id = Column(String, nullable=False, index=True)

    # Payment details, all amounts in cents
    total_amount = Column(Integer, nullable=False)
    platform_fee = Column(Integer, nullable=False)
    creator_amount = Column(Integer, nullable=False)
    platform_fee_percentage = Column(Integer, nullable=False)
    creator_fee_percentage = Column(Integer, nullable=False)

    status = Column(String, default=PayoutStatus.PENDING.value, nullable=False, index=True)
    payout_date = Column(DateTime, nullable=True)
    stripe_transfer_id = Column(String, nullable=True)
    last_error = Column(Text, nullable=True)
    retry_count = Column(Integer, default=0, nullable=False)

    # Provider metadata
    stripe_invoice_id = Column(String, nullable=True)
    stripe_subscription_id = Column(String, nullable=True)
    stripe_customer_id = Column(String, nullable=True)
    currency = Column(String(3), default="usd", nullable=False)
    description = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("platform_fee + creator_amount = total_amount", name="ck_payouts_split_sum"),
        Index("ix_payouts_creator_status", "creator_id", "status"),
        Index("ix_payouts_community_status", "community_id", "status"),
    )

    @validates(*_IMMUTABLE_DETAILS)
    def _freeze_payment_details(self, key, value):
        current = getattr(self, key)
        if current is not None and current != value:
            raise ValueError(f"Payout {key} is immutable once recorded")
        return value

    def payment_details(self) -> dict:
        return {
            "totalAmount": self.total_amount,
            "platformFee": self.platform_fee,
            "creatorAmount": self.creator_amount,
            "platformFeePercentage": self.platform_fee_percentage,
            "creatorFeePercentage": self.creator_fee_percentage,
        }

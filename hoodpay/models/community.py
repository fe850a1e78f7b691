from sqlalchemy import Column, String, DateTime, Numeric, Integer, Boolean, ForeignKey, Uuid, UniqueConstraint, CheckConstraint
import enum
import uuid
from datetime import datetime
from hoodpay.db.session import Base


class PayoutAccountStatus(str, enum.Enum):
    PENDING = "pending"
    ACTIVE = "active"
    RESTRICTED = "restricted"
    NOT_CONFIGURED = "not_configured"


class Community(Base):
    __tablename__ = "communities"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False, unique=True)
    creator_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    price = Column(Numeric(10, 2), default=0, nullable=False)  # Monthly price in dollars
    is_free = Column(Boolean, default=False, nullable=False)
    stripe_product_id = Column(String, nullable=True)
    stripe_price_id = Column(String, nullable=True)
    platform_fee_percentage = Column(Integer, default=12, nullable=False)
    creator_fee_percentage = Column(Integer, default=88, nullable=False)
    payout_account_id = Column(String, nullable=True, index=True)  # Stripe Connect account id
    payout_account_status = Column(String, default=PayoutAccountStatus.NOT_CONFIGURED.value, nullable=False)
    status = Column(String, default="active", nullable=False)  # active, suspended, archived, deleted
    allow_new_subscriptions = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("platform_fee_percentage + creator_fee_percentage = 100", name="ck_communities_fee_split"),
    )

    def has_active_payout_account(self) -> bool:
        return bool(self.payout_account_id) and self.payout_account_status == PayoutAccountStatus.ACTIVE.value

    def can_accept_new_subscriptions(self) -> bool:
        return self.status == "active" and bool(self.allow_new_subscriptions)


class CommunityMember(Base):
    """Roster row; the creator is a member implicitly and never stored here."""
    __tablename__ = "community_members"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    community_id = Column(Uuid(as_uuid=True), ForeignKey("communities.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    joined_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("community_id", "user_id", name="uq_community_members_pair"),
    )

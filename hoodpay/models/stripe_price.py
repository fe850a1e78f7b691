from sqlalchemy import Column, String, DateTime, Integer, Uuid, UniqueConstraint
import uuid
from datetime import datetime
from hoodpay.db.session import Base


class StripePrice(Base):
    """Cache of provider price ids keyed by nominal amount."""
    __tablename__ = "stripe_prices"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    amount_cents = Column(Integer, nullable=False, index=True)
    currency = Column(String(3), default="usd", nullable=False)
    interval = Column(String, default="month", nullable=False)
    stripe_price_id = Column(String, nullable=False)
    stripe_product_id = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("amount_cents", "currency", "interval", name="uq_stripe_prices_amount"),
    )

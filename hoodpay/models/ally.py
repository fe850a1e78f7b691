from sqlalchemy import Column, DateTime, ForeignKey, Uuid, UniqueConstraint, CheckConstraint
import uuid
from datetime import datetime
from hoodpay.db.session import Base


class Ally(Base):
    """
    Undirected ally edge. The pair is stored ordered (user_low_id < user_high_id)
    so the unique constraint covers both directions.
    """
    __tablename__ = "allies"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_low_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    user_high_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_low_id", "user_high_id", name="uq_allies_pair"),
        CheckConstraint("user_low_id <> user_high_id", name="ck_allies_distinct"),
    )

    @staticmethod
    def ordered_pair(a: uuid.UUID, b: uuid.UUID):
        return (a, b) if str(a) < str(b) else (b, a)

    def other(self, user_id: uuid.UUID) -> uuid.UUID:
        return self.user_high_id if self.user_low_id == user_id else self.user_low_id

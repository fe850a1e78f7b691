"""
Append-only ledger of creator payouts.

One record per successfully split checkout; payment details are frozen at
creation and only the status columns move afterwards.
"""
from sqlalchemy.orm import Session
from sqlalchemy import func
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple
import logging
import uuid

from hoodpay.models.community import Community
from hoodpay.models.payout import Payout, PayoutStatus
from hoodpay.models.subscription import Subscription
from hoodpay.services.payment_split import PaymentSplit

logger = logging.getLogger(__name__)


@dataclass
class EarningsSummary:
    total: int  # cents
    count: int
    average: float  # cents


@dataclass
class PendingBalance:
    amount: int  # cents
    count: int


class PayoutLedger:
    def __init__(self, db: Session):
        self.db = db

    def record(
        self,
        creator_id: uuid.UUID,
        community: Community,
        subscription: Subscription,
        split: PaymentSplit,
        stripe_invoice_id: Optional[str] = None,
        currency: str = "usd",
        description: Optional[str] = None,
    ) -> Payout:
        payout = Payout(
            creator_id=creator_id,
            community_id=community.id,
            subscription_id=subscription.id,
            stripe_connect_account_id=community.payout_account_id,
            total_amount=split.total,
            platform_fee=split.platform_fee,
            creator_amount=split.creator_amount,
            platform_fee_percentage=int(split.platform_fee_percentage),
            creator_fee_percentage=int(split.creator_fee_percentage),
            status=PayoutStatus.PENDING.value,
            stripe_invoice_id=stripe_invoice_id,
            stripe_subscription_id=subscription.stripe_subscription_id,
            stripe_customer_id=subscription.stripe_customer_id,
            currency=currency,
            description=description,
        )
        self.db.add(payout)
        self.db.flush()
        logger.info(
            f"[PAYOUTS] Recorded payout {payout.id} for creator {creator_id}: "
            f"total={split.total} fee={split.platform_fee} creator={split.creator_amount}"
        )
        return payout

    def _filtered(self, creator_id: uuid.UUID, community_id: Optional[uuid.UUID], statuses: List[str]):
        query = self.db.query(Payout).filter(
            Payout.creator_id == creator_id,
            Payout.status.in_(statuses)
        )
        if community_id:
            query = query.filter(Payout.community_id == community_id)
        return query

    def total_earnings(
        self,
        creator_id: uuid.UUID,
        community_id: Optional[uuid.UUID] = None,
        include_pending: bool = False,
    ) -> EarningsSummary:
        """Sum of creator_amount over paid payouts (plus pending ones when asked)."""
        statuses = [PayoutStatus.PAID.value]
        if include_pending:
            statuses.append(PayoutStatus.PENDING.value)
        total, count = self._filtered(creator_id, community_id, statuses).with_entities(
            func.coalesce(func.sum(Payout.creator_amount), 0),
            func.count(Payout.id)
        ).one()
        total = int(total or 0)
        return EarningsSummary(total=total, count=count, average=(total / count) if count else 0.0)

    def pending_balance(self, creator_id: uuid.UUID, community_id: Optional[uuid.UUID] = None) -> PendingBalance:
        amount, count = self._filtered(creator_id, community_id, [PayoutStatus.PENDING.value]).with_entities(
            func.coalesce(func.sum(Payout.creator_amount), 0),
            func.count(Payout.id)
        ).one()
        return PendingBalance(amount=int(amount or 0), count=count)

    def community_payout_stats(self, community_id: uuid.UUID) -> Dict[str, int]:
        stats = {"total": 0, PayoutStatus.PENDING.value: 0, PayoutStatus.PAID.value: 0, PayoutStatus.FAILED.value: 0}
        rows = self.db.query(Payout.status, func.count(Payout.id)).filter(
            Payout.community_id == community_id
        ).group_by(Payout.status).all()
        for status, count in rows:
            stats[status] = count
            stats["total"] += count
        return stats

    def list_payouts(
        self,
        creator_id: uuid.UUID,
        community_id: uuid.UUID,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[Payout], int]:
        query = self.db.query(Payout).filter(
            Payout.creator_id == creator_id,
            Payout.community_id == community_id
        )
        if status and status != "all":
            query = query.filter(Payout.status == status)
        total = query.count()
        payouts = query.order_by(Payout.created_at.desc()).offset((page - 1) * limit).limit(limit).all()
        return payouts, total

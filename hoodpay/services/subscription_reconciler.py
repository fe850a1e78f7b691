"""
Subscription state machine driven by Stripe webhook events.

    none -> active -> {payment_failed <-> active} -> canceled

Stripe delivers at least once, possibly out of order and concurrently. Each
transition is gated on the current local state, so a replayed or stale event
is a no-op instead of a second application. The primary transition is
committed first; ally-graph updates and notifications run afterwards as
best-effort side effects whose failures are logged and dropped.
"""
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from datetime import datetime
from typing import Callable, Optional, Set
import enum
import logging
import uuid

from hoodpay.core.errors import CommunityNotFound, UserNotFound, SubscriptionNotFound
from hoodpay.models.community import Community
from hoodpay.models.subscription import Subscription, SubscriptionStatus
from hoodpay.models.user import User
from hoodpay.schemas.stripe import (
    CheckoutCompletedEvent,
    CheckoutSessionObject,
    SubscriptionUpdatedEvent,
    SubscriptionDeletedEvent,
    PaymentFailedEvent,
    PaymentSucceededEvent,
)
from hoodpay.services.membership import MembershipSynchronizer
from hoodpay.services.notifications import NotificationKind, Notifier
from hoodpay.services.payment_split import calculate_payment_split
from hoodpay.services.payout_ledger import PayoutLedger

logger = logging.getLogger(__name__)


class ReconcileOutcome(str, enum.Enum):
    APPLIED = "applied"
    NOOP = "noop"  # Precondition not met: replay or stale event


class SubscriptionReconciler:
    def __init__(self, db: Session, notifier: Notifier):
        self.db = db
        self.notifier = notifier
        self.membership = MembershipSynchronizer(db)
        self.ledger = PayoutLedger(db)

    # --- helpers ----------------------------------------------------------

    def _by_provider_id(self, stripe_subscription_id: str, status: Optional[str] = None) -> Optional[Subscription]:
        query = self.db.query(Subscription).filter(
            Subscription.stripe_subscription_id == stripe_subscription_id
        )
        if status:
            query = query.filter(Subscription.status == status)
        return query.order_by(Subscription.created_at.desc()).first()

    def _require_provider_sub(self, stripe_subscription_id: str) -> None:
        if self._by_provider_id(stripe_subscription_id) is None:
            raise SubscriptionNotFound(stripe_subscription_id)

    def _side_effect(self, description: str, action: Callable[[], object]) -> None:
        """Run a post-commit side effect; failures are logged and rolled back."""
        try:
            action()
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.exception(f"[WEBHOOK] Side effect failed ({description}); primary transition kept")

    def _notify(self, kind: NotificationKind, subscription: Subscription, amount: Optional[int] = None) -> None:
        self._side_effect(
            f"notify {kind.value}",
            lambda: self.notifier.notify(
                kind,
                subscription.user_id,
                community_id=subscription.community_id,
                subscription_id=subscription.id,
                amount=amount,
            ),
        )

    def _community(self, community_id: uuid.UUID) -> Community:
        community = self.db.query(Community).filter(Community.id == community_id).first()
        if not community:
            raise CommunityNotFound(community_id)
        return community

    def _existing_checkout(self, session: CheckoutSessionObject) -> Optional[Subscription]:
        """A subscription this checkout already produced, or an active one for the pair."""
        if session.subscription:
            existing = self._by_provider_id(session.subscription)
            if existing:
                return existing
        return self.db.query(Subscription).filter(
            Subscription.user_id == session.metadata.user_id,
            Subscription.community_id == session.metadata.community_id,
            Subscription.status == SubscriptionStatus.ACTIVE.value
        ).first()

    # --- transitions --------------------------------------------------------

    def handle_checkout_completed(self, event: CheckoutCompletedEvent) -> ReconcileOutcome:
        session = event.data.object
        user_id = session.metadata.user_id
        community_id = session.metadata.community_id

        community = self._community(community_id)
        if not self.db.query(User.id).filter(User.id == user_id).first():
            raise UserNotFound(user_id)

        existing = self._existing_checkout(session)
        if existing:
            logger.info(f"[WEBHOOK] checkout {session.id}: subscription {existing.id} ({existing.status}) already exists, replay ignored")
            return ReconcileOutcome.NOOP

        amount_cents = session.amount_total or 0
        subscription = Subscription(
            user_id=user_id,
            community_id=community_id,
            status=SubscriptionStatus.ACTIVE.value,
            amount_cents=amount_cents,
            payment_method="stripe",
            start_date=datetime.utcnow(),
            stripe_subscription_id=session.subscription,
            stripe_customer_id=session.customer,
        )
        try:
            self.db.add(subscription)
            self.db.flush()

            if community.has_active_payout_account():
                split = calculate_payment_split(amount_cents, community.platform_fee_percentage)
                self.ledger.record(
                    community.creator_id,
                    community,
                    subscription,
                    split,
                    currency=session.currency,
                    description=f"Subscription to {community.name}",
                )

            self.membership.add_member(user_id, community)
            self.db.commit()
        except IntegrityError:
            # A concurrent delivery of the same checkout committed first
            self.db.rollback()
            logger.info(f"[WEBHOOK] checkout {session.id}: lost race to a concurrent delivery, replay ignored")
            return ReconcileOutcome.NOOP
        logger.info(f"[WEBHOOK] checkout {session.id}: subscription {subscription.id} active for user {user_id} in community {community_id}")

        self._side_effect("ally join", lambda: self.membership.make_allies(user_id, community))
        self._notify(NotificationKind.SUBSCRIPTION_SUCCESS, subscription)
        return ReconcileOutcome.APPLIED

    def handle_subscription_updated(self, event: SubscriptionUpdatedEvent) -> ReconcileOutcome:
        obj = event.data.object
        subscription = self._by_provider_id(obj.id)
        if subscription is None:
            raise SubscriptionNotFound(obj.id)

        subscription.stripe_status = obj.status
        if obj.current_period_end:
            subscription.current_period_end = datetime.utcfromtimestamp(obj.current_period_end)
        if obj.customer and not subscription.stripe_customer_id:
            subscription.stripe_customer_id = obj.customer
        self.db.commit()
        logger.info(f"[WEBHOOK] subscription {obj.id}: cached provider status {obj.status}")
        return ReconcileOutcome.APPLIED

    def handle_subscription_deleted(self, event: SubscriptionDeletedEvent) -> ReconcileOutcome:
        obj = event.data.object
        subscription = self._by_provider_id(obj.id, SubscriptionStatus.ACTIVE.value)
        if subscription is None:
            self._require_provider_sub(obj.id)
            logger.info(f"[WEBHOOK] subscription {obj.id}: not active, deletion ignored")
            return ReconcileOutcome.NOOP

        community = self._community(subscription.community_id)
        former_members: Set[uuid.UUID] = self.membership.member_ids(community)

        subscription.status = SubscriptionStatus.CANCELED.value
        subscription.end_date = datetime.utcnow()
        subscription.stripe_status = obj.status
        if subscription.user_id != community.creator_id:
            self.membership.remove_member(subscription.user_id, community)
        self.db.commit()
        logger.info(f"[WEBHOOK] subscription {obj.id}: canceled, user {subscription.user_id} left community {community.id}")

        if subscription.user_id != community.creator_id:
            self._side_effect(
                "ally prune",
                lambda: self.membership.prune_allies(subscription.user_id, community, former_members),
            )
        self._notify(NotificationKind.SUBSCRIPTION_CANCELED, subscription)
        return ReconcileOutcome.APPLIED

    def handle_payment_failed(self, event: PaymentFailedEvent) -> ReconcileOutcome:
        invoice = event.data.object
        subscription = self._by_provider_id(invoice.subscription, SubscriptionStatus.ACTIVE.value)
        if subscription is None:
            self._require_provider_sub(invoice.subscription)
            logger.info(f"[WEBHOOK] invoice {invoice.id}: subscription {invoice.subscription} not active, failure ignored")
            return ReconcileOutcome.NOOP

        # A failure for an invoice that has since been paid, or older than the last success, is stale
        event_time = event.created_at
        if invoice.id == subscription.last_paid_invoice_id or (
            event_time and subscription.last_payment_succeeded_at and event_time <= subscription.last_payment_succeeded_at
        ):
            logger.info(f"[WEBHOOK] invoice {invoice.id}: stale failure after successful payment, ignored")
            return ReconcileOutcome.NOOP

        subscription.status = SubscriptionStatus.PAYMENT_FAILED.value
        subscription.last_payment_attempt = datetime.utcnow()
        subscription.failed_payment_count = (subscription.failed_payment_count or 0) + 1
        self.db.commit()
        logger.info(f"[WEBHOOK] invoice {invoice.id}: subscription {subscription.id} payment failed")

        self._notify(NotificationKind.PAYMENT_FAILED, subscription, amount=invoice.amount_due)
        return ReconcileOutcome.APPLIED

    def handle_payment_succeeded(self, event: PaymentSucceededEvent) -> ReconcileOutcome:
        invoice = event.data.object
        subscription = self._by_provider_id(invoice.subscription)
        if subscription is None:
            raise SubscriptionNotFound(invoice.subscription)

        recovered = subscription.status == SubscriptionStatus.PAYMENT_FAILED.value
        community = None
        if recovered:
            community = self._community(subscription.community_id)
            subscription.status = SubscriptionStatus.ACTIVE.value
            self.membership.add_member(subscription.user_id, community)

        subscription.last_payment_attempt = datetime.utcnow()
        subscription.last_paid_invoice_id = invoice.id
        event_time = event.created_at
        if event_time and (
            subscription.last_payment_succeeded_at is None or event_time > subscription.last_payment_succeeded_at
        ):
            subscription.last_payment_succeeded_at = event_time
        self.db.commit()
        logger.info(f"[WEBHOOK] invoice {invoice.id}: paid for subscription {subscription.id} (recovered={recovered})")

        if community is not None:
            self._side_effect("ally join", lambda: self.membership.make_allies(subscription.user_id, community))
        self._notify(NotificationKind.PAYMENT_SUCCEEDED, subscription, amount=invoice.amount_paid)
        return ReconcileOutcome.APPLIED

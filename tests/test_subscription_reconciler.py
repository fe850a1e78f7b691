"""Reconciliation state machine tests"""
import time
import uuid

import pytest
from sqlalchemy.exc import IntegrityError

from conftest import RecordingSink, checkout_completed, invoice_event, make_community, make_user, subscription_event
from hoodpay.core.errors import CommunityNotFound, SubscriptionNotFound, UserNotFound
from hoodpay.models.payout import Payout
from hoodpay.models.subscription import Subscription, SubscriptionStatus
from hoodpay.schemas.stripe import parse_event
from hoodpay.services.event_router import EventRouter
from hoodpay.services.membership import MembershipSynchronizer
from hoodpay.services.notifications import Notifier
from hoodpay.services.subscription_reconciler import ReconcileOutcome, SubscriptionReconciler


@pytest.fixture
def world(db):
    creator = make_user(db, "creator@example.com")
    fan = make_user(db, "fan@example.com")
    community = make_community(db, creator, payout_active=True)
    return creator, fan, community


@pytest.fixture
def router(db, notifier):
    return EventRouter(SubscriptionReconciler(db, notifier))


def _subscribe(router, fan, community, amount_total=999):
    return router.dispatch(checkout_completed(fan.id, community.id, amount_total=amount_total))


def _subscription(db):
    db.expire_all()
    return db.query(Subscription).one()


def test_checkout_creates_active_subscription(db, router, sink, world):
    creator, fan, community = world
    assert _subscribe(router, fan, community) == ReconcileOutcome.APPLIED

    subscription = _subscription(db)
    assert subscription.status == SubscriptionStatus.ACTIVE.value
    assert subscription.amount_cents == 999
    assert subscription.end_date is None
    assert subscription.payment_method == "stripe"
    assert subscription.stripe_subscription_id == "sub_123"
    assert subscription.stripe_customer_id == "cus_123"

    membership = MembershipSynchronizer(db)
    assert membership.is_member(fan.id, community)
    assert membership.are_allies(fan.id, creator.id)
    assert sink.kinds() == ["subscription_success"]
    _, user_id, payload = sink.sent[0]
    assert user_id == fan.id
    assert payload["communityId"] == community.id
    assert payload["subscriptionId"] == subscription.id


def test_checkout_records_split_payout(db, router, world):
    creator, fan, community = world
    _subscribe(router, fan, community, amount_total=1000)

    payout = db.query(Payout).one()
    assert payout.creator_id == creator.id
    assert (payout.total_amount, payout.platform_fee, payout.creator_amount) == (1000, 120, 880)
    assert payout.status == "pending"
    assert payout.stripe_subscription_id == "sub_123"


def test_checkout_without_active_payout_account_records_no_payout(db, router, world):
    creator, fan, _ = world
    community = make_community(db, creator, name="No payouts")
    _subscribe(router, fan, community)
    assert db.query(Payout).count() == 0
    assert db.query(Subscription).count() == 1


def test_checkout_completion_is_idempotent(db, router, sink, world):
    _, fan, community = world
    assert _subscribe(router, fan, community) == ReconcileOutcome.APPLIED
    assert _subscribe(router, fan, community) == ReconcileOutcome.NOOP

    assert db.query(Subscription).count() == 1
    assert db.query(Payout).count() == 1
    assert sink.kinds() == ["subscription_success"]


def test_late_checkout_retry_after_cancellation_is_ignored(db, router, sink, world):
    _, fan, community = world
    _subscribe(router, fan, community)
    router.dispatch(subscription_event("customer.subscription.deleted", status="canceled"))

    assert _subscribe(router, fan, community) == ReconcileOutcome.NOOP

    db.expire_all()
    assert [(s.status, s.stripe_subscription_id) for s in db.query(Subscription).all()] == [("canceled", "sub_123")]
    assert db.query(Payout).count() == 1
    assert not MembershipSynchronizer(db).is_member(fan.id, community)
    assert sink.kinds() == ["subscription_success", "subscription_canceled"]


def test_new_checkout_after_cancellation_subscribes_again(db, router, world):
    _, fan, community = world
    _subscribe(router, fan, community)
    router.dispatch(subscription_event("customer.subscription.deleted", status="canceled"))

    outcome = router.dispatch(checkout_completed(fan.id, community.id, subscription="sub_456", event_id="evt_again"))
    assert outcome == ReconcileOutcome.APPLIED
    db.expire_all()
    statuses = {s.stripe_subscription_id: s.status for s in db.query(Subscription).all()}
    assert statuses == {"sub_123": "canceled", "sub_456": "active"}
    assert MembershipSynchronizer(db).is_member(fan.id, community)


def test_second_active_subscription_is_rejected_by_storage(db, world):
    _, fan, community = world
    db.add(Subscription(user_id=fan.id, community_id=community.id, amount_cents=999))
    db.commit()
    db.add(Subscription(user_id=fan.id, community_id=community.id, amount_cents=999))
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()


def test_concurrent_checkout_delivery_is_a_noop(db, router, sink, world, monkeypatch):
    _, fan, community = world
    _subscribe(router, fan, community)

    # Both deliveries passed the existence check before either committed
    monkeypatch.setattr(SubscriptionReconciler, "_existing_checkout", lambda self, session: None)
    outcome = router.dispatch(checkout_completed(fan.id, community.id, subscription="sub_race", event_id="evt_race"))

    assert outcome == ReconcileOutcome.NOOP
    db.expire_all()
    assert db.query(Subscription).count() == 1
    assert db.query(Payout).count() == 1
    assert sink.kinds() == ["subscription_success"]


def test_checkout_for_unknown_community_or_user(db, router, world):
    _, fan, community = world
    with pytest.raises(CommunityNotFound):
        router.dispatch(checkout_completed(fan.id, uuid.uuid4()))
    with pytest.raises(UserNotFound):
        router.dispatch(checkout_completed(uuid.uuid4(), community.id))
    assert db.query(Subscription).count() == 0


def test_notification_failure_keeps_transition(db, world):
    _, fan, community = world
    router = EventRouter(SubscriptionReconciler(db, Notifier(RecordingSink(fail=True))))
    assert _subscribe(router, fan, community) == ReconcileOutcome.APPLIED
    assert _subscription(db).status == SubscriptionStatus.ACTIVE.value


def test_ally_failure_keeps_transition(db, router, world, monkeypatch):
    creator, fan, community = world

    def broken(self, user_id, community):
        raise RuntimeError("ally store unavailable")

    monkeypatch.setattr(MembershipSynchronizer, "make_allies", broken)
    assert _subscribe(router, fan, community) == ReconcileOutcome.APPLIED

    membership = MembershipSynchronizer(db)
    assert _subscription(db).status == SubscriptionStatus.ACTIVE.value
    assert membership.is_member(fan.id, community)
    assert not membership.are_allies(fan.id, creator.id)


def test_subscription_updated_caches_provider_fields(db, router, world):
    _, fan, community = world
    _subscribe(router, fan, community)
    period_end = int(time.time()) + 30 * 86400

    outcome = router.dispatch(subscription_event(
        "customer.subscription.updated", status="past_due", current_period_end=period_end
    ))
    assert outcome == ReconcileOutcome.APPLIED
    subscription = _subscription(db)
    assert subscription.stripe_status == "past_due"
    assert subscription.current_period_end is not None
    # Local lifecycle is driven by invoices and deletion only
    assert subscription.status == SubscriptionStatus.ACTIVE.value


def test_subscription_updated_for_unknown_subscription(router):
    with pytest.raises(SubscriptionNotFound):
        router.dispatch(subscription_event("customer.subscription.updated", subscription="sub_unknown"))


def test_cancellation_is_terminal(db, router, sink, world):
    creator, fan, community = world
    _subscribe(router, fan, community)

    outcome = router.dispatch(subscription_event("customer.subscription.deleted", status="canceled"))
    assert outcome == ReconcileOutcome.APPLIED

    subscription = _subscription(db)
    assert subscription.status == SubscriptionStatus.CANCELED.value
    assert subscription.end_date is not None
    membership = MembershipSynchronizer(db)
    assert not membership.is_member(fan.id, community)
    assert not membership.are_allies(fan.id, creator.id)
    assert sink.kinds() == ["subscription_success", "subscription_canceled"]

    # Replays and late events do not resurrect it
    assert router.dispatch(subscription_event("customer.subscription.deleted", status="canceled")) == ReconcileOutcome.NOOP
    assert router.dispatch(invoice_event("invoice.payment_failed")) == ReconcileOutcome.NOOP
    assert _subscription(db).status == SubscriptionStatus.CANCELED.value
    assert sink.kinds() == ["subscription_success", "subscription_canceled"]


def test_failed_then_succeeded_recovers(db, router, sink, world):
    creator, fan, community = world
    _subscribe(router, fan, community)
    now = int(time.time())

    assert router.dispatch(invoice_event(
        "invoice.payment_failed", invoice_id="in_2", event_id="evt_f", created=now
    )) == ReconcileOutcome.APPLIED
    failed = _subscription(db)
    assert failed.status == SubscriptionStatus.PAYMENT_FAILED.value
    assert failed.failed_payment_count == 1
    first_attempt = failed.last_payment_attempt
    assert first_attempt is not None
    # Membership survives a failed payment
    assert MembershipSynchronizer(db).is_member(fan.id, community)

    assert router.dispatch(invoice_event(
        "invoice.payment_succeeded", invoice_id="in_2", event_id="evt_s", created=now + 60
    )) == ReconcileOutcome.APPLIED
    recovered = _subscription(db)
    assert recovered.status == SubscriptionStatus.ACTIVE.value
    assert recovered.last_payment_attempt >= first_attempt
    assert recovered.last_paid_invoice_id == "in_2"
    assert MembershipSynchronizer(db).is_member(fan.id, community)
    assert sink.kinds() == ["subscription_success", "payment_failed", "payment_succeeded"]
    assert sink.sent[-1][2]["amount"] == 999


def test_success_before_matching_failure_stays_active(db, router, world):
    _, fan, community = world
    _subscribe(router, fan, community)
    now = int(time.time())

    router.dispatch(invoice_event("invoice.payment_succeeded", invoice_id="in_2", event_id="evt_s", created=now))
    # The failure for the same invoice arrives late
    outcome = router.dispatch(invoice_event("invoice.payment_failed", invoice_id="in_2", event_id="evt_f", created=now - 30))
    assert outcome == ReconcileOutcome.NOOP
    assert _subscription(db).status == SubscriptionStatus.ACTIVE.value


def test_stale_failure_for_older_invoice_is_ignored(db, router, world):
    _, fan, community = world
    _subscribe(router, fan, community)
    now = int(time.time())

    router.dispatch(invoice_event("invoice.payment_succeeded", invoice_id="in_3", event_id="evt_s", created=now))
    outcome = router.dispatch(invoice_event("invoice.payment_failed", invoice_id="in_2", event_id="evt_f", created=now - 3600))
    assert outcome == ReconcileOutcome.NOOP
    assert _subscription(db).failed_payment_count == 0


def test_failure_after_success_for_new_invoice_applies(db, router, world):
    _, fan, community = world
    _subscribe(router, fan, community)
    now = int(time.time())

    router.dispatch(invoice_event("invoice.payment_succeeded", invoice_id="in_2", event_id="evt_s", created=now - 3600))
    outcome = router.dispatch(invoice_event("invoice.payment_failed", invoice_id="in_3", event_id="evt_f", created=now))
    assert outcome == ReconcileOutcome.APPLIED
    assert _subscription(db).status == SubscriptionStatus.PAYMENT_FAILED.value


def test_payment_succeeded_on_active_subscription(db, router, sink, world):
    _, fan, community = world
    _subscribe(router, fan, community)
    assert router.dispatch(invoice_event("invoice.payment_succeeded")) == ReconcileOutcome.APPLIED
    assert _subscription(db).status == SubscriptionStatus.ACTIVE.value
    assert sink.kinds() == ["subscription_success", "payment_succeeded"]


def test_invoice_for_unknown_subscription(router):
    with pytest.raises(SubscriptionNotFound):
        router.dispatch(invoice_event("invoice.payment_succeeded", subscription="sub_unknown"))
    with pytest.raises(SubscriptionNotFound):
        router.dispatch(invoice_event("invoice.payment_failed", subscription="sub_unknown"))


def test_unhandled_event_is_dropped(router):
    assert router.dispatch({"id": "evt_x", "type": "charge.refunded", "data": {"object": {}}}) is None


def test_route_is_closed(router):
    event = parse_event(invoice_event("invoice.payment_failed"))
    assert router.route(event) is not None
    assert router.route(None) is None

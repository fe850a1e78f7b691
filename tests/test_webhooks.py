"""Stripe webhook endpoint tests"""
import asyncio
import json
import uuid

from sqlalchemy.exc import SQLAlchemyError

from conftest import checkout_completed, invoice_event, make_community, make_user, signed_request
from hoodpay.models.subscription import Subscription, SubscriptionStatus
from hoodpay.services.event_router import EventRouter
from hoodpay.services.subscription_reconciler import SubscriptionReconciler


def _post(client, event, secret="whsec_default", headers=None):
    body, signed_headers = signed_request(event, secret)
    signed_headers.update(headers or {})
    return client.post("/webhooks/stripe", content=body, headers=signed_headers)


def test_checkout_completed_webhook(client, db, sink):
    creator = make_user(db, "creator@example.com")
    fan = make_user(db, "fan@example.com")
    community = make_community(db, creator)

    response = _post(client, checkout_completed(fan.id, community.id, amount_total=999))
    assert response.status_code == 200
    assert response.json() == {"received": True}

    db.expire_all()
    subscription = db.query(Subscription).one()
    assert subscription.status == SubscriptionStatus.ACTIVE.value
    assert subscription.amount_cents == 999
    assert sink.kinds() == ["subscription_success"]

    # Redelivery is acknowledged without a second subscription
    response = _post(client, checkout_completed(fan.id, community.id, amount_total=999))
    assert response.status_code == 200
    assert db.query(Subscription).count() == 1


def test_missing_signature_is_rejected(client, db):
    body = json.dumps(invoice_event("invoice.payment_failed"))
    response = client.post("/webhooks/stripe", content=body, headers={"content-type": "application/json"})
    assert response.status_code == 400


def test_bad_signature_is_rejected_without_mutation(client, db):
    creator = make_user(db, "creator@example.com")
    fan = make_user(db, "fan@example.com")
    community = make_community(db, creator)

    response = _post(client, checkout_completed(fan.id, community.id), secret="whsec_wrong")
    assert response.status_code == 400
    assert db.query(Subscription).count() == 0


def test_tenant_secret_selected_by_forwarded_host(client, db):
    event = {"id": "evt_1", "type": "customer.created", "data": {"object": {}}}

    response = _post(client, event, secret="whsec_hoodfy", headers={"x-forwarded-host": "www.hoodfy.com"})
    assert response.status_code == 200

    response = _post(client, event, secret="whsec_default", headers={"x-forwarded-host": "hoodfy.com"})
    assert response.status_code == 400

    response = _post(client, event, secret="whsec_qahood", headers={"x-forwarded-host": "qahood.com"})
    assert response.status_code == 200


def test_unhandled_event_type_is_acknowledged(client):
    response = _post(client, {"id": "evt_1", "type": "charge.refunded", "data": {"object": {}}})
    assert response.status_code == 200
    assert response.json() == {"received": True}


def test_malformed_event_is_acknowledged(client, db):
    event = checkout_completed(uuid.uuid4(), uuid.uuid4())
    event["data"]["object"]["metadata"] = {"userId": "nobody"}
    response = _post(client, event)
    assert response.status_code == 200
    assert db.query(Subscription).count() == 0


def test_unknown_entities_are_acknowledged(client, db):
    fan = make_user(db, "fan@example.com")
    response = _post(client, checkout_completed(fan.id, uuid.uuid4()))
    assert response.status_code == 200

    response = _post(client, invoice_event("invoice.payment_succeeded", subscription="sub_missing"))
    assert response.status_code == 200
    assert db.query(Subscription).count() == 0


def test_storage_error_returns_500(client, db, monkeypatch):
    creator = make_user(db, "creator@example.com")
    fan = make_user(db, "fan@example.com")
    community = make_community(db, creator)

    def broken(self, event):
        raise SQLAlchemyError("database is gone")

    monkeypatch.setattr(SubscriptionReconciler, "handle_checkout_completed", broken)
    response = _post(client, checkout_completed(fan.id, community.id))
    assert response.status_code == 500


def test_notification_failure_still_acknowledged(client, db, sink):
    creator = make_user(db, "creator@example.com")
    fan = make_user(db, "fan@example.com")
    community = make_community(db, creator)
    sink.fail = True

    response = _post(client, checkout_completed(fan.id, community.id))
    assert response.status_code == 200
    db.expire_all()
    assert db.query(Subscription).one().status == SubscriptionStatus.ACTIVE.value


def test_reconciliation_runs_off_the_event_loop(client, db, monkeypatch):
    creator = make_user(db, "creator@example.com")
    fan = make_user(db, "fan@example.com")
    community = make_community(db, creator)
    seen = []

    def spy(self, payload):
        try:
            asyncio.get_running_loop()
            seen.append("event loop")
        except RuntimeError:
            seen.append("worker thread")

    monkeypatch.setattr(EventRouter, "dispatch", spy)
    response = _post(client, checkout_completed(fan.id, community.id))
    assert response.status_code == 200
    assert seen == ["worker thread"]

import os

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_default"
os.environ["STRIPE_WEBHOOK_TENANT_SECRETS"] = "hoodfy.com=whsec_hoodfy,qahood.com=whsec_qahood"
os.environ["FRONTEND_URL"] = "https://app.hoodfy.com"

import hashlib
import hmac
import json
import time
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from hoodpay.api.deps import get_notification_sink, get_webhook_verifier
from hoodpay.core.security import create_access_token
from hoodpay.db.session import Base, get_db
from hoodpay.main import app
from hoodpay.models import Community, PayoutAccountStatus, User
from hoodpay.services.notifications import NotificationSink, Notifier
from hoodpay.services.webhook_verifier import WebhookVerifier

TENANT_SECRETS = {"hoodfy.com": "whsec_hoodfy", "qahood.com": "whsec_qahood"}
DEFAULT_SECRET = "whsec_default"


class RecordingSink(NotificationSink):
    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail

    def notify(self, kind, user_id, payload):
        if self.fail:
            raise RuntimeError("notification service down")
        self.sent.append((kind, user_id, payload))

    def kinds(self):
        return [kind.value for kind, _, _ in self.sent]


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def notifier(sink):
    return Notifier(sink)


@pytest.fixture
def verifier():
    return WebhookVerifier(TENANT_SECRETS, default_secret=DEFAULT_SECRET, tolerance=300)


@pytest.fixture
def client(db, sink, verifier):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_webhook_verifier] = lambda: verifier
    app.dependency_overrides[get_notification_sink] = lambda: sink
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


# --- factories ------------------------------------------------------------

def make_user(db, email):
    user = User(email=email, name=email.split("@")[0])
    db.add(user)
    db.commit()
    return user


def make_community(
    db,
    creator,
    name="Night Owls",
    price=Decimal("9.99"),
    is_free=False,
    payout_active=False,
    stripe_price_id=None,
    platform_fee_percentage=12,
):
    community = Community(
        name=name,
        creator_id=creator.id,
        price=price,
        is_free=is_free,
        stripe_price_id=stripe_price_id,
        platform_fee_percentage=platform_fee_percentage,
        creator_fee_percentage=100 - platform_fee_percentage,
    )
    if payout_active:
        community.payout_account_id = "acct_creator"
        community.payout_account_status = PayoutAccountStatus.ACTIVE.value
    db.add(community)
    db.commit()
    return community


def auth_headers(user):
    return {"Authorization": f"Bearer {create_access_token({'sub': str(user.id)})}"}


# --- Stripe payloads ------------------------------------------------------

def sign_payload(payload, secret=DEFAULT_SECRET, timestamp=None):
    timestamp = timestamp or int(time.time())
    signature = hmac.new(
        secret.encode("utf-8"),
        f"{timestamp}.{payload}".encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()
    return f"t={timestamp},v1={signature}"


def signed_request(event, secret=DEFAULT_SECRET, timestamp=None):
    body = json.dumps(event)
    return body, {"stripe-signature": sign_payload(body, secret, timestamp), "content-type": "application/json"}


def checkout_completed(user_id, community_id, amount_total=999, subscription="sub_123", customer="cus_123",
                       event_id="evt_checkout", created=None):
    return {
        "id": event_id,
        "type": "checkout.session.completed",
        "created": created or int(time.time()),
        "data": {
            "object": {
                "id": "cs_test_123",
                "subscription": subscription,
                "customer": customer,
                "amount_total": amount_total,
                "payment_status": "paid",
                "currency": "usd",
                "metadata": {"userId": str(user_id), "communityId": str(community_id)},
            }
        },
    }


def subscription_event(event_type, subscription="sub_123", status="active", event_id="evt_sub",
                       current_period_end=None, created=None):
    return {
        "id": event_id,
        "type": event_type,
        "created": created or int(time.time()),
        "data": {
            "object": {
                "id": subscription,
                "status": status,
                "customer": "cus_123",
                "current_period_end": current_period_end,
            }
        },
    }


def invoice_event(event_type, invoice_id="in_1", subscription="sub_123", amount=999, event_id="evt_invoice",
                  created=None):
    return {
        "id": event_id,
        "type": event_type,
        "created": created or int(time.time()),
        "data": {
            "object": {
                "id": invoice_id,
                "subscription": subscription,
                "customer": "cus_123",
                "amount_due": amount,
                "amount_paid": amount if event_type == "invoice.payment_succeeded" else 0,
                "currency": "usd",
            }
        },
    }

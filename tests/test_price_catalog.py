"""Price catalog tests (Stripe API replaced with monkeypatch)"""
from decimal import Decimal

import pytest
import stripe

from conftest import make_community, make_user
from hoodpay.core.errors import InvalidAmount, NoValidPrice
from hoodpay.models.stripe_price import StripePrice
from hoodpay.services.price_catalog import PriceCatalog


class FakeStripePrices:
    """Minimal in-memory stand-in for the Stripe Price/Product API."""

    def __init__(self, prices=None, fail_create=False):
        self.prices = dict(prices or {})
        self.fail_create = fail_create
        self.created = []

    def retrieve(self, price_id):
        if price_id not in self.prices:
            raise stripe.InvalidRequestError(f"No such price: '{price_id}'", "price")
        return self.prices[price_id]

    def list(self, **kwargs):
        return {"data": [p for p in self.prices.values() if p["active"]]}

    def create_product(self, **kwargs):
        if self.fail_create:
            raise stripe.StripeError("Stripe is down")
        return {"id": f"prod_{len(self.created) + 1}"}

    def create_price(self, product, unit_amount, currency, recurring):
        price_id = f"price_new_{unit_amount}"
        price = {
            "id": price_id,
            "active": True,
            "unit_amount": unit_amount,
            "currency": currency,
            "recurring": recurring,
            "product": product,
        }
        self.prices[price_id] = price
        self.created.append(price_id)
        return price


@pytest.fixture
def fake_stripe(monkeypatch):
    fake = FakeStripePrices()
    monkeypatch.setattr(stripe.Price, "retrieve", fake.retrieve)
    monkeypatch.setattr(stripe.Price, "list", fake.list)
    monkeypatch.setattr(stripe.Price, "create", fake.create_price)
    monkeypatch.setattr(stripe.Product, "create", fake.create_product)
    return fake


def _price(price_id, amount, active=True, interval="month"):
    return {
        "id": price_id,
        "active": active,
        "unit_amount": amount,
        "currency": "usd",
        "recurring": {"interval": interval},
        "product": "prod_existing",
    }


def test_validate(db, fake_stripe):
    fake_stripe.prices["price_live"] = _price("price_live", 999)
    fake_stripe.prices["price_archived"] = _price("price_archived", 999, active=False)
    catalog = PriceCatalog(db)
    assert catalog.validate("price_live") is True
    assert catalog.validate("price_archived") is False
    assert catalog.validate("price_missing") is False
    assert catalog.validate(None) is False


def test_resolve_creates_and_caches(db, fake_stripe):
    catalog = PriceCatalog(db)
    ref = catalog.resolve(999)
    db.commit()
    assert ref.price_id == "price_new_999"
    assert ref.source == "newly_created"

    again = catalog.resolve(999)
    assert again.price_id == "price_new_999"
    assert again.source == "cache"
    assert fake_stripe.created == ["price_new_999"]
    assert db.query(StripePrice).count() == 1


def test_resolve_reuses_matching_stripe_price(db, fake_stripe):
    fake_stripe.prices["price_yearly"] = _price("price_yearly", 999, interval="year")
    fake_stripe.prices["price_monthly"] = _price("price_monthly", 999)
    ref = PriceCatalog(db).resolve(999)
    assert ref.price_id == "price_monthly"
    assert ref.source == "stripe_search"
    assert fake_stripe.created == []


def test_stale_cache_entry_is_replaced(db, fake_stripe):
    db.add(StripePrice(amount_cents=999, stripe_price_id="price_deleted"))
    db.commit()
    ref = PriceCatalog(db).resolve(999)
    db.commit()
    assert ref.price_id == "price_new_999"
    assert db.query(StripePrice).one().stripe_price_id == "price_new_999"


def test_creation_failure_fails_closed(db, fake_stripe):
    fake_stripe.fail_create = True
    with pytest.raises(NoValidPrice):
        PriceCatalog(db).resolve(999)
    assert db.query(StripePrice).count() == 0


def test_non_positive_amount_is_rejected(db, fake_stripe):
    with pytest.raises(InvalidAmount):
        PriceCatalog(db).resolve(0)


def test_resolve_for_community_repairs_reference(db, fake_stripe):
    creator = make_user(db, "creator@example.com")
    community = make_community(db, creator, price=Decimal("9.99"), stripe_price_id="price_deleted")
    ref = PriceCatalog(db).resolve_for_community(community)
    db.commit()
    assert ref.price_id == "price_new_999"
    assert community.stripe_price_id == "price_new_999"
    assert community.stripe_product_id == "prod_1"


def test_resolve_for_community_keeps_valid_reference(db, fake_stripe):
    fake_stripe.prices["price_live"] = _price("price_live", 999)
    creator = make_user(db, "creator@example.com")
    community = make_community(db, creator, stripe_price_id="price_live")
    ref = PriceCatalog(db).resolve_for_community(community)
    assert ref.price_id == "price_live"
    assert ref.source == "community"


def test_sync_all_prices_clears_invalid_references(db, fake_stripe):
    fake_stripe.prices["price_live"] = _price("price_live", 999)
    creator = make_user(db, "creator@example.com")
    good = make_community(db, creator, name="Good", stripe_price_id="price_live")
    bad = make_community(db, creator, name="Bad", stripe_price_id="price_deleted")

    result = PriceCatalog(db).sync_all_prices()
    assert result == {"validCommunities": 1, "invalidCommunities": 1}
    assert good.stripe_price_id == "price_live"
    assert bad.stripe_price_id is None

"""
Resolves nominal community prices to valid Stripe price ids.

Price ids are cached in stripe_prices by (amount, currency, interval) and
re-validated against Stripe before use, since prices can be deleted or
archived on the provider side. Creation failures fail closed with NoValidPrice.
"""
from sqlalchemy.orm import Session
from dataclasses import dataclass
from datetime import datetime
from typing import Optional
import logging

import stripe

from hoodpay.core.config import settings
from hoodpay.core.errors import NoValidPrice, InvalidAmount
from hoodpay.models.community import Community
from hoodpay.models.stripe_price import StripePrice
from hoodpay.services.payment_split import to_minor_units

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PriceRef:
    price_id: str
    amount_cents: int
    product_id: Optional[str] = None
    source: str = "cache"  # cache, community, stripe_search, newly_created


class PriceCatalog:
    def __init__(self, db: Session, currency: Optional[str] = None, interval: Optional[str] = None):
        self.db = db
        self.currency = currency or settings.STRIPE_CURRENCY
        self.interval = interval or settings.STRIPE_PRICE_INTERVAL

    def validate(self, price_id: Optional[str]) -> bool:
        """True if the price still exists on Stripe and is active."""
        if not price_id:
            return False
        try:
            price = stripe.Price.retrieve(price_id)
        except stripe.InvalidRequestError as e:
            logger.warning(f"[PRICES] Price {price_id} not found on Stripe: {getattr(e, 'code', None)}")
            return False
        except stripe.StripeError as e:
            logger.warning(f"[PRICES] Could not validate price {price_id}: {str(e)}")
            return False
        return bool(price.get("active", False))

    def _cached(self, amount_cents: int) -> Optional[StripePrice]:
        return self.db.query(StripePrice).filter(
            StripePrice.amount_cents == amount_cents,
            StripePrice.currency == self.currency,
            StripePrice.interval == self.interval
        ).first()

    def _store(self, amount_cents: int, price_id: str, product_id: Optional[str]) -> None:
        cached = self._cached(amount_cents)
        if cached:
            cached.stripe_price_id = price_id
            cached.stripe_product_id = product_id
            cached.updated_at = datetime.utcnow()
        else:
            self.db.add(StripePrice(
                amount_cents=amount_cents,
                currency=self.currency,
                interval=self.interval,
                stripe_price_id=price_id,
                stripe_product_id=product_id,
            ))
        self.db.flush()

    def _search_stripe(self, amount_cents: int) -> Optional[PriceRef]:
        try:
            prices = stripe.Price.list(active=True, limit=100)
        except stripe.StripeError as e:
            logger.warning(f"[PRICES] Could not list Stripe prices: {str(e)}")
            return None
        for price in prices.get("data", []):
            recurring = price.get("recurring") or {}
            if (
                price.get("unit_amount") == amount_cents
                and price.get("currency") == self.currency
                and recurring.get("interval") == self.interval
            ):
                product = price.get("product")
                product_id = product if isinstance(product, str) else (product or {}).get("id")
                return PriceRef(price_id=price["id"], amount_cents=amount_cents, product_id=product_id, source="stripe_search")
        return None

    def _create(self, amount_cents: int) -> PriceRef:
        dollars = f"{amount_cents / 100:.2f}"
        try:
            product = stripe.Product.create(
                name=f"Community subscription ${dollars}",
                description=f"Premium community access for ${dollars}/{self.interval}",
            )
            price = stripe.Price.create(
                product=product["id"],
                unit_amount=amount_cents,
                currency=self.currency,
                recurring={"interval": self.interval},
            )
        except stripe.StripeError as e:
            logger.error(f"[PRICES] Failed to create Stripe price for {amount_cents} cents: {str(e)}")
            raise NoValidPrice(f"Could not create a price for {dollars} {self.currency}") from e
        logger.info(f"[PRICES] Created price {price['id']} for {amount_cents} cents")
        return PriceRef(price_id=price["id"], amount_cents=amount_cents, product_id=product["id"], source="newly_created")

    def resolve(self, amount_cents: int) -> PriceRef:
        """
        Return a valid price id for amount_cents: the cached one if it still
        validates, else a matching active Stripe price, else a new product+price.
        """
        if amount_cents <= 0:
            raise InvalidAmount(f"Cannot price a subscription at {amount_cents} cents")

        cached = self._cached(amount_cents)
        if cached and self.validate(cached.stripe_price_id):
            return PriceRef(price_id=cached.stripe_price_id, amount_cents=amount_cents, product_id=cached.stripe_product_id)
        if cached:
            logger.info(f"[PRICES] Cached price {cached.stripe_price_id} for {amount_cents} cents is stale")

        ref = self._search_stripe(amount_cents) or self._create(amount_cents)
        self._store(amount_cents, ref.price_id, ref.product_id)
        return ref

    def resolve_for_community(self, community: Community) -> PriceRef:
        """
        Use the community's own price id when valid; otherwise resolve by amount
        and write the repaired reference back onto the community.
        """
        amount_cents = to_minor_units(community.price or 0)
        if community.stripe_price_id and self.validate(community.stripe_price_id):
            return PriceRef(
                price_id=community.stripe_price_id,
                amount_cents=amount_cents,
                product_id=community.stripe_product_id,
                source="community",
            )

        ref = self.resolve(amount_cents)
        if community.stripe_price_id != ref.price_id:
            logger.info(
                f"[PRICES] Repairing community {community.id} price: "
                f"{community.stripe_price_id or '(none)'} -> {ref.price_id}"
            )
            community.stripe_price_id = ref.price_id
            if ref.product_id:
                community.stripe_product_id = ref.product_id
            self.db.flush()
        return ref

    def sync_all_prices(self) -> dict:
        """Clear community price references that no longer validate."""
        valid = 0
        invalid = 0
        communities = self.db.query(Community).filter(
            Community.stripe_price_id.isnot(None),
            Community.stripe_price_id != ""
        ).all()
        for community in communities:
            if self.validate(community.stripe_price_id):
                valid += 1
                continue
            logger.info(f"[PRICES] Invalid price for community {community.name}: {community.stripe_price_id}")
            community.stripe_price_id = None
            community.stripe_product_id = None
            invalid += 1
        self.db.commit()
        logger.info(f"[PRICES] Sync finished: {valid} valid, {invalid} invalid")
        return {"validCommunities": valid, "invalidCommunities": invalid}

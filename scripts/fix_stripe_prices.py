#!/usr/bin/env python3
"""
Diagnose and repair community Stripe prices.

Usage:
    python scripts/fix_stripe_prices.py diagnose   # report valid/invalid/missing prices
    python scripts/fix_stripe_prices.py sync       # clear references that no longer validate
    python scripts/fix_stripe_prices.py fix        # re-resolve invalid references by amount
    python scripts/fix_stripe_prices.py create     # create prices for paid communities without one
"""
import os
import sys

# Add parent directory to path to import hoodpay modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import or_

from hoodpay.core.errors import BillingError
from hoodpay.core.stripe_client import configure_stripe
from hoodpay.db.session import SessionLocal
from hoodpay.models.community import Community
from hoodpay.services.payment_split import to_minor_units
from hoodpay.services.price_catalog import PriceCatalog


def diagnose(db):
    print("=" * 60)
    print("Stripe Price Diagnosis")
    print("=" * 60)
    catalog = PriceCatalog(db)
    communities = db.query(Community).order_by(Community.name).all()
    print(f"Communities: {len(communities)}")

    valid = invalid = missing = 0
    for community in communities:
        if not community.stripe_price_id:
            missing += 1
            print(f"  ⚠️  {community.name}: no price configured")
        elif catalog.validate(community.stripe_price_id):
            valid += 1
            print(f"  ✅ {community.name}: {community.stripe_price_id} (${community.price})")
        else:
            invalid += 1
            print(f"  ❌ {community.name}: {community.stripe_price_id} is not a valid active price")

    print()
    print(f"Valid: {valid}  Invalid: {invalid}  Missing: {missing}")
    if invalid:
        print("Run: python scripts/fix_stripe_prices.py fix")


def sync(db):
    result = PriceCatalog(db).sync_all_prices()
    print(f"✅ Sync complete: {result['validCommunities']} valid, {result['invalidCommunities']} cleared")


def fix(db):
    catalog = PriceCatalog(db)
    communities = db.query(Community).filter(
        Community.stripe_price_id.isnot(None),
        Community.stripe_price_id != ""
    ).all()

    fixed = failed = 0
    for community in communities:
        if catalog.validate(community.stripe_price_id):
            continue
        print(f"🔄 Repairing {community.name} (${community.price})...")
        try:
            ref = catalog.resolve_for_community(community)
            db.commit()
            print(f"   ✅ {ref.price_id} ({ref.source})")
            fixed += 1
        except BillingError as e:
            db.rollback()
            print(f"   ❌ {str(e)}")
            failed += 1

    print(f"Repaired: {fixed}  Failed: {failed}")


def create(db):
    catalog = PriceCatalog(db)
    communities = db.query(Community).filter(
        or_(Community.stripe_price_id.is_(None), Community.stripe_price_id == ""),
        Community.is_free.is_(False),
        Community.price > 0
    ).all()
    print(f"Communities without a price: {len(communities)}")

    created = failed = 0
    for community in communities:
        print(f"🆕 Creating price for {community.name} (${community.price})...")
        try:
            ref = catalog.resolve(to_minor_units(community.price))
            community.stripe_price_id = ref.price_id
            community.stripe_product_id = ref.product_id
            db.commit()
            print(f"   ✅ {ref.price_id} ({ref.source})")
            created += 1
        except BillingError as e:
            db.rollback()
            print(f"   ❌ {str(e)}")
            failed += 1

    print(f"Created: {created}  Failed: {failed}")


COMMANDS = {"diagnose": diagnose, "sync": sync, "fix": fix, "create": create}


if __name__ == "__main__":
    if len(sys.argv) < 2 or sys.argv[1] not in COMMANDS:
        print(__doc__)
        sys.exit(1)

    if not configure_stripe():
        print("❌ STRIPE_SECRET_KEY is not set")
        sys.exit(1)

    db = SessionLocal()
    try:
        COMMANDS[sys.argv[1]](db)
    finally:
        db.close()

"""
Checkout and billing-portal session creation (subscription initiation).
"""
from sqlalchemy.orm import Session
from typing import Any, Dict, Optional
import logging
import uuid

import stripe

from hoodpay.core.config import settings
from hoodpay.core.errors import CommunityNotFound, UserNotFound, InvalidAmount, NoManageableSubscription, NoValidPrice
from hoodpay.models.community import Community
from hoodpay.models.subscription import Subscription
from hoodpay.models.user import User
from hoodpay.services.price_catalog import PriceCatalog

logger = logging.getLogger(__name__)


class CheckoutSessionBuilder:
    def __init__(self, db: Session, price_catalog: Optional[PriceCatalog] = None):
        self.db = db
        self.price_catalog = price_catalog or PriceCatalog(db)

    def build(self, user_id: uuid.UUID, community_id: uuid.UUID) -> Dict[str, Any]:
        """
        Build the Stripe checkout session parameters for (user, community).

        May persist a repaired price reference on the community (not committed
        here). Raises CommunityNotFound, UserNotFound, InvalidAmount or NoValidPrice.
        """
        community = self.db.query(Community).filter(Community.id == community_id).first()
        if not community:
            raise CommunityNotFound(community_id)
        user = self.db.query(User).filter(User.id == user_id).first()
        if not user:
            raise UserNotFound(user_id)
        if community.is_free:
            raise InvalidAmount("This community is free; join it directly")
        if not community.can_accept_new_subscriptions():
            raise InvalidAmount("This community is not accepting new subscriptions")

        price_ref = self.price_catalog.resolve_for_community(community)
        if not price_ref.price_id:
            raise NoValidPrice(f"No valid price for community {community.id}")

        metadata = {"userId": str(user.id), "communityId": str(community.id)}
        params: Dict[str, Any] = {
            "mode": "subscription",
            "payment_method_types": ["card"],
            "customer_email": user.email,
            "line_items": [{"price": price_ref.price_id, "quantity": 1}],
            "metadata": metadata,
            "success_url": f"{settings.FRONTEND_URL}/success?session_id={{CHECKOUT_SESSION_ID}}",
            "cancel_url": f"{settings.FRONTEND_URL}/cancel",
        }
        subscription_data: Dict[str, Any] = {"metadata": metadata}
        if community.has_active_payout_account():
            # Split payment: Stripe keeps the platform fee and transfers the rest to the creator
            subscription_data["application_fee_percent"] = community.platform_fee_percentage
            subscription_data["transfer_data"] = {"destination": community.payout_account_id}
        params["subscription_data"] = subscription_data
        return params

    def create(self, user_id: uuid.UUID, community_id: uuid.UUID) -> str:
        """Build and open the checkout session; returns its URL."""
        params = self.build(user_id, community_id)
        try:
            session = stripe.checkout.Session.create(**params)
        except stripe.StripeError as e:
            self.db.rollback()
            logger.error(f"[CHECKOUT] Stripe rejected checkout session for community {community_id}: {str(e)}")
            raise
        # Keep any price repair made while building
        self.db.commit()
        logger.info(f"[CHECKOUT] Created checkout session {session['id']} for user {user_id} / community {community_id}")
        return session["url"]


def select_portal_subscription(
    db: Session,
    user_id: uuid.UUID,
    subscription_id: Optional[uuid.UUID] = None,
) -> Subscription:
    """
    Pick the subscription whose customer opens the billing portal: the given
    one, or the caller's most recently created one with a customer reference.
    """
    query = db.query(Subscription).filter(
        Subscription.user_id == user_id,
        Subscription.stripe_customer_id.isnot(None),
        Subscription.stripe_customer_id != ""
    )
    if subscription_id:
        subscription = query.filter(Subscription.id == subscription_id).first()
    else:
        subscription = query.order_by(Subscription.created_at.desc()).first()
    if not subscription:
        raise NoManageableSubscription("No subscription with a Stripe customer to manage")
    return subscription


def create_portal_session(db: Session, user_id: uuid.UUID, subscription_id: Optional[uuid.UUID] = None) -> str:
    subscription = select_portal_subscription(db, user_id, subscription_id)
    session = stripe.billing_portal.Session.create(
        customer=subscription.stripe_customer_id,
        return_url=f"{settings.FRONTEND_URL}/subscriptions",
    )
    logger.info(f"[CHECKOUT] Created portal session for user {user_id} (customer {subscription.stripe_customer_id})")
    return session["url"]

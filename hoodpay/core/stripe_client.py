import logging

import stripe

from hoodpay.core.config import settings

logger = logging.getLogger(__name__)


def configure_stripe() -> bool:
    """Set the platform API key. Returns False when Stripe is not configured."""
    if not settings.STRIPE_SECRET_KEY:
        logger.warning("[STRIPE] STRIPE_SECRET_KEY not configured; Stripe API calls will fail")
        return False
    stripe.api_key = settings.STRIPE_SECRET_KEY
    return True

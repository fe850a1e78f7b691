"""
Subscription initiation: checkout and billing-portal sessions, plus price
maintenance for the community catalog.
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
import logging

import stripe

from hoodpay.api.deps import get_current_user
from hoodpay.core.errors import InvalidAmount, NoManageableSubscription, NoValidPrice, NotFoundError
from hoodpay.db.session import get_db
from hoodpay.models.user import User
from hoodpay.schemas.stripe import (
    CheckoutSessionRequest,
    PortalSessionRequest,
    SessionUrlResponse,
    ValidatePriceRequest,
    PriceValidationResponse,
    PriceSyncResponse,
)
from hoodpay.services.checkout import CheckoutSessionBuilder, create_portal_session
from hoodpay.services.price_catalog import PriceCatalog

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/create-checkout-session", response_model=SessionUrlResponse)
def create_checkout_session(
    request: CheckoutSessionRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    try:
        url = CheckoutSessionBuilder(db).create(current_user.id, request.communityId)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except (InvalidAmount, NoValidPrice) as e:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except stripe.StripeError as e:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Stripe error creating checkout session: {getattr(e, 'user_message', None) or str(e)}"
        )
    return SessionUrlResponse(url=url)


@router.post("/create-portal-session", response_model=SessionUrlResponse)
def create_billing_portal_session(
    request: PortalSessionRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    try:
        url = create_portal_session(db, current_user.id, request.subscriptionId)
    except NoManageableSubscription as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except stripe.StripeError as e:
        logger.error(f"[CHECKOUT] Portal session failed for user {current_user.id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Stripe error creating portal session: {getattr(e, 'user_message', None) or str(e)}"
        )
    return SessionUrlResponse(url=url)


@router.post("/validate-price", response_model=PriceValidationResponse)
def validate_price(
    request: ValidatePriceRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    is_valid = PriceCatalog(db).validate(request.priceId)
    return PriceValidationResponse(priceId=request.priceId, isValid=is_valid)


@router.post("/sync-prices", response_model=PriceSyncResponse)
def sync_prices(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    logger.info(f"[PRICES] Price sync requested by user {current_user.id}")
    return PriceSyncResponse(**PriceCatalog(db).sync_all_prices())

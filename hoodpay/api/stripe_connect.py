"""
Creator-facing Stripe Connect: payout account setup and status, payout
history and earnings. Amounts are returned in dollars; the ledger stores cents.
"""
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session
from typing import Optional
import logging
import math
import uuid

import stripe

from hoodpay.api.deps import get_current_user
from hoodpay.core.config import settings
from hoodpay.db.session import get_db
from hoodpay.models.community import Community, PayoutAccountStatus
from hoodpay.models.user import User
from hoodpay.schemas.stripe import (
    CommunityEarnings,
    ConnectAccountRequest,
    ConnectAccountResponse,
    EarningsOverviewResponse,
    EarningsStats,
    LoginLinkResponse,
    OnboardingLinkResponse,
    Pagination,
    PayoutAccountStatusResponse,
    PayoutHistoryResponse,
    PayoutResponse,
)
from hoodpay.services.payout_ledger import PayoutLedger

router = APIRouter()
logger = logging.getLogger(__name__)


def _dollars(cents) -> float:
    return round((cents or 0) / 100, 2)


def _creator_community(db: Session, community_id: uuid.UUID, user: User) -> Community:
    community = db.query(Community).filter(Community.id == community_id).first()
    if not community:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Community not found")
    if community.creator_id != user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the community creator can manage payouts"
        )
    return community


def _earnings_stats(ledger: PayoutLedger, creator_id: uuid.UUID, community_id: Optional[uuid.UUID]) -> EarningsStats:
    earnings = ledger.total_earnings(creator_id, community_id)
    pending = ledger.pending_balance(creator_id, community_id)
    return EarningsStats(
        totalEarnings=_dollars(earnings.total),
        totalPayouts=earnings.count,
        averagePayout=_dollars(earnings.average),
        pendingBalance=_dollars(pending.amount),
    )


def account_status_from_stripe(account) -> str:
    """Map a Stripe Connect account onto pending/active/restricted."""
    requirements = account.get("requirements") or {}
    if account.get("charges_enabled") and account.get("payouts_enabled") and account.get("details_submitted"):
        return PayoutAccountStatus.ACTIVE.value
    if requirements.get("disabled_reason"):
        return PayoutAccountStatus.RESTRICTED.value
    return PayoutAccountStatus.PENDING.value


def _onboarding_link(community: Community):
    payments_url = f"{settings.FRONTEND_URL}/dashboard/communities/{community.id}/payments"
    return stripe.AccountLink.create(
        account=community.payout_account_id,
        refresh_url=payments_url,
        return_url=payments_url,
        type="account_onboarding",
    )


def _configured_community(db: Session, community_id: uuid.UUID, user: User) -> Community:
    community = _creator_community(db, community_id, user)
    if not community.payout_account_id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="This community has no Stripe Connect account configured"
        )
    return community


@router.post("/accounts", response_model=ConnectAccountResponse)
def create_connect_account(
    request: ConnectAccountRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Open a Stripe Connect account for a community the caller created.

    The account starts pending with the platform fee split; it only becomes
    active (and checkout starts splitting payments) once the status endpoint
    sees onboarding completed on Stripe.
    """
    community = _creator_community(db, request.communityId, current_user)
    if community.payout_account_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"This community already has Stripe Connect account {community.payout_account_id}"
        )

    try:
        account = stripe.Account.create(
            type=request.accountType,
            country=request.country,
            email=current_user.email,
            business_type="individual",
            capabilities={
                "card_payments": {"requested": True},
                "transfers": {"requested": True},
            },
            metadata={"community_id": str(community.id)},
        )
    except stripe.StripeError as e:
        logger.error(f"[PAYOUTS] Could not create Connect account for community {community.id}: {str(e)}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Could not create Stripe Connect account")

    platform_fee = settings.STRIPE_PLATFORM_FEE_PERCENTAGE
    community.payout_account_id = account["id"]
    community.payout_account_status = PayoutAccountStatus.PENDING.value
    community.platform_fee_percentage = platform_fee
    community.creator_fee_percentage = 100 - platform_fee
    db.commit()
    logger.info(f"[PAYOUTS] Community {community.id} linked to Connect account {account['id']} (pending)")

    try:
        link = _onboarding_link(community)
    except stripe.StripeError as e:
        # The account is saved; the creator can request a fresh link
        logger.error(f"[PAYOUTS] Could not create onboarding link for {account['id']}: {str(e)}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Could not create onboarding link")

    return ConnectAccountResponse(
        accountId=account["id"],
        onboardingUrl=link["url"],
        status=community.payout_account_status,
    )


@router.post("/accounts/{community_id}/onboarding", response_model=OnboardingLinkResponse)
def create_onboarding_link(
    community_id: uuid.UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    community = _configured_community(db, community_id, current_user)
    try:
        link = _onboarding_link(community)
    except stripe.StripeError as e:
        logger.error(f"[PAYOUTS] Could not create onboarding link for {community.payout_account_id}: {str(e)}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Could not create onboarding link")
    return OnboardingLinkResponse(onboardingUrl=link["url"], expiresAt=link.get("expires_at"))


@router.post("/accounts/{community_id}/login", response_model=LoginLinkResponse)
def create_login_link(
    community_id: uuid.UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """One-time link into the creator's Stripe Express dashboard."""
    community = _configured_community(db, community_id, current_user)
    try:
        link = stripe.Account.create_login_link(community.payout_account_id)
    except stripe.StripeError as e:
        logger.error(f"[PAYOUTS] Could not create login link for {community.payout_account_id}: {str(e)}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Could not create Stripe dashboard link")
    return LoginLinkResponse(loginUrl=link["url"])


@router.get("/accounts/{community_id}/status", response_model=PayoutAccountStatusResponse)
def get_account_status(
    community_id: uuid.UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    community = _configured_community(db, community_id, current_user)
    try:
        account = stripe.Account.retrieve(community.payout_account_id)
    except stripe.StripeError as e:
        logger.error(f"[PAYOUTS] Could not retrieve account {community.payout_account_id}: {str(e)}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Could not retrieve Stripe account status")

    new_status = account_status_from_stripe(account)
    if community.payout_account_status != new_status:
        logger.info(
            f"[PAYOUTS] Community {community.id} payout account "
            f"{community.payout_account_status} -> {new_status}"
        )
        community.payout_account_status = new_status
        db.commit()

    ledger = PayoutLedger(db)
    return PayoutAccountStatusResponse(
        accountId=account.get("id"),
        status=community.payout_account_status,
        chargesEnabled=bool(account.get("charges_enabled")),
        payoutsEnabled=bool(account.get("payouts_enabled")),
        detailsSubmitted=bool(account.get("details_submitted")),
        earnings=_earnings_stats(ledger, current_user.id, community.id),
        platformFee=community.platform_fee_percentage,
        creatorFee=community.creator_fee_percentage,
    )


@router.get("/communities/{community_id}/payouts", response_model=PayoutHistoryResponse)
def get_payout_history(
    community_id: uuid.UUID,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status_filter: Optional[str] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    community = _creator_community(db, community_id, current_user)
    ledger = PayoutLedger(db)
    payouts, total = ledger.list_payouts(current_user.id, community.id, status_filter, page, limit)
    return PayoutHistoryResponse(
        payouts=[PayoutResponse.model_validate(p) for p in payouts],
        pagination=Pagination(page=page, limit=limit, total=total, pages=math.ceil(total / limit) if total else 0),
        stats=_earnings_stats(ledger, current_user.id, community.id),
        statusCounts=ledger.community_payout_stats(community.id),
    )


@router.get("/earnings/overview", response_model=EarningsOverviewResponse)
def get_earnings_overview(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    ledger = PayoutLedger(db)
    communities = db.query(Community).filter(
        Community.creator_id == current_user.id
    ).order_by(Community.created_at.asc()).all()

    rows = []
    total_earnings = 0
    total_pending = 0
    for community in communities:
        earnings = ledger.total_earnings(current_user.id, community.id)
        pending = ledger.pending_balance(current_user.id, community.id)
        total_earnings += earnings.total
        total_pending += pending.amount
        rows.append(CommunityEarnings(
            communityId=community.id,
            communityName=community.name,
            totalEarnings=_dollars(earnings.total),
            totalPayouts=earnings.count,
            pendingBalance=_dollars(pending.amount),
            payoutAccountStatus=community.payout_account_status,
        ))

    return EarningsOverviewResponse(
        communities=rows,
        totalEarnings=_dollars(total_earnings),
        totalPending=_dollars(total_pending),
    )

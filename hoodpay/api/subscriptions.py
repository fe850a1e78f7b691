from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List
from datetime import datetime
import logging
import uuid

from hoodpay.api.deps import get_current_user
from hoodpay.db.session import get_db
from hoodpay.models.community import Community
from hoodpay.models.subscription import Subscription, SubscriptionStatus
from hoodpay.models.user import User
from hoodpay.schemas.subscription import CancelSubscriptionRequest, SubscriptionCheckResponse, SubscriptionResponse
from hoodpay.services.membership import MembershipSynchronizer

router = APIRouter()
logger = logging.getLogger(__name__)


def _active_subscription(db: Session, user_id: uuid.UUID, community_id: uuid.UUID):
    return db.query(Subscription).filter(
        Subscription.user_id == user_id,
        Subscription.community_id == community_id,
        Subscription.status == SubscriptionStatus.ACTIVE.value
    ).first()


@router.post("/{community_id}/join", response_model=SubscriptionResponse, status_code=status.HTTP_201_CREATED)
def join_free_community(
    community_id: uuid.UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Join a free community without going through Stripe."""
    community = db.query(Community).filter(Community.id == community_id).first()
    if not community:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Community not found")
    if not community.is_free:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="This community requires a paid subscription; use checkout"
        )
    if not community.can_accept_new_subscriptions():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="This community is not accepting new subscriptions")
    if community.creator_id == current_user.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You are the creator of this community")
    if _active_subscription(db, current_user.id, community.id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Already subscribed to this community")

    membership = MembershipSynchronizer(db)
    subscription = Subscription(
        user_id=current_user.id,
        community_id=community.id,
        status=SubscriptionStatus.ACTIVE.value,
        amount_cents=0,
        payment_method="manual",
        start_date=datetime.utcnow(),
    )
    db.add(subscription)
    membership.add_member(current_user.id, community)
    db.commit()
    db.refresh(subscription)
    logger.info(f"[MEMBERSHIP] User {current_user.id} joined free community {community.id}")

    try:
        membership.make_allies(current_user.id, community)
        db.commit()
    except Exception:
        db.rollback()
        logger.exception(f"[MEMBERSHIP] Ally join failed for user {current_user.id} in community {community.id}")
    return subscription


@router.post("/cancel", response_model=SubscriptionResponse)
def cancel_subscription(
    request: CancelSubscriptionRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    if not request.subscriptionId and not request.communityId:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="communityId or subscriptionId is required")

    query = db.query(Subscription).filter(
        Subscription.user_id == current_user.id,
        Subscription.status == SubscriptionStatus.ACTIVE.value
    )
    if request.subscriptionId:
        query = query.filter(Subscription.id == request.subscriptionId)
    else:
        query = query.filter(Subscription.community_id == request.communityId)
    subscription = query.first()
    if not subscription:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No active subscription for this community")

    community = db.query(Community).filter(Community.id == subscription.community_id).first()
    membership = MembershipSynchronizer(db)
    former_members = membership.member_ids(community)

    subscription.status = SubscriptionStatus.CANCELED.value
    subscription.end_date = datetime.utcnow()
    if current_user.id != community.creator_id:
        membership.remove_member(current_user.id, community)
    db.commit()
    db.refresh(subscription)
    logger.info(f"[MEMBERSHIP] User {current_user.id} canceled subscription {subscription.id}")

    if current_user.id != community.creator_id:
        try:
            membership.prune_allies(current_user.id, community, former_members)
            db.commit()
        except Exception:
            db.rollback()
            logger.exception(f"[MEMBERSHIP] Ally prune failed for user {current_user.id} leaving community {community.id}")
    return subscription


@router.get("/me", response_model=List[SubscriptionResponse])
def get_my_subscriptions(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    # All statuses, newest first
    return db.query(Subscription).filter(
        Subscription.user_id == current_user.id
    ).order_by(Subscription.created_at.desc()).all()


@router.get("/check/{community_id}", response_model=SubscriptionCheckResponse)
def check_subscription(
    community_id: uuid.UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    subscription = _active_subscription(db, current_user.id, community_id)
    return SubscriptionCheckResponse(
        isSubscribed=subscription is not None,
        subscription=SubscriptionResponse.model_validate(subscription) if subscription else None,
    )

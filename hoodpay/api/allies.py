from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List

from hoodpay.api.deps import get_current_user
from hoodpay.db.session import get_db
from hoodpay.models.user import User
from hoodpay.schemas.subscription import AllyResponse
from hoodpay.services.membership import MembershipSynchronizer

router = APIRouter()


@router.get("", response_model=List[AllyResponse])
def list_allies(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    edges = MembershipSynchronizer(db).allies_of(current_user.id)
    return [AllyResponse(userId=edge.other(current_user.id), since=edge.created_at) for edge in edges]

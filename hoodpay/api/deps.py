from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from functools import lru_cache
import uuid

from hoodpay.core.security import decode_access_token
from hoodpay.db.session import get_db
from hoodpay.models.user import User
from hoodpay.services.notifications import NotificationSink, build_notification_sink
from hoodpay.services.webhook_verifier import WebhookVerifier

security = HTTPBearer()


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db)
) -> User:
    """Resolve the bearer token's subject (user id) to a User."""
    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        user_id = uuid.UUID(str(payload.get("sub")))
    except (ValueError, TypeError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
        )

    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )
    return user


@lru_cache
def get_webhook_verifier() -> WebhookVerifier:
    # Tenant table is resolved once per process
    return WebhookVerifier.from_settings()


@lru_cache
def get_notification_sink() -> NotificationSink:
    return build_notification_sink()

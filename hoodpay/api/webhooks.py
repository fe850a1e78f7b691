"""
Stripe webhook handler.

Verifies the signature with the secret of the tenant the request arrived on,
then reconciles the event on the threadpool so blocking storage work stays
off the event loop. Stripe gets a 200 for everything except a bad signature
(400) or a storage/internal fault (500, so it retries).
"""
from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException, Request, status
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from typing import Optional
import logging

from hoodpay.api.deps import get_notification_sink, get_webhook_verifier
from hoodpay.core.errors import BillingError, MalformedEventError, NotFoundError, VerificationError
from hoodpay.db.session import get_db
from hoodpay.schemas.stripe import WebhookAck
from hoodpay.services.event_router import EventRouter
from hoodpay.services.notifications import NotificationSink, Notifier
from hoodpay.services.subscription_reconciler import SubscriptionReconciler
from hoodpay.services.webhook_verifier import WebhookVerifier

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/stripe", response_model=WebhookAck)
async def stripe_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    verifier: WebhookVerifier = Depends(get_webhook_verifier),
    sink: NotificationSink = Depends(get_notification_sink),
    stripe_signature: Optional[str] = Header(None, alias="stripe-signature"),
    x_forwarded_host: Optional[str] = Header(None, alias="x-forwarded-host"),
    host: Optional[str] = Header(None),
):
    body = await request.body()
    tenant_hint = x_forwarded_host or host

    try:
        payload = await run_in_threadpool(verifier.verify, body, stripe_signature, tenant_hint)
    except VerificationError as e:
        logger.warning(f"[WEBHOOK] Rejected delivery for host {tenant_hint!r}: {str(e)}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except MalformedEventError as e:
        logger.error(f"[WEBHOOK] {str(e)}")
        return WebhookAck()

    notifier = Notifier(sink, background_tasks)
    event_router = EventRouter(SubscriptionReconciler(db, notifier))

    try:
        outcome = await run_in_threadpool(event_router.dispatch, payload)
    except MalformedEventError as e:
        db.rollback()
        logger.error(f"[WEBHOOK] {str(e)}")
        return WebhookAck()
    except NotFoundError as e:
        db.rollback()
        logger.warning(f"[WEBHOOK] {payload.get('type')} ({payload.get('id')}): {str(e)}, acknowledged")
        return WebhookAck()
    except SQLAlchemyError:
        db.rollback()
        logger.exception(f"[WEBHOOK] Storage error handling {payload.get('type')} ({payload.get('id')})")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Storage error")
    except BillingError as e:
        db.rollback()
        logger.error(f"[WEBHOOK] Could not apply {payload.get('type')} ({payload.get('id')}): {str(e)}, acknowledged")
        return WebhookAck()

    if outcome is not None:
        logger.info(f"[WEBHOOK] {payload.get('type')} ({payload.get('id')}): {outcome.value}")
    return WebhookAck()

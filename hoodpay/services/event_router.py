"""
Routes verified Stripe events to reconciler transitions.

The mapping is closed: event types outside it are acknowledged and dropped.
"""
from typing import Callable, Dict, Optional
import logging

from hoodpay.schemas.stripe import EventKind, ProviderEvent, parse_event
from hoodpay.services.subscription_reconciler import ReconcileOutcome, SubscriptionReconciler

logger = logging.getLogger(__name__)

Handler = Callable[[ProviderEvent], ReconcileOutcome]


class EventRouter:
    def __init__(self, reconciler: SubscriptionReconciler):
        self.handlers: Dict[EventKind, Handler] = {
            EventKind.CHECKOUT_COMPLETED: reconciler.handle_checkout_completed,
            EventKind.SUBSCRIPTION_UPDATED: reconciler.handle_subscription_updated,
            EventKind.SUBSCRIPTION_DELETED: reconciler.handle_subscription_deleted,
            EventKind.PAYMENT_FAILED: reconciler.handle_payment_failed,
            EventKind.PAYMENT_SUCCEEDED: reconciler.handle_payment_succeeded,
        }

    def route(self, event: Optional[ProviderEvent]) -> Optional[Handler]:
        if event is None:
            return None
        return self.handlers.get(event.kind)

    def dispatch(self, payload: dict) -> Optional[ReconcileOutcome]:
        """
        Parse and handle one verified payload. Returns None for ignored types.

        Raises MalformedEventError and NotFoundError for the caller to
        acknowledge; storage errors propagate.
        """
        event = parse_event(payload)
        handler = self.route(event)
        if handler is None:
            logger.info(f"[WEBHOOK] Ignoring unhandled event type {payload.get('type')} ({payload.get('id')})")
            return None
        logger.info(f"[WEBHOOK] Handling {event.type} ({event.id})")
        return handler(event)

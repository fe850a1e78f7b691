"""
Stripe webhook signature verification with per-tenant signing secrets.

Each public domain (tenant) registers its own Stripe webhook endpoint and so
has its own signing secret. The host a delivery arrives on selects the
secret; unknown hosts use the default secret.
"""
from typing import Dict, Optional
import json
import logging

import stripe

from hoodpay.core.config import settings
from hoodpay.core.errors import VerificationError, MalformedEventError

logger = logging.getLogger(__name__)


def normalize_host(host: Optional[str]) -> str:
    """'WWW.Hoodfy.com:443' -> 'hoodfy.com'. First entry wins for proxy lists."""
    if not host:
        return ""
    host = host.split(",")[0].strip().lower()
    if host.startswith("[") and "]" in host:
        return host[1:host.index("]")]
    host = host.split(":")[0]
    if host.startswith("www."):
        host = host[4:]
    return host


class WebhookVerifier:
    def __init__(self, tenant_secrets: Dict[str, str], default_secret: Optional[str] = None, tolerance: int = 300):
        self.tenant_secrets = {normalize_host(k): v for k, v in tenant_secrets.items() if v}
        self.default_secret = default_secret
        self.tolerance = tolerance

    @classmethod
    def from_settings(cls) -> "WebhookVerifier":
        return cls(
            tenant_secrets=settings.get_webhook_tenant_secrets(),
            default_secret=settings.STRIPE_WEBHOOK_SECRET,
            tolerance=settings.STRIPE_WEBHOOK_TOLERANCE,
        )

    def secret_for(self, tenant_hint: Optional[str]) -> Optional[str]:
        host = normalize_host(tenant_hint)
        if host:
            if host in self.tenant_secrets:
                return self.tenant_secrets[host]
            # api.hoodfy.com falls under hoodfy.com
            for tenant, secret in self.tenant_secrets.items():
                if host.endswith("." + tenant):
                    return secret
        return self.default_secret

    def verify(self, raw_body: bytes, signature_header: Optional[str], tenant_hint: Optional[str]) -> dict:
        """Return the decoded event payload or raise VerificationError."""
        if not signature_header:
            raise VerificationError("Missing Stripe-Signature header")
        secret = self.secret_for(tenant_hint)
        if not secret:
            raise VerificationError(f"No webhook signing secret configured for host {tenant_hint!r}")

        try:
            payload = raw_body.decode("utf-8")
        except UnicodeDecodeError:
            raise VerificationError("Webhook body is not valid UTF-8")

        try:
            stripe.WebhookSignature.verify_header(payload, signature_header, secret, self.tolerance)
        except stripe.SignatureVerificationError as e:
            raise VerificationError(f"Signature verification failed: {str(e)}")

        # Signed by Stripe but unusable: acknowledged upstream, not retried
        try:
            event = json.loads(payload)
        except ValueError as e:
            raise MalformedEventError(f"Invalid payload: {str(e)}")
        if not isinstance(event, dict):
            raise MalformedEventError("Invalid payload: not a JSON object")
        return event

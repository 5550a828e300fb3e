from __future__ import annotations

import hashlib
import hmac
import logging
from typing import Any, Callable

import stripe

from bizops.core.config import WebhookConfig
from bizops.schemas.events import InboundEvent, StripeEvent
from bizops.services.errors import InvalidSignature, MalformedPayload
from bizops.services.events import parse_invoiceninja_event, parse_stripe_event

logger = logging.getLogger(__name__)


class StripeSignatureVerifier:
    """
    Verifies Stripe's timestamped signature scheme through the official SDK.

    The SDK recomputes the HMAC over `timestamp.payload` and enforces the timestamp
    tolerance, so the body must be the exact bytes Stripe sent.
    """

    def __init__(self, config: WebhookConfig, stripe_client: Any | None = None):
        self.config = config
        self.stripe = stripe_client or stripe

    def verify(self, payload: bytes, signature: str | None) -> StripeEvent:
        if self.config.allow_unsigned:
            logger.warning("Stripe signature verification bypassed (env=%s)", self.config.environment)
            return parse_stripe_event(payload)

        if not self.config.stripe_webhook_secret:
            raise InvalidSignature("Stripe webhook secret is not configured")
        if not signature:
            raise InvalidSignature("Missing Stripe-Signature header")
        try:
            self.stripe.Webhook.construct_event(
                payload=payload,
                sig_header=signature,
                secret=self.config.stripe_webhook_secret,
            )
        except self.stripe.SignatureVerificationError as exc:
            raise InvalidSignature(f"Invalid Stripe signature: {exc}") from exc
        except ValueError as exc:
            raise MalformedPayload(f"Stripe payload is not valid JSON: {exc}") from exc
        # Parse our own typed view from the verified bytes.
        return parse_stripe_event(payload)


def compute_hmac_sha256(secret: str, payload: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


class HmacSignatureVerifier:
    """
    Generic HMAC-SHA256 verifier: hex digest of the raw body, compared in constant time.

    A missing secret or header is a verification failure, never a skip.
    """

    def __init__(
        self,
        *,
        source: str,
        secret: str,
        parser: Callable[[bytes], InboundEvent],
        allow_unsigned: bool = False,
    ):
        self.source = source
        self.secret = secret
        self.parser = parser
        self.allow_unsigned = allow_unsigned

    def is_valid(self, payload: bytes, signature: str | None) -> bool:
        if not self.secret:
            logger.warning("%s webhook secret not configured", self.source)
            return False
        if not signature:
            logger.warning("%s webhook missing signature header", self.source)
            return False
        expected = compute_hmac_sha256(self.secret, payload)
        return hmac.compare_digest(expected.encode("utf-8"), signature.strip().encode("utf-8"))

    def verify(self, payload: bytes, signature: str | None) -> InboundEvent:
        if self.allow_unsigned:
            logger.warning("%s signature verification bypassed", self.source)
        elif not self.is_valid(payload, signature):
            raise InvalidSignature(f"Invalid {self.source} signature")
        return self.parser(payload)


def invoiceninja_verifier(config: WebhookConfig) -> HmacSignatureVerifier:
    return HmacSignatureVerifier(
        source="invoiceninja",
        secret=config.invoiceninja_webhook_secret,
        parser=parse_invoiceninja_event,
        allow_unsigned=config.allow_unsigned,
    )

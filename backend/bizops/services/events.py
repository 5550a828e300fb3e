from __future__ import annotations

import json
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from bizops.models.webhook_event_dlq import EventSource
from bizops.schemas.events import InboundEvent, InvoiceNinjaEvent, RawEvent, StripeEvent
from bizops.services.errors import MalformedPayload


def decode_body(payload: bytes | str) -> str:
    if isinstance(payload, bytes):
        return payload.decode("utf-8", errors="replace")
    return payload


def load_json_object(payload: bytes | str) -> dict[str, Any]:
    try:
        document = json.loads(decode_body(payload))
    except ValueError as exc:
        raise MalformedPayload(f"Body is not valid JSON: {exc}") from exc
    if not isinstance(document, dict):
        raise MalformedPayload("Body must be a JSON object")
    return document


def parse_stripe_event(payload: bytes | str) -> StripeEvent:
    document = load_json_object(payload)
    try:
        return StripeEvent.model_validate(document)
    except PydanticValidationError as exc:
        raise MalformedPayload(f"Stripe event missing id/type: {exc.error_count()} error(s)") from exc


def parse_invoiceninja_event(payload: bytes | str) -> InvoiceNinjaEvent:
    document = load_json_object(payload)
    try:
        return InvoiceNinjaEvent.model_validate(document)
    except PydanticValidationError as exc:
        raise MalformedPayload(f"Invoice Ninja event malformed: {exc.error_count()} error(s)") from exc


def parse_inbound_event(source: str, payload: bytes | str) -> InboundEvent:
    """Rebuild the typed event for a stored body, selected by its recorded source."""
    if source == EventSource.STRIPE.value:
        return parse_stripe_event(payload)
    if source == EventSource.INVOICENINJA.value:
        return parse_invoiceninja_event(payload)
    document = load_json_object(payload)
    event_type = document.get("type") or document.get("event") or "unknown"
    return RawEvent(source=source, type=str(event_type), body=document)

from __future__ import annotations

import pytest
from sqlalchemy.exc import OperationalError

from bizops.models.payment import Payment
from bizops.models.webhook_event_dlq import WebhookEventDLQ
from bizops.schemas.events import InvoiceNinjaEvent, RawEvent, StripeEvent
from bizops.services.dlq import MAX_ERROR_MESSAGE_LENGTH, DLQStore
from bizops.services.errors import MalformedPayload, UnsupportedEventSource
from bizops.services.events import parse_inbound_event
from bizops.services.ingestion import WebhookIngestionService
from bizops.services.webhook_context import EventContext, HandlerResult, Outcome
from bizops.services.webhook_router import WebhookDispatcher
from webhook_payloads import encode, stripe_intent_event


def _boom(ctx, event):
    ctx.db.add(Payment(external_id="pi_partial", amount=1))
    ctx.db.flush()
    ctx.notify("payment_received", {"payment_id": "pi_partial"})
    raise RuntimeError("x" * (MAX_ERROR_MESSAGE_LENGTH + 50))


class _RecordingTrigger:
    def __init__(self):
        self.fired = []

    def fire_many(self, notifications):
        self.fired.extend(notifications)


def test_failure_rolls_back_and_stores_clipped_error(db_session):
    trigger = _RecordingTrigger()
    dispatcher = WebhookDispatcher({"stripe": {"payment_intent.succeeded": _boom}})
    body = encode(stripe_intent_event("inv-1"))
    event = parse_inbound_event("stripe", body)

    result = WebhookIngestionService(db_session, dispatcher=dispatcher, trigger=trigger).ingest(event, body)

    assert result.failed is True
    assert result.dlq_event_id is not None
    row = db_session.get(WebhookEventDLQ, result.dlq_event_id)
    assert len(row.error_message) == MAX_ERROR_MESSAGE_LENGTH
    # The handler's partial write and its notification are discarded.
    assert db_session.query(Payment).count() == 0
    assert trigger.fired == []


def test_dlq_write_failure_is_logged_not_raised(db_session, monkeypatch):
    def _broken_store(self, **kwargs):
        raise OperationalError("INSERT INTO webhook_event_dlq", {}, Exception("database is locked"))

    monkeypatch.setattr(DLQStore, "store_failure", _broken_store)
    dispatcher = WebhookDispatcher({"stripe": {"payment_intent.succeeded": _boom}})
    body = encode(stripe_intent_event("inv-1"))

    result = WebhookIngestionService(db_session, dispatcher=dispatcher).ingest(parse_inbound_event("stripe", body), body)

    assert result.failed is True
    assert result.dlq_event_id is None


def test_dispatcher_routes_on_source_then_type(db_session):
    seen = []

    def _handler(ctx, event):
        seen.append(event.event_type)
        return HandlerResult(Outcome.APPLIED)

    dispatcher = WebhookDispatcher({"invoiceninja": {"quote.approved": _handler}})
    ctx = EventContext(db_session)

    ninja = InvoiceNinjaEvent.model_validate({"event": "quote.approved", "quote": {"id": 1}})
    assert dispatcher.dispatch(ctx, ninja).outcome == Outcome.APPLIED
    # Same discriminator under a different source does not match.
    stripe_event = StripeEvent.model_validate({"id": "evt", "type": "quote.approved"})
    with pytest.raises(UnsupportedEventSource):
        dispatcher.dispatch(ctx, stripe_event)
    assert seen == ["quote.approved"]


def test_parse_inbound_event_variants():
    assert isinstance(parse_inbound_event("stripe", encode({"id": "evt", "type": "charge.refunded"})), StripeEvent)
    assert isinstance(parse_inbound_event("invoiceninja", encode({"event": "invoice.created"})), InvoiceNinjaEvent)

    raw = parse_inbound_event("quickbooks", encode({"type": "bill.paid", "id": 3}))
    assert isinstance(raw, RawEvent)
    assert raw.event_type == "bill.paid"
    assert raw.body["id"] == 3

    with pytest.raises(MalformedPayload):
        parse_inbound_event("stripe", encode({"type": "charge.refunded"}))
    with pytest.raises(MalformedPayload):
        parse_inbound_event("invoiceninja", b"[]")

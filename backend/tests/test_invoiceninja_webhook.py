from __future__ import annotations

from datetime import date
from decimal import Decimal

from bizops.models.estimate import Estimate
from bizops.models.invoice import Invoice
from bizops.models.payment import Payment
from bizops.models.webhook_event_dlq import WebhookEventDLQ
from webhook_payloads import encode, ninja_signature, stripe_intent_event, stripe_signature_header


def _post(client, document: dict, *, signature: str | None = None):
    body = encode(document)
    headers = {"x-ninja-signature": signature if signature is not None else ninja_signature(body)}
    return client.post("/webhooks/invoiceninja", content=body, headers=headers)


def test_quote_approved_marks_estimate_approved(client, db_session, estimate):
    resp = _post(client, {"event": "quote.approved", "quote": {"id": "ninja_quote_1", "number": "Q-0001"}})
    assert resp.status_code == 200
    assert resp.json() == {"received": True, "event_type": "quote.approved", "outcome": "applied"}

    db_session.expire_all()
    row = db_session.get(Estimate, estimate.estimate_id)
    assert row.status == "approved"
    assert row.approved_at is not None
    # Invoice creation is left to the workflow.
    assert db_session.query(Invoice).count() == 0


def test_quote_approved_twice_is_duplicate(client, db_session, estimate):
    _post(client, {"event": "quote.approved", "quote": {"id": "ninja_quote_1"}})
    resp = _post(client, {"event": "quote.approved", "quote": {"id": "ninja_quote_1"}})
    assert resp.json()["outcome"] == "duplicate"


def test_quote_approved_for_unknown_estimate_goes_to_dlq(client, db_session):
    resp = _post(client, {"event": "quote.approved", "quote": {"id": 999}})
    assert resp.status_code == 200
    assert resp.json()["error"] == "Processing failed, stored in DLQ"

    row = db_session.query(WebhookEventDLQ).one()
    assert row.event_source == "invoiceninja"
    assert row.event_type == "quote.approved"
    assert row.error_message == "Estimate not found: 999"


def test_invoice_created_links_job_and_client_through_quote(client, db_session, estimate):
    document = {
        "event": "invoice.created",
        "invoice": {
            "id": "ninja_inv_9",
            "number": "INV-0009",
            "status_id": 2,
            "amount": "1200.50",
            "date": "2026-10-01",
            "due_date": "2026-10-31",
            "public_notes": "Thanks for your business",
            "quote_id": "ninja_quote_1",
        },
    }
    resp = _post(client, document)
    assert resp.status_code == 200
    assert resp.json()["outcome"] == "applied"

    row = db_session.query(Invoice).filter(Invoice.external_id == "ninja_inv_9").one()
    assert row.client_id == estimate.client_id
    assert row.job_id == "job-1"
    assert row.status == "sent"
    assert Decimal(row.total_amount) == Decimal("1200.50")
    assert row.issue_date == date(2026, 10, 1)
    assert row.due_date == date(2026, 10, 31)
    assert row.notes == "Thanks for your business"


def test_invoice_created_resolves_client_by_email(client, db_session, customer):
    document = {
        "event": "invoice.created",
        "invoice": {"id": "ninja_inv_10", "status_id": "1", "amount": 300},
        "client": {"id": "c1", "email": "DANA@example.com"},
    }
    resp = _post(client, document)
    assert resp.json()["outcome"] == "applied"

    row = db_session.query(Invoice).filter(Invoice.external_id == "ninja_inv_10").one()
    assert row.client_id == customer.client_id
    assert row.job_id is None
    assert row.status == "draft"


def test_invoice_created_without_local_client_is_skipped(client, db_session):
    document = {
        "event": "invoice.created",
        "invoice": {"id": "ninja_inv_11", "amount": 10},
        "client": {"id": "c2", "email": "stranger@example.com"},
    }
    resp = _post(client, document)
    assert resp.status_code == 200
    assert resp.json()["outcome"] == "skipped"
    assert db_session.query(Invoice).count() == 0
    assert db_session.query(WebhookEventDLQ).count() == 0


def test_invoice_created_twice_is_duplicate(client, db_session, invoice):
    resp = _post(client, {"event": "invoice.created", "invoice": {"id": "ninja_inv_1", "amount": 2500}})
    assert resp.json()["outcome"] == "duplicate"
    assert db_session.query(Invoice).count() == 1


def test_invoice_updated_maps_status_and_sets_paid_at(client, db_session, invoice):
    resp = _post(
        client,
        {"event": "invoice.updated", "invoice": {"id": "ninja_inv_1", "status_id": 4, "amount": "2600.00"}},
    )
    assert resp.json()["outcome"] == "applied"

    db_session.expire_all()
    row = db_session.get(Invoice, invoice.invoice_id)
    assert row.status == "paid"
    assert row.paid_at is not None
    assert Decimal(row.total_amount) == Decimal("2600.00")


def test_invoice_updated_for_unmirrored_invoice_is_skipped(client, db_session):
    resp = _post(client, {"event": "invoice.updated", "invoice": {"id": "nope", "status_id": 4}})
    assert resp.status_code == 200
    assert resp.json()["outcome"] == "skipped"
    assert db_session.query(WebhookEventDLQ).count() == 0


def test_payment_created_records_payment_once(client, db_session, invoice):
    document = {
        "event": "payment.created",
        "payment": {"id": "ninja_pay_1", "invoice_id": "ninja_inv_1", "amount": "500.00", "date": "2026-10-02"},
    }
    first = _post(client, document)
    assert first.json()["outcome"] == "applied"
    second = _post(client, document)
    assert second.json()["outcome"] == "duplicate"

    payment = db_session.query(Payment).one()
    assert payment.external_id == "ninja_pay_1"
    assert payment.invoice_id == invoice.invoice_id
    assert Decimal(payment.amount) == Decimal("500.00")
    assert payment.method == "card"
    assert payment.status == "applied"


def test_payment_created_for_unknown_invoice_goes_to_dlq(client, db_session):
    document = {"event": "payment.created", "payment": {"id": "ninja_pay_2", "invoice_id": "missing", "amount": 1}}
    resp = _post(client, document)
    assert resp.status_code == 200
    assert resp.json()["error"] == "Processing failed, stored in DLQ"

    row = db_session.query(WebhookEventDLQ).one()
    assert row.error_message == "Invoice not found: missing"
    assert db_session.query(Payment).count() == 0


def test_payment_created_without_payment_goes_to_dlq(client, db_session):
    resp = _post(client, {"event": "payment.created"})
    assert resp.status_code == 200
    row = db_session.query(WebhookEventDLQ).one()
    assert row.error_message.startswith("Missing required field: payment")


def test_status_only_invoice_update_keeps_total(client, db_session, invoice):
    resp = _post(client, {"event": "invoice.updated", "invoice": {"id": "ninja_inv_1", "status_id": 2}})
    assert resp.json()["outcome"] == "applied"

    db_session.expire_all()
    assert Decimal(db_session.get(Invoice, invoice.invoice_id).total_amount) == Decimal("2500.00")

    # A later partial card payment is reconciled against the untouched total.
    body = encode(stripe_intent_event(invoice.invoice_id, amount=100000))
    resp = client.post("/webhooks/stripe", content=body, headers={"stripe-signature": stripe_signature_header(body)})
    assert resp.json()["outcome"] == "applied"

    db_session.expire_all()
    row = db_session.get(Invoice, invoice.invoice_id)
    assert row.status == "partial"
    assert row.paid_at is None


def test_amount_only_invoice_update_keeps_status(client, db_session, invoice):
    resp = _post(client, {"event": "invoice.updated", "invoice": {"id": "ninja_inv_1", "amount": "2750.00"}})
    assert resp.json()["outcome"] == "applied"

    db_session.expire_all()
    row = db_session.get(Invoice, invoice.invoice_id)
    assert row.status == "sent"
    assert Decimal(row.total_amount) == Decimal("2750.00")


def test_invoice_created_without_amount_goes_to_dlq(client, db_session, customer):
    document = {
        "event": "invoice.created",
        "invoice": {"id": "ninja_inv_12", "status_id": 2},
        "client": {"email": "dana@example.com"},
    }
    resp = _post(client, document)
    assert resp.status_code == 200
    assert resp.json()["error"] == "Processing failed, stored in DLQ"

    row = db_session.query(WebhookEventDLQ).one()
    assert row.error_message == "Missing required field: invoice.amount (invoice ninja_inv_12)"
    assert db_session.query(Invoice).count() == 0


def test_client_without_id_still_resolves_by_email(client, db_session, customer):
    document = {
        "event": "invoice.created",
        "invoice": {"id": "ninja_inv_13", "amount": 80},
        "client": {"email": "dana@example.com"},
    }
    resp = _post(client, document)
    assert resp.json()["outcome"] == "applied"
    row = db_session.query(Invoice).filter(Invoice.external_id == "ninja_inv_13").one()
    assert row.client_id == customer.client_id


def test_payment_created_without_amount_goes_to_dlq(client, db_session, invoice):
    document = {
        "event": "payment.created",
        "payment": {"id": "ninja_pay_3", "invoice_id": "ninja_inv_1", "amount": None},
    }
    resp = _post(client, document)
    assert resp.status_code == 200
    assert resp.json()["error"] == "Processing failed, stored in DLQ"

    row = db_session.query(WebhookEventDLQ).one()
    assert row.error_message == "Missing required field: payment.amount (payment ninja_pay_3)"
    assert db_session.query(Payment).count() == 0


def test_malformed_entity_goes_to_dlq(client, db_session, invoice):
    document = {
        "event": "payment.created",
        "payment": {"id": "ninja_pay_4", "invoice_id": "ninja_inv_1", "amount": "abc"},
    }
    resp = _post(client, document)
    assert resp.status_code == 200
    assert resp.json()["error"] == "Processing failed, stored in DLQ"

    row = db_session.query(WebhookEventDLQ).one()
    assert row.event_type == "payment.created"
    assert "amount" in row.error_message
    assert db_session.query(Payment).count() == 0


def test_unexpected_entity_shape_goes_to_dlq(client, db_session):
    resp = _post(client, {"event": "quote.approved", "quote": ["ninja_quote_1"]})
    assert resp.status_code == 200
    assert resp.json()["error"] == "Processing failed, stored in DLQ"
    assert db_session.query(WebhookEventDLQ).one().event_type == "quote.approved"


def test_unknown_event_is_ignored(client, db_session):
    resp = _post(client, {"event": "client.created", "client": {"id": 1}})
    assert resp.status_code == 200
    assert resp.json()["outcome"] == "ignored"


def test_invalid_signature_returns_401_without_dlq_write(client, db_session, invoice):
    resp = _post(
        client,
        {"event": "payment.created", "payment": {"id": "p", "invoice_id": "ninja_inv_1", "amount": 1}},
        signature="0" * 64,
    )
    assert resp.status_code == 401
    assert resp.json() == {"error": "UNAUTHORIZED", "message": "Invalid signature"}
    assert db_session.query(WebhookEventDLQ).count() == 0
    assert db_session.query(Payment).count() == 0


def test_missing_signature_returns_401(client, db_session):
    resp = client.post("/webhooks/invoiceninja", content=encode({"event": "quote.approved"}))
    assert resp.status_code == 401
    assert db_session.query(WebhookEventDLQ).count() == 0


def test_signed_but_malformed_body_returns_400(client, db_session):
    body = b"not json"
    resp = client.post("/webhooks/invoiceninja", content=body, headers={"x-ninja-signature": ninja_signature(body)})
    assert resp.status_code == 400
    assert db_session.query(WebhookEventDLQ).count() == 0

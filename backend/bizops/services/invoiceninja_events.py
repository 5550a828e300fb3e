from __future__ import annotations

import logging
from datetime import date, datetime, timezone

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from bizops.models.client import Client
from bizops.models.estimate import Estimate, EstimateStatus
from bizops.models.invoice import Invoice, InvoiceStatus
from bizops.models.payment import PaymentStatus
from bizops.schemas.events import InvoiceNinjaEvent
from bizops.services import workflows
from bizops.services.errors import MissingRequiredField, RelatedRecordNotFound
from bizops.services.invoices import InvoiceService
from bizops.services.payments import PaymentRecorder, is_unique_violation
from bizops.services.webhook_context import EventContext, HandlerResult, Outcome

logger = logging.getLogger(__name__)

QUOTE_APPROVED = "quote.approved"
INVOICE_CREATED = "invoice.created"
INVOICE_UPDATED = "invoice.updated"
PAYMENT_CREATED = "payment.created"

# Invoice Ninja numeric invoice status ids.
INVOICE_STATUS_MAP: dict[str, InvoiceStatus] = {
    "1": InvoiceStatus.DRAFT,
    "2": InvoiceStatus.SENT,
    "3": InvoiceStatus.PARTIAL,
    "4": InvoiceStatus.PAID,
    "5": InvoiceStatus.VOID,  # cancelled
    "6": InvoiceStatus.VOID,  # reversed
}

DEFAULT_PAYMENT_METHOD = "card"


def map_invoice_status(status_id: str | None) -> InvoiceStatus:
    return INVOICE_STATUS_MAP.get((status_id or "").strip(), InvoiceStatus.DRAFT)


def _parse_date(value: str | None) -> date | None:
    if not value:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        logger.warning("Unparseable Invoice Ninja date %r", value)
        return None


def _parse_datetime(value: str | None) -> datetime | None:
    parsed = _parse_date(value)
    if parsed is None:
        return None
    return datetime(parsed.year, parsed.month, parsed.day, tzinfo=timezone.utc)


def handle_quote_approved(ctx: EventContext, event: InvoiceNinjaEvent) -> HandlerResult:
    quote = event.quote_entity()
    if quote is None:
        raise MissingRequiredField("quote", context=event.event)

    estimate = ctx.db.query(Estimate).filter(Estimate.external_id == quote.id).first()
    if estimate is None:
        raise RelatedRecordNotFound("Estimate", quote.id)

    if estimate.status == EstimateStatus.APPROVED.value:
        return HandlerResult(Outcome.DUPLICATE, estimate.estimate_id)

    estimate.status = EstimateStatus.APPROVED.value
    estimate.approved_at = datetime.now(timezone.utc)
    ctx.db.flush()
    logger.info("Estimate %s marked as approved (quote_id=%s)", estimate.estimate_id, quote.id)

    # Invoice creation from an approved quote belongs to the n8n workflow.
    ctx.notify(
        workflows.QUOTE_APPROVED,
        {"estimate_id": estimate.estimate_id, "job_id": estimate.job_id, "client_id": estimate.client_id},
    )
    return HandlerResult(Outcome.APPLIED, estimate.estimate_id)


def handle_invoice_created(ctx: EventContext, event: InvoiceNinjaEvent) -> HandlerResult:
    remote = event.invoice_entity()
    if remote is None:
        raise MissingRequiredField("invoice", context=event.event)

    invoices = InvoiceService(ctx.db)
    existing = invoices.find_by_external_id(remote.id)
    if existing is not None:
        logger.info("Invoice %s already mirrored as %s", remote.id, existing.invoice_id)
        return HandlerResult(Outcome.DUPLICATE, existing.invoice_id)
    if remote.amount is None:
        raise MissingRequiredField("invoice.amount", context=f"invoice {remote.id}")

    job_id: str | None = None
    client_id: str | None = None
    if remote.quote_id:
        estimate = ctx.db.query(Estimate).filter(Estimate.external_id == remote.quote_id).first()
        if estimate is not None:
            job_id = estimate.job_id
            client_id = estimate.client_id

    remote_client = event.client_entity()
    if client_id is None and remote_client is not None and remote_client.email:
        email = remote_client.email.strip().lower()
        client = ctx.db.query(Client).filter(func.lower(Client.email) == email).first()
        if client is not None:
            client_id = client.client_id

    if client_id is None:
        # Not mirrored locally yet; there is nothing to reconcile against.
        logger.warning("Cannot mirror Invoice Ninja invoice %s without a local client", remote.id)
        return HandlerResult(Outcome.SKIPPED, "client not found")

    invoice = Invoice(
        client_id=client_id,
        job_id=job_id,
        external_id=remote.id,
        external_number=remote.number,
        status=map_invoice_status(remote.status_id).value,
        issue_date=_parse_date(remote.date),
        due_date=_parse_date(remote.due_date),
        total_amount=remote.amount,
        notes=remote.public_notes or None,
        internal_notes=remote.private_notes or None,
    )
    ctx.db.add(invoice)
    try:
        ctx.db.flush()
    except IntegrityError as exc:
        ctx.db.rollback()
        if not is_unique_violation(exc, "invoices_external_id_key", "invoices.external_id"):
            raise
        logger.info("Invoice %s mirrored concurrently; treating as duplicate", remote.id)
        return HandlerResult(Outcome.DUPLICATE, remote.id)

    logger.info("Invoice Ninja invoice %s (%s) mirrored as %s", remote.id, remote.number, invoice.invoice_id)
    return HandlerResult(Outcome.APPLIED, invoice.invoice_id)


def handle_invoice_updated(ctx: EventContext, event: InvoiceNinjaEvent) -> HandlerResult:
    remote = event.invoice_entity()
    if remote is None:
        raise MissingRequiredField("invoice", context=event.event)

    invoice = InvoiceService(ctx.db).find_by_external_id(remote.id)
    if invoice is None:
        logger.warning("Invoice Ninja invoice %s is not mirrored locally; ignoring update", remote.id)
        return HandlerResult(Outcome.SKIPPED, "invoice not mirrored")

    # Partial updates only touch the fields they carry.
    old_status = invoice.status
    if remote.status_id:
        invoice.status = map_invoice_status(remote.status_id).value
    if remote.amount is not None:
        invoice.total_amount = remote.amount
    became_paid = invoice.status == InvoiceStatus.PAID.value and old_status != InvoiceStatus.PAID.value
    if became_paid:
        invoice.paid_at = datetime.now(timezone.utc)
    ctx.db.flush()

    logger.info("Invoice %s status %s -> %s", invoice.invoice_id, old_status, invoice.status)
    if became_paid:
        ctx.notify(workflows.INVOICE_PAID, {"invoice_id": invoice.invoice_id})
    return HandlerResult(Outcome.APPLIED, invoice.invoice_id)


def handle_payment_created(ctx: EventContext, event: InvoiceNinjaEvent) -> HandlerResult:
    remote = event.payment_entity()
    if remote is None:
        raise MissingRequiredField("payment", context=event.event)
    if not remote.invoice_id:
        raise MissingRequiredField("payment.invoice_id", context=f"payment {remote.id}")
    if remote.amount is None:
        raise MissingRequiredField("payment.amount", context=f"payment {remote.id}")

    invoice = InvoiceService(ctx.db).find_by_external_id(remote.invoice_id)
    if invoice is None:
        raise RelatedRecordNotFound("Invoice", remote.invoice_id)

    invoice_id = invoice.invoice_id
    # Invoice Ninja amounts are already in major units.
    result = PaymentRecorder(ctx.db).record(
        external_id=remote.id,
        invoice_id=invoice_id,
        amount=remote.amount,
        currency=invoice.currency,
        method=DEFAULT_PAYMENT_METHOD,
        paid_at=_parse_datetime(remote.date) or datetime.now(timezone.utc),
        status=PaymentStatus.APPLIED,
        raw_event=event.model_dump(mode="json", exclude={"source"}),
    )
    if not result.created:
        logger.info("Invoice Ninja payment %s already recorded", remote.id)
        return HandlerResult(Outcome.DUPLICATE, result.payment.payment_id)

    # Invoice status follows from the invoice.updated event Invoice Ninja sends next.
    logger.info("Invoice Ninja payment %s recorded for invoice %s amount=%s", remote.id, invoice_id, remote.amount)
    ctx.notify(
        workflows.PAYMENT_RECEIVED,
        {
            "invoice_id": invoice_id,
            "payment_id": result.payment.payment_id,
            "amount": str(remote.amount),
            "source": "invoiceninja",
        },
    )
    return HandlerResult(Outcome.APPLIED, result.payment.payment_id)


INVOICENINJA_HANDLERS = {
    QUOTE_APPROVED: handle_quote_approved,
    INVOICE_CREATED: handle_invoice_created,
    INVOICE_UPDATED: handle_invoice_updated,
    PAYMENT_CREATED: handle_payment_created,
}

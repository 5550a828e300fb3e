from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal

from bizops.models.payment import PaymentStatus
from bizops.schemas.events import StripeEvent, StripePaymentIntent
from bizops.services import workflows
from bizops.services.errors import MissingRequiredField, RelatedRecordNotFound
from bizops.services.invoices import InvoiceService
from bizops.services.payments import PaymentRecorder
from bizops.services.webhook_context import EventContext, HandlerResult, Outcome

logger = logging.getLogger(__name__)

PAYMENT_INTENT_SUCCEEDED = "payment_intent.succeeded"
PAYMENT_INTENT_FAILED = "payment_intent.payment_failed"
CHARGE_SUCCEEDED = "charge.succeeded"
CHARGE_REFUNDED = "charge.refunded"

CENTS = Decimal("0.01")


def from_stripe_amount(amount: int) -> Decimal:
    """Stripe amounts are minor units (cents); payments are stored in major units."""
    return (Decimal(int(amount)) / Decimal(100)).quantize(CENTS, rounding=ROUND_HALF_UP)


def extract_payment_method(intent: StripePaymentIntent) -> str:
    charges = intent.charges.data if intent.charges else []
    if charges:
        details = charges[0].payment_method_details or {}
        method = details.get("type")
        if method:
            return str(method)
    if intent.payment_method_types:
        return intent.payment_method_types[0]
    return "unknown"


def _paid_at(intent: StripePaymentIntent) -> datetime:
    if intent.created:
        return datetime.fromtimestamp(intent.created, tz=timezone.utc)
    return datetime.now(timezone.utc)


def _require_invoice_id(intent: StripePaymentIntent) -> str:
    invoice_id = intent.metadata.get("invoice_id")
    if not invoice_id:
        raise MissingRequiredField("metadata.invoice_id", context=f"payment_intent {intent.id}")
    return str(invoice_id)


def handle_payment_intent_succeeded(ctx: EventContext, event: StripeEvent) -> HandlerResult:
    intent = event.payment_intent()
    invoice_id = _require_invoice_id(intent)

    invoices = InvoiceService(ctx.db)
    if invoices.get(invoice_id) is None:
        raise RelatedRecordNotFound("Invoice", invoice_id)

    amount = from_stripe_amount(intent.amount)
    recorder = PaymentRecorder(ctx.db)
    existing = recorder.find_by_external_id(intent.id)
    if existing is not None and existing.status == PaymentStatus.FAILED.value:
        # A retried PaymentIntent keeps its id; the earlier failed attempt becomes the payment.
        existing.status = PaymentStatus.APPLIED.value
        existing.amount = amount
        existing.paid_at = _paid_at(intent)
        existing.method = extract_payment_method(intent)
        existing.raw_event = event.model_dump(mode="json", exclude={"source"})
        ctx.db.flush()
        payment = existing
        logger.info("Failed payment %s promoted to applied", payment.payment_id)
    else:
        result = recorder.record(
            external_id=intent.id,
            invoice_id=invoice_id,
            amount=amount,
            currency=intent.currency,
            method=extract_payment_method(intent),
            paid_at=_paid_at(intent),
            status=PaymentStatus.APPLIED,
            raw_event=event.model_dump(mode="json", exclude={"source"}),
        )
        if not result.created:
            logger.info(
                "Stripe payment already recorded (idempotent) payment_intent=%s payment_id=%s",
                intent.id,
                result.payment.payment_id,
            )
            return HandlerResult(Outcome.DUPLICATE, result.payment.payment_id)
        payment = result.payment
        logger.info("Payment recorded payment_id=%s invoice_id=%s amount=%s", payment.payment_id, invoice_id, amount)

    # Re-read after the insert: balance comes from the payments just written.
    invoice = invoices.get(invoice_id)
    summary = invoices.apply_balance_status(invoice)

    ctx.notify(
        workflows.PAYMENT_RECEIVED,
        {"invoice_id": invoice_id, "payment_id": payment.payment_id, "amount": str(amount), "source": "stripe"},
    )
    if summary is not None and summary.balance_due <= 0:
        ctx.notify(workflows.INVOICE_PAID, {"invoice_id": invoice_id})
    return HandlerResult(Outcome.APPLIED, payment.payment_id)


def handle_payment_intent_failed(ctx: EventContext, event: StripeEvent) -> HandlerResult:
    intent = event.payment_intent()
    invoice_id = _require_invoice_id(intent)

    if InvoiceService(ctx.db).get(invoice_id) is None:
        raise RelatedRecordNotFound("Invoice", invoice_id)

    amount = from_stripe_amount(intent.amount)
    result = PaymentRecorder(ctx.db).record(
        external_id=intent.id,
        invoice_id=invoice_id,
        amount=amount,
        currency=intent.currency,
        method=extract_payment_method(intent),
        paid_at=None,
        status=PaymentStatus.FAILED,
        raw_event=event.model_dump(mode="json", exclude={"source"}),
    )
    if not result.created:
        logger.info("Failed payment %s already recorded", intent.id)
        return HandlerResult(Outcome.DUPLICATE, result.payment.payment_id)

    reason = (intent.last_payment_error or {}).get("message")
    logger.warning("Failed payment recorded invoice_id=%s amount=%s reason=%s", invoice_id, amount, reason)
    ctx.notify(
        workflows.PAYMENT_FAILED,
        {"invoice_id": invoice_id, "payment_intent_id": intent.id, "amount": str(amount), "reason": reason},
    )
    return HandlerResult(Outcome.APPLIED, result.payment.payment_id)


def handle_charge_succeeded(ctx: EventContext, event: StripeEvent) -> HandlerResult:  # noqa: ARG001
    charge = event.charge()
    if charge.payment_intent:
        logger.debug("Charge %s belongs to payment_intent %s; skipping", charge.id, charge.payment_intent)
        return HandlerResult(Outcome.SKIPPED, "handled by payment_intent.succeeded")
    logger.info("Standalone charge succeeded charge_id=%s", charge.id)
    return HandlerResult(Outcome.SKIPPED, "standalone charge")


def handle_charge_refunded(ctx: EventContext, event: StripeEvent) -> HandlerResult:
    charge = event.charge()
    if not charge.payment_intent:
        logger.warning("Refunded charge %s has no payment_intent; nothing to reconcile", charge.id)
        return HandlerResult(Outcome.SKIPPED, "no payment_intent")

    payment = PaymentRecorder(ctx.db).find_by_external_id(charge.payment_intent)
    if payment is None:
        logger.warning(
            "Original payment not found for refund charge_id=%s payment_intent=%s",
            charge.id,
            charge.payment_intent,
        )
        return HandlerResult(Outcome.SKIPPED, "payment not found")

    if payment.status == PaymentStatus.REFUNDED.value:
        return HandlerResult(Outcome.DUPLICATE, payment.payment_id)

    payment.status = PaymentStatus.REFUNDED.value
    if payment.invoice_id:
        InvoiceService(ctx.db).revert_to_sent(payment.invoice_id)
    ctx.db.flush()
    logger.info("Payment %s marked as refunded (invoice_id=%s)", payment.payment_id, payment.invoice_id)
    ctx.notify(
        workflows.PAYMENT_REFUNDED,
        {
            "invoice_id": payment.invoice_id,
            "payment_id": payment.payment_id,
            "amount_refunded": str(from_stripe_amount(charge.amount_refunded)),
        },
    )
    return HandlerResult(Outcome.APPLIED, payment.payment_id)


STRIPE_HANDLERS = {
    PAYMENT_INTENT_SUCCEEDED: handle_payment_intent_succeeded,
    PAYMENT_INTENT_FAILED: handle_payment_intent_failed,
    CHARGE_SUCCEEDED: handle_charge_succeeded,
    CHARGE_REFUNDED: handle_charge_refunded,
}

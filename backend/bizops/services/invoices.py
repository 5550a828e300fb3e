from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import func
from sqlalchemy.orm import Session

from bizops.models.invoice import Invoice, InvoiceStatus
from bizops.models.payment import Payment, PaymentStatus

logger = logging.getLogger(__name__)


@dataclass
class InvoiceSummary:
    invoice_id: str
    total_amount: Decimal
    paid_total: Decimal

    @property
    def balance_due(self) -> Decimal:
        return self.total_amount - self.paid_total


class InvoiceService:
    def __init__(self, db: Session):
        self.db = db

    def get(self, invoice_id: str) -> Invoice | None:
        return self.db.get(Invoice, invoice_id)

    def find_by_external_id(self, external_id: str) -> Invoice | None:
        return self.db.query(Invoice).filter(Invoice.external_id == external_id).first()

    def summary(self, invoice_id: str) -> InvoiceSummary | None:
        """
        Derived balance: invoice total minus applied payments.

        Runs inside the caller's transaction, so a payment flushed just before is
        already counted.
        """
        total = self.db.query(Invoice.total_amount).filter(Invoice.invoice_id == invoice_id).scalar()
        if total is None:
            return None
        paid = (
            self.db.query(func.coalesce(func.sum(Payment.amount), 0))
            .filter(Payment.invoice_id == invoice_id, Payment.status == PaymentStatus.APPLIED.value)
            .scalar()
        )
        return InvoiceSummary(
            invoice_id=invoice_id,
            total_amount=Decimal(str(total)),
            paid_total=Decimal(str(paid or 0)),
        )

    def apply_balance_status(self, invoice: Invoice) -> InvoiceSummary | None:
        """Set paid when nothing is left to pay, partial otherwise."""
        summary = self.summary(invoice.invoice_id)
        if summary is None:
            return None
        if summary.balance_due <= 0:
            invoice.status = InvoiceStatus.PAID.value
            invoice.paid_at = invoice.paid_at or datetime.now(timezone.utc)
            logger.info("Invoice %s marked as paid", invoice.invoice_id)
        else:
            invoice.status = InvoiceStatus.PARTIAL.value
            logger.info(
                "Invoice %s marked as partially paid (balance_due=%s)",
                invoice.invoice_id,
                summary.balance_due,
            )
        return summary

    def revert_to_sent(self, invoice_id: str) -> None:
        invoice = self.get(invoice_id)
        if invoice is None:
            return
        invoice.status = InvoiceStatus.SENT.value
        invoice.paid_at = None

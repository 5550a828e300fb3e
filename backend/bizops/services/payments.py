from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bizops.models.payment import Payment, PaymentStatus

logger = logging.getLogger(__name__)


def is_unique_violation(exc: IntegrityError, *markers: str) -> bool:
    """
    True when `exc` is a unique violation and, if `markers` are given, one of them
    names the violated constraint (Postgres constraint name or SQLite `table.column`).
    """
    orig = getattr(exc, "orig", None)
    message = str(orig or exc)
    if getattr(orig, "pgcode", None) != "23505" and "UNIQUE constraint failed" not in message:
        return False
    if not markers:
        return True
    diag = getattr(orig, "diag", None)
    if getattr(diag, "constraint_name", None) in markers:
        return True
    return any(marker in message for marker in markers)


@dataclass
class RecordResult:
    payment: Payment
    created: bool


class PaymentRecorder:
    """
    Idempotency guard for money movement, keyed on the source transaction id.

    `record()` is an insert-if-absent: the unique constraint on payments.external_id
    is what decides, so two deliveries racing past the existence check still end with
    one row. On a conflict the session is rolled back, which means `record()` must be
    the first write in its unit of work.
    """

    def __init__(self, db: Session):
        self.db = db

    def find_by_external_id(self, external_id: str) -> Payment | None:
        return self.db.query(Payment).filter(Payment.external_id == external_id).first()

    def exists(self, external_id: str) -> bool:
        return self.find_by_external_id(external_id) is not None

    def record(
        self,
        *,
        external_id: str,
        invoice_id: str | None,
        amount: Decimal,
        currency: str,
        method: str | None,
        paid_at: datetime | None,
        status: PaymentStatus,
        raw_event: dict[str, Any] | None = None,
    ) -> RecordResult:
        existing = self.find_by_external_id(external_id)
        if existing is not None:
            return RecordResult(payment=existing, created=False)

        payment = Payment(
            external_id=external_id,
            invoice_id=invoice_id,
            amount=amount,
            currency=(currency or "USD").upper(),
            method=method,
            paid_at=paid_at,
            status=status.value,
            raw_event=raw_event,
        )
        self.db.add(payment)
        try:
            self.db.flush()
        except IntegrityError as exc:
            self.db.rollback()
            if not is_unique_violation(exc, "uq_payments_external_id", "payments.external_id"):
                raise
            winner = self.find_by_external_id(external_id)
            if winner is None:
                raise
            logger.info("Payment %s inserted concurrently; treating as duplicate", external_id)
            return RecordResult(payment=winner, created=False)
        return RecordResult(payment=payment, created=True)

from __future__ import annotations

import uuid
from enum import Enum

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Numeric, String, UniqueConstraint, func

from bizops.core.base import Base


class PaymentStatus(str, Enum):
    UNAPPLIED = "unapplied"
    APPLIED = "applied"
    FAILED = "failed"
    REFUNDED = "refunded"


class Payment(Base):
    __tablename__ = "payments"

    payment_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    invoice_id = Column(
        String(36),
        ForeignKey("invoices.invoice_id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    # Source system's transaction id (Stripe PaymentIntent id, Invoice Ninja payment id).
    external_id = Column(String(255), nullable=False)
    method = Column(String(50), nullable=True)
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(10), nullable=False, server_default="USD")
    paid_at = Column(DateTime(timezone=True), nullable=True)
    status = Column(String(20), nullable=False, server_default=PaymentStatus.APPLIED.value)
    raw_event = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("external_id", name="uq_payments_external_id"),
    )

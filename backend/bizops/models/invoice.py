from __future__ import annotations

import uuid
from enum import Enum

from sqlalchemy import Column, Date, DateTime, ForeignKey, Numeric, String, Text, func
from sqlalchemy.orm import relationship

from bizops.core.base import Base


class InvoiceStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    VIEWED = "viewed"
    PARTIAL = "partial"
    PAID = "paid"
    VOID = "void"
    UNCOLLECTIBLE = "uncollectible"


class Invoice(Base):
    __tablename__ = "invoices"

    invoice_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    client_id = Column(
        String(36),
        ForeignKey("clients.client_id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    job_id = Column(String(36), nullable=True, index=True)
    external_id = Column(String(255), unique=True, nullable=True)
    external_number = Column(String(100), nullable=True)
    status = Column(String(20), nullable=False, server_default=InvoiceStatus.DRAFT.value)
    issue_date = Column(Date, nullable=True)
    due_date = Column(Date, nullable=True)
    currency = Column(String(10), nullable=False, server_default="USD")
    total_amount = Column(Numeric(12, 2), nullable=False, server_default="0")
    notes = Column(Text, nullable=True)
    internal_notes = Column(Text, nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    client = relationship("Client", back_populates="invoices")
    payments = relationship("Payment", backref="invoice")

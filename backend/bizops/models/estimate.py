from __future__ import annotations

import uuid
from enum import Enum

from sqlalchemy import Column, DateTime, ForeignKey, String, func

from bizops.core.base import Base


class EstimateStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    APPROVED = "approved"
    DECLINED = "declined"
    CONVERTED = "converted"


class Estimate(Base):
    __tablename__ = "estimates"

    estimate_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    client_id = Column(
        String(36),
        ForeignKey("clients.client_id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    job_id = Column(String(36), nullable=True)
    # Invoice Ninja quote id
    external_id = Column(String(255), unique=True, nullable=True)
    external_number = Column(String(100), nullable=True)
    status = Column(String(20), nullable=False, server_default=EstimateStatus.DRAFT.value)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

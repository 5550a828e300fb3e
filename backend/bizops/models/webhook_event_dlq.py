from __future__ import annotations

import uuid
from enum import Enum

from sqlalchemy import CheckConstraint, Column, DateTime, Integer, String, Text, func

from bizops.core.base import Base


class EventSource(str, Enum):
    STRIPE = "stripe"
    INVOICENINJA = "invoiceninja"


class WebhookEventDLQ(Base):
    __tablename__ = "webhook_event_dlq"

    event_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    event_source = Column(String(50), nullable=False, index=True)
    event_type = Column(String(100), nullable=False, server_default="unknown")
    # Verbatim request body, exactly as it was signed.
    payload = Column(Text, nullable=False)
    error_message = Column(Text, nullable=True)
    received_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    replayed_at = Column(DateTime(timezone=True), nullable=True)
    replay_count = Column(Integer, nullable=False, server_default="0", default=0)

    __table_args__ = (
        CheckConstraint("replay_count >= 0", name="ck_webhook_event_dlq_replay_count_nonnegative"),
    )

    @property
    def is_replayed(self) -> bool:
        return self.replayed_at is not None

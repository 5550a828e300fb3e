from __future__ import annotations

from pydantic import BaseModel


class WebhookAck(BaseModel):
    received: bool = True
    event_type: str | None = None
    outcome: str | None = None
    error: str | None = None
    dlq_event_id: str | None = None

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class ReplayRequest(BaseModel):
    event_id: UUID
    force: bool = False


class ReplayOut(BaseModel):
    success: bool
    event_id: str
    event_source: str
    event_type: str
    replayed_at: datetime | None
    replay_count: int


class DLQEventOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    event_id: str
    event_source: str
    event_type: str
    payload: str
    error_message: str | None = None
    received_at: datetime
    replayed_at: datetime | None = None
    replay_count: int


class DLQEventListOut(BaseModel):
    events: list[DLQEventOut]
    total: int
    limit: int
    offset: int

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from bizops.schemas.admin_replay import ReplayRequest
from bizops.services.dlq import DLQStore
from bizops.services.errors import (
    AlreadyReplayedError,
    DLQEventNotFound,
    ReplayConflictError,
    ReplayFailedError,
    ValidationError,
)
from bizops.services.events import parse_inbound_event
from bizops.services.webhook_context import EventContext, Outcome
from bizops.services.webhook_router import WebhookDispatcher
from bizops.services.workflows import WorkflowTrigger

logger = logging.getLogger(__name__)


@dataclass
class ReplayOutcome:
    event_id: str
    event_source: str
    event_type: str
    replayed_at: datetime
    replay_count: int
    outcome: Outcome


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReplayService:
    """
    Operator-driven reprocessing of a DLQ event.

    Per event: a row with `replayed_at` unset is pending; a successful replay sets it.
    Every attempt bumps `replay_count`, successful or not, and a failed attempt
    overwrites `error_message`. Replaying an already-replayed event needs `force`.
    Losing the conditional claim on the row raises `ReplayConflictError`.
    The same `WebhookDispatcher` as live ingestion applies the event.
    """

    def __init__(
        self,
        db: Session,
        *,
        dispatcher: WebhookDispatcher | None = None,
        trigger: WorkflowTrigger | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.db = db
        self.dlq = DLQStore(db)
        self.dispatcher = dispatcher or WebhookDispatcher()
        self.trigger = trigger
        self.clock = clock

    def replay(self, event_id: str, *, force: bool = False) -> ReplayOutcome:
        record = self.dlq.get(event_id)
        if record is None:
            raise DLQEventNotFound(f"DLQ event {event_id} not found")

        if record.is_replayed and not force:
            raise AlreadyReplayedError(event_id, record.replayed_at, record.replay_count)

        source = record.event_source
        event_type = record.event_type
        payload = record.payload
        seen_count = int(record.replay_count or 0)
        logger.info(
            "Replaying DLQ event %s source=%s type=%s attempt=%s force=%s",
            event_id,
            source,
            event_type,
            seen_count + 1,
            force,
        )

        if not self.dlq.claim_attempt(event_id, seen_count, require_pending=not force):
            raise ReplayConflictError(f"DLQ event {event_id} is being replayed concurrently")

        ctx = EventContext(self.db)
        try:
            event = parse_inbound_event(source, payload)
            result = self.dispatcher.dispatch(ctx, event)
            replayed_at = self.clock()
            self.dlq.mark_replayed(event_id, replayed_at)
            self.db.commit()
        except Exception as exc:
            logger.exception("Replay of DLQ event %s failed", event_id)
            self.db.rollback()
            self.dlq.mark_replay_failed(event_id, exc)
            raise ReplayFailedError(event_id, exc) from exc

        if self.trigger is not None:
            self.trigger.fire_many(ctx.notifications)

        logger.info("DLQ event %s replayed outcome=%s", event_id, result.outcome.value)
        return ReplayOutcome(
            event_id=event_id,
            event_source=source,
            event_type=event_type,
            replayed_at=replayed_at,
            replay_count=seen_count + 1,
            outcome=result.outcome,
        )


def parse_replay_request(body: Any) -> ReplayRequest:
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object", errors=[])
    try:
        return ReplayRequest.model_validate(body)
    except PydanticValidationError as exc:
        raise ValidationError(
            "Validation error",
            errors=exc.errors(include_url=False, include_context=False),
        ) from exc

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from bizops.schemas.events import InboundEvent
from bizops.services.dlq import DLQStore, describe_error
from bizops.services.events import decode_body
from bizops.services.webhook_context import EventContext, Outcome
from bizops.services.webhook_router import WebhookDispatcher
from bizops.services.workflows import WorkflowTrigger

logger = logging.getLogger(__name__)


@dataclass
class IngestResult:
    event_type: str
    outcome: Outcome | None = None
    error: str | None = None
    dlq_event_id: str | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None


class WebhookIngestionService:
    """
    Live path for verified webhook events.

    Any exception raised while applying the event is captured into the DLQ instead of
    propagating: the sender always gets an acknowledgement, recovery is a manual replay.
    """

    def __init__(
        self,
        db: Session,
        *,
        dispatcher: WebhookDispatcher | None = None,
        trigger: WorkflowTrigger | None = None,
    ):
        self.db = db
        self.dispatcher = dispatcher or WebhookDispatcher()
        self.trigger = trigger

    def ingest(self, event: InboundEvent, raw_body: bytes) -> IngestResult:
        ctx = EventContext(self.db)
        try:
            result = self.dispatcher.dispatch(ctx, event)
            self.db.commit()
        except Exception as exc:
            logger.exception("%s webhook %s processing failed", event.source, event.event_type)
            self.db.rollback()
            dlq_event_id = self._store_failure(event, raw_body, exc)
            return IngestResult(event_type=event.event_type, error=describe_error(exc), dlq_event_id=dlq_event_id)

        if self.trigger is not None:
            self.trigger.fire_many(ctx.notifications)
        return IngestResult(event_type=event.event_type, outcome=result.outcome)

    def _store_failure(self, event: InboundEvent, raw_body: bytes, exc: Exception) -> str | None:
        try:
            record = DLQStore(self.db).store_failure(
                event_source=event.source,
                event_type=event.event_type,
                payload=decode_body(raw_body),
                error=exc,
            )
        except SQLAlchemyError:
            logger.exception("Failed to store %s event %s in DLQ", event.source, event.event_type)
            self.db.rollback()
            return None
        return record.event_id

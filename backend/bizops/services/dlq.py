from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from bizops.models.webhook_event_dlq import WebhookEventDLQ

logger = logging.getLogger(__name__)

MAX_ERROR_MESSAGE_LENGTH = 2000


def describe_error(exc: BaseException) -> str:
    message = str(exc).strip()
    return message or exc.__class__.__name__


def clip_error(message: str) -> str:
    return message[:MAX_ERROR_MESSAGE_LENGTH]


class DLQStore:
    """
    Durable store of inbound events that failed processing.

    Rows are appended by live ingestion and updated in place by replay; nothing here
    deletes them.
    """

    MAX_PAGE_SIZE = 200

    def __init__(self, db: Session):
        self.db = db

    def store_failure(
        self,
        *,
        event_source: str,
        event_type: str,
        payload: str,
        error: BaseException,
    ) -> WebhookEventDLQ:
        record = WebhookEventDLQ(
            event_source=event_source,
            event_type=(event_type or "unknown")[:100],
            payload=payload,
            error_message=clip_error(describe_error(error)),
            replay_count=0,
        )
        self.db.add(record)
        self.db.commit()
        self.db.refresh(record)
        logger.info(
            "Stored failed %s event %s in DLQ as %s",
            event_source,
            event_type,
            record.event_id,
        )
        return record

    def get(self, event_id: str) -> WebhookEventDLQ | None:
        return self.db.get(WebhookEventDLQ, event_id)

    @classmethod
    def normalize_page(cls, limit: int | None, offset: int | None) -> tuple[int, int]:
        limit = 50 if limit is None else int(limit)
        offset = 0 if offset is None else int(offset)
        return max(1, min(limit, cls.MAX_PAGE_SIZE)), max(0, offset)

    def list_events(
        self,
        *,
        limit: int = 50,
        offset: int = 0,
        source: str | None = None,
        unprocessed_only: bool = False,
    ) -> tuple[list[WebhookEventDLQ], int]:
        normalized_limit, normalized_offset = self.normalize_page(limit, offset)

        query = self.db.query(WebhookEventDLQ)
        if source:
            query = query.filter(WebhookEventDLQ.event_source == source)
        if unprocessed_only:
            query = query.filter(WebhookEventDLQ.replayed_at.is_(None))

        total = query.with_entities(func.count(WebhookEventDLQ.event_id)).scalar() or 0
        rows = (
            query.order_by(WebhookEventDLQ.received_at.desc(), WebhookEventDLQ.event_id.desc())
            .offset(normalized_offset)
            .limit(normalized_limit)
            .all()
        )
        return rows, int(total)

    def claim_attempt(self, event_id: str, seen_count: int, *, require_pending: bool = False) -> bool:
        """
        Count a replay attempt, conditional on the row still matching what the caller
        read: same `replay_count` and, with `require_pending`, `replayed_at` unset.

        Returns False when another replay counted an attempt or completed since the
        read. This is not a lock: an attempt claimed while another is still
        dispatching runs too, and the mutators' idempotency keeps that safe.
        """
        conditions = [
            WebhookEventDLQ.event_id == event_id,
            WebhookEventDLQ.replay_count == seen_count,
        ]
        if require_pending:
            conditions.append(WebhookEventDLQ.replayed_at.is_(None))
        result = self.db.execute(
            update(WebhookEventDLQ)
            .where(*conditions)
            .values(replay_count=seen_count + 1)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return result.rowcount == 1

    def mark_replayed(self, event_id: str, replayed_at: datetime) -> None:
        # error_message is kept: it records why the event needed replaying.
        self.db.execute(
            update(WebhookEventDLQ)
            .where(WebhookEventDLQ.event_id == event_id)
            .values(replayed_at=replayed_at)
            .execution_options(synchronize_session=False)
        )

    def mark_replay_failed(self, event_id: str, error: BaseException) -> None:
        self.db.execute(
            update(WebhookEventDLQ)
            .where(WebhookEventDLQ.event_id == event_id)
            .values(error_message=clip_error(f"Replay failed: {describe_error(error)}"))
            .execution_options(synchronize_session=False)
        )
        self.db.commit()

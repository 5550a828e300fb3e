import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session

from bizops.core.config import WebhookConfig, settings
from bizops.core.database import get_db
from bizops.core.rate_limit import limiter
from bizops.dependencies.admin import require_admin_api_key
from bizops.dependencies.config import get_webhook_config
from bizops.schemas.admin_replay import DLQEventListOut, DLQEventOut, ReplayOut
from bizops.services.dlq import DLQStore
from bizops.services.errors import (
    AlreadyReplayedError,
    DLQEventNotFound,
    ReplayConflictError,
    ReplayFailedError,
    ValidationError,
)
from bizops.services.replay import ReplayService, parse_replay_request
from bizops.services.workflows import WorkflowTrigger

router = APIRouter(prefix="/admin/replay", tags=["admin"], dependencies=[Depends(require_admin_api_key)])

logger = logging.getLogger(__name__)


def _maybe_limit(rule: str):
    if not settings.ENABLE_RATE_LIMITING:
        def passthrough(fn):
            return fn
        return passthrough
    return limiter.limit(rule)


@router.post("", response_model=ReplayOut)
@_maybe_limit(settings.ADMIN_RATE_LIMIT)
async def replay_dlq_event(
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    config: WebhookConfig = Depends(get_webhook_config),
) -> ReplayOut:
    """
    Re-run a stored failed event through the live handlers.

    Body: {"event_id": "<uuid>", "force": false}
    """
    try:
        body = await request.json()
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Request body must be JSON") from exc

    try:
        replay_request = parse_replay_request(body)
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": str(exc), "details": {"errors": exc.errors}},
        ) from exc

    event_id = str(replay_request.event_id)
    logger.info("DLQ replay requested event_id=%s force=%s", event_id, replay_request.force)

    service = ReplayService(db, trigger=WorkflowTrigger(config, background_tasks))
    try:
        outcome = service.replay(event_id, force=replay_request.force)
    except DLQEventNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Event not found") from exc
    except AlreadyReplayedError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "message": "Event already replayed",
                "details": {
                    "replayed_at": exc.replayed_at.isoformat() if exc.replayed_at else None,
                    "replay_count": exc.replay_count,
                    "hint": "Use force: true to replay anyway",
                },
            },
        ) from exc
    except ReplayConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except ReplayFailedError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"message": "Replay failed", "details": {"error": str(exc)}},
        ) from exc

    return ReplayOut(
        success=True,
        event_id=outcome.event_id,
        event_source=outcome.event_source,
        event_type=outcome.event_type,
        replayed_at=outcome.replayed_at,
        replay_count=outcome.replay_count,
    )


@router.get("", response_model=DLQEventListOut)
@_maybe_limit(settings.ADMIN_RATE_LIMIT)
def list_dlq_events(
    request: Request,  # noqa: ARG001 - required by the rate limiter
    limit: int = Query(default=50),
    offset: int = Query(default=0),
    source: str | None = Query(default=None),
    unprocessed_only: bool = Query(default=False),
    db: Session = Depends(get_db),
) -> DLQEventListOut:
    limit, offset = DLQStore.normalize_page(limit, offset)
    rows, total = DLQStore(db).list_events(
        limit=limit,
        offset=offset,
        source=source,
        unprocessed_only=unprocessed_only,
    )
    return DLQEventListOut(
        events=[DLQEventOut.model_validate(row) for row in rows],
        total=total,
        limit=limit,
        offset=offset,
    )

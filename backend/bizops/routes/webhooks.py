from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from bizops.core.config import WebhookConfig
from bizops.core.database import get_db
from bizops.dependencies.config import get_webhook_config
from bizops.schemas.events import InboundEvent
from bizops.schemas.webhooks import WebhookAck
from bizops.services.errors import InvalidSignature, MalformedPayload
from bizops.services.ingestion import WebhookIngestionService
from bizops.services.signatures import HmacSignatureVerifier, StripeSignatureVerifier, invoiceninja_verifier
from bizops.services.workflows import WorkflowTrigger

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

logger = logging.getLogger(__name__)

DLQ_ACK_MESSAGE = "Processing failed, stored in DLQ"


def get_stripe_verifier(config: WebhookConfig = Depends(get_webhook_config)) -> StripeSignatureVerifier:
    return StripeSignatureVerifier(config)


def get_invoiceninja_verifier(config: WebhookConfig = Depends(get_webhook_config)) -> HmacSignatureVerifier:
    return invoiceninja_verifier(config)


def _ingest(
    db: Session,
    config: WebhookConfig,
    background_tasks: BackgroundTasks,
    event: InboundEvent,
    payload: bytes,
) -> WebhookAck:
    service = WebhookIngestionService(db, trigger=WorkflowTrigger(config, background_tasks))
    result = service.ingest(event, payload)
    if result.failed:
        # Always 200: the sender must not retry; recovery goes through /admin/replay.
        return WebhookAck(event_type=result.event_type, error=DLQ_ACK_MESSAGE, dlq_event_id=result.dlq_event_id)
    return WebhookAck(event_type=result.event_type, outcome=result.outcome.value)


@router.post("/stripe", response_model=WebhookAck, response_model_exclude_none=True)
async def stripe_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    config: WebhookConfig = Depends(get_webhook_config),
    verifier: StripeSignatureVerifier = Depends(get_stripe_verifier),
) -> WebhookAck:
    # Raw bytes: the signature covers the exact body.
    payload = await request.body()
    signature = request.headers.get("stripe-signature")
    try:
        event = verifier.verify(payload, signature)
    except InvalidSignature as exc:
        logger.warning("Stripe webhook rejected: %s", exc)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except MalformedPayload as exc:
        logger.warning("Stripe webhook malformed: %s", exc)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    logger.info("Stripe webhook received event_id=%s type=%s", event.id, event.type)
    return _ingest(db, config, background_tasks, event, payload)


@router.post("/invoiceninja", response_model=WebhookAck, response_model_exclude_none=True)
async def invoiceninja_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    config: WebhookConfig = Depends(get_webhook_config),
    verifier: HmacSignatureVerifier = Depends(get_invoiceninja_verifier),
) -> WebhookAck:
    payload = await request.body()
    signature = request.headers.get("x-ninja-signature")
    try:
        event = verifier.verify(payload, signature)
    except InvalidSignature as exc:
        logger.warning("Invoice Ninja webhook rejected: %s (has_signature=%s)", exc, bool(signature))
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature") from exc
    except MalformedPayload as exc:
        logger.warning("Invoice Ninja webhook malformed: %s", exc)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    logger.info(
        "Invoice Ninja webhook received event=%s has_quote=%s has_invoice=%s has_payment=%s",
        event.event_type,
        getattr(event, "quote", None) is not None,
        getattr(event, "invoice", None) is not None,
        getattr(event, "payment", None) is not None,
    )
    return _ingest(db, config, background_tasks, event, payload)

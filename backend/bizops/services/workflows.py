from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

import httpx
from fastapi import BackgroundTasks

from bizops.core.config import WebhookConfig

logger = logging.getLogger(__name__)

PAYMENT_RECEIVED = "payment_received"
PAYMENT_FAILED = "payment_failed"
PAYMENT_REFUNDED = "payment_refunded"
INVOICE_PAID = "invoice_paid"
QUOTE_APPROVED = "quote_approved"


class WorkflowTrigger:
    """
    Fire-and-forget trigger for the n8n workflow webhook.

    `fire()` only schedules the POST on the request's background tasks and returns.
    The outcome is reported through the log; nothing is ever raised to the caller.
    """

    def __init__(self, config: WebhookConfig, background_tasks: BackgroundTasks):
        self.config = config
        self.background_tasks = background_tasks

    @property
    def enabled(self) -> bool:
        return bool(self.config.n8n_webhook_url)

    def fire(self, event: str, data: dict[str, Any]) -> None:
        if not self.enabled:
            logger.debug("n8n webhook URL not configured; dropping workflow event %s", event)
            return
        self.background_tasks.add_task(self.post_event, event, data)

    def fire_many(self, notifications: list[tuple[str, dict[str, Any]]]) -> None:
        for event, data in notifications:
            self.fire(event, data)

    def post_event(self, event: str, data: dict[str, Any]) -> None:
        headers = {"Content-Type": "application/json"}
        if self.config.n8n_api_key:
            headers["Authorization"] = f"Bearer {self.config.n8n_api_key}"
        body = {
            "event": event,
            "data": data,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        try:
            response = httpx.post(
                self.config.n8n_webhook_url,
                json=body,
                headers=headers,
                timeout=self.config.n8n_timeout_seconds,
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("Failed to trigger n8n workflow event=%s keys=%s: %s", event, sorted(data), exc)
            return
        logger.info("n8n workflow triggered event=%s status=%s", event, response.status_code)

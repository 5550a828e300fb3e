from __future__ import annotations

import logging
from typing import Callable, Mapping

from bizops.models.webhook_event_dlq import EventSource
from bizops.schemas.events import InboundEvent
from bizops.services.errors import UnsupportedEventSource
from bizops.services.invoiceninja_events import INVOICENINJA_HANDLERS
from bizops.services.stripe_events import STRIPE_HANDLERS
from bizops.services.webhook_context import EventContext, HandlerResult, Outcome

logger = logging.getLogger(__name__)

Handler = Callable[[EventContext, InboundEvent], HandlerResult]


def default_handlers() -> dict[str, Mapping[str, Handler]]:
    return {
        EventSource.STRIPE.value: STRIPE_HANDLERS,
        EventSource.INVOICENINJA.value: INVOICENINJA_HANDLERS,
    }


class WebhookDispatcher:
    """
    Routes a verified event to exactly one domain mutator.

    Each sender has its own discriminator space (Stripe `type`, Invoice Ninja `event`),
    so the handler table is chosen by the event's source tag first.
    Live ingestion and DLQ replay both go through this class.
    """

    def __init__(self, handlers: Mapping[str, Mapping[str, Handler]] | None = None):
        self.handlers = handlers if handlers is not None else default_handlers()

    def dispatch(self, ctx: EventContext, event: InboundEvent) -> HandlerResult:
        table = self.handlers.get(event.source)
        if table is None:
            raise UnsupportedEventSource(event.source)

        handler = table.get(event.event_type)
        if handler is None:
            logger.info("Unhandled %s event type: %s", event.source, event.event_type)
            return HandlerResult(Outcome.IGNORED)

        result = handler(ctx, event)
        logger.info(
            "Handled %s event %s outcome=%s detail=%s",
            event.source,
            event.event_type,
            result.outcome.value,
            result.detail,
        )
        return result

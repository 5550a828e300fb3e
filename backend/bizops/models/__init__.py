# Import every model so Base.metadata is complete for Alembic and tests.
from bizops.models.client import Client
from bizops.models.estimate import Estimate, EstimateStatus
from bizops.models.invoice import Invoice, InvoiceStatus
from bizops.models.payment import Payment, PaymentStatus
from bizops.models.webhook_event_dlq import EventSource, WebhookEventDLQ

__all__ = [
    "Client",
    "Estimate",
    "EstimateStatus",
    "EventSource",
    "Invoice",
    "InvoiceStatus",
    "Payment",
    "PaymentStatus",
    "WebhookEventDLQ",
]

"""
Typed views of inbound webhook bodies.

Each sender gets its own envelope model carrying a `source` tag, so the router can be
selected from the tag rather than by sniffing payload shape. `RawEvent` is the
forward-compatible variant for sources this service does not model yet.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field


def _to_str(value: Any) -> Any:
    # Invoice Ninja sends ids and status ids as either strings or numbers.
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


LooseStr = Annotated[str, BeforeValidator(_to_str)]


class _VendorModel(BaseModel):
    model_config = ConfigDict(extra="allow")


# ---------------------------------------------------------------------------
# Stripe
# ---------------------------------------------------------------------------
class StripeCharge(_VendorModel):
    id: str
    amount: int = 0
    amount_refunded: int = 0
    currency: str = "usd"
    payment_intent: str | None = None
    payment_method_details: dict[str, Any] | None = None


class StripeChargeList(_VendorModel):
    data: list[StripeCharge] = Field(default_factory=list)


class StripePaymentIntent(_VendorModel):
    id: str
    amount: int = 0
    currency: str = "usd"
    created: int | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    payment_method_types: list[str] = Field(default_factory=list)
    charges: StripeChargeList | None = None
    last_payment_error: dict[str, Any] | None = None


class StripeEventData(_VendorModel):
    object: dict[str, Any] = Field(default_factory=dict)


class StripeEvent(_VendorModel):
    source: Literal["stripe"] = "stripe"
    id: str
    type: str
    created: int | None = None
    livemode: bool = False
    data: StripeEventData = Field(default_factory=StripeEventData)

    @property
    def event_type(self) -> str:
        return self.type

    def payment_intent(self) -> StripePaymentIntent:
        return StripePaymentIntent.model_validate(self.data.object)

    def charge(self) -> StripeCharge:
        return StripeCharge.model_validate(self.data.object)


# ---------------------------------------------------------------------------
# Invoice Ninja
# ---------------------------------------------------------------------------
class NinjaQuote(_VendorModel):
    id: LooseStr
    number: LooseStr | None = None
    client_id: LooseStr | None = None
    status_id: LooseStr | None = None
    amount: Decimal | None = None
    balance: Decimal | None = None


class NinjaInvoice(_VendorModel):
    id: LooseStr
    number: LooseStr | None = None
    client_id: LooseStr | None = None
    status_id: LooseStr | None = None
    amount: Decimal | None = None
    balance: Decimal | None = None
    date: str | None = None
    due_date: str | None = None
    public_notes: str | None = None
    private_notes: str | None = None
    quote_id: LooseStr | None = None


class NinjaPayment(_VendorModel):
    id: LooseStr
    invoice_id: LooseStr | None = None
    amount: Decimal | None = None
    transaction_reference: str | None = None
    date: str | None = None
    type_id: LooseStr | None = None


class NinjaClient(_VendorModel):
    id: LooseStr | None = None
    name: str | None = None
    email: str | None = None
    phone: str | None = None


class InvoiceNinjaEvent(_VendorModel):
    source: Literal["invoiceninja"] = "invoiceninja"
    event: str
    # Typed per handler through the *_entity() accessors.
    quote: Any = None
    invoice: Any = None
    payment: Any = None
    client: Any = None

    @property
    def event_type(self) -> str:
        return self.event

    def quote_entity(self) -> NinjaQuote | None:
        return None if self.quote is None else NinjaQuote.model_validate(self.quote)

    def invoice_entity(self) -> NinjaInvoice | None:
        return None if self.invoice is None else NinjaInvoice.model_validate(self.invoice)

    def payment_entity(self) -> NinjaPayment | None:
        return None if self.payment is None else NinjaPayment.model_validate(self.payment)

    def client_entity(self) -> NinjaClient | None:
        return None if self.client is None else NinjaClient.model_validate(self.client)


# ---------------------------------------------------------------------------
# Unknown sources
# ---------------------------------------------------------------------------
class RawEvent(BaseModel):
    source: str
    type: str = "unknown"
    body: dict[str, Any] = Field(default_factory=dict)

    @property
    def event_type(self) -> str:
        return self.type


InboundEvent = Union[StripeEvent, InvoiceNinjaEvent, RawEvent]

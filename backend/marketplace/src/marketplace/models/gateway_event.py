"""Stripe webhook event models for reconciliation and auditing."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .enums import GatewayEventKind, ProcessingResult


class GatewayEventData(BaseModel):
    """The data envelope of a Stripe event."""

    object: dict[str, Any] = Field(default_factory=dict)


class GatewayEvent(BaseModel):
    """A verified Stripe webhook event.

    Only the fields the reconciler reads are modelled; everything else in the
    payload is ignored.
    """

    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., min_length=1, examples=["evt_1ABC123DEF456"])
    type: str = Field(..., min_length=1, examples=["payment_intent.succeeded"])
    created: int | None = None
    data: GatewayEventData = Field(default_factory=GatewayEventData)

    @property
    def kind(self) -> GatewayEventKind:
        return GatewayEventKind.from_type(self.type)

    @property
    def payload(self) -> dict[str, Any]:
        return self.data.object

    @property
    def metadata(self) -> dict[str, Any]:
        metadata = self.payload.get("metadata")
        return metadata if isinstance(metadata, dict) else {}


class ReconcileOutcome(BaseModel):
    """Result of applying one event to the stored state."""

    event_id: str
    event_type: str
    result: ProcessingResult
    booking_id: str | None = None
    payment_id: str | None = None
    message: str | None = None


class WebhookLedgerEntry(BaseModel):
    """Audit record of a received Stripe webhook delivery.

    Used for auditing and debugging only; it is never consulted when
    deciding whether to apply an event.
    """

    model_config = ConfigDict(strict=True)

    event_id: str = Field(..., description="Stripe event ID (evt_xxx)")
    event_type: str = Field(..., description="Stripe event type")
    payload_hash: str = Field(..., description="SHA-256 hash of the raw payload")
    last_result: ProcessingResult
    delivery_count: int = Field(default=1, ge=1)
    booking_id: str | None = None
    payment_id: str | None = None
    error_message: str | None = None
    first_received_at: datetime
    last_received_at: datetime

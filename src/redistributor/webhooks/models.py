"""Webhook redistribution data models.

Defines Pydantic schemas for endpoints, destinations, per-destination
delivery attempts and the aggregated outcome of one inbound event.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import uuid

import httpx
from pydantic import BaseModel, Field, computed_field, field_validator, model_validator

from .errors import DeliveryErrorKind

DEFAULT_SLUG = "default"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Endpoint(BaseModel):
    """A named inbound route grouping zero or more destinations."""

    id: Optional[str] = Field(None, description="None identifies the built-in default route")
    slug: str = Field(..., min_length=1)
    name: str = ""
    description: Optional[str] = None
    active: bool = True
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def is_default(self) -> bool:
        return self.id is None


DEFAULT_ENDPOINT = Endpoint(
    id=None,
    slug=DEFAULT_SLUG,
    name="Default",
    description="Built-in route for destinations without an endpoint binding",
    active=True,
)


class Destination(BaseModel):
    """An outbound URL that receives a copy of each inbound payload."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str
    url: str = Field(..., description="Absolute http(s) URL, stored verbatim")
    active: bool = True
    endpoint_id: Optional[str] = Field(None, description="None binds to the default route")
    position: int = Field(0, description="Explicit delivery order; ties keep insertion order")
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("url")
    @classmethod
    def _validate_url(cls, value: str) -> str:
        value = value.strip()
        try:
            parsed = httpx.URL(value)
        except httpx.InvalidURL as exc:
            raise ValueError(f"Invalid destination URL: {exc}") from exc
        if parsed.scheme not in ("http", "https") or not parsed.host:
            raise ValueError("Destination URL must be an absolute http(s) URL")
        return value


class DeliveryAttempt(BaseModel):
    """Result of delivering one payload to one destination.

    A tagged result: successful attempts carry no error fields, failed
    attempts always carry an error kind and message.
    """

    destination_id: str
    destination_name: str
    destination_url: str
    success: bool
    status_code: Optional[int] = None
    response_time_ms: float = Field(0.0, ge=0)
    error_message: Optional[str] = None
    error_kind: Optional[DeliveryErrorKind] = None
    timestamp: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def _check_tag(self) -> "DeliveryAttempt":
        if self.success and (self.error_kind or self.error_message):
            raise ValueError("Successful attempts cannot carry error details")
        if not self.success and (self.error_kind is None or not self.error_message):
            raise ValueError("Failed attempts require error_kind and error_message")
        return self

    @classmethod
    def succeeded(
        cls,
        destination: Destination,
        status_code: int,
        response_time_ms: float,
    ) -> "DeliveryAttempt":
        return cls(
            destination_id=destination.id,
            destination_name=destination.name,
            destination_url=destination.url,
            success=True,
            status_code=status_code,
            response_time_ms=response_time_ms,
        )

    @classmethod
    def failed(
        cls,
        destination: Destination,
        kind: DeliveryErrorKind,
        message: str,
        response_time_ms: float,
        status_code: Optional[int] = None,
    ) -> "DeliveryAttempt":
        return cls(
            destination_id=destination.id,
            destination_name=destination.name,
            destination_url=destination.url,
            success=False,
            status_code=status_code,
            response_time_ms=response_time_ms,
            error_kind=kind,
            error_message=message,
        )


class RedistributionOutcome(BaseModel):
    """Aggregate record of one inbound event.

    Counts are derived from ``attempts`` so that
    ``attempted == successful + failed == len(attempts)`` always holds.
    """

    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    endpoint_id: Optional[str] = None
    endpoint_slug: str
    attempts: List[DeliveryAttempt] = Field(default_factory=list)
    received_at: datetime = Field(default_factory=utcnow)
    duration_ms: float = 0.0
    payload_size: int = 0
    endpoint: Optional[Endpoint] = Field(
        None, exclude=True, description="Resolved endpoint, echoed to the caller but not logged"
    )

    @computed_field
    @property
    def attempted(self) -> int:
        return len(self.attempts)

    @computed_field
    @property
    def successful(self) -> int:
        return sum(1 for a in self.attempts if a.success)

    @computed_field
    @property
    def failed(self) -> int:
        return sum(1 for a in self.attempts if not a.success)

    @computed_field
    @property
    def status(self) -> str:
        """One of success (zero attempts included), partial or failed."""
        if self.failed == 0:
            return "success"
        if self.successful > 0:
            return "partial"
        return "failed"

    @property
    def http_status(self) -> int:
        """Status recorded in the outcome log: 200, 207 (multi-status) or 500."""
        return {"success": 200, "partial": 207, "failed": 500}[self.status]

    @property
    def error_summary(self) -> Optional[str]:
        if self.failed == 0:
            return None
        return f"Failed to send to {self.failed} destination(s)"

    def summary(self) -> Dict[str, Any]:
        """Counts echoed back to the inbound caller."""
        return {
            "attempted": self.attempted,
            "successful": self.successful,
            "failed": self.failed,
        }


class RedistributionSummary(BaseModel):
    """Counts and per-destination results echoed to the inbound caller."""

    attempted: int
    successful: int
    failed: int
    results: List[DeliveryAttempt] = Field(default_factory=list)


class RedistributionResponse(BaseModel):
    """Response returned for an accepted inbound webhook."""

    success: bool = True
    message: str
    event_id: str
    endpoint: Dict[str, Optional[str]]
    redistribution: RedistributionSummary
    timestamp: datetime = Field(default_factory=utcnow)

    @classmethod
    def from_outcome(cls, outcome: RedistributionOutcome) -> "RedistributionResponse":
        endpoint = outcome.endpoint
        return cls(
            message=f"Webhook received and processed for endpoint '{outcome.endpoint_slug}'",
            event_id=outcome.event_id,
            endpoint={
                "id": outcome.endpoint_id,
                "slug": outcome.endpoint_slug,
                "name": endpoint.name if endpoint else None,
                "description": endpoint.description if endpoint else None,
            },
            redistribution=RedistributionSummary(
                results=outcome.attempts,
                **outcome.summary(),
            ),
        )

"""Error taxonomy for webhook redistribution.

Routing and store problems are exceptions. Per-destination delivery
problems are data: they are recorded on a failed DeliveryAttempt and
tagged with a DeliveryErrorKind.
"""

from enum import Enum
from typing import Optional


class RoutingErrorKind(str, Enum):
    """Why an inbound event could not be routed."""

    NOT_FOUND = "not_found"
    INACTIVE = "inactive"


class DeliveryErrorKind(str, Enum):
    """Classification of a failed delivery attempt."""

    TIMEOUT = "timeout"
    CONNECTION = "connection"
    TRANSPORT = "transport"
    HTTP_STATUS = "http_status"
    INTERNAL = "internal"


class RedistributorError(Exception):
    """Base class for redistributor errors."""


class RoutingError(RedistributorError):
    """Raised when an inbound route cannot accept deliveries."""

    kind: RoutingErrorKind

    def __init__(self, slug: str, kind: RoutingErrorKind, message: Optional[str] = None):
        self.slug = slug
        self.kind = kind
        super().__init__(message or f"Webhook endpoint '{slug}' cannot be routed ({kind.value})")


class EndpointNotFound(RoutingError):
    """The slug does not match any configured endpoint."""

    def __init__(self, slug: str):
        super().__init__(
            slug,
            RoutingErrorKind.NOT_FOUND,
            f"Webhook endpoint '{slug}' does not exist",
        )


class EndpointInactive(RoutingError):
    """The endpoint exists but is not accepting deliveries."""

    def __init__(self, slug: str):
        super().__init__(
            slug,
            RoutingErrorKind.INACTIVE,
            f"Webhook endpoint '{slug}' is currently inactive",
        )


class ConfigurationStoreError(RedistributorError):
    """The configuration store is unreachable or failed on read."""

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        self.operation = operation
        self.cause = cause
        detail = f": {cause}" if cause else ""
        super().__init__(f"Configuration store failed during {operation}{detail}")


class OutcomeLoggingError(RedistributorError):
    """An outcome record could not be persisted."""

"""Webhook redistribution engine.

Receives inbound webhooks on named routes and fans each event out to the
route's active destinations:
- Slug resolution with not-found / inactive distinction
- Ordered destination lookup
- Concurrent delivery with per-destination timeout
- Aggregated, best-effort logged outcomes
"""

from .errors import (
    ConfigurationStoreError,
    DeliveryErrorKind,
    EndpointInactive,
    EndpointNotFound,
    OutcomeLoggingError,
    RedistributorError,
    RoutingError,
    RoutingErrorKind,
)
from .models import (
    DEFAULT_ENDPOINT,
    DeliveryAttempt,
    Destination,
    Endpoint,
    RedistributionOutcome,
)
from .delivery import DeliveryExecutor
from .destinations import DestinationResolver
from .orchestrator import Redistributor
from .outcome_log import InMemoryOutcomeLog, OutcomeLogger, SQLiteOutcomeLog
from .resolver import SlugResolver

__all__ = [
    "ConfigurationStoreError",
    "DeliveryErrorKind",
    "EndpointInactive",
    "EndpointNotFound",
    "OutcomeLoggingError",
    "RedistributorError",
    "RoutingError",
    "RoutingErrorKind",
    "DEFAULT_ENDPOINT",
    "DeliveryAttempt",
    "Destination",
    "Endpoint",
    "RedistributionOutcome",
    "DeliveryExecutor",
    "DestinationResolver",
    "Redistributor",
    "InMemoryOutcomeLog",
    "OutcomeLogger",
    "SQLiteOutcomeLog",
    "SlugResolver",
]

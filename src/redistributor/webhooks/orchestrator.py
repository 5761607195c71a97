"""Webhook redistribution orchestrator.

Resolves the route, looks up its destinations, delivers the payload to
all of them concurrently and aggregates the attempts into one outcome.
"""

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Any, List, Mapping, Optional

from ..core.observability import EventLogger, UsageTracker
from .delivery import DeliveryExecutor, encode_payload
from .destinations import DestinationResolver
from .errors import ConfigurationStoreError, DeliveryErrorKind, RoutingError
from .models import DEFAULT_SLUG, DeliveryAttempt, Destination, RedistributionOutcome
from .outcome_log import OutcomeLogger
from .resolver import SlugResolver, normalize_slug

if TYPE_CHECKING:
    from ..store.base import ConfigurationStore

logger = logging.getLogger(__name__)


class Redistributor:
    """Fans inbound webhook events out to their configured destinations.

    One call handles one inbound event in a single pass with no retries:

    1. resolve the route (RoutingError stops here, nothing is delivered)
    2. resolve the active destinations
    3. deliver to every destination concurrently
    4. aggregate attempts in destination order
    5. record the outcome (best-effort) and update usage counters

    Example:
        redistributor = Redistributor(store=store, executor=DeliveryExecutor())
        outcome = await redistributor.redistribute("crm", b'{"id": 1}', headers)
        print(outcome.attempted, outcome.successful, outcome.failed)
    """

    def __init__(
        self,
        store: "ConfigurationStore",
        executor: DeliveryExecutor,
        outcome_log: Optional[OutcomeLogger] = None,
        usage: Optional[UsageTracker] = None,
    ):
        """Initialize orchestrator.

        Args:
            store: Configuration store for endpoints and destinations.
            executor: Executor performing individual deliveries.
            outcome_log: Where aggregate records go; None disables recording.
            usage: Usage tracker updated after every event.
        """
        self.store = store
        self.executor = executor
        self.outcome_log = outcome_log
        self.usage = usage or UsageTracker()
        self.slug_resolver = SlugResolver(store)
        self.destination_resolver = DestinationResolver(store)

    async def redistribute(
        self,
        slug: Optional[str],
        payload: Any,
        headers: Optional[Mapping[str, str]] = None,
        query: Optional[Mapping[str, Any]] = None,
    ) -> RedistributionOutcome:
        """Redistribute one inbound event.

        Args:
            slug: Route slug; None or blank routes to the default endpoint.
            payload: Raw body bytes/str (forwarded verbatim) or a JSON-serializable value.
            headers: Inbound headers; only the source/event indicators are forwarded.
            query: Inbound query parameters (logged only).

        Returns:
            The aggregated outcome. Delivery failures are reported in it,
            never raised.

        Raises:
            RoutingError: The slug is unknown or its endpoint is inactive.
            ConfigurationStoreError: Endpoints or destinations could not be read.
            TypeError: The payload cannot be encoded as a request body.
        """
        start = time.perf_counter()
        label = normalize_slug(slug) or DEFAULT_SLUG
        body = encode_payload(payload)

        EventLogger.info(
            "redistribution.started",
            slug=label,
            payload_size=len(body),
            query=dict(query or {}),
        )

        try:
            endpoint = await self.slug_resolver.resolve(slug)
            destinations = await self.destination_resolver.destinations_for(endpoint.id)
        except RoutingError as e:
            self.usage.record_rejection(label)
            EventLogger.warning("routing.rejected", slug=label, kind=e.kind.value)
            raise
        except ConfigurationStoreError as e:
            self.usage.record_store_failure(label)
            EventLogger.error("store.failed", slug=label, operation=e.operation, error=str(e))
            raise

        if destinations:
            logger.info(
                f"Found {len(destinations)} active destination(s) for endpoint '{endpoint.slug}'"
            )
        else:
            logger.info(f"No active destinations configured for endpoint '{endpoint.slug}'")

        attempts = await self._fan_out(destinations, body, dict(headers or {}))

        outcome = RedistributionOutcome(
            endpoint_id=endpoint.id,
            endpoint_slug=endpoint.slug,
            attempts=attempts,
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
            payload_size=len(body),
            endpoint=endpoint,
        )

        logger.info(
            f"Redistribution summary for '{endpoint.slug}': "
            f"{outcome.successful}/{outcome.attempted} successful, {outcome.failed} failed"
        )
        EventLogger.info(
            "redistribution.completed",
            event_id=outcome.event_id,
            slug=outcome.endpoint_slug,
            attempted=outcome.attempted,
            successful=outcome.successful,
            failed=outcome.failed,
            duration_ms=outcome.duration_ms,
        )

        self.usage.record_outcome(
            outcome.endpoint_slug,
            attempted=outcome.attempted,
            successful=outcome.successful,
            failed=outcome.failed,
            latency_ms=outcome.duration_ms,
        )
        await self._record(outcome)
        return outcome

    async def _fan_out(
        self,
        destinations: List[Destination],
        body: bytes,
        headers: Mapping[str, str],
    ) -> List[DeliveryAttempt]:
        """Deliver to all destinations at once, preserving destination order."""
        if not destinations:
            return []

        results = await asyncio.gather(
            *(self.executor.deliver(d, body, headers) for d in destinations),
            return_exceptions=True,
        )

        attempts = []
        for destination, result in zip(destinations, results):
            if isinstance(result, DeliveryAttempt):
                attempts.append(result)
                continue
            if isinstance(result, BaseException) and not isinstance(result, Exception):
                raise result
            logger.error(f"Delivery to {destination.name} produced no attempt: {result!r}")
            attempts.append(DeliveryAttempt.failed(
                destination,
                DeliveryErrorKind.INTERNAL,
                f"Unexpected error: {result!r}",
                response_time_ms=0.0,
            ))

        for attempt in attempts:
            EventLogger.debug(
                "delivery.completed",
                destination_id=attempt.destination_id,
                success=attempt.success,
                status_code=attempt.status_code,
                error_kind=attempt.error_kind.value if attempt.error_kind else None,
                response_time_ms=attempt.response_time_ms,
            )
        return attempts

    async def _record(self, outcome: RedistributionOutcome) -> None:
        if self.outcome_log is None:
            return
        try:
            await self.outcome_log.record(outcome)
        except Exception as e:
            logger.warning(f"Could not record outcome {outcome.event_id}: {e}", exc_info=True)
            EventLogger.warning("outcome_log.failed", event_id=outcome.event_id, error=str(e))

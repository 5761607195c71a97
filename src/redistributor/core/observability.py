"""Observability - Structured event logging and usage metrics.

Provides JSON event logging for the redistribution pipeline and an
injectable usage tracker that aggregates per-endpoint counters for the
lifetime of the tracker instance.
"""

from typing import Optional
from dataclasses import dataclass, field
from datetime import datetime, timezone
import json
import threading
import logging


# Keep only the most recent samples for averages
LATENCY_WINDOW = 100


@dataclass
class EndpointUsage:
    """Usage counters for a single endpoint slug."""

    slug: str
    total_events: int = 0
    deliveries_attempted: int = 0
    deliveries_successful: int = 0
    deliveries_failed: int = 0
    routing_rejections: int = 0
    store_failures: int = 0
    first_used: Optional[datetime] = None
    last_used: Optional[datetime] = None
    latencies_ms: list[float] = field(default_factory=list)

    @property
    def avg_latency_ms(self) -> float:
        """Average fan-out latency over the recent window."""
        if not self.latencies_ms:
            return 0.0
        return sum(self.latencies_ms) / len(self.latencies_ms)

    @property
    def delivery_success_rate(self) -> float:
        """Delivery success rate as percentage."""
        if self.deliveries_attempted == 0:
            return 100.0
        return (self.deliveries_successful / self.deliveries_attempted) * 100

    def _touch(self) -> None:
        now = datetime.now(timezone.utc)
        if self.first_used is None:
            self.first_used = now
        self.last_used = now

    def record_event(
        self,
        attempted: int,
        successful: int,
        failed: int,
        latency_ms: float,
    ) -> None:
        """Record a completed redistribution."""
        self._touch()
        self.total_events += 1
        self.deliveries_attempted += attempted
        self.deliveries_successful += successful
        self.deliveries_failed += failed
        self.latencies_ms.append(latency_ms)
        if len(self.latencies_ms) > LATENCY_WINDOW:
            self.latencies_ms = self.latencies_ms[-LATENCY_WINDOW:]

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "slug": self.slug,
            "total_events": self.total_events,
            "deliveries_attempted": self.deliveries_attempted,
            "deliveries_successful": self.deliveries_successful,
            "deliveries_failed": self.deliveries_failed,
            "delivery_success_rate": round(self.delivery_success_rate, 2),
            "routing_rejections": self.routing_rejections,
            "store_failures": self.store_failures,
            "avg_latency_ms": round(self.avg_latency_ms, 2),
            "first_used": self.first_used.isoformat() if self.first_used else None,
            "last_used": self.last_used.isoformat() if self.last_used else None,
        }


class UsageTracker:
    """Per-endpoint usage counters.

    One tracker is created per application and handed to the
    orchestrator; counters live exactly as long as the tracker does.

    Example:
        >>> tracker = UsageTracker()
        >>> tracker.record_outcome("crm", attempted=3, successful=2, failed=1, latency_ms=42.0)
        >>> tracker.get("crm").deliveries_failed
        1
    """

    def __init__(self):
        """Initialize an empty tracker."""
        self._usage: dict[str, EndpointUsage] = {}
        self._lock = threading.Lock()

    def _entry(self, slug: str) -> EndpointUsage:
        if slug not in self._usage:
            self._usage[slug] = EndpointUsage(slug=slug)
        return self._usage[slug]

    def record_outcome(
        self,
        slug: str,
        attempted: int,
        successful: int,
        failed: int,
        latency_ms: float,
    ) -> None:
        """Record a completed redistribution for an endpoint."""
        with self._lock:
            self._entry(slug).record_event(attempted, successful, failed, latency_ms)

    def record_rejection(self, slug: str) -> None:
        """Record an event rejected at routing (unknown or inactive slug)."""
        with self._lock:
            entry = self._entry(slug)
            entry._touch()
            entry.routing_rejections += 1

    def record_store_failure(self, slug: str) -> None:
        """Record an event aborted by a configuration store failure."""
        with self._lock:
            entry = self._entry(slug)
            entry._touch()
            entry.store_failures += 1

    def get(self, slug: str) -> Optional[EndpointUsage]:
        """Get usage for a specific endpoint."""
        return self._usage.get(slug)

    def get_all(self) -> dict[str, EndpointUsage]:
        """Get usage for every endpoint seen so far."""
        return dict(self._usage)

    def get_summary(self) -> dict:
        """Get summary across all endpoints."""
        with self._lock:
            entries = list(self._usage.values())

        attempted = sum(u.deliveries_attempted for u in entries)
        successful = sum(u.deliveries_successful for u in entries)

        return {
            "total_endpoints": len(entries),
            "total_events": sum(u.total_events for u in entries),
            "deliveries_attempted": attempted,
            "deliveries_successful": successful,
            "deliveries_failed": sum(u.deliveries_failed for u in entries),
            "delivery_success_rate": round(successful / attempted * 100, 2) if attempted else 100.0,
            "routing_rejections": sum(u.routing_rejections for u in entries),
            "store_failures": sum(u.store_failures for u in entries),
            "endpoints": {u.slug: u.to_dict() for u in entries},
        }

    def reset(self) -> None:
        """Reset all counters."""
        with self._lock:
            self._usage.clear()


class EventLogger:
    """Structured event logging for the redistribution pipeline.

    Outputs JSON-formatted log lines for easy parsing and analysis.

    Example:
        >>> EventLogger.info("redistribution.started", slug="crm", destinations=3)
        >>> EventLogger.error("store.failed", slug="crm", error="database is locked")
    """

    _logger = logging.getLogger("redistributor.events")

    @classmethod
    def _log(cls, level: str, event: str, **kwargs) -> None:
        """Internal logging method."""
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": level,
            "event": event,
            **kwargs,
        }

        json_str = json.dumps(log_data, default=str)

        log_method = getattr(cls._logger, level.lower(), cls._logger.info)
        log_method(json_str)

    @classmethod
    def debug(cls, event: str, **kwargs) -> None:
        """Log debug event."""
        cls._log("DEBUG", event, **kwargs)

    @classmethod
    def info(cls, event: str, **kwargs) -> None:
        """Log info event."""
        cls._log("INFO", event, **kwargs)

    @classmethod
    def warning(cls, event: str, **kwargs) -> None:
        """Log warning event."""
        cls._log("WARNING", event, **kwargs)

    @classmethod
    def error(cls, event: str, **kwargs) -> None:
        """Log error event."""
        cls._log("ERROR", event, **kwargs)

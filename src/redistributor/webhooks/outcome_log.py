"""Outcome logging.

One aggregate record is written per routed inbound event. Concrete
logs raise OutcomeLoggingError on persistence failure; the orchestrator
treats recording as best-effort and never lets that error escape.

Every backend returns records in the same shape (see ``outcome_record``),
newest first.
"""

import asyncio
import json
import logging
import sqlite3
from abc import ABC, abstractmethod
from collections import deque
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Deque, Dict, Iterable, List, Optional, Union

from .errors import OutcomeLoggingError
from .models import RedistributionOutcome

logger = logging.getLogger(__name__)

RECORD_FIELDS = (
    "event_id",
    "endpoint_id",
    "endpoint_slug",
    "status",
    "http_status",
    "attempted",
    "successful",
    "failed",
    "error_message",
    "duration_ms",
    "payload_size",
    "attempts",
    "received_at",
)

# Filter name -> outcome statuses it matches
STATUS_FILTERS = {
    "success": ("success",),
    "partial": ("partial",),
    "failed": ("failed",),
    "error": ("partial", "failed"),
}


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _timestamp(value: datetime) -> str:
    # Fixed-width UTC text so stored timestamps sort chronologically
    return _as_utc(value).isoformat(timespec="microseconds")


def _statuses(status: Optional[str]) -> Optional[tuple]:
    if status is None:
        return None
    if status not in STATUS_FILTERS:
        raise ValueError(f"Unknown status filter: {status}")
    return STATUS_FILTERS[status]


def outcome_record(outcome: RedistributionOutcome) -> Dict[str, Any]:
    """Flatten an outcome into the record shape shared by all logs."""
    return {
        "event_id": outcome.event_id,
        "endpoint_id": outcome.endpoint_id,
        "endpoint_slug": outcome.endpoint_slug,
        "status": outcome.status,
        "http_status": outcome.http_status,
        "attempted": outcome.attempted,
        "successful": outcome.successful,
        "failed": outcome.failed,
        "error_message": outcome.error_summary,
        "duration_ms": outcome.duration_ms,
        "payload_size": outcome.payload_size,
        "attempts": [a.model_dump(mode="json") for a in outcome.attempts],
        "received_at": _timestamp(outcome.received_at),
    }


def _summarize(groups: Iterable[Dict[str, Any]]) -> Dict[str, Any]:
    """Build outcome statistics from per-endpoint raw sums.

    Each group carries ``endpoint_slug``, ``usage_count``, ``success_count``,
    ``partial_count``, ``failed_count``, ``total_duration_ms``,
    ``deliveries_attempted``, ``deliveries_failed`` and ``last_used``.
    """
    groups = sorted(groups, key=lambda g: (-g["usage_count"], g["endpoint_slug"]))

    def rate(part: int, whole: int) -> float:
        return round(part / whole * 100, 2) if whole else 0.0

    def average(total: float, count: int) -> float:
        return round(total / count, 2) if count else 0.0

    total = sum(g["usage_count"] for g in groups)
    successful = sum(g["success_count"] for g in groups)

    return {
        "total": total,
        "successful": successful,
        "partial": sum(g["partial_count"] for g in groups),
        "failed": sum(g["failed_count"] for g in groups),
        "success_rate": rate(successful, total),
        "avg_duration_ms": average(sum(g["total_duration_ms"] for g in groups), total),
        "deliveries_attempted": sum(g["deliveries_attempted"] for g in groups),
        "deliveries_failed": sum(g["deliveries_failed"] for g in groups),
        "endpoints": [
            {
                "endpoint_slug": g["endpoint_slug"],
                "usage_count": g["usage_count"],
                "success_count": g["success_count"],
                "error_count": g["partial_count"] + g["failed_count"],
                "avg_duration_ms": average(g["total_duration_ms"], g["usage_count"]),
                "success_rate": rate(g["success_count"], g["usage_count"]),
                "last_used": g["last_used"],
            }
            for g in groups
        ],
    }


class OutcomeLogger(ABC):
    """Destination for aggregate redistribution records."""

    @abstractmethod
    async def record(self, outcome: RedistributionOutcome) -> None:
        """Persist one outcome."""
        pass

    @abstractmethod
    async def get_recent(self, limit: int = 50) -> List[Dict]:
        """Most recent records, newest first."""
        pass

    @abstractmethod
    async def get(self, event_id: str) -> Optional[Dict]:
        """One record by event ID, or None."""
        pass

    @abstractmethod
    async def get_by_endpoint(
        self,
        slug: str,
        limit: int = 50,
        status: Optional[str] = None,
    ) -> List[Dict]:
        """Records for one endpoint slug, optionally filtered by status.

        ``status`` is one of STATUS_FILTERS; "error" matches partial and
        failed outcomes.
        """
        pass

    @abstractmethod
    async def get_range(self, start: datetime, end: datetime, limit: int = 100) -> List[Dict]:
        """Records received between ``start`` and ``end`` inclusive."""
        pass

    @abstractmethod
    async def get_stats(
        self,
        since: Optional[datetime] = None,
        slug: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Aggregate counts overall and per endpoint."""
        pass


class InMemoryOutcomeLog(OutcomeLogger):
    """Bounded in-process outcome log.

    Keeps the last ``capacity`` outcomes; older ones are discarded.
    """

    def __init__(self, capacity: int = 1000):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._outcomes: Deque[RedistributionOutcome] = deque(maxlen=capacity)

    async def record(self, outcome: RedistributionOutcome) -> None:
        self._outcomes.append(outcome)

    def _newest_first(self, outcomes: Iterable[RedistributionOutcome], limit: int) -> List[Dict]:
        if limit <= 0:
            return []
        selected = list(outcomes)[-limit:]
        return [outcome_record(o) for o in reversed(selected)]

    async def get_recent(self, limit: int = 50) -> List[Dict]:
        return self._newest_first(self._outcomes, limit)

    async def get(self, event_id: str) -> Optional[Dict]:
        for outcome in self._outcomes:
            if outcome.event_id == event_id:
                return outcome_record(outcome)
        return None

    async def get_by_endpoint(
        self,
        slug: str,
        limit: int = 50,
        status: Optional[str] = None,
    ) -> List[Dict]:
        statuses = _statuses(status)
        matching = [
            o for o in self._outcomes
            if o.endpoint_slug == slug and (statuses is None or o.status in statuses)
        ]
        return self._newest_first(matching, limit)

    async def get_range(self, start: datetime, end: datetime, limit: int = 100) -> List[Dict]:
        start, end = _as_utc(start), _as_utc(end)
        matching = [o for o in self._outcomes if start <= _as_utc(o.received_at) <= end]
        return self._newest_first(matching, limit)

    async def get_stats(
        self,
        since: Optional[datetime] = None,
        slug: Optional[str] = None,
    ) -> Dict[str, Any]:
        groups: Dict[str, Dict[str, Any]] = {}
        for outcome in self._outcomes:
            if since is not None and _as_utc(outcome.received_at) < _as_utc(since):
                continue
            if slug is not None and outcome.endpoint_slug != slug:
                continue
            group = groups.setdefault(outcome.endpoint_slug, {
                "endpoint_slug": outcome.endpoint_slug,
                "usage_count": 0,
                "success_count": 0,
                "partial_count": 0,
                "failed_count": 0,
                "total_duration_ms": 0.0,
                "deliveries_attempted": 0,
                "deliveries_failed": 0,
                "last_used": None,
            })
            group["usage_count"] += 1
            group[f"{outcome.status}_count"] += 1
            group["total_duration_ms"] += outcome.duration_ms
            group["deliveries_attempted"] += outcome.attempted
            group["deliveries_failed"] += outcome.failed
            group["last_used"] = max(group["last_used"] or "", _timestamp(outcome.received_at))
        return _summarize(groups.values())

    @property
    def outcomes(self) -> List[RedistributionOutcome]:
        """Recorded outcomes, oldest first."""
        return list(self._outcomes)

    def clear(self) -> int:
        count = len(self._outcomes)
        self._outcomes.clear()
        return count


class SQLiteOutcomeLog(OutcomeLogger):
    """Outcome log persisted to a ``webhook_logs`` SQLite table."""

    _SCHEMA = """
        CREATE TABLE IF NOT EXISTS webhook_logs (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            event_id TEXT NOT NULL UNIQUE,
            endpoint_id TEXT,
            endpoint_slug TEXT NOT NULL,
            status TEXT NOT NULL,
            http_status INTEGER NOT NULL,
            attempted INTEGER NOT NULL,
            successful INTEGER NOT NULL,
            failed INTEGER NOT NULL,
            error_message TEXT,
            duration_ms REAL NOT NULL,
            payload_size INTEGER NOT NULL,
            attempts TEXT NOT NULL,
            received_at TEXT NOT NULL
        );
        CREATE INDEX IF NOT EXISTS idx_webhook_logs_slug ON webhook_logs (endpoint_slug, received_at);
    """

    _SELECT = f"SELECT {', '.join(RECORD_FIELDS)} FROM webhook_logs"

    def __init__(self, db_path: Union[str, Path]):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with sqlite3.connect(self.db_path) as conn:
            conn.executescript(self._SCHEMA)

    def _insert(self, outcome: RedistributionOutcome) -> None:
        record = outcome_record(outcome)
        record["attempts"] = json.dumps(record["attempts"])
        placeholders = ", ".join("?" for _ in RECORD_FIELDS)
        try:
            with sqlite3.connect(self.db_path) as conn:
                conn.execute(
                    f"INSERT INTO webhook_logs ({', '.join(RECORD_FIELDS)}) VALUES ({placeholders})",
                    tuple(record[name] for name in RECORD_FIELDS),
                )
        except sqlite3.Error as e:
            raise OutcomeLoggingError(f"Failed to write outcome {outcome.event_id}: {e}") from e

    def _query(self, operation: str, sql: str, params: tuple = ()) -> List[Dict]:
        try:
            with sqlite3.connect(self.db_path) as conn:
                conn.row_factory = sqlite3.Row
                rows = [dict(row) for row in conn.execute(sql, params).fetchall()]
        except sqlite3.Error as e:
            raise OutcomeLoggingError(f"Failed to read outcome log during {operation}: {e}") from e
        return rows

    def _select(self, operation: str, where: str, params: tuple, limit: int) -> List[Dict]:
        if limit <= 0:
            return []
        sql = f"{self._SELECT} {where} ORDER BY id DESC LIMIT ?"
        rows = self._query(operation, sql, params + (limit,))
        for row in rows:
            row["attempts"] = json.loads(row["attempts"])
        return rows

    def _select_by_endpoint(self, slug: str, limit: int, status: Optional[str]) -> List[Dict]:
        statuses = _statuses(status)
        where, params = "WHERE endpoint_slug = ?", (slug,)
        if statuses:
            where += f" AND status IN ({', '.join('?' for _ in statuses)})"
            params += statuses
        return self._select("get_by_endpoint", where, params, limit)

    def _aggregate(self, since: Optional[datetime], slug: Optional[str]) -> Dict[str, Any]:
        clauses, params = [], []
        if since is not None:
            clauses.append("received_at >= ?")
            params.append(_timestamp(since))
        if slug is not None:
            clauses.append("endpoint_slug = ?")
            params.append(slug)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        groups = self._query(
            "get_stats",
            "SELECT endpoint_slug, "
            "COUNT(*) AS usage_count, "
            "SUM(CASE WHEN status = 'success' THEN 1 ELSE 0 END) AS success_count, "
            "SUM(CASE WHEN status = 'partial' THEN 1 ELSE 0 END) AS partial_count, "
            "SUM(CASE WHEN status = 'failed' THEN 1 ELSE 0 END) AS failed_count, "
            "SUM(duration_ms) AS total_duration_ms, "
            "SUM(attempted) AS deliveries_attempted, "
            "SUM(failed) AS deliveries_failed, "
            "MAX(received_at) AS last_used "
            f"FROM webhook_logs {where} GROUP BY endpoint_slug",
            tuple(params),
        )
        return _summarize(groups)

    async def record(self, outcome: RedistributionOutcome) -> None:
        await asyncio.to_thread(self._insert, outcome)
        logger.debug(f"Logged outcome {outcome.event_id} for '{outcome.endpoint_slug}'")

    async def get_recent(self, limit: int = 50) -> List[Dict]:
        return await asyncio.to_thread(self._select, "get_recent", "", (), limit)

    async def get(self, event_id: str) -> Optional[Dict]:
        rows = await asyncio.to_thread(self._select, "get", "WHERE event_id = ?", (event_id,), 1)
        return rows[0] if rows else None

    async def get_by_endpoint(
        self,
        slug: str,
        limit: int = 50,
        status: Optional[str] = None,
    ) -> List[Dict]:
        return await asyncio.to_thread(self._select_by_endpoint, slug, limit, status)

    async def get_range(self, start: datetime, end: datetime, limit: int = 100) -> List[Dict]:
        return await asyncio.to_thread(
            self._select,
            "get_range",
            "WHERE received_at BETWEEN ? AND ?",
            (_timestamp(start), _timestamp(end)),
            limit,
        )

    async def get_stats(
        self,
        since: Optional[datetime] = None,
        slug: Optional[str] = None,
    ) -> Dict[str, Any]:
        return await asyncio.to_thread(self._aggregate, since, slug)

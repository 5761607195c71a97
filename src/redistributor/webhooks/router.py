"""Webhook API routes.

FastAPI routers for inbound webhook reception and redistribution
statistics. Components are read from ``app.state`` (see
``redistributor.main.create_app``).
"""

from datetime import datetime, timedelta, timezone
from typing import Optional
import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from ..core.observability import UsageTracker
from .errors import ConfigurationStoreError, EndpointInactive, OutcomeLoggingError, RoutingError
from .models import DEFAULT_ENDPOINT, DeliveryAttempt, RedistributionResponse
from .orchestrator import Redistributor
from .outcome_log import OutcomeLogger

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhook", tags=["webhook"])
stats_router = APIRouter(prefix="/api/stats", tags=["stats"])

# Window name -> how far back outcome statistics reach
STATS_WINDOWS = {
    "1h": timedelta(hours=1),
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
    "all": None,
}


def get_redistributor(request: Request) -> Redistributor:
    return request.app.state.redistributor


def get_usage_tracker(request: Request) -> UsageTracker:
    return request.app.state.redistributor.usage


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _routing_http_error(error: RoutingError) -> HTTPException:
    status_code = 410 if isinstance(error, EndpointInactive) else 404
    return HTTPException(
        status_code=status_code,
        detail={
            "success": False,
            "error": error.kind.value,
            "message": str(error),
            "timestamp": _timestamp(),
        },
    )


def _store_http_error(error: ConfigurationStoreError) -> HTTPException:
    return HTTPException(
        status_code=503,
        detail={
            "success": False,
            "error": "configuration_store_unavailable",
            "message": str(error),
            "timestamp": _timestamp(),
        },
    )


def _outcome_log(redistributor: Redistributor) -> OutcomeLogger:
    if redistributor.outcome_log is None:
        raise HTTPException(status_code=404, detail="Outcome logging is disabled")
    return redistributor.outcome_log


def _outcome_log_http_error(error: OutcomeLoggingError) -> HTTPException:
    logger.error(f"Outcome log read failed: {error}")
    return HTTPException(
        status_code=503,
        detail={
            "success": False,
            "error": "outcome_log_unavailable",
            "message": str(error),
            "timestamp": _timestamp(),
        },
    )


def _utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


async def _redistribute(
    slug: Optional[str],
    request: Request,
    redistributor: Redistributor,
) -> RedistributionResponse:
    body = await request.body()
    if not body.strip():
        body = b"{}"

    try:
        json.loads(body)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON payload")

    try:
        outcome = await redistributor.redistribute(
            slug,
            body,
            headers=dict(request.headers),
            query=dict(request.query_params),
        )
    except RoutingError as e:
        raise _routing_http_error(e)
    except ConfigurationStoreError as e:
        logger.error(f"Configuration store failure while routing '{slug or 'default'}': {e}")
        raise _store_http_error(e)

    return RedistributionResponse.from_outcome(outcome)


# ============================================================================
# Inbound Webhook Endpoints
# ============================================================================

@router.get("")
@router.get("/", include_in_schema=False)
async def webhook_ready():
    """Readiness check for the default route."""
    return {
        "message": "Webhook endpoint is ready",
        "status": "active",
        "timestamp": _timestamp(),
    }


@router.post("", response_model=RedistributionResponse)
@router.post("/", response_model=RedistributionResponse, include_in_schema=False)
async def receive_default_webhook(
    request: Request,
    redistributor: Redistributor = Depends(get_redistributor),
):
    """Receive a webhook on the default route and redistribute it."""
    return await _redistribute(None, request, redistributor)


@router.get("/{slug}")
async def endpoint_ready(
    slug: str,
    redistributor: Redistributor = Depends(get_redistributor),
):
    """Readiness check for a specific endpoint.

    Inactive endpoints still report their metadata, with status "inactive";
    only unknown slugs return 404.
    """
    try:
        endpoint = await redistributor.slug_resolver.lookup(slug)
    except RoutingError as e:
        raise _routing_http_error(e)
    except ConfigurationStoreError as e:
        raise _store_http_error(e)

    return {
        "message": (
            f"Webhook endpoint '{endpoint.slug}' is ready" if endpoint.active
            else f"Webhook endpoint '{endpoint.slug}' is currently inactive"
        ),
        "status": "active" if endpoint.active else "inactive",
        "timestamp": _timestamp(),
        "endpoint": {
            "id": endpoint.id,
            "name": endpoint.name,
            "slug": endpoint.slug,
            "description": endpoint.description,
            "active": endpoint.active,
        },
    }


@router.post("/{slug}", response_model=RedistributionResponse)
async def receive_webhook(
    slug: str,
    request: Request,
    redistributor: Redistributor = Depends(get_redistributor),
):
    """Receive a webhook for a specific endpoint and redistribute it.

    Returns 404 for unknown slugs, 410 for inactive endpoints and 503
    when the configuration store cannot be read. Partial delivery
    failures still return 200 with per-destination results.
    """
    return await _redistribute(slug, request, redistributor)


# ============================================================================
# Statistics Endpoints
# ============================================================================

@stats_router.get("/endpoints")
async def endpoint_stats(redistributor: Redistributor = Depends(get_redistributor)):
    """Destination counts per endpoint, default route first."""
    store = redistributor.store
    try:
        endpoints = [DEFAULT_ENDPOINT] + await store.list_endpoints()
        stats = []
        for endpoint in endpoints:
            destinations = await store.list_destinations(endpoint.id)
            active = sum(1 for d in destinations if d.active)
            stats.append({
                "endpoint": {
                    "id": endpoint.id,
                    "name": endpoint.name,
                    "slug": endpoint.slug,
                    "description": endpoint.description,
                    "active": endpoint.active,
                },
                "destinations": {
                    "total": len(destinations),
                    "active": active,
                    "inactive": len(destinations) - active,
                },
            })
    except ConfigurationStoreError as e:
        raise _store_http_error(e)

    return {"success": True, "data": stats, "count": len(stats)}


@stats_router.get("/usage")
async def usage_stats(usage: UsageTracker = Depends(get_usage_tracker)):
    """Usage counters since the application started."""
    return usage.get_summary()


@stats_router.get("/outcomes/recent")
async def recent_outcomes(
    limit: int = Query(50, ge=1, le=500),
    redistributor: Redistributor = Depends(get_redistributor),
):
    """Most recent outcome records, newest first."""
    try:
        return await _outcome_log(redistributor).get_recent(limit=limit)
    except OutcomeLoggingError as e:
        raise _outcome_log_http_error(e)


@stats_router.get("/outcomes/stats")
async def outcome_stats(
    window: str = Query("24h", alias="range", pattern="^(1h|24h|7d|30d|all)$"),
    endpoint: Optional[str] = None,
    redistributor: Redistributor = Depends(get_redistributor),
):
    """Outcome counts and rates overall and per endpoint for a time window."""
    span = STATS_WINDOWS[window]
    since = datetime.now(timezone.utc) - span if span else None
    try:
        stats = await _outcome_log(redistributor).get_stats(since=since, slug=endpoint)
    except OutcomeLoggingError as e:
        raise _outcome_log_http_error(e)
    return {"range": window, "endpoint": endpoint, **stats}


@stats_router.get("/outcomes/range")
async def outcomes_in_range(
    start: datetime,
    end: datetime,
    limit: int = Query(100, ge=1, le=500),
    redistributor: Redistributor = Depends(get_redistributor),
):
    """Outcome records received between two timestamps, newest first."""
    start, end = _utc(start), _utc(end)
    if end < start:
        raise HTTPException(status_code=400, detail="end must not be earlier than start")
    try:
        return await _outcome_log(redistributor).get_range(start, end, limit=limit)
    except OutcomeLoggingError as e:
        raise _outcome_log_http_error(e)


@stats_router.get("/outcomes/endpoint/{slug}")
async def endpoint_outcomes(
    slug: str,
    limit: int = Query(50, ge=1, le=500),
    status: Optional[str] = Query(None, pattern="^(success|partial|failed|error)$"),
    redistributor: Redistributor = Depends(get_redistributor),
):
    """Outcome records for one endpoint; status "error" matches partial and failed."""
    try:
        return await _outcome_log(redistributor).get_by_endpoint(slug, limit=limit, status=status)
    except OutcomeLoggingError as e:
        raise _outcome_log_http_error(e)


@stats_router.get("/outcomes/{event_id}")
async def outcome_detail(
    event_id: str,
    redistributor: Redistributor = Depends(get_redistributor),
):
    """One outcome record by event ID."""
    try:
        record = await _outcome_log(redistributor).get(event_id)
    except OutcomeLoggingError as e:
        raise _outcome_log_http_error(e)

    if record is None:
        raise HTTPException(status_code=404, detail="Outcome not found")
    return record


@stats_router.post("/destinations/{destination_id}/probe", response_model=DeliveryAttempt)
async def probe_destination(
    destination_id: str,
    redistributor: Redistributor = Depends(get_redistributor),
):
    """Check that a destination is reachable."""
    try:
        destination = await redistributor.store.get_destination(destination_id)
    except ConfigurationStoreError as e:
        raise _store_http_error(e)

    if destination is None:
        raise HTTPException(status_code=404, detail="Destination not found")

    return await redistributor.executor.probe(destination)

"""Outbound header construction.

Every delivery carries the same minimal header set. Only the source and
event indicators are copied from the inbound request; all other inbound
headers stay behind.
"""

from datetime import datetime, timezone
from typing import Dict, Mapping, Optional

DEFAULT_USER_AGENT = "Webhook-Redistributor/1.0"
DEFAULT_SOURCE_MARKER = "webhook-redistributor"

# inbound header (lower-case) -> outbound header
PASSTHROUGH_HEADERS = {
    "x-webhook-source": "X-Original-Source",
    "x-webhook-event": "X-Original-Event",
}


def select_passthrough_headers(inbound: Optional[Mapping[str, str]]) -> Dict[str, str]:
    """Pick the forwardable indicators out of the inbound headers.

    Args:
        inbound: Inbound request headers, any key casing.

    Returns:
        Dict keyed by the outbound header names.
    """
    if not inbound:
        return {}

    selected = {}
    for key, value in inbound.items():
        outbound = PASSTHROUGH_HEADERS.get(key.lower())
        if outbound and value:
            selected[outbound] = value
    return selected


def build_delivery_headers(
    inbound: Optional[Mapping[str, str]] = None,
    user_agent: str = DEFAULT_USER_AGENT,
    source_marker: str = DEFAULT_SOURCE_MARKER,
    delivered_at: Optional[datetime] = None,
) -> Dict[str, str]:
    """Generate headers for an outbound delivery.

    Args:
        inbound: Inbound request headers (only passthrough indicators are used).
        user_agent: Identifying User-Agent value.
        source_marker: Value of X-Redistributed-From.
        delivered_at: Delivery timestamp (defaults to now, UTC).

    Returns:
        Dict of headers to include in the delivery request.
    """
    delivered_at = delivered_at or datetime.now(timezone.utc)

    headers = {
        "Content-Type": "application/json",
        "User-Agent": user_agent,
        "X-Redistributed-At": delivered_at.isoformat(),
        "X-Redistributed-From": source_marker,
    }
    headers.update(select_passthrough_headers(inbound))
    return headers

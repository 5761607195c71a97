"""Destination resolution.

Produces the ordered set of active destinations for a resolved route.
"""

import logging
from typing import TYPE_CHECKING, List, Optional

from .errors import ConfigurationStoreError
from .models import Destination

if TYPE_CHECKING:
    from ..store.base import ConfigurationStore

logger = logging.getLogger(__name__)


class DestinationResolver:
    """Looks up the delivery targets of an endpoint.

    The order is stable for a given store state: by ``position``, then by
    the order the store returned them. Delivery itself is concurrent, so
    the order only matters for reporting.
    """

    def __init__(self, store: "ConfigurationStore"):
        self._store = store

    async def destinations_for(self, endpoint_id: Optional[str]) -> List[Destination]:
        """Get active destinations for an endpoint.

        Args:
            endpoint_id: Endpoint ID, or None for the default route.

        Returns:
            Active destinations in delivery-report order. May be empty.

        Raises:
            ConfigurationStoreError: The store could not be read.
        """
        try:
            destinations = await self._store.get_active_destinations(endpoint_id)
        except ConfigurationStoreError:
            raise
        except Exception as e:
            raise ConfigurationStoreError("get_active_destinations", e) from e

        eligible = [
            d for d in destinations
            if d.active and d.endpoint_id == endpoint_id
        ]
        if len(eligible) != len(destinations):
            logger.warning(
                f"Store returned {len(destinations) - len(eligible)} ineligible "
                f"destination(s) for endpoint {endpoint_id or 'default'}; skipped"
            )

        return sorted(eligible, key=lambda d: d.position)

"""Configuration store interface.

The redistribution core only reads from the store. Endpoint and
destination management lives outside the core; concrete stores expose
small seeding helpers for that purpose.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from ..webhooks.models import Destination, Endpoint


class ConfigurationStore(ABC):
    """Abstract base class for configuration store backends."""

    @abstractmethod
    async def get_endpoint_by_slug(self, slug: str) -> Optional[Endpoint]:
        """Look up an endpoint by slug, active or not."""
        pass

    @abstractmethod
    async def get_active_destinations(self, endpoint_id: Optional[str]) -> List[Destination]:
        """Active destinations bound to an endpoint (None = default route).

        Results are returned in ``position`` order, insertion order for ties.
        """
        pass

    @abstractmethod
    async def list_endpoints(self) -> List[Endpoint]:
        """All configured endpoints in creation order."""
        pass

    @abstractmethod
    async def list_destinations(self, endpoint_id: Optional[str]) -> List[Destination]:
        """All destinations bound to an endpoint, active and inactive."""
        pass

    @abstractmethod
    async def get_destination(self, destination_id: str) -> Optional[Destination]:
        """Look up a destination by ID."""
        pass

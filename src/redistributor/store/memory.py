"""In-memory configuration store.

Keeps endpoints and destinations in dictionaries. Suitable for tests,
development and single-process deployments seeded at startup.
"""

from typing import Dict, List, Optional
import logging

from ..webhooks.models import Destination, Endpoint
from .base import ConfigurationStore

logger = logging.getLogger(__name__)


class InMemoryConfigurationStore(ConfigurationStore):
    """In-memory store for endpoint and destination configuration.

    Example:
        store = InMemoryConfigurationStore()
        crm = store.add_endpoint(Endpoint(id="1", slug="crm", name="CRM"))
        store.add_destination(Destination(
            name="Sales",
            url="https://sales.example.com/hook",
            endpoint_id=crm.id,
        ))
    """

    def __init__(self):
        """Initialize empty store."""
        self._endpoints: Dict[str, Endpoint] = {}
        self._destinations: Dict[str, Destination] = {}

    # ------------------------------------------------------------------
    # Seeding helpers
    # ------------------------------------------------------------------

    def add_endpoint(self, endpoint: Endpoint) -> Endpoint:
        """Add or replace an endpoint.

        Raises:
            ValueError: If the endpoint has no ID or its slug is already
                taken by a different endpoint.
        """
        if endpoint.id is None:
            raise ValueError("Stored endpoints need an ID; the default route is built in")
        for existing in self._endpoints.values():
            if existing.slug == endpoint.slug and existing.id != endpoint.id:
                raise ValueError(f"Slug '{endpoint.slug}' is already in use")
        self._endpoints[endpoint.id] = endpoint
        logger.info(f"Stored endpoint '{endpoint.slug}' ({endpoint.id})")
        return endpoint

    def add_destination(self, destination: Destination) -> Destination:
        """Add or replace a destination."""
        if destination.endpoint_id is not None and destination.endpoint_id not in self._endpoints:
            raise ValueError(f"Unknown endpoint ID: {destination.endpoint_id}")
        self._destinations[destination.id] = destination
        logger.info(f"Stored destination '{destination.name}' ({destination.id}) -> {destination.url}")
        return destination

    def set_endpoint_active(self, endpoint_id: str, active: bool) -> bool:
        """Activate or deactivate an endpoint. Returns False if unknown."""
        endpoint = self._endpoints.get(endpoint_id)
        if not endpoint:
            return False
        self._endpoints[endpoint_id] = endpoint.model_copy(update={"active": active})
        return True

    def set_destination_active(self, destination_id: str, active: bool) -> bool:
        """Activate or deactivate a destination. Returns False if unknown."""
        destination = self._destinations.get(destination_id)
        if not destination:
            return False
        self._destinations[destination_id] = destination.model_copy(update={"active": active})
        return True

    # ------------------------------------------------------------------
    # ConfigurationStore
    # ------------------------------------------------------------------

    async def get_endpoint_by_slug(self, slug: str) -> Optional[Endpoint]:
        for endpoint in self._endpoints.values():
            if endpoint.slug == slug:
                return endpoint
        return None

    async def get_active_destinations(self, endpoint_id: Optional[str]) -> List[Destination]:
        bound = await self.list_destinations(endpoint_id)
        return [d for d in bound if d.active]

    async def list_endpoints(self) -> List[Endpoint]:
        return list(self._endpoints.values())

    async def list_destinations(self, endpoint_id: Optional[str]) -> List[Destination]:
        bound = [d for d in self._destinations.values() if d.endpoint_id == endpoint_id]
        # sorted() is stable, so insertion order breaks ties
        return sorted(bound, key=lambda d: d.position)

    async def get_destination(self, destination_id: str) -> Optional[Destination]:
        return self._destinations.get(destination_id)

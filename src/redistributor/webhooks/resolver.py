"""Slug resolution.

Maps an inbound route identifier to an endpoint record, or to the
built-in default route when no slug is given.
"""

import logging
from typing import TYPE_CHECKING, Optional

from .errors import ConfigurationStoreError, EndpointInactive, EndpointNotFound
from .models import DEFAULT_ENDPOINT, DEFAULT_SLUG, Endpoint

if TYPE_CHECKING:
    from ..store.base import ConfigurationStore

logger = logging.getLogger(__name__)


def normalize_slug(slug: Optional[str]) -> Optional[str]:
    """Strip a slug; blank and reserved default slugs become None."""
    if slug is None:
        return None
    slug = slug.strip()
    if not slug or slug == DEFAULT_SLUG:
        return None
    return slug


class SlugResolver:
    """Resolves inbound slugs against the configuration store."""

    def __init__(self, store: "ConfigurationStore"):
        self._store = store

    async def lookup(self, slug: Optional[str]) -> Endpoint:
        """Find the endpoint for a slug whether or not it is active.

        Raises:
            EndpointNotFound: No endpoint has this slug.
            ConfigurationStoreError: The store could not be read.
        """
        normalized = normalize_slug(slug)
        if normalized is None:
            return DEFAULT_ENDPOINT

        try:
            endpoint = await self._store.get_endpoint_by_slug(normalized)
        except ConfigurationStoreError:
            raise
        except Exception as e:
            raise ConfigurationStoreError("get_endpoint_by_slug", e) from e

        if endpoint is None:
            logger.info(f"Endpoint not found: {normalized}")
            raise EndpointNotFound(normalized)
        return endpoint

    async def resolve(self, slug: Optional[str]) -> Endpoint:
        """Resolve a slug to an active endpoint.

        Args:
            slug: Route slug; None, blank or "default" selects the default route.

        Returns:
            The matching active endpoint, or DEFAULT_ENDPOINT.

        Raises:
            EndpointNotFound: No endpoint has this slug.
            EndpointInactive: The endpoint exists but is inactive.
            ConfigurationStoreError: The store could not be read.
        """
        endpoint = await self.lookup(slug)

        if not endpoint.active:
            logger.info(f"Endpoint is inactive: {endpoint.slug}")
            raise EndpointInactive(endpoint.slug)

        return endpoint

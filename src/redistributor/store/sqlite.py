"""SQLite configuration store.

Reads endpoint and destination configuration from a SQLite database.
Queries run in a worker thread so the event loop is never blocked.
"""

import asyncio
import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any, List, Optional, Union

from ..webhooks.errors import ConfigurationStoreError
from ..webhooks.models import Destination, Endpoint
from .base import ConfigurationStore

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).parent / "schema.sql"

_DESTINATION_ORDER = "ORDER BY position ASC, rowid ASC"


def _row_to_endpoint(row: sqlite3.Row) -> Endpoint:
    return Endpoint(
        id=row["id"],
        slug=row["slug"],
        name=row["name"],
        description=row["description"],
        active=bool(row["active"]),
        created_at=datetime.fromisoformat(row["created_at"]),
    )


def _row_to_destination(row: sqlite3.Row) -> Destination:
    return Destination(
        id=row["id"],
        name=row["name"],
        url=row["url"],
        active=bool(row["active"]),
        endpoint_id=row["endpoint_id"],
        position=row["position"],
        created_at=datetime.fromisoformat(row["created_at"]),
    )


class SQLiteConfigurationStore(ConfigurationStore):
    """Configuration store backed by a SQLite file."""

    def __init__(self, db_path: Union[str, Path]):
        self.db_path = Path(db_path)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def _init_db(self):
        """Initialize the database with schema."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            conn.executescript(SCHEMA_PATH.read_text(encoding="utf-8"))
        logger.info(f"Configuration store ready at {self.db_path}")

    def _fetch(self, operation: str, sql: str, params: tuple = ()) -> List[sqlite3.Row]:
        try:
            with self._connect() as conn:
                return conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise ConfigurationStoreError(operation, e) from e

    def _execute(self, sql: str, params: tuple = ()) -> int:
        with self._connect() as conn:
            return conn.execute(sql, params).rowcount

    async def _run(self, func, *args: Any) -> Any:
        return await asyncio.to_thread(func, *args)

    # ------------------------------------------------------------------
    # Seeding helpers
    # ------------------------------------------------------------------

    def add_endpoint(self, endpoint: Endpoint) -> Endpoint:
        """Insert or replace an endpoint."""
        if endpoint.id is None:
            raise ValueError("Stored endpoints need an ID; the default route is built in")
        try:
            self._execute(
                "INSERT INTO endpoints (id, slug, name, description, active, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?) "
                "ON CONFLICT(id) DO UPDATE SET slug = excluded.slug, name = excluded.name, "
                "description = excluded.description, active = excluded.active",
                (
                    endpoint.id,
                    endpoint.slug,
                    endpoint.name,
                    endpoint.description,
                    int(endpoint.active),
                    endpoint.created_at.isoformat(),
                ),
            )
        except sqlite3.IntegrityError as e:
            raise ValueError(f"Slug '{endpoint.slug}' is already in use") from e
        return endpoint

    def add_destination(self, destination: Destination) -> Destination:
        """Insert or replace a destination."""
        try:
            self._execute(
                "INSERT INTO destinations "
                "(id, name, url, active, endpoint_id, position, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?) "
                "ON CONFLICT(id) DO UPDATE SET name = excluded.name, url = excluded.url, "
                "active = excluded.active, endpoint_id = excluded.endpoint_id, "
                "position = excluded.position",
                (
                    destination.id,
                    destination.name,
                    destination.url,
                    int(destination.active),
                    destination.endpoint_id,
                    destination.position,
                    destination.created_at.isoformat(),
                ),
            )
        except sqlite3.IntegrityError as e:
            raise ValueError(f"Unknown endpoint ID: {destination.endpoint_id}") from e
        return destination

    def set_endpoint_active(self, endpoint_id: str, active: bool) -> bool:
        return self._execute(
            "UPDATE endpoints SET active = ? WHERE id = ?", (int(active), endpoint_id)
        ) > 0

    def set_destination_active(self, destination_id: str, active: bool) -> bool:
        return self._execute(
            "UPDATE destinations SET active = ? WHERE id = ?", (int(active), destination_id)
        ) > 0

    # ------------------------------------------------------------------
    # ConfigurationStore
    # ------------------------------------------------------------------

    def _endpoint_by_slug(self, slug: str) -> Optional[Endpoint]:
        rows = self._fetch("get_endpoint_by_slug", "SELECT * FROM endpoints WHERE slug = ?", (slug,))
        return _row_to_endpoint(rows[0]) if rows else None

    def _destinations(self, endpoint_id: Optional[str], active_only: bool) -> List[Destination]:
        clauses = ["endpoint_id IS ?"]
        if active_only:
            clauses.append("active = 1")
        sql = f"SELECT * FROM destinations WHERE {' AND '.join(clauses)} {_DESTINATION_ORDER}"
        operation = "get_active_destinations" if active_only else "list_destinations"
        return [_row_to_destination(r) for r in self._fetch(operation, sql, (endpoint_id,))]

    def _all_endpoints(self) -> List[Endpoint]:
        rows = self._fetch("list_endpoints", "SELECT * FROM endpoints ORDER BY rowid ASC")
        return [_row_to_endpoint(r) for r in rows]

    def _destination_by_id(self, destination_id: str) -> Optional[Destination]:
        rows = self._fetch(
            "get_destination", "SELECT * FROM destinations WHERE id = ?", (destination_id,)
        )
        return _row_to_destination(rows[0]) if rows else None

    async def get_endpoint_by_slug(self, slug: str) -> Optional[Endpoint]:
        return await self._run(self._endpoint_by_slug, slug)

    async def get_active_destinations(self, endpoint_id: Optional[str]) -> List[Destination]:
        return await self._run(self._destinations, endpoint_id, True)

    async def list_endpoints(self) -> List[Endpoint]:
        return await self._run(self._all_endpoints)

    async def list_destinations(self, endpoint_id: Optional[str]) -> List[Destination]:
        return await self._run(self._destinations, endpoint_id, False)

    async def get_destination(self, destination_id: str) -> Optional[Destination]:
        return await self._run(self._destination_by_id, destination_id)

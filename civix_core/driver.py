"""
Database Driver
===============
Thin adapter over the MongoDB driver used by the resilience layer.

The adapter exposes exactly what the connection manager and health prober
need: ``connect``, a readiness flag, ``ping``, ``close``, collection access
and connection lifecycle events. Lifecycle events are delivered to an
``asyncio.Queue`` attached by the connection manager.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

import structlog
from pymongo import AsyncMongoClient, ReadPreference, monitoring

logger = structlog.get_logger(__name__)


class LifecycleEvent(str, Enum):
    """Connection lifecycle events emitted by a driver."""
    CONNECTED = "connected"
    ERROR = "error"
    DISCONNECTED = "disconnected"
    RECONNECTED = "reconnected"


@dataclass
class DriverEvent:
    """A lifecycle event with its optional error."""
    kind: LifecycleEvent
    error: Optional[BaseException] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class DatabaseDriver(ABC):
    """Contract between the resilience layer and a data-store driver."""

    def __init__(self) -> None:
        self._queue: Optional[asyncio.Queue] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def attach(self, queue: asyncio.Queue) -> None:
        """Deliver lifecycle events to ``queue`` on the running loop."""
        self._queue = queue
        self._loop = asyncio.get_running_loop()

    def detach(self) -> None:
        self._queue = None
        self._loop = None

    def emit(self, kind: LifecycleEvent, error: Optional[BaseException] = None) -> None:
        """Publish a lifecycle event; safe to call from driver threads."""
        queue, loop = self._queue, self._loop
        if queue is None or loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(queue.put_nowait, DriverEvent(kind, error))

    @property
    @abstractmethod
    def is_ready(self) -> bool:
        """True while a usable connection handle exists."""

    @abstractmethod
    async def connect(self, **options: Any) -> None:
        """Establish the connection; raises on failure."""

    @abstractmethod
    async def ping(self) -> None:
        """Minimal liveness probe; raises on failure."""

    @abstractmethod
    async def close(self) -> None:
        """Close the connection handle."""

    @abstractmethod
    def connection_details(self) -> Dict[str, Any]:
        """Host, port and database name of the current connection."""

    @abstractmethod
    def collection(self, name: str) -> Any:
        """Return a handle on a collection of the configured database."""


class _TopologyListener(monitoring.TopologyListener):
    """
    Turns topology availability changes into lifecycle events.

    The connection counts as up while any member can serve reads, so a single
    unreachable replica set member does not flap the lifecycle.
    """

    def __init__(self, driver: "MongoDriver"):
        self._driver = driver

    def opened(self, event: monitoring.TopologyOpenedEvent) -> None:
        pass

    def description_changed(self, event: monitoring.TopologyDescriptionChangedEvent) -> None:
        description = event.new_description
        if description.has_readable_server(ReadPreference.SECONDARY_PREFERRED):
            self._driver._mark_up()
        else:
            self._driver._mark_down(
                _topology_error(description)
                or ConnectionError("No reachable MongoDB server")
            )

    def closed(self, event: monitoring.TopologyClosedEvent) -> None:
        pass


def _topology_error(description: Any) -> Optional[BaseException]:
    for server in description.server_descriptions().values():
        if server.error is not None:
            return server.error
    return None


class MongoDriver(DatabaseDriver):
    """
    ``pymongo.AsyncMongoClient`` backed driver.

    Example:
        driver = MongoDriver("mongodb://localhost:27017/civix", "civix")
        await driver.connect(serverSelectionTimeoutMS=30000)
        await driver.ping()
    """

    def __init__(self, uri: str, database_name: str):
        super().__init__()
        self.uri = uri
        self.database_name = database_name
        self._client: Optional[AsyncMongoClient] = None
        self._up = False
        self._was_connected = False

    @property
    def is_ready(self) -> bool:
        return self._client is not None and self._up

    @property
    def client(self) -> Optional[AsyncMongoClient]:
        return self._client

    async def connect(self, **options: Any) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None

        client = AsyncMongoClient(
            self.uri,
            event_listeners=[_TopologyListener(self)],
            **options,
        )
        try:
            # The client connects lazily; a ping forces server selection.
            await client.admin.command("ping")
        except Exception:
            self._up = False
            await client.close()
            raise

        self._client = client
        self._mark_up()

    async def ping(self) -> None:
        if self._client is None:
            raise RuntimeError("Database client is not connected")
        await self._client.admin.command("ping")

    async def close(self) -> None:
        if self._client is None:
            return
        client, self._client = self._client, None
        await client.close()
        if self._up:
            self._up = False
            self.emit(LifecycleEvent.DISCONNECTED)
        logger.info("mongo_client_closed", database=self.database_name)

    def connection_details(self) -> Dict[str, Any]:
        """Host and port of the primary (or first known) server; no I/O."""
        host, port = None, None
        if self._client is not None:
            servers = self._client.topology_description.known_servers
            writable = [s for s in servers if s.is_writable]
            chosen = (writable or servers or [None])[0]
            if chosen is not None:
                host, port = chosen.address
        return {"host": host, "port": port, "name": self.database_name}

    def collection(self, name: str) -> Any:
        if self._client is None:
            raise RuntimeError("Database client is not connected")
        return self._client[self.database_name][name]

    def _mark_up(self) -> None:
        if self._up:
            return
        self._up = True
        if self._was_connected:
            self.emit(LifecycleEvent.RECONNECTED)
        else:
            self._was_connected = True
            self.emit(LifecycleEvent.CONNECTED)

    def _mark_down(self, error: Optional[BaseException]) -> None:
        if not self._up or self._client is None:
            return
        self._up = False
        self.emit(LifecycleEvent.ERROR, error)
        self.emit(LifecycleEvent.DISCONNECTED)

"""Database drivers consumed by the session initializer."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Protocol, Sequence, runtime_checkable

from rethinkdb import RethinkDB
from rethinkdb.errors import ReqlError

from .models import ConnectionHandle, DatabaseRef, SessionConfig

LOG = logging.getLogger(__name__)


class SessionConnectionError(ConnectionError):
    """Raised when the server cannot be reached within the timeout."""


class ProvisioningFailure(RuntimeError):
    """Raised by drivers when databases or tables cannot be listed or created."""


@runtime_checkable
class Driver(Protocol):
    """Protocol implemented by database drivers."""

    async def connect(self, config: SessionConfig) -> ConnectionHandle:
        """Open a connection bounded by ``config.timeout``."""

    async def select_database(self, connection: ConnectionHandle, name: str) -> None:
        """Make ``name`` the default database of the connection."""

    async def list_databases(self, connection: ConnectionHandle) -> Sequence[str]:
        """Names of every database on the server."""

    async def create_database(self, connection: ConnectionHandle, name: str) -> int:
        """Create a database; returns how many were created."""

    def database(self, name: str) -> DatabaseRef:
        """Reference to a database by name."""

    async def list_tables(self, connection: ConnectionHandle, database: DatabaseRef) -> Sequence[str]:
        """Names of every table in ``database``."""

    async def create_table(self, connection: ConnectionHandle, database: DatabaseRef, name: str) -> int:
        """Create a table; returns how many were created."""

    async def close(self, connection: ConnectionHandle) -> None:
        """Close the connection."""


class RethinkDriver:
    """Driver that talks to a RethinkDB server via the official client."""

    def __init__(self, r: RethinkDB | None = None) -> None:
        if r is None:
            r = RethinkDB()
            r.set_loop_type("asyncio")
        self._r = r

    async def connect(self, config: SessionConfig) -> ConnectionHandle:
        LOG.debug("Connecting to %s (timeout=%ss)", config.address, config.timeout)
        try:
            return await asyncio.wait_for(
                self._r.connect(
                    host=config.host,
                    port=config.port,
                    db=config.database,
                    timeout=config.timeout,
                ),
                timeout=config.timeout,
            )
        except asyncio.TimeoutError as exc:
            raise SessionConnectionError(
                f"Timed out after {config.timeout}s connecting to {config.address}"
            ) from exc
        except (ReqlError, OSError) as exc:
            raise SessionConnectionError(f"Failed to connect to {config.address}: {exc}") from exc

    async def select_database(self, connection: ConnectionHandle, name: str) -> None:
        connection.use(name)

    async def list_databases(self, connection: ConnectionHandle) -> Sequence[str]:
        try:
            return tuple(await self._r.db_list().run(connection))
        except ReqlError as exc:
            raise ProvisioningFailure(str(exc)) from exc

    async def create_database(self, connection: ConnectionHandle, name: str) -> int:
        try:
            result = await self._r.db_create(name).run(connection)
        except ReqlError as exc:
            raise ProvisioningFailure(str(exc)) from exc
        return _created_count(result, "dbs_created")

    def database(self, name: str) -> DatabaseRef:
        return self._r.db(name)

    async def list_tables(self, connection: ConnectionHandle, database: DatabaseRef) -> Sequence[str]:
        try:
            return tuple(await database.table_list().run(connection))
        except ReqlError as exc:
            raise ProvisioningFailure(str(exc)) from exc

    async def create_table(self, connection: ConnectionHandle, database: DatabaseRef, name: str) -> int:
        try:
            result = await database.table_create(name).run(connection)
        except ReqlError as exc:
            raise ProvisioningFailure(str(exc)) from exc
        return _created_count(result, "tables_created")

    async def close(self, connection: ConnectionHandle) -> None:
        await connection.close()


def _created_count(result: Any, key: str) -> int:
    if isinstance(result, Mapping):
        try:
            return int(result.get(key, 0) or 0)
        except (TypeError, ValueError):
            return 0
    return 1 if result else 0


@dataclass(slots=True)
class MemoryConnection:
    """Connection handed out by :class:`MemoryDriver`."""

    address: str
    db: str | None = None
    open: bool = True


@dataclass(frozen=True, slots=True)
class MemoryDatabase:
    """Database reference handed out by :class:`MemoryDriver`."""

    name: str


@dataclass(slots=True)
class _MemoryServer:
    databases: dict[str, set[str]] = field(default_factory=dict)


class MemoryDriver:
    """In-process stand-in for a RethinkDB server.

    Every connection shares the same server state, so sequential or concurrent
    sessions observe each other's databases and tables. ``calls`` records the
    driver operations in order.
    """

    def __init__(
        self,
        databases: Mapping[str, Iterable[str]] | None = None,
        *,
        reachable: bool = True,
    ) -> None:
        self._server = _MemoryServer(
            {name: set(tables) for name, tables in (databases or {}).items()}
        )
        self.reachable = reachable
        self.calls: list[str] = []

    @property
    def databases(self) -> dict[str, tuple[str, ...]]:
        """Snapshot of the server contents."""

        return {name: tuple(sorted(tables)) for name, tables in self._server.databases.items()}

    async def connect(self, config: SessionConfig) -> MemoryConnection:
        self.calls.append("connect")
        await asyncio.sleep(0)
        if not self.reachable:
            raise SessionConnectionError(f"Failed to connect to {config.address}: unreachable")
        return MemoryConnection(address=config.address, db=config.database)

    async def select_database(self, connection: MemoryConnection, name: str) -> None:
        self.calls.append("select_database")
        connection.db = name

    async def list_databases(self, connection: MemoryConnection) -> Sequence[str]:
        self.calls.append("list_databases")
        self._check_open(connection)
        await asyncio.sleep(0)
        return tuple(self._server.databases)

    async def create_database(self, connection: MemoryConnection, name: str) -> int:
        self.calls.append("create_database")
        self._check_open(connection)
        await asyncio.sleep(0)
        if name in self._server.databases:
            raise ProvisioningFailure(f"Database `{name}` already exists.")
        self._server.databases[name] = set()
        return 1

    def database(self, name: str) -> MemoryDatabase:
        return MemoryDatabase(name)

    async def list_tables(self, connection: MemoryConnection, database: MemoryDatabase) -> Sequence[str]:
        self.calls.append("list_tables")
        self._check_open(connection)
        await asyncio.sleep(0)
        return tuple(self._tables(database))

    async def create_table(self, connection: MemoryConnection, database: MemoryDatabase, name: str) -> int:
        self.calls.append("create_table")
        self._check_open(connection)
        await asyncio.sleep(0)
        tables = self._tables(database)
        if name in tables:
            raise ProvisioningFailure(f"Table `{database.name}.{name}` already exists.")
        tables.add(name)
        return 1

    async def close(self, connection: MemoryConnection) -> None:
        self.calls.append("close")
        connection.open = False

    def _tables(self, database: MemoryDatabase) -> set[str]:
        try:
            return self._server.databases[database.name]
        except KeyError:
            raise ProvisioningFailure(f"Database `{database.name}` does not exist.") from None

    @staticmethod
    def _check_open(connection: MemoryConnection) -> None:
        if not connection.open:
            raise SessionConnectionError(f"Connection to {connection.address} is closed")


__all__ = [
    "Driver",
    "MemoryConnection",
    "MemoryDatabase",
    "MemoryDriver",
    "ProvisioningFailure",
    "RethinkDriver",
    "SessionConnectionError",
]

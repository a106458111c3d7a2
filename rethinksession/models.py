"""Shared dataclasses used across driver/session modules."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterator
from urllib.parse import urlparse

DEFAULT_HOST = "localhost"
DEFAULT_PORT = 28015
DEFAULT_DATABASE = "default"
DEFAULT_TABLE = "users"
DEFAULT_TIMEOUT = 5.0

ConnectionHandle = Any
DatabaseRef = Any


@dataclass(frozen=True, slots=True)
class SessionConfig:
    """Where to connect and what to provision."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    database: str = DEFAULT_DATABASE
    table: str = DEFAULT_TABLE
    timeout: float = DEFAULT_TIMEOUT

    @classmethod
    def from_url(
        cls,
        url: str,
        *,
        database: str = DEFAULT_DATABASE,
        table: str = DEFAULT_TABLE,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> SessionConfig:
        """Build a config from a `rethinkdb://host:port` address."""

        parsed = urlparse(url if "://" in url else f"rethinkdb://{url}")
        return cls(
            host=parsed.hostname or DEFAULT_HOST,
            port=parsed.port or DEFAULT_PORT,
            database=database,
            table=table,
            timeout=timeout,
        )

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"


class ProvisioningOutcome(str, Enum):
    """Classification of a single provisioning step."""

    EXISTED = "existed"
    CREATED = "created"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True, slots=True)
class ProvisioningResult:
    """Outcome of ensuring one database or table exists."""

    target: str
    name: str
    outcome: ProvisioningOutcome
    detail: str | None = None

    @property
    def created(self) -> bool:
        return self.outcome is ProvisioningOutcome.CREATED

    @property
    def existed(self) -> bool:
        return self.outcome is ProvisioningOutcome.EXISTED

    @property
    def failed(self) -> bool:
        return self.outcome is ProvisioningOutcome.FAILED

    @property
    def skipped(self) -> bool:
        return self.outcome is ProvisioningOutcome.SKIPPED

    def status_line(self) -> str:
        """Operator-facing summary of the outcome."""

        label = self.target.upper()
        if self.outcome is ProvisioningOutcome.CREATED:
            return f"[RethinkDBSession] --- Successfully created new {label} --- {self.name}"
        if self.outcome is ProvisioningOutcome.EXISTED:
            return f"[RethinkDBSession] --- {label} already exists --- {self.name}"
        if self.outcome is ProvisioningOutcome.SKIPPED:
            return f"[RethinkDBSession] --- Skipped {label} provisioning --- {self.name}"
        line = f"[RethinkDBSession] --- Failed to create new {label} --- {self.name}"
        if self.detail:
            line = f"{line} ({self.detail})"
        return line


class SessionPhase(str, Enum):
    """States visited by one initialization run."""

    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    DATABASE_CHECKED = "database_checked"
    DATABASE_CREATED = "database_created"
    DATABASE_EXISTED = "database_existed"
    TABLE_CHECKED = "table_checked"
    READY = "ready"


@dataclass(frozen=True, slots=True)
class InitializedSession:
    """Connection plus the provisioning outcomes of one run.

    Iterating yields ``(connection, database_result, table_result)``.
    """

    config: SessionConfig
    connection: ConnectionHandle
    database: DatabaseRef
    database_result: ProvisioningResult
    table_result: ProvisioningResult
    phases: tuple[SessionPhase, ...]

    @property
    def phase(self) -> SessionPhase:
        return self.phases[-1]

    def __iter__(self) -> Iterator[Any]:
        return iter((self.connection, self.database_result, self.table_result))


__all__ = [
    "ConnectionHandle",
    "DatabaseRef",
    "DEFAULT_DATABASE",
    "DEFAULT_HOST",
    "DEFAULT_PORT",
    "DEFAULT_TABLE",
    "DEFAULT_TIMEOUT",
    "InitializedSession",
    "ProvisioningOutcome",
    "ProvisioningResult",
    "SessionConfig",
    "SessionPhase",
]

"""Session initializer that connects and provisions a database and table."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from .driver import Driver, ProvisioningFailure, RethinkDriver, SessionConnectionError
from .models import (
    ConnectionHandle,
    DatabaseRef,
    InitializedSession,
    ProvisioningOutcome,
    ProvisioningResult,
    SessionConfig,
    SessionPhase,
)

LOG = logging.getLogger(__name__)


class SessionInitializer:
    """Connects to a server and ensures the configured database and table exist.

    One instance drives one session: the connection and database reference it
    obtains are kept on the instance and handed back from :meth:`initialize`.

    By default the table is only provisioned when this run created the
    database. Pass ``always_provision_table=True`` to check the table after
    any database step that did not fail.
    """

    def __init__(
        self,
        driver: Driver | None = None,
        *,
        always_provision_table: bool = False,
    ) -> None:
        self._driver = driver or RethinkDriver()
        self._always_provision_table = always_provision_table
        self._connection: ConnectionHandle | None = None
        self._database: DatabaseRef | None = None
        self._phases: list[SessionPhase] = [SessionPhase.DISCONNECTED]

    @property
    def phase(self) -> SessionPhase:
        """Latest state reached by this session."""

        return self._phases[-1]

    @property
    def connection(self) -> ConnectionHandle | None:
        return self._connection

    async def initialize(self, config: SessionConfig) -> InitializedSession:
        """Run the connect/provision sequence once.

        Raises :class:`SessionConnectionError` when the server cannot be
        reached; provisioning problems are reported in the returned results.
        """

        if self.phase is not SessionPhase.DISCONNECTED:
            raise RuntimeError("Session already initialized; create a new SessionInitializer.")
        await self._connect(config)
        database_result = await self._ensure_database(config)
        database = self._resolve_database(config, database_result)
        table_result = await self._ensure_table(config, database, database_result)
        self._advance(SessionPhase.READY)
        return InitializedSession(
            config=config,
            connection=self._connection,
            database=database,
            database_result=database_result,
            table_result=table_result,
            phases=tuple(self._phases),
        )

    async def close(self) -> None:
        """Close the connection opened by :meth:`initialize`, if any."""

        if self._connection is None:
            return
        connection, self._connection = self._connection, None
        await self._driver.close(connection)

    async def _connect(self, config: SessionConfig) -> None:
        try:
            connection = await self._driver.connect(config)
        except SessionConnectionError as exc:
            LOG.error("[RethinkDBSession] --- Could not connect to %s: %s", config.address, exc)
            raise
        self._connection = connection
        # Selecting a database that does not exist yet is allowed; it is created next.
        await self._driver.select_database(connection, config.database)
        self._advance(SessionPhase.CONNECTED)
        LOG.debug("Connected to %s using database %s", config.address, config.database)

    async def _ensure_database(self, config: SessionConfig) -> ProvisioningResult:
        name = config.database
        try:
            existing = await self._driver.list_databases(self._connection)
        except ProvisioningFailure as exc:
            return self._report("database", name, ProvisioningOutcome.FAILED, detail=str(exc))
        self._advance(SessionPhase.DATABASE_CHECKED)
        if name in existing:
            self._advance(SessionPhase.DATABASE_EXISTED)
            return self._report("database", name, ProvisioningOutcome.EXISTED)
        try:
            created = await self._driver.create_database(self._connection, name)
        except Exception as exc:
            return self._report("database", name, ProvisioningOutcome.FAILED, detail=_describe(exc))
        if not created:
            return self._report("database", name, ProvisioningOutcome.FAILED, detail="server reported nothing created")
        self._database = self._driver.database(name)
        self._advance(SessionPhase.DATABASE_CREATED)
        return self._report("database", name, ProvisioningOutcome.CREATED)

    def _resolve_database(self, config: SessionConfig, database_result: ProvisioningResult) -> DatabaseRef:
        if database_result.created and self._database is not None:
            return self._database
        self._database = self._driver.database(config.database)
        return self._database

    async def _ensure_table(
        self,
        config: SessionConfig,
        database: DatabaseRef,
        database_result: ProvisioningResult,
    ) -> ProvisioningResult:
        name = config.table
        if not self._should_provision_table(database_result):
            return self._report("table", name, ProvisioningOutcome.SKIPPED, detail=database_result.outcome.value)
        try:
            existing = await self._driver.list_tables(self._connection, database)
            self._advance(SessionPhase.TABLE_CHECKED)
            if name in existing:
                return self._report("table", name, ProvisioningOutcome.EXISTED)
            created = await self._driver.create_table(self._connection, database, name)
        except ProvisioningFailure as exc:
            return self._report("table", name, ProvisioningOutcome.FAILED, detail=str(exc))
        if not created:
            return self._report("table", name, ProvisioningOutcome.FAILED, detail="server reported nothing created")
        return self._report("table", name, ProvisioningOutcome.CREATED)

    def _should_provision_table(self, database_result: ProvisioningResult) -> bool:
        if database_result.failed:
            return False
        if self._always_provision_table:
            return True
        return database_result.created

    def _advance(self, phase: SessionPhase) -> None:
        self._phases.append(phase)

    @staticmethod
    def _report(
        target: str,
        name: str,
        outcome: ProvisioningOutcome,
        *,
        detail: str | None = None,
    ) -> ProvisioningResult:
        result = ProvisioningResult(target=target, name=name, outcome=outcome, detail=detail)
        if result.failed:
            LOG.error(result.status_line())
        else:
            LOG.info(result.status_line())
        return result


def _describe(exc: BaseException) -> str:
    message = str(exc)
    return f"{type(exc).__name__}: {message}" if message else type(exc).__name__


async def initialize(
    config: SessionConfig,
    driver: Driver | None = None,
    **options: Any,
) -> InitializedSession:
    """Create a :class:`SessionInitializer` and run it against ``config``."""

    return await SessionInitializer(driver, **options).initialize(config)


def initialize_sync(
    config: SessionConfig,
    driver: Driver | None = None,
    **options: Any,
) -> InitializedSession:
    """Blocking wrapper around :func:`initialize` for non-async callers."""

    return asyncio.run(initialize(config, driver, **options))


__all__ = [
    "SessionInitializer",
    "initialize",
    "initialize_sync",
]

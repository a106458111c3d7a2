"""Tests for the session initializer."""

from __future__ import annotations

import asyncio
import logging

import pytest

from rethinksession.driver import MemoryDriver, ProvisioningFailure, SessionConnectionError
from rethinksession.models import ProvisioningOutcome, SessionConfig, SessionPhase
from rethinksession.session import SessionInitializer, initialize, initialize_sync


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


CONFIG = SessionConfig(host="localhost", port=28015, database="default", table="users", timeout=5)


@pytest.mark.anyio
async def test_empty_server_creates_database_then_table() -> None:
    driver = MemoryDriver()

    session = await SessionInitializer(driver).initialize(CONFIG)

    assert session.database_result.outcome is ProvisioningOutcome.CREATED
    assert session.table_result.outcome is ProvisioningOutcome.CREATED
    assert driver.databases == {"default": ("users",)}
    assert driver.calls.index("create_database") < driver.calls.index("list_tables")
    assert session.phases == (
        SessionPhase.DISCONNECTED,
        SessionPhase.CONNECTED,
        SessionPhase.DATABASE_CHECKED,
        SessionPhase.DATABASE_CREATED,
        SessionPhase.TABLE_CHECKED,
        SessionPhase.READY,
    )


@pytest.mark.anyio
async def test_second_run_reports_existing_database_and_skips_table() -> None:
    driver = MemoryDriver()
    await SessionInitializer(driver).initialize(CONFIG)
    driver.calls.clear()

    session = await SessionInitializer(driver).initialize(CONFIG)

    assert session.database_result.outcome is ProvisioningOutcome.EXISTED
    assert session.table_result.outcome is ProvisioningOutcome.SKIPPED
    assert "create_database" not in driver.calls
    assert "list_tables" not in driver.calls
    assert "create_table" not in driver.calls
    assert session.phases == (
        SessionPhase.DISCONNECTED,
        SessionPhase.CONNECTED,
        SessionPhase.DATABASE_CHECKED,
        SessionPhase.DATABASE_EXISTED,
        SessionPhase.READY,
    )


@pytest.mark.anyio
async def test_existing_database_without_table_leaves_table_unprovisioned() -> None:
    driver = MemoryDriver({"default": ()})

    session = await SessionInitializer(driver).initialize(CONFIG)

    assert session.database_result.existed
    assert session.table_result.skipped
    assert driver.databases == {"default": ()}
    assert "create_database" not in driver.calls


@pytest.mark.anyio
async def test_always_provision_table_checks_table_for_existing_database() -> None:
    driver = MemoryDriver({"default": ()})

    session = await SessionInitializer(driver, always_provision_table=True).initialize(CONFIG)

    assert session.database_result.existed
    assert session.table_result.created
    assert driver.databases == {"default": ("users",)}


@pytest.mark.anyio
async def test_always_provision_table_reports_existing_table() -> None:
    driver = MemoryDriver({"default": ("users",)})

    session = await SessionInitializer(driver, always_provision_table=True).initialize(CONFIG)

    assert session.table_result.existed
    assert "create_table" not in driver.calls


@pytest.mark.anyio
async def test_database_create_exception_is_reported_not_raised(caplog: pytest.LogCaptureFixture) -> None:
    class _RaisingDriver(MemoryDriver):
        async def create_database(self, connection, name):  # type: ignore[override]
            self.calls.append("create_database")
            raise RuntimeError("permission denied")

    driver = _RaisingDriver()

    with caplog.at_level(logging.ERROR, logger="rethinksession.session"):
        session = await SessionInitializer(driver).initialize(CONFIG)

    assert session.database_result.failed
    assert session.database_result.detail and "permission denied" in session.database_result.detail
    assert session.table_result.skipped
    assert "list_tables" not in driver.calls
    assert session.phase is SessionPhase.READY
    assert any("permission denied" in record.getMessage() for record in caplog.records)


@pytest.mark.anyio
async def test_database_create_falsy_result_is_reported_as_failure() -> None:
    class _NoopDriver(MemoryDriver):
        async def create_database(self, connection, name):  # type: ignore[override]
            self.calls.append("create_database")
            return 0

    driver = _NoopDriver()

    session = await SessionInitializer(driver).initialize(CONFIG)

    assert session.database_result.failed
    assert session.table_result.skipped
    assert "list_tables" not in driver.calls


@pytest.mark.anyio
async def test_table_create_failure_is_reported() -> None:
    class _TableFailDriver(MemoryDriver):
        async def create_table(self, connection, database, name):  # type: ignore[override]
            raise ProvisioningFailure("table quota exceeded")

    session = await SessionInitializer(_TableFailDriver()).initialize(CONFIG)

    assert session.database_result.created
    assert session.table_result.failed
    assert session.table_result.detail == "table quota exceeded"


@pytest.mark.anyio
async def test_table_create_falsy_result_is_reported() -> None:
    class _TableNoopDriver(MemoryDriver):
        async def create_table(self, connection, database, name):  # type: ignore[override]
            return 0

    session = await SessionInitializer(_TableNoopDriver()).initialize(CONFIG)

    assert session.table_result.failed


@pytest.mark.anyio
async def test_unreachable_server_raises_connection_error_before_provisioning() -> None:
    driver = MemoryDriver(reachable=False)
    initializer = SessionInitializer(driver)

    with pytest.raises(ConnectionError):
        await initializer.initialize(CONFIG)

    assert driver.calls == ["connect"]
    assert initializer.phase is SessionPhase.DISCONNECTED
    assert initializer.connection is None


@pytest.mark.anyio
async def test_connect_selects_target_database_before_it_exists() -> None:
    driver = MemoryDriver()

    session = await SessionInitializer(driver).initialize(CONFIG)

    assert driver.calls[:3] == ["connect", "select_database", "list_databases"]
    assert session.connection.db == "default"


@pytest.mark.anyio
async def test_session_unpacks_to_connection_and_results() -> None:
    connection, database_result, table_result = await initialize(CONFIG, MemoryDriver())

    assert connection.open
    assert database_result.created
    assert table_result.created


@pytest.mark.anyio
async def test_initializer_runs_only_once() -> None:
    initializer = SessionInitializer(MemoryDriver())
    await initializer.initialize(CONFIG)

    with pytest.raises(RuntimeError):
        await initializer.initialize(CONFIG)


@pytest.mark.anyio
async def test_close_releases_connection() -> None:
    driver = MemoryDriver()
    initializer = SessionInitializer(driver)
    session = await initializer.initialize(CONFIG)

    await initializer.close()
    await initializer.close()

    assert session.connection.open is False
    assert driver.calls.count("close") == 1
    assert initializer.connection is None


@pytest.mark.anyio
async def test_sessions_do_not_share_connections() -> None:
    driver = MemoryDriver()
    first = SessionInitializer(driver)
    second = SessionInitializer(driver)

    one = await first.initialize(CONFIG)
    two = await second.initialize(CONFIG)

    assert one.connection is not two.connection
    assert first.connection is one.connection
    assert second.connection is two.connection


@pytest.mark.anyio
async def test_concurrent_sessions_let_the_server_arbitrate_creation() -> None:
    driver = MemoryDriver()

    first, second = await asyncio.gather(
        SessionInitializer(driver).initialize(CONFIG),
        SessionInitializer(driver).initialize(CONFIG),
    )

    outcomes = sorted(result.database_result.outcome.value for result in (first, second))
    assert outcomes == ["created", "failed"]
    loser = first if first.database_result.failed else second
    assert loser.database_result.detail and "already exists" in loser.database_result.detail
    assert loser.table_result.skipped
    assert driver.databases == {"default": ("users",)}


def test_initialize_sync_runs_the_sequence() -> None:
    driver = MemoryDriver({"default": ("users",)})

    session = initialize_sync(CONFIG, driver)

    assert session.database_result.existed
    assert session.table_result.skipped


def test_initialize_sync_propagates_connection_errors() -> None:
    with pytest.raises(SessionConnectionError):
        initialize_sync(CONFIG, MemoryDriver(reachable=False))


@pytest.mark.anyio
async def test_database_listing_failure_is_reported_not_raised() -> None:
    class _ListFailDriver(MemoryDriver):
        async def list_databases(self, connection):  # type: ignore[override]
            self.calls.append("list_databases")
            raise ProvisioningFailure("no access")

    driver = _ListFailDriver()

    session = await SessionInitializer(driver, always_provision_table=True).initialize(CONFIG)

    assert session.database_result.failed
    assert session.database_result.detail == "no access"
    assert session.table_result.skipped
    assert "create_database" not in driver.calls
    assert "list_tables" not in driver.calls
    assert session.phase is SessionPhase.READY


@pytest.mark.anyio
async def test_failed_database_skips_table_even_when_always_provisioning() -> None:
    class _RaisingDriver(MemoryDriver):
        async def create_database(self, connection, name):  # type: ignore[override]
            self.calls.append("create_database")
            raise RuntimeError("permission denied")

    driver = _RaisingDriver()

    session = await SessionInitializer(driver, always_provision_table=True).initialize(CONFIG)

    assert session.database_result.failed
    assert session.table_result.skipped
    assert "list_tables" not in driver.calls
    assert "create_table" not in driver.calls

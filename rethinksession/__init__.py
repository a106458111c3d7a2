"""Connect to RethinkDB and provision a database and table once per session."""

from __future__ import annotations

from .driver import Driver, MemoryDriver, ProvisioningFailure, RethinkDriver, SessionConnectionError
from .models import (
    InitializedSession,
    ProvisioningOutcome,
    ProvisioningResult,
    SessionConfig,
    SessionPhase,
)
from .session import SessionInitializer, initialize, initialize_sync

__all__ = [
    "Driver",
    "InitializedSession",
    "MemoryDriver",
    "ProvisioningFailure",
    "ProvisioningOutcome",
    "ProvisioningResult",
    "RethinkDriver",
    "SessionConfig",
    "SessionConnectionError",
    "SessionInitializer",
    "SessionPhase",
    "initialize",
    "initialize_sync",
]

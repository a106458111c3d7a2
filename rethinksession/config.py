"""App configuration loading helpers."""

from __future__ import annotations

import os
from pathlib import Path

import tomllib

from pydantic import BaseModel, Field, ValidationError, field_validator

from .models import (
    DEFAULT_DATABASE,
    DEFAULT_HOST,
    DEFAULT_PORT,
    DEFAULT_TABLE,
    DEFAULT_TIMEOUT,
    SessionConfig,
)

CONFIG_FILE = Path.home() / ".config" / "rethinksession" / "config.toml"
URL_ENV_VAR = "RETHINKDB_URL"


class AppConfig(BaseModel):
    """Shape of the configuration file."""

    url: str | None = None
    host: str = DEFAULT_HOST
    port: int = Field(default=DEFAULT_PORT, ge=1, le=65535)
    database: str = DEFAULT_DATABASE
    table: str = DEFAULT_TABLE
    timeout: float = Field(default=DEFAULT_TIMEOUT, gt=0)
    always_provision_table: bool = False

    @field_validator("url")
    @classmethod
    def _valid_url(cls, value: str | None) -> str | None:
        if value is not None:
            SessionConfig.from_url(value)
        return value

    @field_validator("database", "table")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be empty")
        return value

    def to_session_config(self) -> SessionConfig:
        """Build the immutable config consumed by the initializer."""

        if self.url:
            return SessionConfig.from_url(
                self.url,
                database=self.database,
                table=self.table,
                timeout=self.timeout,
            )
        return SessionConfig(
            host=self.host,
            port=self.port,
            database=self.database,
            table=self.table,
            timeout=self.timeout,
        )

    def with_overrides(self, **updates: object) -> AppConfig:
        """Return a validated copy with the non-``None`` updates applied."""

        values = self.model_dump()
        values.update({key: value for key, value in updates.items() if value is not None})
        return AppConfig(**values)


def load_config() -> AppConfig:
    """Load configuration from disk; fall back to defaults if missing."""

    try:
        data = _read_config_file()
    except FileNotFoundError:
        data = {}
    except (tomllib.TOMLDecodeError, OSError):
        data = {}

    env_url = os.environ.get(URL_ENV_VAR)
    if env_url:
        data["url"] = env_url

    try:
        return AppConfig(**data)
    except ValidationError:
        pass
    try:
        return AppConfig(url=env_url) if env_url else AppConfig()
    except ValidationError:
        return AppConfig()


def save_config(config: AppConfig) -> None:
    """Persist configuration to disk."""

    CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
    lines: list[str] = []
    if config.url:
        lines.append(f'url = "{config.url}"')
    lines.extend(
        [
            f'host = "{config.host}"',
            f"port = {config.port}",
            f'database = "{config.database}"',
            f'table = "{config.table}"',
            f"timeout = {config.timeout}",
            f"always_provision_table = {str(config.always_provision_table).lower()}",
        ]
    )
    CONFIG_FILE.write_text("\n".join(lines) + "\n")


def _read_config_file() -> dict[str, object]:
    with CONFIG_FILE.open("rb") as handle:
        raw = tomllib.load(handle)
    data: dict[str, object] = {}
    if not isinstance(raw, dict):
        return data
    for key in ("url", "host", "database", "table"):
        value = raw.get(key)
        if isinstance(value, str):
            data[key] = value
    port = raw.get("port")
    if isinstance(port, int) and not isinstance(port, bool):
        data["port"] = port
    timeout = raw.get("timeout")
    if isinstance(timeout, (int, float)) and not isinstance(timeout, bool):
        data["timeout"] = float(timeout)
    always = raw.get("always_provision_table")
    if isinstance(always, bool):
        data["always_provision_table"] = always
    return data


__all__ = ["AppConfig", "CONFIG_FILE", "URL_ENV_VAR", "load_config", "save_config"]

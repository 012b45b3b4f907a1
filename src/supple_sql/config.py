"""Pool configuration and engine construction."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

_ASYNC_SCHEME = "postgresql+asyncpg"


class PoolConfig(BaseModel):
    """Connection pool settings; timeouts are in milliseconds."""

    model_config = ConfigDict(frozen=True)

    dsn: str
    pool_size: int = 10
    max_overflow: int = 0
    pool_timeout: float = 30.0
    pool_pre_ping: bool = True
    statement_timeout_ms: int | None = None
    idle_in_transaction_session_timeout_ms: int | None = None
    echo: bool = False

    @field_validator("dsn")
    @classmethod
    def _use_asyncpg_driver(cls, dsn: str) -> str:
        scheme, sep, rest = dsn.partition("://")
        if not sep:
            raise ValueError(f"Invalid DSN: {dsn!r}")
        if scheme in ("postgres", "postgresql"):
            return f"{_ASYNC_SCHEME}://{rest}"
        if scheme != _ASYNC_SCHEME:
            raise ValueError(
                f"Unsupported DSN scheme {scheme!r}; expected postgresql://"
            )
        return dsn

    def server_settings(self) -> dict[str, str]:
        settings: dict[str, str] = {}
        if self.statement_timeout_ms is not None:
            settings["statement_timeout"] = str(self.statement_timeout_ms)
        if self.idle_in_transaction_session_timeout_ms is not None:
            settings["idle_in_transaction_session_timeout"] = str(
                self.idle_in_transaction_session_timeout_ms
            )
        return settings


def create_pool(config: PoolConfig, **engine_kwargs: Any) -> AsyncEngine:
    """Build an ``AsyncEngine`` (the pool) for ``config``."""
    connect_args: dict[str, Any] = {}
    server_settings = config.server_settings()
    if server_settings:
        connect_args["server_settings"] = server_settings

    return create_async_engine(
        config.dsn,
        pool_size=config.pool_size,
        max_overflow=config.max_overflow,
        pool_timeout=config.pool_timeout,
        pool_pre_ping=config.pool_pre_ping,
        echo=config.echo,
        connect_args=connect_args,
        **engine_kwargs,
    )

from __future__ import annotations

from typing import Any

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from tenantrelay.core.config import get_settings


settings = get_settings()
_engine_kwargs: dict[str, Any] = {"pool_pre_ping": True}
if not settings.database_url.startswith("sqlite"):
    _engine_kwargs["pool_size"] = max(1, int(settings.db_pool_size))
    _engine_kwargs["max_overflow"] = max(0, int(settings.db_max_overflow))
    _engine_kwargs["pool_timeout"] = 30
    _engine_kwargs["pool_recycle"] = 1800
    if settings.db_statement_timeout_ms > 0:
        _engine_kwargs["connect_args"] = {
            "server_settings": {"statement_timeout": str(int(settings.db_statement_timeout_ms))}
        }
engine = create_async_engine(settings.database_url, **_engine_kwargs)
SessionLocal = async_sessionmaker(engine, expire_on_commit=False)


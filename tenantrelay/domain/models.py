from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# JSONB on Postgres, plain JSON elsewhere (sqlite in tests).
JsonDocument = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    pass


class TenantApp(Base):
    __tablename__ = "apps"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    name: Mapped[str] = mapped_column(String, default="", nullable=False)
    # user id -> role; contributor commands replace the whole document.
    contributors_json: Mapped[dict[str, Any]] = mapped_column(JsonDocument, default=dict, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )


class AppIntegration(Base):
    __tablename__ = "app_integrations"
    __table_args__ = (
        Index("ix_app_integrations_status", "status"),
        Index("ix_app_integrations_app_position", "app_id", "position"),
    )

    app_id: Mapped[str] = mapped_column(String, ForeignKey("apps.id", ondelete="CASCADE"), primary_key=True)
    integration_id: Mapped[str] = mapped_column(String, primary_key=True)
    # Preserve the tenant's insertion order; resolution iterates by position.
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    type: Mapped[str] = mapped_column(String, nullable=False)
    properties_json: Mapped[dict[str, Any]] = mapped_column(JsonDocument, default=dict, nullable=False)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    # NULL matches both test and production sends.
    test: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    condition: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="pending")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )

from __future__ import annotations

import asyncio
from typing import Protocol

from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tenantrelay.core.errors import DatabaseError
from tenantrelay.domain.integrations import App, IntegrationStatus
from tenantrelay.persistence.repos import apps as apps_repo
from tenantrelay.services.integrations.commands import apply_status_updates


class UpdateAppIntegrationStatus(BaseModel):
    # Per-app status batch handed whole to the write path; never applied partially.
    app_id: str
    status: dict[str, IntegrationStatus] = Field(default_factory=dict)


class AppStore(Protocol):
    async def query_with_pending_integrations(self) -> list[App]: ...


class StatusUpdateDispatcher(Protocol):
    async def apply_status_updates(self, command: UpdateAppIntegrationStatus) -> None: ...


class InMemoryAppStore:
    # Keep apps as immutable snapshots; every write swaps in a new App value.
    def __init__(self, apps: list[App] | None = None) -> None:
        self._apps: dict[str, App] = {app.id: app for app in apps or []}
        self._lock = asyncio.Lock()
        self.dispatched: list[UpdateAppIntegrationStatus] = []

    async def get(self, app_id: str) -> App | None:
        return self._apps.get(app_id)

    async def save(self, app: App) -> None:
        async with self._lock:
            self._apps[app.id] = app

    async def query_with_pending_integrations(self) -> list[App]:
        return [app for app in self._apps.values() if app.has_pending_integrations()]

    async def apply_status_updates(self, command: UpdateAppIntegrationStatus) -> None:
        async with self._lock:
            self.dispatched.append(command)
            app = self._apps.get(command.app_id)
            if app is None:
                return
            self._apps[app.id] = apply_status_updates(app, command.status)


class SqlAppStore:
    # Bridge the collaborator protocols onto the SQL repos; one session per call.
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, app_id: str) -> App | None:
        async with self._session_factory() as session:
            return await apps_repo.get_app(session, app_id=app_id)

    async def save(self, app: App) -> None:
        async with self._session_factory() as session:
            try:
                await apps_repo.save_app(session, app=app)
                await session.commit()
            except SQLAlchemyError as exc:
                await session.rollback()
                raise DatabaseError(f"Failed to save app {app.id}") from exc

    async def query_with_pending_integrations(self) -> list[App]:
        async with self._session_factory() as session:
            return await apps_repo.list_apps_with_pending_integrations(session)

    async def apply_status_updates(self, command: UpdateAppIntegrationStatus) -> None:
        if not command.status:
            return
        async with self._session_factory() as session:
            try:
                await apps_repo.update_integration_statuses(
                    session,
                    app_id=command.app_id,
                    statuses=command.status,
                )
                await session.commit()
            except SQLAlchemyError as exc:
                await session.rollback()
                raise DatabaseError(f"Failed to apply status updates for app {command.app_id}") from exc

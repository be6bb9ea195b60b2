from __future__ import annotations

from typing import Mapping

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tenantrelay.domain.integrations import App, ConfiguredIntegration, IntegrationStatus
from tenantrelay.domain.models import AppIntegration, TenantApp


def _to_configured(row: AppIntegration) -> ConfiguredIntegration:
    return ConfiguredIntegration(
        type=row.type,
        properties={str(key): str(value) for key, value in (row.properties_json or {}).items()},
        enabled=bool(row.enabled),
        test=row.test,
        condition=row.condition,
        status=IntegrationStatus(row.status),
    )


def _to_app(row: TenantApp, integrations: list[AppIntegration]) -> App:
    ordered = sorted(integrations, key=lambda item: item.position)
    return App(
        id=row.id,
        name=row.name,
        integrations={item.integration_id: _to_configured(item) for item in ordered},
        contributors=dict(row.contributors_json or {}),
    )


async def get_app(session: AsyncSession, *, app_id: str) -> App | None:
    row = await session.get(TenantApp, app_id)
    if row is None:
        return None
    integrations = (
        await session.execute(select(AppIntegration).where(AppIntegration.app_id == app_id))
    ).scalars().all()
    return _to_app(row, list(integrations))


async def list_apps_with_pending_integrations(session: AsyncSession) -> list[App]:
    # Load every integration of the matching apps so each App is a complete snapshot.
    pending_app_ids = (
        select(AppIntegration.app_id)
        .where(AppIntegration.status == IntegrationStatus.PENDING.value)
        .distinct()
    )
    rows = (
        await session.execute(select(TenantApp).where(TenantApp.id.in_(pending_app_ids)).order_by(TenantApp.id.asc()))
    ).scalars().all()
    if not rows:
        return []
    integrations = (
        await session.execute(
            select(AppIntegration)
            .where(AppIntegration.app_id.in_([row.id for row in rows]))
            .order_by(AppIntegration.app_id.asc(), AppIntegration.position.asc())
        )
    ).scalars().all()
    by_app: dict[str, list[AppIntegration]] = {}
    for item in integrations:
        by_app.setdefault(item.app_id, []).append(item)
    return [_to_app(row, by_app.get(row.id, [])) for row in rows]


async def save_app(session: AsyncSession, *, app: App) -> None:
    # Replace the integration rows wholesale so positions always mirror the mapping order.
    row = await session.get(TenantApp, app.id)
    if row is None:
        row = TenantApp(id=app.id)
        session.add(row)
    row.name = app.name
    row.contributors_json = dict(app.contributors)
    await session.flush()
    await session.execute(delete(AppIntegration).where(AppIntegration.app_id == app.id))
    for position, (integration_id, configured) in enumerate(app.integrations.items()):
        session.add(
            AppIntegration(
                app_id=app.id,
                integration_id=integration_id,
                position=position,
                type=configured.type,
                properties_json=dict(configured.properties),
                enabled=configured.enabled,
                test=configured.test,
                condition=configured.condition,
                status=configured.status.value,
            )
        )


async def update_integration_statuses(
    session: AsyncSession,
    *,
    app_id: str,
    statuses: Mapping[str, IntegrationStatus],
) -> int:
    # Caller owns the transaction so the whole batch commits or rolls back together.
    updated = 0
    for integration_id, status in statuses.items():
        result = await session.execute(
            update(AppIntegration)
            .where(
                AppIntegration.app_id == app_id,
                AppIntegration.integration_id == integration_id,
            )
            .values(status=status.value)
        )
        updated += int(result.rowcount or 0)
    return updated

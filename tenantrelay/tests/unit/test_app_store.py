from __future__ import annotations

from pathlib import Path

import pytest
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from tenantrelay.core.errors import DatabaseError
from tenantrelay.domain.integrations import IntegrationStatus
from tenantrelay.domain.models import Base
from tenantrelay.persistence.repos import apps as apps_repo
from tenantrelay.services.integrations.store import (
    InMemoryAppStore,
    SqlAppStore,
    UpdateAppIntegrationStatus,
)
from tenantrelay.tests.utils.integrations import condition_json, integration, make_app


PENDING = IntegrationStatus.PENDING
VERIFIED = IntegrationStatus.VERIFIED
FAILED = IntegrationStatus.FAILED


@pytest.fixture
async def session_factory(tmp_path: Path) -> async_sessionmaker[AsyncSession]:
    # Isolated sqlite file per test; schema comes straight from the ORM metadata.
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'apps.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


@pytest.mark.asyncio
async def test_in_memory_store_queries_and_applies_batches() -> None:
    store = InMemoryAppStore(
        [
            make_app("app-a", A=integration("mail", status=PENDING)),
            make_app("app-b", B=integration("mail")),
        ]
    )

    pending = await store.query_with_pending_integrations()
    assert [app.id for app in pending] == ["app-a"]

    command = UpdateAppIntegrationStatus(app_id="app-a", status={"A": FAILED})
    await store.apply_status_updates(command)
    await store.apply_status_updates(UpdateAppIntegrationStatus(app_id="gone", status={"X": VERIFIED}))

    app = await store.get("app-a")
    assert app is not None
    assert app.integrations["A"].status == FAILED
    assert store.dispatched[0] == command
    assert await store.query_with_pending_integrations() == []


@pytest.mark.asyncio
async def test_sql_store_round_trips_apps_in_insertion_order(session_factory) -> None:  # noqa: ANN001
    store = SqlAppStore(session_factory)
    condition = condition_json({"eq": [{"var": "locale"}, "de-DE"]})
    app = make_app(
        "app-1",
        zeta=integration("webhook", url="https://a.example.com", test=True, condition=condition),
        alpha=integration("smtp", status=PENDING, enabled=False, host="smtp.example.com"),
    )

    await store.save(app)
    loaded = await store.get("app-1")

    assert loaded == app
    assert list(loaded.integrations) == ["zeta", "alpha"]
    assert await store.get("missing") is None


@pytest.mark.asyncio
async def test_sql_store_lists_only_apps_with_pending_integrations(session_factory) -> None:  # noqa: ANN001
    store = SqlAppStore(session_factory)
    await store.save(make_app("app-b", B1=integration("mail"), B2=integration("mail", status=PENDING)))
    await store.save(make_app("app-a", A1=integration("mail", status=PENDING)))
    await store.save(make_app("app-c", C1=integration("mail", status=FAILED)))

    pending = await store.query_with_pending_integrations()

    assert [app.id for app in pending] == ["app-a", "app-b"]
    # Every integration of a matching app is loaded, not only the pending ones.
    assert list(pending[1].integrations) == ["B1", "B2"]


@pytest.mark.asyncio
async def test_sql_store_applies_status_batch(session_factory) -> None:  # noqa: ANN001
    store = SqlAppStore(session_factory)
    await store.save(make_app(A=integration("mail", status=PENDING), B=integration("mail", status=PENDING)))

    await store.apply_status_updates(
        UpdateAppIntegrationStatus(app_id="app-1", status={"A": VERIFIED, "B": FAILED, "removed": VERIFIED})
    )

    app = await store.get("app-1")
    assert app is not None
    assert {key: value.status for key, value in app.integrations.items()} == {"A": VERIFIED, "B": FAILED}
    assert await store.query_with_pending_integrations() == []


@pytest.mark.asyncio
async def test_sql_store_rolls_back_partial_batches(session_factory, monkeypatch) -> None:  # noqa: ANN001
    store = SqlAppStore(session_factory)
    await store.save(make_app(A=integration("mail", status=PENDING), B=integration("mail", status=PENDING)))
    real_update = apps_repo.update_integration_statuses

    async def _fail_after_first(session, *, app_id, statuses):  # noqa: ANN001, ANN202
        first = dict(list(statuses.items())[:1])
        await real_update(session, app_id=app_id, statuses=first)
        raise SQLAlchemyError("connection lost")

    monkeypatch.setattr(apps_repo, "update_integration_statuses", _fail_after_first)

    with pytest.raises(DatabaseError):
        await store.apply_status_updates(
            UpdateAppIntegrationStatus(app_id="app-1", status={"A": VERIFIED, "B": VERIFIED})
        )

    app = await store.get("app-1")
    assert app is not None
    assert [value.status for value in app.integrations.values()] == [PENDING, PENDING]


@pytest.mark.asyncio
async def test_sql_store_save_replaces_removed_integrations(session_factory) -> None:  # noqa: ANN001
    store = SqlAppStore(session_factory)
    await store.save(make_app(A=integration("mail"), B=integration("mail")))
    await store.save(make_app(B=integration("mail"), C=integration("mail")))

    app = await store.get("app-1")
    assert app is not None
    assert list(app.integrations) == ["B", "C"]

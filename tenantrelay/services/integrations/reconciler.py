from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
import math
import time
from typing import Any
from uuid import uuid4

from tenantrelay.core.config import get_settings
from tenantrelay.domain.integrations import App, ConfiguredIntegration, IntegrationStatus
from tenantrelay.providers.integrations.base import IntegrationProvider
from tenantrelay.providers.integrations.registry import IntegrationRegistry
from tenantrelay.services.integrations.store import (
    AppStore,
    StatusUpdateDispatcher,
    UpdateAppIntegrationStatus,
)
from tenantrelay.services.resilience import get_lock_redis
from tenantrelay.services.telemetry import increment_counter, set_gauge


logger = logging.getLogger(__name__)

_local_lock = asyncio.Lock()
_local_lock_owner: str | None = None


@dataclass(slots=True)
class ReconcileLock:
    token: str
    redis: Any | None
    local: bool
    key: str
    ttl_s: int = 0


async def acquire_reconcile_lock(*, backend: str | None = None, ttl_s: int | None = None) -> ReconcileLock | None:
    # Only one pass may run at a time; "redis" extends that guarantee across worker processes.
    settings = get_settings()
    backend = (backend or settings.integration_reconcile_lock_backend).strip().lower()
    token = uuid4().hex
    key = settings.integration_reconcile_lock_key
    if backend == "redis":
        redis = await get_lock_redis()
        if redis is not None:
            ttl_s = max(5, int(ttl_s or settings.integration_reconcile_lock_ttl_s))
            acquired = await redis.set(key, token, nx=True, ex=ttl_s)
            if not acquired:
                return None
            return ReconcileLock(token=token, redis=redis, local=False, key=key, ttl_s=ttl_s)

    global _local_lock_owner
    if _local_lock.locked():
        return None
    await _local_lock.acquire()
    _local_lock_owner = token
    return ReconcileLock(token=token, redis=None, local=True, key=key)


async def release_reconcile_lock(lock: ReconcileLock) -> None:
    # Release only while still the owner so an expired lock never clobbers a newer holder.
    global _local_lock_owner
    if lock.local:
        if _local_lock.locked() and _local_lock_owner == lock.token:
            _local_lock_owner = None
            _local_lock.release()
        return
    if lock.redis is None:
        return
    if await _redis_owner(lock) == lock.token:
        await lock.redis.delete(lock.key)


async def refresh_reconcile_lock(lock: ReconcileLock) -> bool:
    # Push the redis expiry forward while still the owner; False means another worker took over.
    if lock.local or lock.redis is None:
        return True
    if await _redis_owner(lock) != lock.token:
        return False
    await lock.redis.expire(lock.key, lock.ttl_s)
    return True


async def _redis_owner(lock: ReconcileLock) -> str:
    current = await lock.redis.get(lock.key)
    return current.decode("utf-8") if isinstance(current, (bytes, bytearray)) else str(current or "")


@dataclass(frozen=True)
class ReconcileSummary:
    status: str
    apps: int = 0
    checks: int = 0
    check_failures: int = 0
    updates_dispatched: int = 0


@dataclass(frozen=True)
class _AppOutcome:
    checks: int
    check_failures: int
    dispatched: bool


class IntegrationStatusReconciler:
    """Periodically re-verify integrations left in the pending state.

    A single asyncio task owns the schedule: the next pass is armed only after
    the previous one has finished, so passes never overlap. ``stop()`` is
    cooperative and lets a running pass complete. Nothing raised by the store,
    a provider or the dispatcher escapes a pass.
    """

    def __init__(
        self,
        registry: IntegrationRegistry,
        store: AppStore,
        dispatcher: StatusUpdateDispatcher,
        *,
        interval_s: float | None = None,
        initial_delay_s: float | None = None,
        check_timeout_ms: int | None = None,
        app_concurrency: int | None = None,
        lock_backend: str | None = None,
    ) -> None:
        settings = get_settings()
        self._registry = registry
        self._store = store
        self._dispatcher = dispatcher
        self._interval_s = settings.integration_reconcile_interval_s if interval_s is None else interval_s
        self._initial_delay_s = (
            settings.integration_reconcile_initial_delay_s if initial_delay_s is None else initial_delay_s
        )
        timeout_ms = settings.integration_check_timeout_ms if check_timeout_ms is None else check_timeout_ms
        self._check_timeout_s = max(0.001, timeout_ms / 1000.0)
        concurrency = settings.integration_reconcile_app_concurrency if app_concurrency is None else app_concurrency
        self._app_concurrency = max(1, int(concurrency))
        self._lock_backend = lock_backend
        # The lock must outlive any single check; it is refreshed before each one.
        self._lock_ttl_s = max(int(settings.integration_reconcile_lock_ttl_s), math.ceil(self._check_timeout_s * 2) + 5)
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.is_running:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run(), name="integration-status-reconciler")
        logger.info("integration_reconciler_started interval_s=%s", self._interval_s)

    async def stop(self) -> None:
        task = self._task
        if task is None:
            return
        self._stop_event.set()
        try:
            await task
        finally:
            self._task = None
            logger.info("integration_reconciler_stopped")

    async def _run(self) -> None:
        if await self._wait(self._initial_delay_s):
            return
        while True:
            await self.run_pass()
            if await self._wait(self._interval_s):
                return

    async def _wait(self, delay_s: float) -> bool:
        # Sleep until the next tick; True means a stop was requested meanwhile.
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=max(0.0, delay_s))
        except asyncio.TimeoutError:
            return False
        return True

    async def run_pass(self) -> ReconcileSummary:
        start = time.monotonic()
        increment_counter("integration_reconcile_passes_total")
        try:
            lock = await acquire_reconcile_lock(backend=self._lock_backend, ttl_s=self._lock_ttl_s)
        except Exception:  # noqa: BLE001 - a broken lock backend must not kill the loop.
            increment_counter("integration_reconcile_pass_failures_total")
            logger.exception("integration_reconcile_lock_failed")
            return ReconcileSummary(status="failed")
        if lock is None:
            return ReconcileSummary(status="skipped_lock")

        try:
            apps = await self._store.query_with_pending_integrations()
            if not apps:
                return ReconcileSummary(status="idle")
            return await self._reconcile_apps(apps, lock)
        except Exception:  # noqa: BLE001 - keep the schedule alive while surfacing errors in logs.
            increment_counter("integration_reconcile_pass_failures_total")
            logger.exception("integration_reconcile_pass_failed")
            return ReconcileSummary(status="failed")
        finally:
            set_gauge("integration_reconcile_last_pass_ms", (time.monotonic() - start) * 1000.0)
            try:
                await release_reconcile_lock(lock)
            except Exception:  # noqa: BLE001 - the redis lock expires on its own.
                logger.warning("integration_reconcile_lock_release_failed", exc_info=True)

    async def _reconcile_apps(self, apps: list[App], lock: ReconcileLock) -> ReconcileSummary:
        # Apps share no state, so they may run side by side; one app's failure never blocks another.
        semaphore = asyncio.Semaphore(self._app_concurrency)

        async def _guarded(app: App) -> _AppOutcome | None:
            async with semaphore:
                try:
                    return await self._reconcile_app(app, lock)
                except Exception:  # noqa: BLE001 - continue with the remaining apps.
                    increment_counter("integration_reconcile_app_failures_total")
                    logger.exception("integration_reconcile_app_failed app_id=%s", app.id)
                    return None

        outcomes = await asyncio.gather(*(_guarded(app) for app in apps))
        completed = [outcome for outcome in outcomes if outcome is not None]
        return ReconcileSummary(
            status="ok" if len(completed) == len(apps) else "partial",
            apps=len(apps),
            checks=sum(outcome.checks for outcome in completed),
            check_failures=sum(outcome.check_failures for outcome in completed),
            updates_dispatched=sum(1 for outcome in completed if outcome.dispatched),
        )

    async def _reconcile_app(self, app: App, lock: ReconcileLock) -> _AppOutcome:
        updates: dict[str, IntegrationStatus] = {}
        checks = 0
        failures = 0
        for integration_id, configured in app.pending_integrations():
            integration = self._registry.get(configured.type)
            if integration is None:
                # Nothing left to verify for an uninstalled provider.
                updates[integration_id] = IntegrationStatus.VERIFIED
                continue
            checks += 1
            await self._keep_lock(lock)
            status = await self._check(integration, app, integration_id, configured)
            if status is None:
                failures += 1
                continue
            if status != IntegrationStatus.PENDING:
                updates[integration_id] = status

        if not updates:
            return _AppOutcome(checks=checks, check_failures=failures, dispatched=False)

        await self._dispatcher.apply_status_updates(UpdateAppIntegrationStatus(app_id=app.id, status=updates))
        increment_counter("integration_status_updates_total", len(updates))
        logger.info("integration_status_updated app_id=%s updates=%s", app.id, len(updates))
        return _AppOutcome(checks=checks, check_failures=failures, dispatched=True)

    async def _keep_lock(self, lock: ReconcileLock) -> None:
        try:
            still_owner = await refresh_reconcile_lock(lock)
        except Exception:  # noqa: BLE001 - the pass continues; the lock only guards overlap.
            logger.warning("integration_reconcile_lock_refresh_failed", exc_info=True)
            return
        if not still_owner:
            increment_counter("integration_reconcile_lock_lost_total")
            logger.warning("integration_reconcile_lock_lost key=%s", lock.key)

    async def _check(
        self,
        integration: IntegrationProvider,
        app: App,
        integration_id: str,
        configured: ConfiguredIntegration,
    ) -> IntegrationStatus | None:
        # Returns None when the check produced no verdict; the integration stays pending.
        increment_counter("integration_checks_total")
        try:
            result = await asyncio.wait_for(
                integration.check_status(app, integration_id, configured),
                timeout=self._check_timeout_s,
            )
            return IntegrationStatus(result)
        except asyncio.TimeoutError:
            increment_counter("integration_check_timeouts_total")
            logger.warning(
                "integration_check_timeout app_id=%s integration_id=%s type=%s",
                app.id,
                integration_id,
                configured.type,
            )
            return None
        except Exception:  # noqa: BLE001 - one failing provider must not stop the pass.
            increment_counter("integration_check_failures_total")
            logger.exception(
                "integration_check_failed app_id=%s integration_id=%s type=%s",
                app.id,
                integration_id,
                configured.type,
            )
            return None

from __future__ import annotations

import asyncio
import logging

from tenantrelay.core.config import get_settings
from tenantrelay.persistence.db import SessionLocal
from tenantrelay.providers.integrations.factory import build_default_registry
from tenantrelay.services.integrations.reconciler import IntegrationStatusReconciler, ReconcileSummary
from tenantrelay.services.integrations.store import SqlAppStore


logger = logging.getLogger(__name__)


def build_reconciler() -> IntegrationStatusReconciler:
    # One store serves both collaborator roles: reading pending apps and applying status batches.
    store = SqlAppStore(SessionLocal)
    return IntegrationStatusReconciler(build_default_registry(), store, store)


async def run_reconcile_once() -> ReconcileSummary:
    summary = await build_reconciler().run_pass()
    logger.info("integration_reconcile_once status=%s apps=%s", summary.status, summary.apps)
    return summary


async def run_integration_worker() -> None:
    # Keep the reconciler alive until the process is cancelled, then let the current pass finish.
    if not get_settings().integration_reconcile_enabled:
        logger.warning("integration_reconciler_disabled")
        return
    reconciler = build_reconciler()
    await reconciler.start()
    try:
        await asyncio.Event().wait()
    finally:
        await reconciler.stop()

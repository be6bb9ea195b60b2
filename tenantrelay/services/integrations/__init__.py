from tenantrelay.services.integrations.conditions import ConditionEvaluator
from tenantrelay.services.integrations.commands import (
    add_contributor,
    apply_status_updates,
    configure_integration,
    remove_integration,
)
from tenantrelay.services.integrations.store import (
    AppStore,
    InMemoryAppStore,
    SqlAppStore,
    StatusUpdateDispatcher,
    UpdateAppIntegrationStatus,
)
from tenantrelay.services.integrations.resolver import IntegrationResolver
from tenantrelay.services.integrations.reconciler import (
    IntegrationStatusReconciler,
    ReconcileSummary,
    acquire_reconcile_lock,
    refresh_reconcile_lock,
    release_reconcile_lock,
)

__all__ = [
    "ConditionEvaluator",
    "IntegrationResolver",
    "IntegrationStatusReconciler",
    "ReconcileSummary",
    "acquire_reconcile_lock",
    "refresh_reconcile_lock",
    "release_reconcile_lock",
    "AppStore",
    "StatusUpdateDispatcher",
    "InMemoryAppStore",
    "SqlAppStore",
    "UpdateAppIntegrationStatus",
    "configure_integration",
    "remove_integration",
    "apply_status_updates",
    "add_contributor",
]

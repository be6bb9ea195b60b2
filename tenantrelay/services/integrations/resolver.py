from __future__ import annotations

from typing import Any, Iterator

from tenantrelay.domain.integrations import (
    App,
    Capability,
    ConfiguredIntegration,
    IntegrationStatus,
    IntegrationTarget,
)
from tenantrelay.providers.integrations.base import IntegrationContext, IntegrationProvider
from tenantrelay.providers.integrations.registry import IntegrationRegistry
from tenantrelay.services.integrations.conditions import ConditionEvaluator


class IntegrationResolver:
    """Match an app's configured integrations against a requested capability.

    Every operation re-reads the app snapshot in insertion order, performs no
    I/O and mutates nothing, so callers may share one resolver freely.
    """

    def __init__(
        self,
        registry: IntegrationRegistry,
        *,
        evaluator: ConditionEvaluator | None = None,
        context: IntegrationContext | None = None,
    ) -> None:
        self._registry = registry
        self._evaluator = evaluator or ConditionEvaluator()
        self._context = context or IntegrationContext()

    def is_configured(self, app: App, capability: Capability, target: IntegrationTarget | None = None) -> bool:
        for integration_id, configured, integration in self._candidates(app, target):
            if integration.can_create(capability, integration_id, configured):
                return True
        return False

    def resolve(
        self,
        app: App,
        capability: Capability,
        integration_id: str,
        target: IntegrationTarget | None = None,
    ) -> Any | None:
        for actual_id, configured, integration in self._candidates(app, target):
            if actual_id != integration_id:
                continue
            created = integration.create(capability, actual_id, configured, self._context)
            if created is not None:
                return created
        return None

    def resolve_all(
        self,
        app: App,
        capability: Capability,
        target: IntegrationTarget | None = None,
    ) -> list[tuple[str, Any]]:
        resolved: list[tuple[str, Any]] = []
        for integration_id, configured, integration in self._candidates(app, target):
            created = integration.create(capability, integration_id, configured, self._context)
            if created is not None:
                resolved.append((integration_id, created))
        return resolved

    def _candidates(
        self,
        app: App,
        target: IntegrationTarget | None,
    ) -> Iterator[tuple[str, ConfiguredIntegration, IntegrationProvider]]:
        for integration_id, configured in app.integrations.items():
            if not _is_ready(configured):
                continue
            if target is not None and not (
                _is_matching_test(configured, target) and self._evaluator.evaluate(configured.condition, target)
            ):
                continue
            # Providers uninstalled after configuration are skipped, never an error.
            integration = self._registry.get(configured.type)
            if integration is not None:
                yield integration_id, configured, integration


def _is_ready(configured: ConfiguredIntegration) -> bool:
    return configured.enabled and configured.status == IntegrationStatus.VERIFIED


def _is_matching_test(configured: ConfiguredIntegration, target: IntegrationTarget) -> bool:
    return configured.test is None or configured.test == target.test

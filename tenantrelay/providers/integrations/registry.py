"""
Integration provider registry.

Holds the static set of provider definitions keyed by type, plus a capability
index so resolution is a tag lookup followed by a construction call.
"""

from __future__ import annotations

import logging
from typing import Iterable

from tenantrelay.core.errors import IntegrationNotFoundError, ValidationError, ValidationIssue
from tenantrelay.domain.integrations import (
    App,
    Capability,
    ConfiguredIntegration,
    IntegrationDefinition,
    IntegrationStatus,
)
from tenantrelay.providers.integrations.base import IntegrationProvider


logger = logging.getLogger(__name__)


class IntegrationRegistry:
    def __init__(self, integrations: Iterable[IntegrationProvider] = ()) -> None:
        self._by_type: dict[str, IntegrationProvider] = {}
        self._by_capability: dict[Capability, list[str]] = {}
        for integration in integrations:
            self.register(integration)

    def register(self, integration: IntegrationProvider) -> None:
        definition = integration.definition
        if definition.type in self._by_type:
            raise ValueError(f"Integration type '{definition.type}' is already registered")
        self._by_type[definition.type] = integration
        for capability in sorted(definition.capabilities, key=lambda item: item.value):
            self._by_capability.setdefault(capability, []).append(definition.type)
        logger.debug("Registered integration provider: %s", definition.type)

    def get(self, integration_type: str) -> IntegrationProvider | None:
        return self._by_type.get(integration_type)

    def __contains__(self, integration_type: object) -> bool:
        return integration_type in self._by_type

    @property
    def definitions(self) -> list[IntegrationDefinition]:
        return [integration.definition for integration in self._by_type.values()]

    def capabilities(self) -> list[Capability]:
        return list(self._by_capability)

    def types_for(self, capability: Capability) -> list[str]:
        return list(self._by_capability.get(capability, []))

    def _require(self, integration_type: str) -> IntegrationProvider:
        integration = self.get(integration_type)
        if integration is None:
            raise IntegrationNotFoundError(integration_type)
        return integration

    def validate_configuration(self, configured: ConfiguredIntegration) -> None:
        """Validate every property of a configured integration.

        Raises ``IntegrationNotFoundError`` before any property check when the
        type is unknown, otherwise one ``ValidationError`` carrying all issues.
        """
        integration = self._require(configured.type)

        errors: list[ValidationIssue] = []
        for descriptor in integration.definition.properties:
            value = configured.property_value(descriptor)
            for message in integration.validate_property(descriptor.name, value):
                errors.append(ValidationIssue(message, descriptor.name))

        if errors:
            raise ValidationError(errors)

    async def handle_configured(
        self,
        app: App,
        integration_id: str,
        configured: ConfiguredIntegration,
        previous: ConfiguredIntegration | None = None,
    ) -> IntegrationStatus:
        if not integration_id:
            raise ValidationError(ValidationIssue("Id is required.", "id"))
        integration = self._require(configured.type)
        return await integration.on_configured(app, integration_id, configured, previous)

    async def handle_removed(self, app: App, integration_id: str, configured: ConfiguredIntegration) -> None:
        if not integration_id:
            raise ValidationError(ValidationIssue("Id is required.", "id"))
        integration = self._require(configured.type)
        await integration.on_removed(app, integration_id, configured)

from __future__ import annotations

from dataclasses import dataclass, field
import time
from typing import Any, Protocol

import httpx

from tenantrelay.core.config import Settings, get_settings
from tenantrelay.core.errors import IntegrationCheckError
from tenantrelay.domain.integrations import (
    App,
    Capability,
    ConfiguredIntegration,
    IntegrationDefinition,
    IntegrationStatus,
)
from tenantrelay.services.telemetry import record_external_call


# Endpoint answers that prove the configuration can never work as entered.
_FAILED_STATUS_CODES = {400, 401, 403, 404, 410}
# The endpoint exists but rejects the probe method.
_REACHABLE_STATUS_CODES = {405}


@dataclass(frozen=True)
class IntegrationContext:
    # Shared collaborators handed to providers when they build instances.
    settings: Settings = field(default_factory=get_settings)
    http_client: httpx.AsyncClient | None = None


class IntegrationProvider(Protocol):
    definition: IntegrationDefinition

    def validate_property(self, name: str, value: str | None) -> list[str]: ...

    def can_create(self, capability: Capability, integration_id: str, configured: ConfiguredIntegration) -> bool: ...

    def create(
        self,
        capability: Capability,
        integration_id: str,
        configured: ConfiguredIntegration,
        context: IntegrationContext,
    ) -> Any | None: ...

    async def on_configured(
        self,
        app: App,
        integration_id: str,
        configured: ConfiguredIntegration,
        previous: ConfiguredIntegration | None,
    ) -> IntegrationStatus: ...

    async def on_removed(self, app: App, integration_id: str, configured: ConfiguredIntegration) -> None: ...

    async def check_status(
        self,
        app: App,
        integration_id: str,
        configured: ConfiguredIntegration,
    ) -> IntegrationStatus: ...


class BaseIntegration:
    """Default provider behavior driven by the definition.

    Subclasses set ``definition`` and implement ``build`` for the capabilities
    they declare. Providers that verify remote state override ``check_status``
    and return ``IntegrationStatus.PENDING`` from ``on_configured``.
    """

    definition: IntegrationDefinition

    def __init__(self, client: httpx.AsyncClient | None = None) -> None:
        self._client = client

    def validate_property(self, name: str, value: str | None) -> list[str]:
        descriptor = self.definition.property(name)
        if descriptor is None:
            return []
        return descriptor.validate(value)

    def can_create(self, capability: Capability, integration_id: str, configured: ConfiguredIntegration) -> bool:
        _ = integration_id, configured
        return capability in self.definition.capabilities

    def create(
        self,
        capability: Capability,
        integration_id: str,
        configured: ConfiguredIntegration,
        context: IntegrationContext,
    ) -> Any | None:
        if not self.can_create(capability, integration_id, configured):
            return None
        return self.build(capability, integration_id, configured, context)

    def build(
        self,
        capability: Capability,
        integration_id: str,
        configured: ConfiguredIntegration,
        context: IntegrationContext,
    ) -> Any:
        raise NotImplementedError

    async def on_configured(
        self,
        app: App,
        integration_id: str,
        configured: ConfiguredIntegration,
        previous: ConfiguredIntegration | None,
    ) -> IntegrationStatus:
        _ = app, integration_id, configured, previous
        return IntegrationStatus.VERIFIED

    async def on_removed(self, app: App, integration_id: str, configured: ConfiguredIntegration) -> None:
        _ = app, integration_id, configured

    async def check_status(
        self,
        app: App,
        integration_id: str,
        configured: ConfiguredIntegration,
    ) -> IntegrationStatus:
        _ = app, integration_id
        return configured.status

    def value(self, configured: ConfiguredIntegration, name: str) -> str | None:
        descriptor = self.definition.property(name)
        if descriptor is None:
            return configured.properties.get(name)
        return configured.property_value(descriptor)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is not None:
            return self._client
        # Reuse a single client per provider for connection pooling.
        timeout_s = get_settings().ext_call_timeout_ms / 1000.0
        self._client = httpx.AsyncClient(timeout=timeout_s)
        return self._client

    async def probe(self, method: str, url: str, **kwargs: Any) -> IntegrationStatus:
        # Map an HTTP probe onto a status; inconclusive answers raise so the integration stays pending.
        client = self._get_client()
        start = time.monotonic()
        try:
            response = await client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            record_external_call(
                integration=self.definition.type,
                latency_ms=(time.monotonic() - start) * 1000.0,
                success=False,
            )
            raise IntegrationCheckError(f"{self.definition.type} probe failed: {exc}") from exc

        latency_ms = (time.monotonic() - start) * 1000.0
        if response.status_code < 400 or response.status_code in _REACHABLE_STATUS_CODES:
            record_external_call(integration=self.definition.type, latency_ms=latency_ms, success=True)
            return IntegrationStatus.VERIFIED
        record_external_call(integration=self.definition.type, latency_ms=latency_ms, success=False)
        if response.status_code in _FAILED_STATUS_CODES:
            return IntegrationStatus.FAILED
        raise IntegrationCheckError(f"{self.definition.type} probe returned {response.status_code}")

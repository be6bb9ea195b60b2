from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from tenantrelay.domain.integrations import (
    App,
    Capability,
    ConfiguredIntegration,
    IntegrationDefinition,
    IntegrationStatus,
    PropertyDescriptor,
)
from tenantrelay.providers.integrations.base import BaseIntegration, IntegrationContext


@dataclass(frozen=True)
class FakeSender:
    integration_id: str
    integration_type: str
    capability: Capability


class FakeIntegration(BaseIntegration):
    """Deterministic provider for tests and local development.

    ``check_result`` is returned by every status check; an exception instance
    is raised instead. Calls are recorded in ``checked`` and ``removed``.
    """

    def __init__(
        self,
        integration_type: str = "fake",
        capabilities: Iterable[Capability] = (Capability.EMAIL_SENDER,),
        *,
        properties: tuple[PropertyDescriptor, ...] = (),
        configured_status: IntegrationStatus = IntegrationStatus.VERIFIED,
        check_result: IntegrationStatus | BaseException = IntegrationStatus.VERIFIED,
    ) -> None:
        super().__init__()
        self.definition = IntegrationDefinition(
            type=integration_type,
            title=f"Fake ({integration_type})",
            properties=properties,
            capabilities=frozenset(capabilities),
        )
        self.configured_status = configured_status
        self.check_result = check_result
        self.checked: list[tuple[str, str]] = []
        self.removed: list[tuple[str, str]] = []

    def build(
        self,
        capability: Capability,
        integration_id: str,
        configured: ConfiguredIntegration,
        context: IntegrationContext,
    ) -> FakeSender:
        _ = configured, context
        return FakeSender(integration_id=integration_id, integration_type=self.definition.type, capability=capability)

    async def on_configured(
        self,
        app: App,
        integration_id: str,
        configured: ConfiguredIntegration,
        previous: ConfiguredIntegration | None,
    ) -> IntegrationStatus:
        _ = app, integration_id, configured, previous
        return self.configured_status

    async def on_removed(self, app: App, integration_id: str, configured: ConfiguredIntegration) -> None:
        _ = configured
        self.removed.append((app.id, integration_id))

    async def check_status(
        self,
        app: App,
        integration_id: str,
        configured: ConfiguredIntegration,
    ) -> IntegrationStatus:
        _ = configured
        self.checked.append((app.id, integration_id))
        if isinstance(self.check_result, BaseException):
            raise self.check_result
        return self.check_result

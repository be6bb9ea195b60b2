from __future__ import annotations

from dataclasses import dataclass

from tenantrelay.domain.integrations import (
    App,
    Capability,
    ConfiguredIntegration,
    IntegrationDefinition,
    IntegrationStatus,
    PropertyDescriptor,
    PropertyType,
)
from tenantrelay.providers.integrations.base import BaseIntegration, IntegrationContext


@dataclass(frozen=True)
class WebhookSender:
    integration_id: str
    url: str
    method: str
    send_always: bool


class WebhookIntegration(BaseIntegration):
    definition = IntegrationDefinition(
        type="webhook",
        title="Webhook",
        description="Forward notifications to an HTTP endpoint.",
        capabilities=frozenset({Capability.WEBHOOK_SENDER}),
        properties=(
            PropertyDescriptor("url", PropertyType.URL, required=True, max_length=2048),
            PropertyDescriptor("method", default="POST", allowed_values=("POST", "PUT", "GET")),
            PropertyDescriptor("send_always", PropertyType.BOOLEAN, default="false"),
        ),
    )

    def build(
        self,
        capability: Capability,
        integration_id: str,
        configured: ConfiguredIntegration,
        context: IntegrationContext,
    ) -> WebhookSender:
        _ = capability, context
        return WebhookSender(
            integration_id=integration_id,
            url=self.value(configured, "url") or "",
            method=self.value(configured, "method") or "POST",
            send_always=(self.value(configured, "send_always") or "false").lower() == "true",
        )

    async def on_configured(
        self,
        app: App,
        integration_id: str,
        configured: ConfiguredIntegration,
        previous: ConfiguredIntegration | None,
    ) -> IntegrationStatus:
        _ = app, integration_id
        if previous is not None and self.value(previous, "url") == self.value(configured, "url"):
            return previous.status
        return IntegrationStatus.PENDING

    async def check_status(
        self,
        app: App,
        integration_id: str,
        configured: ConfiguredIntegration,
    ) -> IntegrationStatus:
        # HEAD keeps the probe side-effect free on the receiving endpoint.
        _ = app, integration_id
        return await self.probe("HEAD", self.value(configured, "url") or "")

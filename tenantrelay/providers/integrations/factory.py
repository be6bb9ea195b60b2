from __future__ import annotations

import httpx

from tenantrelay.core.config import Settings, get_settings
from tenantrelay.providers.integrations.base import IntegrationProvider
from tenantrelay.providers.integrations.fake import FakeIntegration
from tenantrelay.providers.integrations.registry import IntegrationRegistry
from tenantrelay.providers.integrations.smtp import SmtpIntegration
from tenantrelay.providers.integrations.twilio_sms import TwilioSmsIntegration
from tenantrelay.providers.integrations.webhook import WebhookIntegration


def build_default_registry(
    settings: Settings | None = None,
    *,
    http_client: httpx.AsyncClient | None = None,
) -> IntegrationRegistry:
    # Wire the built-in providers once at process start.
    settings = settings or get_settings()
    integrations: list[IntegrationProvider] = [
        SmtpIntegration(http_client),
        TwilioSmsIntegration(http_client, api_base_url=settings.twilio_api_base_url),
        WebhookIntegration(http_client),
    ]
    if settings.integration_fake_provider_enabled:
        integrations.append(FakeIntegration())
    return IntegrationRegistry(integrations)

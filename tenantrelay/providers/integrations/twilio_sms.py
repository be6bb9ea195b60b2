from __future__ import annotations

from dataclasses import dataclass

import httpx

from tenantrelay.core.config import get_settings
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
class TwilioSmsSender:
    integration_id: str
    account_sid: str
    auth_token: str
    phone_number: str
    api_base_url: str


class TwilioSmsIntegration(BaseIntegration):
    definition = IntegrationDefinition(
        type="twilio_sms",
        title="Twilio SMS",
        description="Send text messages with a Twilio account.",
        capabilities=frozenset({Capability.SMS_SENDER}),
        properties=(
            PropertyDescriptor("account_sid", required=True, pattern=r"AC[0-9a-fA-F]{32}"),
            PropertyDescriptor("auth_token", PropertyType.PASSWORD, required=True, min_length=16),
            # E.164 sender number.
            PropertyDescriptor("phone_number", required=True, pattern=r"\+[1-9][0-9]{6,14}"),
        ),
    )

    def __init__(self, client: httpx.AsyncClient | None = None, api_base_url: str | None = None) -> None:
        super().__init__(client)
        self._api_base_url = (api_base_url or get_settings().twilio_api_base_url).rstrip("/")

    def build(
        self,
        capability: Capability,
        integration_id: str,
        configured: ConfiguredIntegration,
        context: IntegrationContext,
    ) -> TwilioSmsSender:
        _ = capability, context
        return TwilioSmsSender(
            integration_id=integration_id,
            account_sid=self.value(configured, "account_sid") or "",
            auth_token=self.value(configured, "auth_token") or "",
            phone_number=self.value(configured, "phone_number") or "",
            api_base_url=self._api_base_url,
        )

    async def on_configured(
        self,
        app: App,
        integration_id: str,
        configured: ConfiguredIntegration,
        previous: ConfiguredIntegration | None,
    ) -> IntegrationStatus:
        # Credentials are verified asynchronously by the reconciler.
        _ = app, integration_id
        if previous is not None and previous.properties == configured.properties:
            return previous.status
        return IntegrationStatus.PENDING

    async def check_status(
        self,
        app: App,
        integration_id: str,
        configured: ConfiguredIntegration,
    ) -> IntegrationStatus:
        _ = app, integration_id
        account_sid = self.value(configured, "account_sid") or ""
        auth_token = self.value(configured, "auth_token") or ""
        return await self.probe(
            "GET",
            f"{self._api_base_url}/Accounts/{account_sid}.json",
            auth=(account_sid, auth_token),
        )

from __future__ import annotations

from dataclasses import dataclass

from tenantrelay.domain.integrations import (
    Capability,
    ConfiguredIntegration,
    IntegrationDefinition,
    PropertyDescriptor,
    PropertyType,
)
from tenantrelay.providers.integrations.base import BaseIntegration, IntegrationContext


_EMAIL_PATTERN = r"[^@\s]+@[^@\s]+\.[^@\s]+"


@dataclass(frozen=True)
class SmtpEmailSender:
    integration_id: str
    host: str
    port: int
    username: str | None
    password: str | None
    from_email: str
    from_name: str | None


class SmtpIntegration(BaseIntegration):
    # SMTP credentials cannot be verified without sending, so configuration is trusted.
    definition = IntegrationDefinition(
        type="smtp",
        title="SMTP",
        description="Send emails through any SMTP server.",
        capabilities=frozenset({Capability.EMAIL_SENDER}),
        properties=(
            PropertyDescriptor("host", required=True, max_length=255),
            PropertyDescriptor("port", PropertyType.NUMBER, default="587", min_value=1, max_value=65535),
            PropertyDescriptor("username", max_length=255),
            PropertyDescriptor("password", PropertyType.PASSWORD, max_length=255),
            PropertyDescriptor("from_email", required=True, pattern=_EMAIL_PATTERN),
            PropertyDescriptor("from_name", max_length=100),
        ),
    )

    def build(
        self,
        capability: Capability,
        integration_id: str,
        configured: ConfiguredIntegration,
        context: IntegrationContext,
    ) -> SmtpEmailSender:
        _ = capability, context
        return SmtpEmailSender(
            integration_id=integration_id,
            host=self.value(configured, "host") or "",
            port=int(self.value(configured, "port") or 587),
            username=self.value(configured, "username") or None,
            password=self.value(configured, "password") or None,
            from_email=self.value(configured, "from_email") or "",
            from_name=self.value(configured, "from_name") or None,
        )

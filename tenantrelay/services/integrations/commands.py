from __future__ import annotations

from dataclasses import replace
from typing import Mapping, Protocol

from tenantrelay.core.errors import (
    DomainObjectNotFoundError,
    SelfContributorError,
    ValidationError,
    ValidationIssue,
)
from tenantrelay.domain.integrations import App, ConfiguredIntegration, IntegrationStatus
from tenantrelay.providers.integrations.registry import IntegrationRegistry
from tenantrelay.services.integrations.conditions import ConditionEvaluator


APP_ROLES = ("owner", "admin")


class UserResolver(Protocol):
    async def resolve_or_create(self, email: str) -> str | None: ...


async def configure_integration(
    app: App,
    integration_id: str,
    configured: ConfiguredIntegration,
    *,
    registry: IntegrationRegistry,
    evaluator: ConditionEvaluator | None = None,
) -> App:
    # Validate, let the provider pick the initial status, then store in place or append.
    if not integration_id or not integration_id.strip():
        raise ValidationError(ValidationIssue("Id is required.", "id"))
    registry.validate_configuration(configured)

    evaluator = evaluator or ConditionEvaluator()
    condition_errors = evaluator.validate(configured.condition)
    if condition_errors:
        raise ValidationError(ValidationIssue(message, "condition") for message in condition_errors)

    previous = app.integrations.get(integration_id)
    status = await registry.handle_configured(app, integration_id, configured, previous)

    integrations = dict(app.integrations)
    integrations[integration_id] = configured.with_status(status)
    return replace(app, integrations=integrations)


async def remove_integration(app: App, integration_id: str, *, registry: IntegrationRegistry) -> App:
    configured = app.integrations.get(integration_id)
    if configured is None:
        raise DomainObjectNotFoundError(integration_id)
    await registry.handle_removed(app, integration_id, configured)
    integrations = {key: value for key, value in app.integrations.items() if key != integration_id}
    return replace(app, integrations=integrations)


def apply_status_updates(app: App, updates: Mapping[str, IntegrationStatus]) -> App:
    # Swap all statuses in one copy; ids removed since the pass started are ignored.
    if not updates:
        return app
    integrations = {
        integration_id: configured.with_status(updates[integration_id]) if integration_id in updates else configured
        for integration_id, configured in app.integrations.items()
    }
    return replace(app, integrations=integrations)


async def add_contributor(
    app: App,
    *,
    email: str | None,
    role: str | None,
    actor_id: str,
    user_resolver: UserResolver,
) -> App:
    errors: list[ValidationIssue] = []
    if not email:
        errors.append(ValidationIssue("Email is required.", "email"))
    if not role:
        errors.append(ValidationIssue("Role is required.", "role"))
    elif role not in APP_ROLES:
        errors.append(ValidationIssue(f"Must be one of: {', '.join(APP_ROLES)}.", "role"))
    if errors:
        raise ValidationError(errors)

    user_id = await user_resolver.resolve_or_create(email or "")
    if user_id is None:
        raise ValidationError(ValidationIssue("User not found.", "email"))
    if user_id.lower() == actor_id.lower():
        raise SelfContributorError("You cannot change your own role.")

    contributors = dict(app.contributors)
    contributors[user_id] = role or ""
    return replace(app, contributors=contributors)

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable


class TenantRelayError(Exception):
    """Base error for tenantrelay."""


@dataclass(frozen=True)
class ValidationIssue:
    # Keep each violation scoped to the property it came from.
    message: str
    field: str | None = None


class ValidationError(TenantRelayError):
    """One or more configuration values failed validation."""

    def __init__(self, errors: str | ValidationIssue | Iterable[ValidationIssue]) -> None:
        if isinstance(errors, str):
            errors = [ValidationIssue(errors)]
        elif isinstance(errors, ValidationIssue):
            errors = [errors]
        self.errors: list[ValidationIssue] = list(errors)
        super().__init__("; ".join(_format_issue(issue) for issue in self.errors))


class IntegrationNotFoundError(ValidationError):
    """Integration type is not registered."""

    def __init__(self, integration_type: str) -> None:
        self.integration_type = integration_type
        super().__init__(f"Integration '{integration_type}' not found.")


class DomainError(TenantRelayError):
    """Command rejected by a domain rule."""


class DomainObjectNotFoundError(DomainError):
    """Referenced object does not exist."""

    def __init__(self, object_id: str) -> None:
        self.object_id = object_id
        super().__init__(f"Object with id '{object_id}' does not exist.")


class SelfContributorError(DomainError):
    """Contributors cannot change their own membership."""


class IntegrationCheckError(TenantRelayError):
    """Provider status check could not reach a verdict."""


class DatabaseError(TenantRelayError):
    """Database layer failure."""


def _format_issue(issue: ValidationIssue) -> str:
    if issue.field:
        return f"{issue.field}: {issue.message}"
    return issue.message

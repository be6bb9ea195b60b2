from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
import re
from typing import Any, Iterator, Mapping, Protocol
from urllib.parse import urlparse


class Capability(str, Enum):
    # Capability tags a provider declares at registration time.
    EMAIL_SENDER = "email_sender"
    SMS_SENDER = "sms_sender"
    MOBILE_PUSH_SENDER = "mobile_push_sender"
    MESSAGING_SENDER = "messaging_sender"
    WEBHOOK_SENDER = "webhook_sender"


class IntegrationStatus(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    FAILED = "failed"


class PropertyType(str, Enum):
    TEXT = "text"
    PASSWORD = "password"
    NUMBER = "number"
    BOOLEAN = "boolean"
    URL = "url"


_BOOLEAN_VALUES = {"true", "false"}


@dataclass(frozen=True)
class PropertyDescriptor:
    # Describe one configurable provider property and its validation rule.
    name: str
    type: PropertyType = PropertyType.TEXT
    required: bool = False
    default: str | None = None
    min_length: int | None = None
    max_length: int | None = None
    min_value: int | None = None
    max_value: int | None = None
    pattern: str | None = None
    allowed_values: tuple[str, ...] = ()

    def validate(self, value: str | None) -> list[str]:
        # Return every violation for the value; an empty list means valid.
        if value is None or (isinstance(value, str) and not value.strip()):
            return ["Field is required."] if self.required else []
        if not isinstance(value, str):
            return ["Must be a string value."]

        errors: list[str] = []
        if self.type == PropertyType.NUMBER:
            errors.extend(self._validate_number(value))
        elif self.type == PropertyType.BOOLEAN:
            if value.strip().lower() not in _BOOLEAN_VALUES:
                errors.append("Must be 'true' or 'false'.")
        elif self.type == PropertyType.URL:
            parsed = urlparse(value.strip())
            if parsed.scheme not in {"http", "https"} or not parsed.netloc:
                errors.append("Must be an absolute http(s) URL.")

        if self.type in {PropertyType.TEXT, PropertyType.PASSWORD, PropertyType.URL}:
            if self.min_length is not None and len(value) < self.min_length:
                errors.append(f"Must have at least {self.min_length} characters.")
            if self.max_length is not None and len(value) > self.max_length:
                errors.append(f"Must not have more than {self.max_length} characters.")
            if self.pattern and re.fullmatch(self.pattern, value) is None:
                errors.append("Has an invalid format.")

        if self.allowed_values and value not in self.allowed_values:
            errors.append(f"Must be one of: {', '.join(self.allowed_values)}.")
        return errors

    def _validate_number(self, value: str) -> list[str]:
        try:
            number = int(value.strip())
        except ValueError:
            return ["Must be a valid number."]
        errors: list[str] = []
        if self.min_value is not None and number < self.min_value:
            errors.append(f"Must be greater or equal to {self.min_value}.")
        if self.max_value is not None and number > self.max_value:
            errors.append(f"Must be less or equal to {self.max_value}.")
        return errors


@dataclass(frozen=True)
class IntegrationDefinition:
    # Static descriptor of a provider type, loaded once at process start.
    type: str
    title: str
    properties: tuple[PropertyDescriptor, ...] = ()
    capabilities: frozenset[Capability] = frozenset()
    description: str = ""

    def property(self, name: str) -> PropertyDescriptor | None:
        for descriptor in self.properties:
            if descriptor.name == name:
                return descriptor
        return None


@dataclass(frozen=True)
class ConfiguredIntegration:
    type: str
    properties: Mapping[str, str] = field(default_factory=dict)
    enabled: bool = True
    # None matches both test and production sends.
    test: bool | None = None
    condition: str | None = None
    status: IntegrationStatus = IntegrationStatus.PENDING

    def with_status(self, status: IntegrationStatus) -> ConfiguredIntegration:
        return replace(self, status=status)

    def property_value(self, descriptor: PropertyDescriptor) -> str | None:
        value = self.properties.get(descriptor.name)
        if value is None:
            return descriptor.default
        return value


@dataclass(frozen=True)
class App:
    id: str
    name: str = ""
    # Insertion order is significant and preserved through resolution.
    integrations: Mapping[str, ConfiguredIntegration] = field(default_factory=dict)
    # user id -> role
    contributors: Mapping[str, str] = field(default_factory=dict)

    def pending_integrations(self) -> Iterator[tuple[str, ConfiguredIntegration]]:
        for integration_id, configured in self.integrations.items():
            if configured.status == IntegrationStatus.PENDING:
                yield integration_id, configured

    def has_pending_integrations(self) -> bool:
        return any(True for _ in self.pending_integrations())


class IntegrationTarget(Protocol):
    # Runtime context of one send attempt.
    test: bool

    def condition_context(self) -> dict[str, Any]: ...


@dataclass(frozen=True)
class DeliveryTarget:
    test: bool = False
    properties: Mapping[str, Any] = field(default_factory=dict)
    capability: Capability | None = None

    def condition_context(self) -> dict[str, Any]:
        # Expose target properties to routing conditions; "test" is reserved.
        context = dict(self.properties)
        context["test"] = self.test
        if self.capability is not None:
            context["capability"] = self.capability.value
        return context

from __future__ import annotations

from tenantrelay.domain.integrations import Capability, DeliveryTarget, IntegrationStatus
from tenantrelay.providers.integrations.fake import FakeIntegration, FakeSender
from tenantrelay.providers.integrations.registry import IntegrationRegistry
from tenantrelay.services.integrations.resolver import IntegrationResolver
from tenantrelay.tests.utils.integrations import condition_json, integration, make_app


def _resolver() -> IntegrationResolver:
    registry = IntegrationRegistry(
        [
            FakeIntegration("push-x", (Capability.MOBILE_PUSH_SENDER,)),
            FakeIntegration("push-y", (Capability.MOBILE_PUSH_SENDER,)),
            FakeIntegration("mail", (Capability.EMAIL_SENDER,)),
        ]
    )
    return IntegrationResolver(registry)


def test_test_flag_selects_matching_integrations() -> None:
    resolver = _resolver()
    app = make_app(X=integration("push-x"), Y=integration("push-y", test=False))

    resolved = resolver.resolve_all(app, Capability.MOBILE_PUSH_SENDER, DeliveryTarget(test=True))
    assert [integration_id for integration_id, _ in resolved] == ["X"]

    resolved = resolver.resolve_all(app, Capability.MOBILE_PUSH_SENDER, DeliveryTarget(test=False))
    assert [integration_id for integration_id, _ in resolved] == ["X", "Y"]


def test_only_enabled_verified_integrations_resolve() -> None:
    resolver = _resolver()
    app = make_app(
        disabled=integration("mail", enabled=False),
        pending=integration("mail", status=IntegrationStatus.PENDING),
        failed=integration("mail", status=IntegrationStatus.FAILED),
        ready=integration("mail"),
    )

    resolved = resolver.resolve_all(app, Capability.EMAIL_SENDER)
    assert [integration_id for integration_id, _ in resolved] == ["ready"]
    assert resolver.resolve(app, Capability.EMAIL_SENDER, "disabled") is None
    assert resolver.resolve(app, Capability.EMAIL_SENDER, "pending") is None


def test_resolution_preserves_insertion_order_and_is_repeatable() -> None:
    resolver = _resolver()
    app = make_app(c=integration("mail"), a=integration("mail"), b=integration("mail"))

    first = resolver.resolve_all(app, Capability.EMAIL_SENDER)
    second = resolver.resolve_all(app, Capability.EMAIL_SENDER)
    assert [integration_id for integration_id, _ in first] == ["c", "a", "b"]
    assert first == second


def test_conditions_filter_targets() -> None:
    resolver = _resolver()
    app = make_app(
        german=integration("mail", condition=condition_json({"eq": [{"var": "locale"}, "de-DE"]})),
        unconditioned=integration("mail"),
        broken=integration("mail", condition="{not json"),
    )

    german = resolver.resolve_all(app, Capability.EMAIL_SENDER, DeliveryTarget(properties={"locale": "de-DE"}))
    english = resolver.resolve_all(app, Capability.EMAIL_SENDER, DeliveryTarget(properties={"locale": "en-US"}))
    assert [integration_id for integration_id, _ in german] == ["german", "unconditioned"]
    assert [integration_id for integration_id, _ in english] == ["unconditioned"]


def test_unregistered_and_incapable_providers_are_skipped() -> None:
    resolver = _resolver()
    app = make_app(
        gone=integration("uninstalled"),
        mail=integration("mail"),
        push=integration("push-x"),
    )

    resolved = resolver.resolve_all(app, Capability.EMAIL_SENDER)
    assert [integration_id for integration_id, _ in resolved] == ["mail"]
    assert resolver.resolve(app, Capability.EMAIL_SENDER, "gone") is None
    assert resolver.resolve(app, Capability.EMAIL_SENDER, "push") is None


def test_resolve_by_id_builds_the_requested_instance() -> None:
    resolver = _resolver()
    app = make_app(first=integration("mail"), second=integration("mail"))

    sender = resolver.resolve(app, Capability.EMAIL_SENDER, "second")
    assert sender == FakeSender(
        integration_id="second",
        integration_type="mail",
        capability=Capability.EMAIL_SENDER,
    )
    assert resolver.resolve(app, Capability.EMAIL_SENDER, "missing") is None


def test_is_configured_checks_capability_and_target() -> None:
    resolver = _resolver()
    app = make_app(push=integration("push-x", test=True))

    assert resolver.is_configured(app, Capability.MOBILE_PUSH_SENDER) is True
    assert resolver.is_configured(app, Capability.EMAIL_SENDER) is False
    assert resolver.is_configured(app, Capability.MOBILE_PUSH_SENDER, DeliveryTarget(test=False)) is False
    assert resolver.is_configured(make_app(), Capability.MOBILE_PUSH_SENDER) is False


def test_resolution_does_not_mutate_app() -> None:
    resolver = _resolver()
    app = make_app(mail=integration("mail"))
    before = dict(app.integrations)

    resolver.resolve_all(app, Capability.EMAIL_SENDER, DeliveryTarget(test=True))
    assert dict(app.integrations) == before


def test_disabled_integration_is_excluded_even_when_target_and_condition_match() -> None:
    resolver = _resolver()
    always = condition_json({"eq": [1, 1]})
    app = make_app(
        off=integration("mail", enabled=False, test=True, condition=always),
        on=integration("mail", test=True, condition=always),
    )
    target = DeliveryTarget(test=True, properties={"locale": "de-DE"})

    resolved = resolver.resolve_all(app, Capability.EMAIL_SENDER, target)
    assert [integration_id for integration_id, _ in resolved] == ["on"]
    assert resolver.resolve(app, Capability.EMAIL_SENDER, "off", target) is None
    only_disabled = make_app(off=app.integrations["off"])
    assert resolver.is_configured(only_disabled, Capability.EMAIL_SENDER, target) is False


def test_negated_condition_on_missing_property_excludes_integration() -> None:
    resolver = _resolver()
    app = make_app(
        not_german=integration("mail", condition=condition_json({"ne": [{"var": "locale"}, "de-DE"]})),
        fallback=integration("mail"),
    )

    resolved = resolver.resolve_all(app, Capability.EMAIL_SENDER, DeliveryTarget(properties={}))
    assert [integration_id for integration_id, _ in resolved] == ["fallback"]

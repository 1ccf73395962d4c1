"""Unit tests for ruleset resolution."""

from __future__ import annotations

import pytest

from rolewarden.core.domain_types import GrantPolicy, PolicyRuleset, RulesetReference
from rolewarden.core.exceptions import InvalidTargetError, RulesetNotFoundError
from rolewarden.core.policy import RulesetResolver, ScopeKind, classify_target
from tests.fixtures.domain_objects import RESOURCE_GROUP_SCOPE, SUBSCRIPTION_SCOPE

RESOURCE_KEY = "rg-payments/providers/Microsoft.KeyVault/vaults/kv-payments"
RESOURCE_SCOPE = f"{SUBSCRIPTION_SCOPE}/resourceGroups/{RESOURCE_KEY}"


def _refs(*names: str) -> tuple[RulesetReference, ...]:
    return tuple(RulesetReference(ruleset_name=name) for name in names)


RULESETS = [PolicyRuleset(name=name) for name in ("baseline", "strict", "approval", "sub", "kv")]


class TestClassifyTarget:
    """Tests for classify_target."""

    def test_subscription(self) -> None:
        """A bare subscription scope."""
        assert classify_target(SUBSCRIPTION_SCOPE).kind is ScopeKind.SUBSCRIPTION

    def test_resource_group(self) -> None:
        """A resource group scope keys by group name."""
        scope = classify_target(RESOURCE_GROUP_SCOPE)

        assert scope.kind is ScopeKind.RESOURCE_GROUP
        assert scope.key == "rg-payments"

    def test_resource(self) -> None:
        """A resource scope keys by the path below resourceGroups."""
        scope = classify_target(RESOURCE_SCOPE)

        assert scope.kind is ScopeKind.RESOURCE
        assert scope.key == RESOURCE_KEY

    def test_managed_group(self) -> None:
        """In groups mode any target is a managed group name."""
        scope = classify_target("Finance Approvers", managed_groups=True)

        assert scope.kind is ScopeKind.MANAGED_GROUP
        assert scope.key == "Finance Approvers"

    @pytest.mark.parametrize(
        "target",
        ["/", "/subscriptions/not-a-guid", "/providers/Microsoft.Management/managementGroups/mg"],
    )
    def test_invalid_target(self, target: str) -> None:
        """Unrecognised scopes are rejected."""
        with pytest.raises(InvalidTargetError):
            classify_target(target)


class TestRulesetResolver:
    """Tests for RulesetResolver."""

    @pytest.fixture
    def resolver(self) -> RulesetResolver:
        """Return a resolver with a default policy and a Contributor policy."""
        policies = [
            GrantPolicy(name="default", default=_refs("baseline")),
            GrantPolicy(
                name="Contributor",
                default=_refs("baseline", "strict"),
                subscription=_refs("sub"),
                resource_groups={"rg-payments": _refs("approval")},
                resources={RESOURCE_KEY: _refs("kv")},
            ),
        ]
        return RulesetResolver(policies, RULESETS)

    def test_policy_named_after_role_wins(self, resolver: RulesetResolver) -> None:
        """A role's own policy is preferred over default."""
        policy = resolver.find_policy("Contributor")

        assert policy is not None and policy.name == "Contributor"

    def test_default_policy_fallback(self, resolver: RulesetResolver) -> None:
        """Other roles use the default policy."""
        policy = resolver.find_policy("Reader")

        assert policy is not None and policy.name == "default"

    def test_no_policy_means_template_only(self) -> None:
        """Without any policy no rulesets apply."""
        assert RulesetResolver([], RULESETS).rulesets_for(SUBSCRIPTION_SCOPE, "Reader") == []

    @pytest.mark.parametrize(
        ("target", "expected"),
        [
            (SUBSCRIPTION_SCOPE, ["sub"]),
            (RESOURCE_GROUP_SCOPE, ["approval"]),
            (RESOURCE_SCOPE, ["kv"]),
            (f"{SUBSCRIPTION_SCOPE}/resourceGroups/rg-other", ["baseline", "strict"]),
        ],
    )
    def test_override_replaces_default(
        self, resolver: RulesetResolver, target: str, expected: list[str]
    ) -> None:
        """The most specific override wins and is not merged with default."""
        assert [r.name for r in resolver.rulesets_for(target, "Contributor")] == expected

    def test_extra_names_appended_once(self, resolver: RulesetResolver) -> None:
        """Per-grant rulesets follow policy rulesets, without repeats."""
        target = f"{SUBSCRIPTION_SCOPE}/resourceGroups/rg-other"

        rulesets = resolver.rulesets_for(target, "Contributor", ["strict", "approval", "approval"])
        names = [r.name for r in rulesets]

        assert names == ["baseline", "strict", "approval"]

    def test_empty_override_disables_default(self) -> None:
        """An explicitly empty override applies no rulesets."""
        policy = GrantPolicy(name="default", default=_refs("baseline"), subscription=())

        assert RulesetResolver([policy], RULESETS).rulesets_for(SUBSCRIPTION_SCOPE, "Reader") == []

    def test_unknown_ruleset_raises(self) -> None:
        """A reference to an undeclared ruleset is a configuration error."""
        resolver = RulesetResolver([GrantPolicy(name="default", default=_refs("ghost"))], RULESETS)

        with pytest.raises(RulesetNotFoundError):
            resolver.rulesets_for(SUBSCRIPTION_SCOPE, "Reader")

    def test_managed_group_override(self) -> None:
        """Groups mode looks overrides up by group name."""
        policy = GrantPolicy(
            name="member",
            default=_refs("baseline"),
            managed_groups={"Finance Approvers": _refs("approval")},
        )
        resolver = RulesetResolver([policy], RULESETS, managed_groups=True)

        finance = resolver.rulesets_for("Finance Approvers", "member")
        assert [r.name for r in finance] == ["approval"]
        assert [r.name for r in resolver.rulesets_for("Engineering", "member")] == ["baseline"]

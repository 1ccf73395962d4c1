"""Unit tests for the policy patch engine."""

from __future__ import annotations

import pytest

from rolewarden.core.domain_types import EffectivePolicy, PolicyRuleset, RulePatch
from rolewarden.core.exceptions import UnknownRuleError, UnsupportedRuleKindError
from rolewarden.core.policy import (
    build_desired_rules,
    default_rules,
    plan_policy_update,
    rules_differ,
)
from tests.fixtures.domain_objects import SUBSCRIPTION_SCOPE


def _ruleset(name: str, *patches: tuple[str, dict | None]) -> PolicyRuleset:
    return PolicyRuleset(name=name, rules=tuple(RulePatch(id=i, patch=p) for i, p in patches))


def _by_id(rules: list[dict]) -> dict[str, dict]:
    return {rule["id"]: rule for rule in rules}


def _effective(rules: list[dict]) -> EffectivePolicy:
    return EffectivePolicy(
        policy_id="policy-1", target=SUBSCRIPTION_SCOPE, role_name="Contributor", rules=tuple(rules)
    )


class TestBuildDesiredRules:
    """Tests for build_desired_rules."""

    def test_no_rulesets_yields_template(self) -> None:
        """With nothing to apply the template is returned unchanged."""
        assert build_desired_rules([]) == default_rules()

    def test_patch_applies(self) -> None:
        """A patch changes only the fields it names."""
        rules = build_desired_rules(
            [_ruleset("short", ("Expiration_Admin_Eligibility", {"maximumDuration": "P30D"}))]
        )

        rule = _by_id(rules)["Expiration_Admin_Eligibility"]
        assert rule["maximumDuration"] == "P30D"
        template = _by_id(default_rules())["Expiration_Admin_Eligibility"]
        assert rule["isExpirationRequired"] == template["isExpirationRequired"]

    def test_later_patch_wins(self) -> None:
        """Rulesets apply in order."""
        rules = build_desired_rules(
            [
                _ruleset("a", ("Expiration_Admin_Eligibility", {"maximumDuration": "P30D"})),
                _ruleset("b", ("Expiration_Admin_Eligibility", {"maximumDuration": "P14D"})),
            ]
        )

        assert _by_id(rules)["Expiration_Admin_Eligibility"]["maximumDuration"] == "P14D"

    def test_null_patch_is_skipped(self) -> None:
        """A rule entry without a patch changes nothing."""
        rules = build_desired_rules([_ruleset("noop", ("Expiration_Admin_Eligibility", None))])
        assert rules == default_rules()

    def test_template_order_is_kept(self) -> None:
        """Patched rules stay in template order."""
        rules = build_desired_rules(
            [
                _ruleset(
                    "mfa",
                    (
                        "Enablement_EndUser_Assignment",
                        {"enabledRules": ["MultiFactorAuthentication"]},
                    ),
                )
            ]
        )

        assert [r["id"] for r in rules] == [r["id"] for r in default_rules()]

    def test_deterministic(self) -> None:
        """The same inputs always assemble the same rules."""
        rulesets = [
            _ruleset("short", ("Expiration_Admin_Eligibility", {"maximumDuration": "P30D"}))
        ]

        assert build_desired_rules(rulesets) == build_desired_rules(rulesets)

    def test_unknown_rule_id_raises(self) -> None:
        """Patching a rule absent from the template is rejected."""
        with pytest.raises(UnknownRuleError) as exc_info:
            build_desired_rules(
                [_ruleset("bad", ("Expiration_Nobody", {"maximumDuration": "P1D"}))]
            )

        assert exc_info.value.rule_id == "Expiration_Nobody"

    def test_patching_rule_type_to_unknown_raises(self) -> None:
        """A patch may not turn a rule into an unsupported kind."""
        with pytest.raises(UnsupportedRuleKindError):
            build_desired_rules(
                [_ruleset("bad", ("Expiration_Admin_Eligibility", {"ruleType": "SomethingElse"}))]
            )

    def test_template_is_not_mutated(self) -> None:
        """An explicit template is left untouched."""
        template = default_rules()
        snapshot = default_rules()

        build_desired_rules(
            [_ruleset("short", ("Expiration_Admin_Eligibility", {"maximumDuration": "P30D"}))],
            template=template,
        )

        assert template == snapshot


class TestRulesDiffer:
    """Tests for rules_differ and plan_policy_update."""

    def test_identical_rules(self) -> None:
        """The template equals itself."""
        assert rules_differ(default_rules(), default_rules()) is False

    def test_remote_metadata_is_ignored(self) -> None:
        """Fields outside a kind's model are not drift."""
        remote = [
            {**rule, "inheritableSettings": ["x"], "enforcedSettings": []}
            for rule in default_rules()
        ]

        assert rules_differ(default_rules(), remote) is False

    def test_field_change_is_drift(self) -> None:
        """A changed authoritative field is drift."""
        remote = build_desired_rules(
            [_ruleset("long", ("Expiration_Admin_Eligibility", {"maximumDuration": "P90D"}))]
        )

        assert rules_differ(default_rules(), remote) is True

    def test_missing_rule_is_drift(self) -> None:
        """Different rule id sets are drift."""
        assert rules_differ(default_rules(), default_rules()[1:]) is True

    def test_unknown_remote_kind_raises(self) -> None:
        """An unsupported remote rule is not silently skipped."""
        remote = [*default_rules(), {"id": "Future", "ruleType": "RoleManagementPolicyFutureRule"}]

        with pytest.raises(UnsupportedRuleKindError):
            rules_differ(default_rules(), remote)

    def test_no_update_without_drift(self) -> None:
        """An in-sync policy produces no update."""
        assert plan_policy_update(default_rules(), _effective(default_rules())) is None

    def test_update_replaces_whole_rule_set(self) -> None:
        """Drift yields the full desired rule set for the remote policy."""
        desired = build_desired_rules(
            [_ruleset("short", ("Expiration_Admin_Eligibility", {"maximumDuration": "P30D"}))]
        )

        update = plan_policy_update(desired, _effective(default_rules()))

        assert update is not None
        assert update.policy_id == "policy-1"
        assert list(update.rules) == desired

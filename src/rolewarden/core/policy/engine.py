"""Policy patch engine.

Builds the desired rule set for a (target, role) pair from the default
template and its resolved rulesets, then diffs it against the remote
effective rules.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import structlog

from ..domain_types import EffectivePolicy, PolicyRuleset
from ..exceptions import UnknownRuleError
from ..plan import PolicyUpdate
from .merge_patch import merge_patch
from .rules import parse_rule
from .template import default_rules

logger = structlog.get_logger()


def build_desired_rules(
    rulesets: Sequence[PolicyRuleset],
    template: Sequence[dict[str, Any]] | None = None,
) -> list[dict[str, Any]]:
    """Merge-patch rulesets onto the policy template.

    Rulesets apply in order, and rules within a ruleset apply in order, so
    a later patch to the same rule wins. Rules without a patch are skipped.

    Args:
        rulesets: Rulesets in application order.
        template: Base rules; the embedded default policy when omitted.

    Returns:
        Fully assembled rules in template order.

    Raises:
        UnknownRuleError: If a patch targets a rule id absent from the template.
        UnsupportedRuleKindError: If a patched rule has an unknown rule type.
        ConfigurationError: If a patched rule no longer fits its kind.
    """
    rules = [dict(rule) for rule in (template if template is not None else default_rules())]
    index = {rule["id"]: position for position, rule in enumerate(rules)}

    for ruleset in rulesets:
        for rule_patch in ruleset.rules:
            if rule_patch.patch is None:
                continue
            position = index.get(rule_patch.id)
            if position is None:
                raise UnknownRuleError(rule_patch.id)
            patched = merge_patch(rules[position], rule_patch.patch)
            parse_rule(patched)
            rules[position] = patched

    return rules


def rules_differ(desired: Sequence[dict[str, Any]], remote: Sequence[dict[str, Any]]) -> bool:
    """Compare two rule lists by id, field by field within each rule's kind.

    Raises:
        UnsupportedRuleKindError: If either side carries an unknown rule type.
    """
    desired_views = {rule["id"]: parse_rule(rule).comparison_view() for rule in desired}
    remote_views = {rule["id"]: parse_rule(rule).comparison_view() for rule in remote}

    if sorted(desired_views) != sorted(remote_views):
        return True
    return any(desired_views[rule_id] != remote_views[rule_id] for rule_id in sorted(desired_views))


def plan_policy_update(
    desired: Sequence[dict[str, Any]],
    effective: EffectivePolicy,
) -> PolicyUpdate | None:
    """Return a full-replacement update if the effective policy has drifted."""
    if not rules_differ(desired, effective.rules):
        return None

    logger.info(
        "policy_drift_detected",
        target=effective.target,
        role_name=effective.role_name,
        policy_id=effective.policy_id,
    )
    return PolicyUpdate(
        target=effective.target,
        role_name=effective.role_name,
        policy_id=effective.policy_id,
        rules=tuple(desired),
    )

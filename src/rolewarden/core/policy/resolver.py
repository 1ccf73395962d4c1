"""Ruleset resolution - which rulesets govern a (target, role) pair.

Most specific wins: an override keyed by the exact target replaces the
policy's default rulesets; it is never merged with them.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from enum import Enum

from ..domain_types import GrantPolicy, PolicyRuleset, RulesetReference
from ..exceptions import InvalidTargetError, RulesetNotFoundError

DEFAULT_POLICY_NAME = "default"

_GUID = r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}"
SUBSCRIPTION_SCOPE = re.compile(rf"^/subscriptions/{_GUID}$", re.IGNORECASE)
RESOURCE_GROUP_SCOPE = re.compile(
    rf"^/subscriptions/{_GUID}/resourceGroups/([^/]+)$", re.IGNORECASE
)
RESOURCE_SCOPE = re.compile(rf"^/subscriptions/{_GUID}/resourceGroups/(.+)$", re.IGNORECASE)


class ScopeKind(str, Enum):
    SUBSCRIPTION = "subscription"
    RESOURCE_GROUP = "resource_group"
    RESOURCE = "resource"
    MANAGED_GROUP = "managed_group"


@dataclass(frozen=True)
class ScopeRef:
    """A classified target.

    Attributes:
        kind: What the target denotes.
        key: Override lookup key: resource group name, `<rg>/providers/...`
            for resources, the group name for managed groups.
    """

    kind: ScopeKind
    key: str | None = None


def classify_target(target: str, managed_groups: bool = False) -> ScopeRef:
    """Classify a target for override lookup.

    Args:
        target: Scope path, or managed group name when `managed_groups`.
        managed_groups: Whether targets are managed group names.

    Raises:
        InvalidTargetError: If a scope path matches no known pattern.
    """
    if managed_groups:
        return ScopeRef(ScopeKind.MANAGED_GROUP, target)
    if SUBSCRIPTION_SCOPE.match(target):
        return ScopeRef(ScopeKind.SUBSCRIPTION)
    if match := RESOURCE_GROUP_SCOPE.match(target):
        return ScopeRef(ScopeKind.RESOURCE_GROUP, match.group(1))
    if match := RESOURCE_SCOPE.match(target):
        return ScopeRef(ScopeKind.RESOURCE, match.group(1))
    raise InvalidTargetError(target)


class RulesetResolver:
    """Resolves rulesets for (target, role) pairs from loaded policies."""

    def __init__(
        self,
        policies: Sequence[GrantPolicy],
        rulesets: Sequence[PolicyRuleset],
        managed_groups: bool = False,
    ) -> None:
        """Initialize the resolver.

        Args:
            policies: Policies keyed by role name, plus optionally `default`.
            rulesets: All declared rulesets.
            managed_groups: Whether targets are managed group names.
        """
        self.policies = {policy.name: policy for policy in policies}
        self.rulesets = {ruleset.name: ruleset for ruleset in rulesets}
        self.managed_groups = managed_groups

    def find_policy(self, role_name: str) -> GrantPolicy | None:
        """The policy named after the role, else `default`, else None."""
        return self.policies.get(role_name) or self.policies.get(DEFAULT_POLICY_NAME)

    def references_for(self, target: str, role_name: str) -> list[RulesetReference]:
        """Ordered ruleset references applying to a target and role."""
        policy = self.find_policy(role_name)
        if policy is None:
            return []

        scope = classify_target(target, self.managed_groups)
        override: Sequence[RulesetReference] | None
        if scope.kind is ScopeKind.SUBSCRIPTION:
            override = policy.subscription
        elif scope.kind is ScopeKind.RESOURCE_GROUP:
            override = policy.resource_groups.get(scope.key or "")
        elif scope.kind is ScopeKind.RESOURCE:
            override = policy.resources.get(scope.key or "")
        else:
            override = policy.managed_groups.get(scope.key or "")

        return list(override if override is not None else policy.default)

    def rulesets_for(
        self,
        target: str,
        role_name: str,
        extra_names: Iterable[str] = (),
    ) -> list[PolicyRuleset]:
        """Resolve rulesets for a target and role, in application order.

        Args:
            target: Grant target.
            role_name: Role name.
            extra_names: Per-grant ruleset names, appended after the
                policy's rulesets. Names already present are skipped.

        Raises:
            RulesetNotFoundError: If any referenced ruleset is undeclared.
            InvalidTargetError: If the target cannot be classified.
        """
        names: list[str] = []
        for name in [ref.ruleset_name for ref in self.references_for(target, role_name)]:
            if name not in names:
                names.append(name)
        for name in extra_names:
            if name not in names:
                names.append(name)

        resolved = []
        for name in names:
            ruleset = self.rulesets.get(name)
            if ruleset is None:
                raise RulesetNotFoundError(name)
            resolved.append(ruleset)
        return resolved

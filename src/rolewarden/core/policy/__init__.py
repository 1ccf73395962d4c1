"""Role management policy resolution, patching and diffing."""

from .engine import build_desired_rules, plan_policy_update, rules_differ
from .merge_patch import merge_patch
from .resolver import RulesetResolver, ScopeKind, ScopeRef, classify_target
from .rules import PolicyRule, RuleKind, parse_rule
from .template import default_rules

__all__ = [
    "PolicyRule",
    "RuleKind",
    "RulesetResolver",
    "ScopeKind",
    "ScopeRef",
    "build_desired_rules",
    "classify_target",
    "default_rules",
    "merge_patch",
    "parse_rule",
    "plan_policy_update",
    "rules_differ",
]

"""Core domain - reconciliation engine with zero infrastructure dependencies."""

from .domain_types import (
    CallerAssignment,
    CorrelationKey,
    DesiredState,
    EffectivePolicy,
    ExistingGrant,
    Grant,
    GrantKind,
    GrantPolicy,
    GrantStatus,
    PolicyRuleset,
    PrincipalKind,
    RulePatch,
    RulesetReference,
)
from .exceptions import (
    ConfigurationEmptyError,
    ConfigurationError,
    DuplicateGrantError,
    InvalidPlanError,
    InvalidTargetError,
    PermissionDeniedError,
    PolicyNotFoundError,
    PrincipalNotFoundError,
    RemoteCallError,
    ResolutionError,
    RoleNotFoundError,
    RolewardenError,
    RulesetNotFoundError,
    UnknownGrantStatusError,
    UnknownRuleError,
    UnsupportedRuleKindError,
)
from .executor import ApplySummary, PlanExecutor
from .interfaces import RemoteMutator, RemoteStateReader
from .plan import (
    GrantCreate,
    GrantRemoval,
    GrantUpdate,
    Plan,
    PolicyUpdate,
    RemovalAction,
    RequestType,
    ScheduleInfo,
    ScheduleRequest,
)
from .planner import PlannerConfig, ReconciliationPlanner

__all__ = [
    # Domain types
    "CallerAssignment",
    "CorrelationKey",
    "DesiredState",
    "EffectivePolicy",
    "ExistingGrant",
    "Grant",
    "GrantKind",
    "GrantPolicy",
    "GrantStatus",
    "PolicyRuleset",
    "PrincipalKind",
    "RulePatch",
    "RulesetReference",
    # Plan
    "GrantCreate",
    "GrantRemoval",
    "GrantUpdate",
    "Plan",
    "PolicyUpdate",
    "RemovalAction",
    "RequestType",
    "ScheduleInfo",
    "ScheduleRequest",
    # Interfaces
    "RemoteMutator",
    "RemoteStateReader",
    # Engine
    "ApplySummary",
    "PlanExecutor",
    "PlannerConfig",
    "ReconciliationPlanner",
    # Exceptions
    "ConfigurationEmptyError",
    "ConfigurationError",
    "DuplicateGrantError",
    "InvalidPlanError",
    "InvalidTargetError",
    "PermissionDeniedError",
    "PolicyNotFoundError",
    "PrincipalNotFoundError",
    "RemoteCallError",
    "ResolutionError",
    "RoleNotFoundError",
    "RolewardenError",
    "RulesetNotFoundError",
    "UnknownGrantStatusError",
    "UnknownRuleError",
    "UnsupportedRuleKindError",
]

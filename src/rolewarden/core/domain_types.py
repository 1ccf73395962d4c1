"""Domain types - Immutable Pydantic models defining core domain objects.

Desired grants come from the config layer, observed grants from the
remote state reader. Both are frozen so a plan built from them cannot
be perturbed while it is being computed.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any, NamedTuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


def as_utc(value: datetime | None) -> datetime | None:
    """Normalise a timestamp to an aware UTC datetime.

    Naive values are taken to already be in UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)



def as_utc_seconds(value: datetime | None) -> datetime | None:
    """Normalise to UTC and truncate to whole seconds, the precision requests carry."""
    value = as_utc(value)
    if value is None:
        return None
    return value.replace(microsecond=0)


class GrantKind(str, Enum):
    """Kind of grant."""

    ACTIVE = "active"
    ELIGIBLE = "eligible"

    @property
    def supports_schedule_update(self) -> bool:
        """Whether existing grants of this kind have a mutable schedule."""
        return self is GrantKind.ELIGIBLE


class PrincipalKind(str, Enum):
    """Kind of principal a grant is given to."""

    USER = "User"
    GROUP = "Group"


class GrantStatus(str, Enum):
    """Status values a remote schedule can report."""

    ACCEPTED = "Accepted"
    PENDING_EVALUATION = "PendingEvaluation"
    GRANTED = "Granted"
    DENIED = "Denied"
    PENDING_PROVISIONING = "PendingProvisioning"
    PROVISIONED = "Provisioned"
    PENDING_REVOCATION = "PendingRevocation"
    REVOKED = "Revoked"
    CANCELED = "Canceled"
    FAILED = "Failed"
    PENDING_APPROVAL_PROVISIONING = "PendingApprovalProvisioning"
    PENDING_APPROVAL = "PendingApproval"
    FAILED_AS_RESOURCE_IS_LOCKED = "FailedAsResourceIsLocked"
    PENDING_ADMIN_DECISION = "PendingAdminDecision"
    ADMIN_APPROVED = "AdminApproved"
    ADMIN_DENIED = "AdminDenied"
    TIMED_OUT = "TimedOut"
    PROVISIONING_STARTED = "ProvisioningStarted"
    INVALID = "Invalid"
    PENDING_SCHEDULE_CREATION = "PendingScheduleCreation"
    SCHEDULE_CREATED = "ScheduleCreated"
    PENDING_EXTERNAL_PROVISIONING = "PendingExternalProvisioning"


class CorrelationKey(NamedTuple):
    """Semantic identity of a grant.

    Two grants are the same grant iff their keys are equal, whatever
    remote identifiers they carry.
    """

    target: str
    role_name: str
    principal_name: str


class Grant(BaseModel):
    """A desired grant, as declared in configuration.

    Attributes:
        principal_name: Group display name or user principal name.
        principal_kind: Whether the principal is a user or a group.
        role_name: Role definition name (or `member`/`owner` for managed groups).
        target: Scope path or managed group name the grant applies to.
        kind: Active (permanent) or eligible (activation on demand).
        start_date_time: Optional fixed start; unset means "keep the remote one".
        end_date_time: Optional end; unset means no expiration.
        ruleset_name: Optional extra ruleset for this grant's policy.
    """

    model_config = ConfigDict(frozen=True)

    principal_name: str
    principal_kind: PrincipalKind
    role_name: str
    target: str
    kind: GrantKind
    start_date_time: datetime | None = None
    end_date_time: datetime | None = None
    ruleset_name: str | None = None

    @field_validator("start_date_time", "end_date_time")
    @classmethod
    def _normalise_timestamps(cls, value: datetime | None) -> datetime | None:
        return as_utc_seconds(value)

    @property
    def key(self) -> CorrelationKey:
        """Correlation key for matching against observed grants."""
        return CorrelationKey(self.target, self.role_name, self.principal_name)


class ExistingGrant(BaseModel):
    """A grant observed on the remote service.

    Principal and role are opaque remote identifiers and must be resolved
    to names before the grant can be correlated.

    Attributes:
        id: Schedule identifier (what an admin removal targets).
        request_name: Name of the request that created the schedule
            (what a cancellation targets).
        status: Raw remote status, validated when a removal is resolved.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    kind: GrantKind
    principal_id: str
    principal_kind: PrincipalKind
    role_definition_id: str
    target: str
    status: str
    request_name: str
    start_date_time: datetime | None = None
    end_date_time: datetime | None = None

    @field_validator("start_date_time", "end_date_time")
    @classmethod
    def _normalise_timestamps(cls, value: datetime | None) -> datetime | None:
        return as_utc(value)


class RulesetReference(BaseModel):
    """Reference to a named ruleset from a policy."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    ruleset_name: str = Field(alias="rulesetName")


class RulePatch(BaseModel):
    """A merge-patch fragment for one rule of the policy template."""

    model_config = ConfigDict(frozen=True)

    id: str
    patch: dict[str, Any] | None = None


class PolicyRuleset(BaseModel):
    """A named, reusable list of rule patches."""

    model_config = ConfigDict(frozen=True)

    name: str
    rules: tuple[RulePatch, ...] = ()


class GrantPolicy(BaseModel):
    """Which rulesets govern a role, with per-target overrides.

    The policy named after a role applies to that role; the policy named
    `default` applies to every other role.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    default: tuple[RulesetReference, ...] = ()
    subscription: tuple[RulesetReference, ...] | None = None
    resource_groups: dict[str, tuple[RulesetReference, ...]] = {}
    resources: dict[str, tuple[RulesetReference, ...]] = {}
    managed_groups: dict[str, tuple[RulesetReference, ...]] = {}

    def all_references(self) -> list[RulesetReference]:
        """Every ruleset reference in the policy, overrides included."""
        references = list(self.default)
        references.extend(self.subscription or ())
        for overrides in (self.resource_groups, self.resources, self.managed_groups):
            for refs in overrides.values():
                references.extend(refs)
        return references


class EffectivePolicy(BaseModel):
    """The remote effective rule set for a (target, role) pair."""

    model_config = ConfigDict(frozen=True)

    policy_id: str
    target: str
    role_name: str
    rules: tuple[dict[str, Any], ...]


class CallerAssignment(BaseModel):
    """A role assignment held by the calling principal."""

    model_config = ConfigDict(frozen=True)

    role_definition_id: str
    scope: str


class DesiredState(BaseModel):
    """Everything the config layer hands the reconciliation engine."""

    model_config = ConfigDict(frozen=True)

    grants: tuple[Grant, ...] = ()
    policies: tuple[GrantPolicy, ...] = ()
    rulesets: tuple[PolicyRuleset, ...] = ()

"""Plan types.

A plan is derived fresh on every run from current config and current
remote state. It is never persisted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from .domain_types import ExistingGrant, Grant, GrantKind, PrincipalKind


class RequestType(str, Enum):
    """Admin request types understood by the remote service."""

    ADMIN_ASSIGN = "AdminAssign"
    ADMIN_UPDATE = "AdminUpdate"
    ADMIN_REMOVE = "AdminRemove"


class ExpirationType(str, Enum):
    """How a requested schedule ends."""

    AFTER_DATE_TIME = "AfterDateTime"
    NO_EXPIRATION = "NoExpiration"


class RemovalAction(str, Enum):
    """How a grant selected for deletion is taken away."""

    REMOVE = "remove"
    CANCEL = "cancel"


@dataclass(frozen=True)
class ScheduleInfo:
    """Start and expiration of a requested schedule."""

    start_date_time: datetime
    end_date_time: datetime | None = None

    @property
    def expiration_type(self) -> ExpirationType:
        """Expiration type implied by the end date."""
        if self.end_date_time is None:
            return ExpirationType.NO_EXPIRATION
        return ExpirationType.AFTER_DATE_TIME


@dataclass(frozen=True)
class ScheduleRequest:
    """A request submitted to the remote service.

    Attributes:
        request_name: Freshly generated correlation id, used by the remote
            side as the request resource name. Never reused.
        target_schedule_id: Schedule an admin removal revokes.
    """

    kind: GrantKind
    request_type: RequestType
    request_name: str
    target: str
    principal_id: str
    role_definition_id: str
    schedule: ScheduleInfo | None = None
    target_schedule_id: str | None = None


@dataclass(frozen=True)
class GrantCreate:
    """A desired grant with no observed counterpart."""

    grant: Grant
    request: ScheduleRequest

    @property
    def kind(self) -> GrantKind:
        return self.grant.kind


@dataclass(frozen=True)
class GrantUpdate:
    """A desired grant whose observed schedule differs."""

    grant: Grant
    existing: ExistingGrant
    request: ScheduleRequest

    @property
    def kind(self) -> GrantKind:
        return self.grant.kind


@dataclass(frozen=True)
class GrantRemoval:
    """An observed grant with no desired counterpart.

    Exactly one of `request` (admin removal of a live schedule) or
    `cancel_request_name` (cancellation of a pending request) is set.
    """

    existing: ExistingGrant
    principal_name: str
    role_name: str
    action: RemovalAction
    request: ScheduleRequest | None = None
    cancel_request_name: str | None = None

    @property
    def kind(self) -> GrantKind:
        return self.existing.kind

    @property
    def principal_kind(self) -> PrincipalKind:
        return self.existing.principal_kind

    @property
    def cancel(self) -> bool:
        """Whether this removal is a cancellation."""
        return self.action is RemovalAction.CANCEL


@dataclass(frozen=True)
class PolicyUpdate:
    """A full replacement rule set for a remote role management policy."""

    target: str
    role_name: str
    policy_id: str
    rules: tuple[dict[str, Any], ...]


@dataclass
class Plan:
    """The set of changes that brings remote state in line with config."""

    creates: list[GrantCreate] = field(default_factory=list)
    updates: list[GrantUpdate] = field(default_factory=list)
    deletes: list[GrantRemoval] = field(default_factory=list)
    policy_updates: list[PolicyUpdate] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        """True if applying the plan would change nothing."""
        return not (self.creates or self.updates or self.deletes or self.policy_updates)

    def creates_for(self, kind: GrantKind) -> list[GrantCreate]:
        return [c for c in self.creates if c.kind is kind]

    def updates_for(self, kind: GrantKind) -> list[GrantUpdate]:
        return [u for u in self.updates if u.kind is kind]

    def deletes_for(self, kind: GrantKind) -> list[GrantRemoval]:
        return [d for d in self.deletes if d.kind is kind]

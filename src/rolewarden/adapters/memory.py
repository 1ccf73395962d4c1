"""In-memory authorization service for tests and dry runs.

Implements both RemoteStateReader and RemoteMutator against plain
dictionaries. Submitted requests take effect immediately: assignments
become Provisioned schedules, removals and cancellations delete them.
"""

from __future__ import annotations

import itertools
from typing import Any

from rolewarden.core.domain_types import (
    CallerAssignment,
    EffectivePolicy,
    ExistingGrant,
    GrantKind,
    GrantStatus,
    PrincipalKind,
)
from rolewarden.core.exceptions import (
    PrincipalNotFoundError,
    RemoteCallError,
    RoleNotFoundError,
)
from rolewarden.core.plan import PolicyUpdate, RequestType, ScheduleRequest
from rolewarden.core.policy import default_rules


class InMemoryAuthorizationService:
    """In-memory remote service - holds principals, roles, grants and policies.

    Attributes:
        grants: Every schedule currently held, across kinds.
        submitted: Log of submitted requests, in order.
        cancelled: Log of cancelled request names, in order.
        policy_updates: Log of applied policy updates, in order.
    """

    def __init__(self) -> None:
        """Initialize an empty service."""
        self._ids = itertools.count(1)
        self._principals: dict[str, tuple[PrincipalKind, str]] = {}
        self._roles: dict[str, str] = {}
        self._role_actions: dict[str, list[str]] = {}
        self._policies: dict[tuple[str, str], EffectivePolicy] = {}
        self._caller: list[CallerAssignment] = []
        self.grants: list[ExistingGrant] = []
        self.submitted: list[ScheduleRequest] = []
        self.cancelled: list[str] = []
        self.policy_updates: list[PolicyUpdate] = []

    def _next_id(self, prefix: str) -> str:
        return f"{prefix}-{next(self._ids)}"

    # Seeding helpers

    def add_principal(
        self, name: str, kind: PrincipalKind, principal_id: str | None = None
    ) -> str:
        principal_id = principal_id or self._next_id(kind.value.lower())
        self._principals[principal_id] = (kind, name)
        return principal_id

    def add_role(
        self,
        name: str,
        role_definition_id: str | None = None,
        actions: list[str] | None = None,
    ) -> str:
        role_definition_id = role_definition_id or self._next_id("role")
        self._roles[role_definition_id] = name
        self._role_actions[role_definition_id] = actions or []
        return role_definition_id

    def grant_caller(self, role_definition_id: str, scope: str) -> None:
        self._caller.append(CallerAssignment(role_definition_id=role_definition_id, scope=scope))

    def add_grant(self, grant: ExistingGrant) -> ExistingGrant:
        self.grants.append(grant)
        return grant

    def set_policy(
        self,
        target: str,
        role_name: str,
        rules: list[dict[str, Any]] | None = None,
        policy_id: str | None = None,
    ) -> EffectivePolicy:
        policy = EffectivePolicy(
            policy_id=policy_id or self._next_id("policy"),
            target=target,
            role_name=role_name,
            rules=tuple(rules if rules is not None else default_rules()),
        )
        self._policies[(target, role_name)] = policy
        return policy

    # RemoteStateReader

    async def list_existing_grants(
        self, kind: GrantKind, principal_kind: PrincipalKind
    ) -> list[ExistingGrant]:
        return [g for g in self.grants if g.kind is kind and g.principal_kind is principal_kind]

    async def resolve_principal_name(self, principal_id: str, principal_kind: PrincipalKind) -> str:
        entry = self._principals.get(principal_id)
        if entry is None or entry[0] is not principal_kind:
            raise PrincipalNotFoundError(principal_id, principal_kind.value)
        return entry[1]

    async def resolve_principal_id(self, name: str, principal_kind: PrincipalKind) -> str:
        matches = [
            pid for pid, (kind, pname) in self._principals.items()
            if kind is principal_kind and pname == name
        ]
        if len(matches) != 1:
            raise PrincipalNotFoundError(name, principal_kind.value)
        return matches[0]

    async def resolve_role_name(self, role_definition_id: str) -> str:
        if role_definition_id not in self._roles:
            raise RoleNotFoundError(role_definition_id)
        return self._roles[role_definition_id]

    async def resolve_role_definition_id(self, target: str, role_name: str) -> str:
        for role_definition_id, name in self._roles.items():
            if name == role_name:
                return role_definition_id
        raise RoleNotFoundError(role_name)

    async def get_effective_policy(self, target: str, role_name: str) -> EffectivePolicy:
        policy = self._policies.get((target, role_name))
        if policy is None:
            policy = self.set_policy(target, role_name)
        return policy

    async def get_caller_assignments(self, target: str) -> list[CallerAssignment]:
        return [a for a in self._caller if target.lower().startswith(a.scope.lower())]

    async def get_role_actions(self, role_definition_id: str) -> list[str]:
        return list(self._role_actions.get(role_definition_id, []))

    # RemoteMutator

    async def submit_request(self, request: ScheduleRequest) -> None:
        self.submitted.append(request)

        if request.request_type is RequestType.ADMIN_REMOVE:
            for grant in self.grants:
                if grant.id == request.target_schedule_id:
                    self.grants.remove(grant)
                    return
            raise RemoteCallError(
                f"schedule '{request.target_schedule_id}' not found", status_code=404
            )

        if request.schedule is None:
            raise RemoteCallError("schedule info is required", status_code=400)

        principal_kind, _ = self._principals[request.principal_id]
        replacement = ExistingGrant(
            id=self._next_id("schedule"),
            kind=request.kind,
            principal_id=request.principal_id,
            principal_kind=principal_kind,
            role_definition_id=request.role_definition_id,
            target=request.target,
            status=GrantStatus.PROVISIONED.value,
            request_name=request.request_name,
            start_date_time=request.schedule.start_date_time,
            end_date_time=request.schedule.end_date_time,
        )

        if request.request_type is RequestType.ADMIN_UPDATE:
            for position, grant in enumerate(self.grants):
                if (
                    grant.kind is request.kind
                    and grant.target == request.target
                    and grant.principal_id == request.principal_id
                    and grant.role_definition_id == request.role_definition_id
                ):
                    self.grants[position] = replacement.model_copy(update={"id": grant.id})
                    return
            raise RemoteCallError("no schedule to update", status_code=404)

        self.grants.append(replacement)

    async def cancel_request(self, kind: GrantKind, target: str, request_name: str) -> None:
        for grant in self.grants:
            if (
                grant.kind is kind
                and grant.request_name == request_name
                and grant.status != GrantStatus.PROVISIONED.value
            ):
                self.grants.remove(grant)
                self.cancelled.append(request_name)
                return
        raise RemoteCallError(f"request '{request_name}' cannot be cancelled", status_code=400)

    async def update_policy(self, update: PolicyUpdate) -> None:
        self.policy_updates.append(update)
        self._policies[(update.target, update.role_name)] = EffectivePolicy(
            policy_id=update.policy_id,
            target=update.target,
            role_name=update.role_name,
            rules=update.rules,
        )

"""Reconciliation planner - the "brain" of the system.

This module computes a Plan in four stages:
1. Validate desired state and assemble desired policy rules (no remote calls)
2. Check the caller's permissions (FAIL FAST before anything else is read)
3. Diff grants per grant kind and principal kind
4. Diff the role management policy of every eligible (target, role) pair

The planner only uses the protocol interfaces; it contains no
infrastructure-specific code.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import structlog

from .domain_types import DesiredState, Grant, GrantKind, PrincipalKind
from .matcher import ObservedGrant, diff_grants, resolve_observed
from .permissions import PermissionGuard, RequiredActions
from .plan import (
    GrantCreate,
    GrantUpdate,
    Plan,
    RequestType,
    ScheduleInfo,
    ScheduleRequest,
)
from .policy import RulesetResolver, build_desired_rules, plan_policy_update
from .removal import resolve_removal
from .validation import validate_desired_state

if TYPE_CHECKING:
    from .interfaces import RemoteStateReader

logger = structlog.get_logger()

PolicyPair = tuple[str, str]


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _new_request_name() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class PlannerConfig:
    """Configuration for the reconciliation planner.

    Attributes:
        guard_target: Scope at which the caller's permissions are checked.
        required_actions: Allow-lists for the permission guard.
        managed_groups: Whether targets are managed group names rather
            than resource scopes.
        principal_kinds: Principal kinds to reconcile, in planning order.
    """

    guard_target: str
    required_actions: RequiredActions
    managed_groups: bool = False
    principal_kinds: tuple[PrincipalKind, ...] = (PrincipalKind.GROUP, PrincipalKind.USER)


class ReconciliationPlanner:
    """Computes the plan that brings remote state in line with config.

    The planner is stateless between runs; every call to `plan` reads
    remote state afresh through the reader.
    """

    def __init__(
        self,
        reader: RemoteStateReader,
        config: PlannerConfig,
        clock: Callable[[], datetime] = _utcnow,
        new_request_name: Callable[[], str] = _new_request_name,
    ) -> None:
        """Initialize the planner.

        Args:
            reader: Remote state reader (memoised for the run).
            config: Planner configuration.
            clock: Source of the start time for new schedules.
            new_request_name: Factory for request correlation ids.
        """
        self.reader = reader
        self.config = config
        self.clock = clock
        self.new_request_name = new_request_name
        self.guard = PermissionGuard(reader, config.required_actions)

    async def plan(self, desired: DesiredState, plan_only: bool) -> Plan:
        """Compute a plan.

        Args:
            desired: Desired grants, policies and rulesets.
            plan_only: Whether the plan will only be rendered. Selects the
                read-only permission allow-list.

        Returns:
            The plan. Empty if remote state already matches.

        Raises:
            ConfigurationError: If desired state is invalid.
            PermissionDeniedError: If the caller lacks the required actions.
            ResolutionError: If a remote id or name no longer resolves.
            UnknownGrantStatusError: If a grant to delete has an unknown status.
            RemoteCallError: If a remote read fails.
        """
        log = logger.bind(
            guard_target=self.config.guard_target,
            plan_only=plan_only,
            grants=len(desired.grants),
        )
        log.info("planning_started")

        validate_desired_state(desired)
        desired_rules = self._assemble_desired_rules(desired)
        log.info("desired_state_validated", policy_pairs=len(desired_rules))

        await self.guard.ensure(self.config.guard_target, plan_only)

        plan = Plan()
        for kind in (GrantKind.ACTIVE, GrantKind.ELIGIBLE):
            for principal_kind in self.config.principal_kinds:
                await self._plan_grants(plan, desired, kind, principal_kind)

        for (target, role_name), rules in desired_rules.items():
            effective = await self.reader.get_effective_policy(target, role_name)
            update = plan_policy_update(rules, effective)
            if update is not None:
                plan.policy_updates.append(update)

        log.info(
            "planning_completed",
            creates=len(plan.creates),
            updates=len(plan.updates),
            deletes=len(plan.deletes),
            policy_updates=len(plan.policy_updates),
        )
        return plan

    def _assemble_desired_rules(
        self, desired: DesiredState
    ) -> dict[PolicyPair, list[dict[str, Any]]]:
        resolver = RulesetResolver(desired.policies, desired.rulesets, self.config.managed_groups)

        extras: dict[PolicyPair, list[str]] = {}
        for grant in desired.grants:
            if grant.kind is not GrantKind.ELIGIBLE:
                continue
            names = extras.setdefault((grant.target, grant.role_name), [])
            if grant.ruleset_name is not None and grant.ruleset_name not in names:
                names.append(grant.ruleset_name)

        return {
            pair: build_desired_rules(resolver.rulesets_for(pair[0], pair[1], names))
            for pair, names in extras.items()
        }

    async def _plan_grants(
        self,
        plan: Plan,
        desired: DesiredState,
        kind: GrantKind,
        principal_kind: PrincipalKind,
    ) -> None:
        log = logger.bind(kind=kind.value, principal_kind=principal_kind.value)

        wanted = [
            g for g in desired.grants if g.kind is kind and g.principal_kind is principal_kind
        ]
        existing = await self.reader.list_existing_grants(kind, principal_kind)
        observed = await resolve_observed(
            existing,
            self.reader.resolve_principal_name,
            self.reader.resolve_role_name,
        )
        diff = diff_grants(wanted, observed)

        for grant in diff.creates:
            plan.creates.append(await self._create(grant))
        for grant, match in diff.updates:
            plan.updates.append(self._update(grant, match))
        for item in diff.deletes:
            plan.deletes.append(resolve_removal(item, self.new_request_name))

        log.info(
            "grants_planned",
            desired=len(wanted),
            existing=len(existing),
            creates=len(diff.creates),
            updates=len(diff.updates),
            deletes=len(diff.deletes),
        )

    async def _create(self, grant: Grant) -> GrantCreate:
        principal_id = await self.reader.resolve_principal_id(
            grant.principal_name, grant.principal_kind
        )
        role_definition_id = await self.reader.resolve_role_definition_id(
            grant.target, grant.role_name
        )
        request = ScheduleRequest(
            kind=grant.kind,
            request_type=RequestType.ADMIN_ASSIGN,
            request_name=self.new_request_name(),
            target=grant.target,
            principal_id=principal_id,
            role_definition_id=role_definition_id,
            schedule=ScheduleInfo(
                start_date_time=grant.start_date_time or self.clock(),
                end_date_time=grant.end_date_time,
            ),
        )
        return GrantCreate(grant=grant, request=request)

    def _update(self, grant: Grant, match: ObservedGrant) -> GrantUpdate:
        existing = match.existing
        start = grant.start_date_time or existing.start_date_time or self.clock()
        request = ScheduleRequest(
            kind=grant.kind,
            request_type=RequestType.ADMIN_UPDATE,
            request_name=self.new_request_name(),
            target=existing.target,
            principal_id=existing.principal_id,
            role_definition_id=existing.role_definition_id,
            schedule=ScheduleInfo(start_date_time=start, end_date_time=grant.end_date_time),
        )
        return GrantUpdate(grant=grant, existing=existing, request=request)

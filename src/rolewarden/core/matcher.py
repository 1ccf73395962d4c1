"""Grant matcher - correlates desired and observed grants.

Correlation is by CorrelationKey (target, role name, principal name), never
by remote identifier. Observed grants are first resolved from opaque ids to
names; a dangling id aborts the comparison.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field

import structlog

from .domain_types import CorrelationKey, ExistingGrant, Grant, GrantStatus, PrincipalKind

logger = structlog.get_logger()

PrincipalNameResolver = Callable[[str, PrincipalKind], Awaitable[str]]
RoleNameResolver = Callable[[str], Awaitable[str]]


@dataclass(frozen=True)
class ObservedGrant:
    """An existing grant together with its resolved names."""

    existing: ExistingGrant
    principal_name: str
    role_name: str

    @property
    def key(self) -> CorrelationKey:
        return CorrelationKey(self.existing.target, self.role_name, self.principal_name)


@dataclass
class GrantDiff:
    """Outcome of matching one desired set against one observed set."""

    creates: list[Grant] = field(default_factory=list)
    updates: list[tuple[Grant, ObservedGrant]] = field(default_factory=list)
    deletes: list[ObservedGrant] = field(default_factory=list)
    unchanged: list[tuple[Grant, ObservedGrant]] = field(default_factory=list)


def needs_update(desired: Grant, existing: ExistingGrant) -> bool:
    """Decide whether a matched grant's schedule has drifted.

    An unset desired start is never compared: the remote start is
    authoritative and is carried forward.

    Args:
        desired: The desired grant.
        existing: The observed grant with the same correlation key.

    Returns:
        True if an update request is required.
    """
    if desired.start_date_time is not None and desired.start_date_time != existing.start_date_time:
        return True
    if (desired.end_date_time is None) != (existing.end_date_time is None):
        return True
    return desired.end_date_time != existing.end_date_time


async def resolve_observed(
    existing: Sequence[ExistingGrant],
    resolve_principal_name: PrincipalNameResolver,
    resolve_role_name: RoleNameResolver,
) -> list[ObservedGrant]:
    """Resolve the remote identifiers of observed grants to names.

    Raises:
        ResolutionError: If any principal or role id no longer resolves.
    """
    observed = []
    for grant in existing:
        principal_name = await resolve_principal_name(grant.principal_id, grant.principal_kind)
        role_name = await resolve_role_name(grant.role_definition_id)
        observed.append(ObservedGrant(grant, principal_name, role_name))
    return observed


def _preferred(candidates: list[ObservedGrant]) -> ObservedGrant:
    # A live schedule is the one an update must be compared against.
    for candidate in candidates:
        if candidate.existing.status == GrantStatus.PROVISIONED.value:
            return candidate
    return candidates[0]


def diff_grants(desired: Sequence[Grant], observed: Sequence[ObservedGrant]) -> GrantDiff:
    """Compute creates, updates, deletes and unchanged grants.

    Updates are only produced for grant kinds with a mutable schedule.

    Args:
        desired: Desired grants of one kind and principal kind. Keys must
            be unique (checked by validation beforehand).
        observed: Observed grants of the same kind and principal kind.

    Returns:
        GrantDiff partitioning both inputs.
    """
    by_key: dict[CorrelationKey, list[ObservedGrant]] = {}
    for item in observed:
        by_key.setdefault(item.key, []).append(item)

    desired_keys = {grant.key for grant in desired}
    diff = GrantDiff()

    for grant in desired:
        matches = by_key.get(grant.key)
        if not matches:
            diff.creates.append(grant)
            continue
        match = _preferred(matches)
        if grant.kind.supports_schedule_update and needs_update(grant, match.existing):
            diff.updates.append((grant, match))
        else:
            diff.unchanged.append((grant, match))

    diff.deletes.extend(item for item in observed if item.key not in desired_keys)

    logger.debug(
        "grants_diffed",
        creates=len(diff.creates),
        updates=len(diff.updates),
        deletes=len(diff.deletes),
        unchanged=len(diff.unchanged),
    )
    return diff

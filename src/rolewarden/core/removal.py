"""Delete/cancel resolver.

A grant selected for deletion is either live (Provisioned), in which case
an admin removal request must target its schedule, or still pending, in
which case the pending request itself must be cancelled by name.
"""

from __future__ import annotations

from collections.abc import Callable

from .domain_types import GrantStatus
from .exceptions import UnknownGrantStatusError
from .matcher import ObservedGrant
from .plan import GrantRemoval, RemovalAction, RequestType, ScheduleRequest

_KNOWN_STATUSES = frozenset(status.value for status in GrantStatus)


def resolve_removal(observed: ObservedGrant, new_request_name: Callable[[], str]) -> GrantRemoval:
    """Choose between admin removal and cancellation for a grant.

    Args:
        observed: The grant to take away.
        new_request_name: Factory for a fresh request correlation id.

    Returns:
        A removal carrying either an AdminRemove request or the name of
        the request to cancel.

    Raises:
        UnknownGrantStatusError: If the status is outside the known domain.
    """
    existing = observed.existing
    if existing.status not in _KNOWN_STATUSES:
        raise UnknownGrantStatusError(existing.status, existing.id)

    if existing.status == GrantStatus.PROVISIONED.value:
        return GrantRemoval(
            existing=existing,
            principal_name=observed.principal_name,
            role_name=observed.role_name,
            action=RemovalAction.REMOVE,
            request=ScheduleRequest(
                kind=existing.kind,
                request_type=RequestType.ADMIN_REMOVE,
                request_name=new_request_name(),
                target=existing.target,
                principal_id=existing.principal_id,
                role_definition_id=existing.role_definition_id,
                target_schedule_id=existing.id,
            ),
        )

    return GrantRemoval(
        existing=existing,
        principal_name=observed.principal_name,
        role_name=observed.role_name,
        action=RemovalAction.CANCEL,
        cancel_request_name=existing.request_name,
    )

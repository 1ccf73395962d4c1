"""Protocol definitions for the remote authorization service.

This module defines the interfaces (Protocols) that adapters must implement.
The core domain only depends on these protocols, never on concrete implementations.

Readers are expected to memoise lookups for the lifetime of one run; the
core may ask for the same name or list many times.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .domain_types import (
        CallerAssignment,
        EffectivePolicy,
        ExistingGrant,
        GrantKind,
        PrincipalKind,
    )
    from .plan import PolicyUpdate, ScheduleRequest


@runtime_checkable
class RemoteStateReader(Protocol):
    """Read-only view of the remote authorization service."""

    async def list_existing_grants(
        self,
        kind: GrantKind,
        principal_kind: PrincipalKind,
    ) -> list[ExistingGrant]:
        """List grants of a kind held by principals of a kind.

        Args:
            kind: Active or eligible.
            principal_kind: Users or groups.

        Returns:
            Every matching grant within the reader's scope.

        Raises:
            RemoteCallError: If the listing fails.
        """
        ...

    async def resolve_principal_name(self, principal_id: str, principal_kind: PrincipalKind) -> str:
        """Resolve a principal's stable id to its human-readable name.

        Raises:
            PrincipalNotFoundError: If the id no longer resolves.
        """
        ...

    async def resolve_principal_id(self, name: str, principal_kind: PrincipalKind) -> str:
        """Resolve a principal's human-readable name to its stable id.

        Raises:
            PrincipalNotFoundError: If no single principal has that name.
        """
        ...

    async def resolve_role_name(self, role_definition_id: str) -> str:
        """Resolve a role definition id to the role's name.

        Raises:
            RoleNotFoundError: If the id no longer resolves.
        """
        ...

    async def resolve_role_definition_id(self, target: str, role_name: str) -> str:
        """Resolve a role name to the role definition id valid at a target.

        Raises:
            RoleNotFoundError: If the role does not exist at the target.
        """
        ...

    async def get_effective_policy(self, target: str, role_name: str) -> EffectivePolicy:
        """Fetch the effective role management policy for a target and role.

        Raises:
            PolicyNotFoundError: If no single policy applies.
        """
        ...

    async def get_caller_assignments(self, target: str) -> list[CallerAssignment]:
        """List role assignments held by the calling principal at a target."""
        ...

    async def get_role_actions(self, role_definition_id: str) -> list[str]:
        """List the actions a role definition grants."""
        ...


@runtime_checkable
class RemoteMutator(Protocol):
    """Mutating operations on the remote authorization service."""

    async def submit_request(self, request: ScheduleRequest) -> None:
        """Submit an admin assign, update or removal request.

        Raises:
            RemoteCallError: If the service rejects the request.
        """
        ...

    async def cancel_request(self, kind: GrantKind, target: str, request_name: str) -> None:
        """Cancel a pending request by name.

        Raises:
            RemoteCallError: If the service rejects the cancellation.
        """
        ...

    async def update_policy(self, update: PolicyUpdate) -> None:
        """Replace the whole rule set of a role management policy.

        Raises:
            RemoteCallError: If the service rejects the update.
        """
        ...

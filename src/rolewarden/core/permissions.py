"""Permission guard - verifies the caller may plan or apply at a target."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from .exceptions import PermissionDeniedError

if TYPE_CHECKING:
    from .interfaces import RemoteStateReader

logger = structlog.get_logger()

RESOURCE_NAMESPACE = "Microsoft.Authorization"
DIRECTORY_NAMESPACE = "microsoft.directory"


@dataclass(frozen=True)
class RequiredActions:
    """Closed allow-lists of actions, one for applying and one for planning."""

    apply: frozenset[str]
    plan: frozenset[str]

    @classmethod
    def for_namespace(
        cls,
        namespace: str,
        extra_apply: tuple[str, ...] = (),
        extra_plan: tuple[str, ...] = (),
    ) -> RequiredActions:
        """Build the allow-lists for a provider namespace.

        Args:
            namespace: Provider namespace, e.g. Microsoft.Authorization.
            extra_apply: Further actions sufficient to apply.
            extra_plan: Further actions sufficient to plan only.
        """
        apply = frozenset(a.lower() for a in ("*", f"{namespace}/*", *extra_apply))
        plan = apply | {a.lower() for a in ("*/read", f"{namespace}/*/read", *extra_plan)}
        return cls(apply=apply, plan=plan)

    def allowed(self, plan_only: bool) -> frozenset[str]:
        return self.plan if plan_only else self.apply


class PermissionGuard:
    """Checks the caller's own role assignments before any mutation.

    The caller passes if at least one of its assignments at the target
    resolves to a role granting an allowed action. Action names are
    compared case-insensitively.
    """

    def __init__(self, reader: RemoteStateReader, required: RequiredActions) -> None:
        """Initialize the guard.

        Args:
            reader: Source of caller assignments and role actions.
            required: Allow-lists for the current mode.
        """
        self.reader = reader
        self.required = required

    async def ensure(self, target: str, plan_only: bool) -> None:
        """Raise unless the caller holds an allowed action at the target.

        Raises:
            PermissionDeniedError: If no assignment grants an allowed action.
        """
        allowed = self.required.allowed(plan_only)
        log = logger.bind(target=target, plan_only=plan_only)

        assignments = await self.reader.get_caller_assignments(target)
        seen: set[str] = set()
        for assignment in assignments:
            if assignment.role_definition_id in seen:
                continue
            seen.add(assignment.role_definition_id)
            actions = await self.reader.get_role_actions(assignment.role_definition_id)
            if any(action.lower() in allowed for action in actions):
                log.info(
                    "permission_check_passed", role_definition_id=assignment.role_definition_id
                )
                return

        log.error("permission_check_failed", assignments=len(assignments))
        raise PermissionDeniedError(target, tuple(sorted(allowed)))


RESOURCE_ACTIONS = RequiredActions.for_namespace(RESOURCE_NAMESPACE)

# Built-in directory roles enumerate actions; none grants the namespace wildcard.
DIRECTORY_ACTIONS = RequiredActions.for_namespace(
    DIRECTORY_NAMESPACE,
    extra_apply=("microsoft.directory/groups/allProperties/allTasks",),
    extra_plan=("microsoft.directory/groups/allProperties/read",),
)

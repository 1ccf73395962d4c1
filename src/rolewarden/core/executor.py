"""Plan executor - issues the remote mutations a plan implies.

Order is fixed: policy updates, then for active and then eligible grants
creates, updates and deletes/cancels. The first failure aborts the run;
items already applied stay applied. Re-running recomputes the remaining
delta from fresh remote state.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from .domain_types import GrantKind
from .exceptions import InvalidPlanError
from .plan import GrantRemoval, Plan

if TYPE_CHECKING:
    from .interfaces import RemoteMutator

logger = structlog.get_logger()


@dataclass(frozen=True)
class ApplySummary:
    """Counts of applied changes. Policy updates count as changes."""

    added: int = 0
    changed: int = 0
    deleted: int = 0

    def __str__(self) -> str:
        return f"{self.added} added, {self.changed} changed, {self.deleted} deleted"


class PlanExecutor:
    """Applies a plan item by item through a remote mutator."""

    def __init__(self, mutator: RemoteMutator) -> None:
        self.mutator = mutator

    async def apply(self, plan: Plan) -> ApplySummary:
        """Apply every item of a plan in order.

        Returns:
            Summary of what was applied.

        Raises:
            RemoteCallError: On the first rejected mutation.
            InvalidPlanError: If a removal lacks the request its action needs.
        """
        added = changed = deleted = 0

        for update in plan.policy_updates:
            logger.info("applying_policy_update", target=update.target, role_name=update.role_name)
            await self.mutator.update_policy(update)
            changed += 1

        for kind in (GrantKind.ACTIVE, GrantKind.ELIGIBLE):
            log = logger.bind(kind=kind.value)

            for create in plan.creates_for(kind):
                log.info(
                    "applying_create",
                    target=create.grant.target,
                    role_name=create.grant.role_name,
                    principal_name=create.grant.principal_name,
                )
                await self.mutator.submit_request(create.request)
                added += 1

            if kind.supports_schedule_update:
                for update in plan.updates_for(kind):
                    log.info(
                        "applying_update",
                        target=update.grant.target,
                        role_name=update.grant.role_name,
                        principal_name=update.grant.principal_name,
                    )
                    await self.mutator.submit_request(update.request)
                    changed += 1

            for removal in plan.deletes_for(kind):
                await self._remove(removal)
                deleted += 1

        summary = ApplySummary(added=added, changed=changed, deleted=deleted)
        logger.info("apply_completed", summary=str(summary))
        return summary

    async def _remove(self, removal: GrantRemoval) -> None:
        log = logger.bind(
            kind=removal.kind.value,
            target=removal.existing.target,
            role_name=removal.role_name,
            principal_name=removal.principal_name,
        )
        if removal.cancel:
            if removal.cancel_request_name is None:
                raise InvalidPlanError(f"cancellation of '{removal.existing.id}' names no request")
            log.info("applying_cancel", request_name=removal.cancel_request_name)
            await self.mutator.cancel_request(
                removal.kind, removal.existing.target, removal.cancel_request_name
            )
        else:
            if removal.request is None:
                raise InvalidPlanError(f"removal of '{removal.existing.id}' carries no request")
            log.info("applying_remove", schedule_id=removal.existing.id)
            await self.mutator.submit_request(removal.request)

"""Azure Resource Manager adapter - PIM for Azure resources.

Implements RemoteStateReader and RemoteMutator for role assignment and
role eligibility schedules under one subscription. Principals are
resolved through Microsoft Graph.
"""

from __future__ import annotations

from typing import Any

import structlog

from rolewarden.core.domain_types import (
    CallerAssignment,
    EffectivePolicy,
    ExistingGrant,
    GrantKind,
    PrincipalKind,
)
from rolewarden.core.exceptions import (
    PolicyNotFoundError,
    RemoteCallError,
    RoleNotFoundError,
)
from rolewarden.core.plan import PolicyUpdate, RequestType, ScheduleRequest

from ..cache import RunCache
from .directory import GraphDirectory, odata_quote
from .http import AzureHttpClient
from .schedules import last_segment, schedule_info_body

logger = structlog.get_logger()

PIM_API_VERSION = "2020-10-01"
RBAC_API_VERSION = "2022-04-01"
PROVIDER = "providers/Microsoft.Authorization"

_SCHEDULES = {
    GrantKind.ACTIVE: "roleAssignmentSchedules",
    GrantKind.ELIGIBLE: "roleEligibilitySchedules",
}
_REQUESTS = {
    GrantKind.ACTIVE: "roleAssignmentScheduleRequests",
    GrantKind.ELIGIBLE: "roleEligibilityScheduleRequests",
}
_REQUEST_ID_PROPERTY = {
    GrantKind.ACTIVE: "roleAssignmentScheduleRequestId",
    GrantKind.ELIGIBLE: "roleEligibilityScheduleRequestId",
}
_TARGET_SCHEDULE_PROPERTY = {
    GrantKind.ACTIVE: "targetRoleAssignmentScheduleId",
    GrantKind.ELIGIBLE: "targetRoleEligibilityScheduleId",
}


class AzureResourceService:
    """PIM schedules, role definitions and policies under a subscription.

    Attributes:
        scope: `/subscriptions/<id>`; only schedules at or below it are listed.
    """

    def __init__(
        self,
        arm: AzureHttpClient,
        directory: GraphDirectory,
        cache: RunCache,
        subscription_id: str,
        justification: str,
    ) -> None:
        """Initialize the service.

        Args:
            arm: Client for https://management.azure.com.
            directory: Graph principal lookups.
            cache: Run-scoped cache.
            subscription_id: Subscription whose schedules are reconciled.
            justification: Text attached to every submitted request.
        """
        self.arm = arm
        self.directory = directory
        self.cache = cache
        self.scope = f"/subscriptions/{subscription_id}"
        self.justification = justification

    # RemoteStateReader

    async def _schedules(self, kind: GrantKind) -> list[dict[str, Any]]:
        async def load() -> list[dict[str, Any]]:
            items = await self.arm.get_paged(
                f"{self.scope}/{PROVIDER}/{_SCHEDULES[kind]}",
                {"api-version": PIM_API_VERSION},
            )
            logger.debug("schedules_listed", kind=kind.value, count=len(items))
            return items

        return await self.cache.get_or_load(f"{kind.value}_schedules", self.scope, load)

    async def list_existing_grants(
        self, kind: GrantKind, principal_kind: PrincipalKind
    ) -> list[ExistingGrant]:
        """List directly assigned schedules of a kind held by users or groups.

        Activations of eligible grants and inherited memberships are never
        returned, so they are never deleted.
        """
        grants = []
        for item in await self._schedules(kind):
            properties = item.get("properties", {})
            if not str(properties.get("scope", "")).lower().startswith(self.scope.lower()):
                continue
            if properties.get("memberType") != "Direct":
                continue
            if kind is GrantKind.ACTIVE and properties.get("assignmentType") != "Assigned":
                continue
            if properties.get("principalType") != principal_kind.value:
                continue

            grants.append(
                ExistingGrant(
                    id=item["id"],
                    kind=kind,
                    principal_id=properties["principalId"],
                    principal_kind=principal_kind,
                    role_definition_id=properties["roleDefinitionId"],
                    target=properties["scope"],
                    status=properties.get("status", ""),
                    request_name=last_segment(properties.get(_REQUEST_ID_PROPERTY[kind]))
                    or item["name"],
                    start_date_time=properties.get("startDateTime"),
                    end_date_time=properties.get("endDateTime"),
                )
            )
        return grants

    async def resolve_principal_name(self, principal_id: str, principal_kind: PrincipalKind) -> str:
        return await self.directory.resolve_name(principal_id, principal_kind)

    async def resolve_principal_id(self, name: str, principal_kind: PrincipalKind) -> str:
        return await self.directory.resolve_id(name, principal_kind)

    async def _role_definition(self, role_definition_id: str) -> dict[str, Any]:
        async def load() -> dict[str, Any]:
            try:
                return await self.arm.get_json(
                    role_definition_id, {"api-version": RBAC_API_VERSION}
                )
            except RemoteCallError as e:
                if e.status_code == 404:
                    raise RoleNotFoundError(role_definition_id) from e
                raise

        return await self.cache.get_or_load("role_definition", role_definition_id.lower(), load)

    async def resolve_role_name(self, role_definition_id: str) -> str:
        definition = await self._role_definition(role_definition_id)
        role_name = definition.get("properties", {}).get("roleName")
        if not role_name:
            raise RoleNotFoundError(role_definition_id)
        return str(role_name)

    async def resolve_role_definition_id(self, target: str, role_name: str) -> str:
        """Resolve a role name at a scope.

        Raises:
            RoleNotFoundError: If zero or several definitions carry the name.
        """

        async def load() -> str:
            definitions = await self.arm.get_paged(
                f"{target}/{PROVIDER}/roleDefinitions",
                {
                    "api-version": RBAC_API_VERSION,
                    "$filter": f"roleName eq {odata_quote(role_name)}",
                },
            )
            if len(definitions) != 1:
                logger.warning(
                    "role_lookup_ambiguous", role_name=role_name, matches=len(definitions)
                )
                raise RoleNotFoundError(role_name)
            return str(definitions[0]["id"])

        return await self.cache.get_or_load("role_definition_id", (target.lower(), role_name), load)

    async def get_effective_policy(self, target: str, role_name: str) -> EffectivePolicy:
        """Fetch the policy assignment for a role at a scope.

        Raises:
            PolicyNotFoundError: If there is not exactly one assignment.
        """
        role_definition_id = await self.resolve_role_definition_id(target, role_name)
        assignments = await self.arm.get_paged(
            f"{target}/{PROVIDER}/roleManagementPolicyAssignments",
            {
                "api-version": PIM_API_VERSION,
                "$filter": f"roleDefinitionId eq {odata_quote(role_definition_id)}",
            },
        )
        if len(assignments) != 1:
            raise PolicyNotFoundError(
                f"expected one role management policy for '{role_name}' at '{target}', "
                f"found {len(assignments)}"
            )

        properties = assignments[0].get("properties", {})
        return EffectivePolicy(
            policy_id=properties["policyId"],
            target=target,
            role_name=role_name,
            rules=tuple(properties.get("effectiveRules") or ()),
        )

    async def get_caller_assignments(self, target: str) -> list[CallerAssignment]:
        caller_id = await self.directory.caller_object_id()
        assignments = await self.arm.get_paged(
            f"{target}/{PROVIDER}/roleAssignments",
            {"api-version": RBAC_API_VERSION, "$filter": f"assignedTo('{caller_id}')"},
        )
        return [
            CallerAssignment(
                role_definition_id=item["properties"]["roleDefinitionId"],
                scope=item["properties"]["scope"],
            )
            for item in assignments
        ]

    async def get_role_actions(self, role_definition_id: str) -> list[str]:
        definition = await self._role_definition(role_definition_id)
        actions: list[str] = []
        for permission in definition.get("properties", {}).get("permissions", []):
            actions.extend(permission.get("actions", []))
        return actions

    # RemoteMutator

    async def submit_request(self, request: ScheduleRequest) -> None:
        properties: dict[str, Any] = {
            "principalId": request.principal_id,
            "roleDefinitionId": request.role_definition_id,
            "requestType": request.request_type.value,
            "justification": self.justification,
        }
        if request.schedule is not None:
            properties["scheduleInfo"] = schedule_info_body(request.schedule)
        if request.request_type is RequestType.ADMIN_REMOVE:
            properties[_TARGET_SCHEDULE_PROPERTY[request.kind]] = request.target_schedule_id

        logger.info(
            "schedule_request_submitting",
            kind=request.kind.value,
            request_type=request.request_type.value,
            request_name=request.request_name,
            target=request.target,
        )
        await self.arm.put_json(
            f"{request.target}/{PROVIDER}/{_REQUESTS[request.kind]}/{request.request_name}",
            {"properties": properties},
            params={"api-version": PIM_API_VERSION},
        )

    async def cancel_request(self, kind: GrantKind, target: str, request_name: str) -> None:
        logger.info("schedule_request_cancelling", kind=kind.value, request_name=request_name)
        await self.arm.post(
            f"{target}/{PROVIDER}/{_REQUESTS[kind]}/{request_name}/cancel",
            params={"api-version": PIM_API_VERSION},
        )

    async def update_policy(self, update: PolicyUpdate) -> None:
        logger.info("policy_updating", policy_id=update.policy_id, role_name=update.role_name)
        await self.arm.patch_json(
            update.policy_id,
            {"properties": {"rules": list(update.rules)}},
            params={"api-version": PIM_API_VERSION},
        )

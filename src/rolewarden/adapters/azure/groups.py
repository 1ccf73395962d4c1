"""Microsoft Graph adapter - PIM for Groups.

Implements RemoteStateReader and RemoteMutator for membership and
ownership schedules of a fixed set of managed groups. Targets are group
display names; the "role" of a grant is its access id, `member` or
`owner`.

Graph spells rule types as `@odata.type` values, rule target
operations in lower case, and approvers as typed `singleUser` or
`groupMembers` objects. Rules are translated to the ARM spelling on read
and back on write, so one policy template serves both modes.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any

import structlog

from rolewarden.core.domain_types import (
    CallerAssignment,
    EffectivePolicy,
    ExistingGrant,
    GrantKind,
    PrincipalKind,
)
from rolewarden.core.exceptions import PolicyNotFoundError, RoleNotFoundError
from rolewarden.core.plan import PolicyUpdate, RequestType, ScheduleRequest

from ..cache import RunCache
from .directory import GraphDirectory, odata_quote
from .http import AzureHttpClient
from .schedules import schedule_info_body

logger = structlog.get_logger()

ACCESS_IDS = ("member", "owner")

_BASE = "/identityGovernance/privilegedAccess/group"
_SCHEDULES = {
    GrantKind.ACTIVE: f"{_BASE}/assignmentSchedules",
    GrantKind.ELIGIBLE: f"{_BASE}/eligibilitySchedules",
}
_REQUESTS = {
    GrantKind.ACTIVE: f"{_BASE}/assignmentScheduleRequests",
    GrantKind.ELIGIBLE: f"{_BASE}/eligibilityScheduleRequests",
}
_ACTIONS = {
    RequestType.ADMIN_ASSIGN: "adminAssign",
    RequestType.ADMIN_UPDATE: "adminUpdate",
    RequestType.ADMIN_REMOVE: "adminRemove",
}

_GRAPH_RULE_PREFIX = "#microsoft.graph.unified"

# ARM userType -> (Graph approver @odata.type, Graph id key)
_GRAPH_APPROVERS = {
    "User": ("#microsoft.graph.singleUser", "userId"),
    "Group": ("#microsoft.graph.groupMembers", "groupId"),
}


def approver_from_graph(approver: dict[str, Any]) -> dict[str, Any]:
    """Translate a Graph approver to the ARM `{id, userType}` shape."""
    for user_type, (odata_type, id_key) in _GRAPH_APPROVERS.items():
        if approver.get("@odata.type") == odata_type:
            translated = {
                k: v for k, v in approver.items() if k not in ("@odata.type", id_key)
            }
            translated.update({"id": approver.get(id_key), "userType": user_type})
            return translated
    return dict(approver)


def approver_to_graph(approver: dict[str, Any]) -> dict[str, Any]:
    """Translate an ARM approver to the Graph shape for its userType."""
    mapping = _GRAPH_APPROVERS.get(approver.get("userType") or "")
    if mapping is None:
        return dict(approver)
    odata_type, id_key = mapping
    translated: dict[str, Any] = {"@odata.type": odata_type, id_key: approver.get("id")}
    translated.update({k: v for k, v in approver.items() if k not in ("id", "userType")})
    return translated


def _with_approvers(
    rule: dict[str, Any], translate: Callable[[dict[str, Any]], dict[str, Any]]
) -> dict[str, Any]:
    setting = rule.get("setting")
    if not isinstance(setting, dict) or not setting.get("approvalStages"):
        return rule
    stages = []
    for stage in setting["approvalStages"]:
        stage = dict(stage)
        for key in ("primaryApprovers", "escalationApprovers"):
            if stage.get(key):
                stage[key] = [translate(approver) for approver in stage[key]]
        stages.append(stage)
    return {**rule, "setting": {**setting, "approvalStages": stages}}


def rule_from_graph(rule: dict[str, Any]) -> dict[str, Any]:
    """Translate a Graph policy rule to the ARM rule shape."""
    translated = {k: v for k, v in rule.items() if k != "@odata.type"}
    odata_type = rule.get("@odata.type", "")
    if odata_type.startswith(_GRAPH_RULE_PREFIX):
        translated["ruleType"] = odata_type[len(_GRAPH_RULE_PREFIX):]
    target = translated.get("target")
    if isinstance(target, dict) and target.get("operations"):
        translated["target"] = {
            **target,
            "operations": [op[:1].upper() + op[1:] for op in target["operations"]],
        }
    return _with_approvers(translated, approver_from_graph)


def rule_to_graph(rule: dict[str, Any]) -> dict[str, Any]:
    """Translate an ARM-shaped rule to a Graph policy rule."""
    translated: dict[str, Any] = {"@odata.type": f"{_GRAPH_RULE_PREFIX}{rule['ruleType']}"}
    translated.update({k: v for k, v in rule.items() if k != "ruleType"})
    target = translated.get("target")
    if isinstance(target, dict) and target.get("operations"):
        translated["target"] = {
            **target,
            "operations": [op[:1].lower() + op[1:] for op in target["operations"]],
        }
    return _with_approvers(translated, approver_to_graph)


class GraphGroupService:
    """PIM for Groups schedules and policies for a set of managed groups."""

    def __init__(
        self,
        graph: AzureHttpClient,
        directory: GraphDirectory,
        cache: RunCache,
        managed_groups: Sequence[str],
        justification: str,
    ) -> None:
        """Initialize the service.

        Args:
            graph: Client for https://graph.microsoft.com/v1.0.
            directory: Principal lookups.
            cache: Run-scoped cache.
            managed_groups: Display names of the groups whose schedules
                are reconciled.
            justification: Text attached to every submitted request.
        """
        self.graph = graph
        self.directory = directory
        self.cache = cache
        self.managed_groups = list(dict.fromkeys(managed_groups))
        self.justification = justification

    async def _group_id(self, name: str) -> str:
        return await self.directory.resolve_id(name, PrincipalKind.GROUP)

    async def _schedules(self, kind: GrantKind, group_name: str) -> list[dict[str, Any]]:
        async def load() -> list[dict[str, Any]]:
            group_id = await self._group_id(group_name)
            return await self.graph.get_paged(
                _SCHEDULES[kind], {"$filter": f"groupId eq {odata_quote(group_id)}"}
            )

        return await self.cache.get_or_load(f"group_{kind.value}_schedules", group_name, load)

    # RemoteStateReader

    async def list_existing_grants(
        self, kind: GrantKind, principal_kind: PrincipalKind
    ) -> list[ExistingGrant]:
        """List direct schedules of a kind held by users or groups.

        Activated assignments of eligible grants are never returned.
        """
        grants = []
        for group_name in self.managed_groups:
            for item in await self._schedules(kind, group_name):
                if str(item.get("memberType", "")).lower() != "direct":
                    continue
                assignment_type = str(item.get("assignmentType", "")).lower()
                if kind is GrantKind.ACTIVE and assignment_type != "assigned":
                    continue
                held_by = await self.directory.principal_kind_of(item["principalId"])
                if held_by is not principal_kind:
                    continue

                schedule = item.get("scheduleInfo") or {}
                expiration = schedule.get("expiration") or {}
                grants.append(
                    ExistingGrant(
                        id=item["id"],
                        kind=kind,
                        principal_id=item["principalId"],
                        principal_kind=principal_kind,
                        role_definition_id=item["accessId"],
                        target=group_name,
                        status=item.get("status", ""),
                        request_name=item.get("createdUsing") or item["id"],
                        start_date_time=schedule.get("startDateTime"),
                        end_date_time=expiration.get("endDateTime"),
                    )
                )
        return grants

    async def resolve_principal_name(self, principal_id: str, principal_kind: PrincipalKind) -> str:
        return await self.directory.resolve_name(principal_id, principal_kind)

    async def resolve_principal_id(self, name: str, principal_kind: PrincipalKind) -> str:
        return await self.directory.resolve_id(name, principal_kind)

    async def resolve_role_name(self, role_definition_id: str) -> str:
        if role_definition_id not in ACCESS_IDS:
            raise RoleNotFoundError(role_definition_id)
        return role_definition_id

    async def resolve_role_definition_id(self, target: str, role_name: str) -> str:
        if role_name not in ACCESS_IDS:
            raise RoleNotFoundError(role_name)
        return role_name

    async def get_effective_policy(self, target: str, role_name: str) -> EffectivePolicy:
        """Fetch the PIM policy governing one access id of a group.

        Raises:
            PolicyNotFoundError: If there is not exactly one assignment.
        """
        group_id = await self._group_id(target)
        assignments = await self.graph.get_paged(
            "/policies/roleManagementPolicyAssignments",
            {
                "$filter": (
                    f"scopeId eq {odata_quote(group_id)} and scopeType eq 'Group' "
                    f"and roleDefinitionId eq {odata_quote(role_name)}"
                ),
                "$expand": "policy($expand=rules)",
            },
        )
        if len(assignments) != 1:
            raise PolicyNotFoundError(
                f"expected one role management policy for '{role_name}' of group '{target}', "
                f"found {len(assignments)}"
            )

        assignment = assignments[0]
        policy = assignment.get("policy") or {}
        return EffectivePolicy(
            policy_id=assignment["policyId"],
            target=target,
            role_name=role_name,
            rules=tuple(rule_from_graph(rule) for rule in policy.get("rules", [])),
        )

    async def get_caller_assignments(self, target: str) -> list[CallerAssignment]:
        caller_id = await self.directory.caller_object_id()
        assignments = await self.graph.get_paged(
            "/roleManagement/directory/roleAssignments",
            {"$filter": f"principalId eq {odata_quote(caller_id)}"},
        )
        return [
            CallerAssignment(
                role_definition_id=item["roleDefinitionId"],
                scope=item.get("directoryScopeId", "/"),
            )
            for item in assignments
        ]

    async def get_role_actions(self, role_definition_id: str) -> list[str]:
        async def load() -> list[str]:
            definition = await self.graph.get_json(
                f"/roleManagement/directory/roleDefinitions/{role_definition_id}"
            )
            actions: list[str] = []
            for permission in definition.get("rolePermissions", []):
                actions.extend(permission.get("allowedResourceActions", []))
            return actions

        return await self.cache.get_or_load("directory_role_actions", role_definition_id, load)

    # RemoteMutator

    async def submit_request(self, request: ScheduleRequest) -> None:
        body: dict[str, Any] = {
            "accessId": request.role_definition_id,
            "principalId": request.principal_id,
            "groupId": await self._group_id(request.target),
            "action": _ACTIONS[request.request_type],
            "justification": self.justification,
        }
        if request.schedule is not None:
            body["scheduleInfo"] = schedule_info_body(request.schedule, camel_case_enums=True)

        logger.info(
            "schedule_request_submitting",
            kind=request.kind.value,
            action=body["action"],
            request_name=request.request_name,
            group=request.target,
        )
        await self.graph.post(_REQUESTS[request.kind], body)

    async def cancel_request(self, kind: GrantKind, target: str, request_name: str) -> None:
        logger.info("schedule_request_cancelling", kind=kind.value, request_name=request_name)
        await self.graph.post(f"{_REQUESTS[kind]}/{request_name}/cancel")

    async def update_policy(self, update: PolicyUpdate) -> None:
        """Patch every rule of a policy; Graph has no whole-policy rule update."""
        logger.info("policy_updating", policy_id=update.policy_id, group=update.target)
        for rule in update.rules:
            await self.graph.patch_json(
                f"/policies/roleManagementPolicies/{update.policy_id}/rules/{rule['id']}",
                rule_to_graph(rule),
            )

"""Unit tests for the Azure Resource Manager adapter."""

from __future__ import annotations

from datetime import timedelta

import pytest

from rolewarden.adapters.azure import AzureResourceService, GraphDirectory
from rolewarden.adapters.cache import RunCache
from rolewarden.core.domain_types import GrantKind, PrincipalKind
from rolewarden.core.exceptions import PolicyNotFoundError, RoleNotFoundError
from rolewarden.core.plan import PolicyUpdate, RequestType, ScheduleInfo, ScheduleRequest
from tests.fixtures.azure_http import FakeAzure
from tests.fixtures.domain_objects import (
    NOW,
    RESOURCE_GROUP_SCOPE,
    SUBSCRIPTION_ID,
    SUBSCRIPTION_SCOPE,
)

AUTH = f"{SUBSCRIPTION_SCOPE}/providers/Microsoft.Authorization"
RG_AUTH = f"{RESOURCE_GROUP_SCOPE}/providers/Microsoft.Authorization"
CONTRIBUTOR_ID = f"{AUTH}/roleDefinitions/b24988ac-6180-42a0-ab88-20f7382dd24c"


def _schedule(name: str, **properties: object) -> dict:
    defaults = {
        "scope": SUBSCRIPTION_SCOPE,
        "principalId": "group-1",
        "principalType": "Group",
        "roleDefinitionId": CONTRIBUTOR_ID,
        "memberType": "Direct",
        "assignmentType": "Assigned",
        "status": "Provisioned",
        "startDateTime": "2025-01-01T09:00:00Z",
        "roleEligibilityScheduleRequestId": f"{AUTH}/roleEligibilityScheduleRequests/req-{name}",
        "roleAssignmentScheduleRequestId": f"{AUTH}/roleAssignmentScheduleRequests/req-{name}",
    }
    return {
        "id": f"{AUTH}/schedules/{name}",
        "name": name,
        "properties": {**defaults, **properties},
    }


@pytest.fixture
def service(fake_azure: FakeAzure) -> AzureResourceService:
    """Return a resource service backed by the fake ARM and Graph."""
    cache = RunCache()
    directory = GraphDirectory(fake_azure.client("https://graph.test/v1.0", "graph"), cache)
    return AzureResourceService(
        fake_azure.client("https://arm.test", "arm"),
        directory,
        cache,
        subscription_id=SUBSCRIPTION_ID,
        justification="Managed by rolewarden",
    )


class TestListExistingGrants:
    """Tests for schedule listing and filtering."""

    async def test_filters_to_direct_grants_of_principal_kind(
        self, service: AzureResourceService, fake_azure: FakeAzure
    ) -> None:
        """Inherited, activated, other-kind and out-of-scope schedules are skipped."""
        fake_azure.json(
            "GET",
            f"{AUTH}/roleAssignmentSchedules",
            {
                "value": [
                    _schedule("direct"),
                    _schedule("inherited", memberType="Inherited"),
                    _schedule("activated", assignmentType="Activated"),
                    _schedule("user", principalType="User", principalId="user-1"),
                    _schedule("elsewhere", scope="/subscriptions/other"),
                ]
            },
        )

        grants = await service.list_existing_grants(GrantKind.ACTIVE, PrincipalKind.GROUP)

        assert [g.request_name for g in grants] == ["req-direct"]
        grant = grants[0]
        assert grant.principal_id == "group-1"
        assert grant.role_definition_id == CONTRIBUTOR_ID
        assert grant.start_date_time == NOW
        assert fake_azure.requests[0].url.params["api-version"] == "2020-10-01"

    async def test_schedules_are_listed_once_per_kind(
        self, service: AzureResourceService, fake_azure: FakeAzure
    ) -> None:
        """Groups and users of one kind share a single listing."""
        fake_azure.json(
            "GET",
            f"{AUTH}/roleEligibilitySchedules",
            {"value": [_schedule("g"), _schedule("u", principalType="User", principalId="user-1")]},
        )

        groups = await service.list_existing_grants(GrantKind.ELIGIBLE, PrincipalKind.GROUP)
        users = await service.list_existing_grants(GrantKind.ELIGIBLE, PrincipalKind.USER)

        assert [g.principal_id for g in groups] == ["group-1"]
        assert [u.principal_id for u in users] == ["user-1"]
        assert len(fake_azure.requests) == 1

    async def test_eligible_activations_are_not_filtered_by_assignment_type(
        self, service: AzureResourceService, fake_azure: FakeAzure
    ) -> None:
        fake_azure.json(
            "GET",
            f"{AUTH}/roleEligibilitySchedules",
            {"value": [_schedule("e", assignmentType=None)]},
        )

        grants = await service.list_existing_grants(GrantKind.ELIGIBLE, PrincipalKind.GROUP)

        assert len(grants) == 1


class TestRoleDefinitions:
    """Tests for role name and id resolution."""

    async def test_resolve_role_definition_id(
        self, service: AzureResourceService, fake_azure: FakeAzure
    ) -> None:
        fake_azure.json("GET", f"{AUTH}/roleDefinitions", {"value": [{"id": CONTRIBUTOR_ID}]})

        role_id = await service.resolve_role_definition_id(SUBSCRIPTION_SCOPE, "Contributor")

        assert role_id == CONTRIBUTOR_ID
        assert fake_azure.requests[0].url.params["$filter"] == "roleName eq 'Contributor'"

    async def test_unknown_role_name(
        self, service: AzureResourceService, fake_azure: FakeAzure
    ) -> None:
        fake_azure.json("GET", f"{AUTH}/roleDefinitions", {"value": []})

        with pytest.raises(RoleNotFoundError):
            await service.resolve_role_definition_id(SUBSCRIPTION_SCOPE, "Nonexistent")

    async def test_role_name_and_actions_share_one_lookup(
        self, service: AzureResourceService, fake_azure: FakeAzure
    ) -> None:
        fake_azure.json(
            "GET",
            CONTRIBUTOR_ID,
            {
                "properties": {
                    "roleName": "Contributor",
                    "permissions": [{"actions": ["*"]}, {"actions": ["Microsoft.Support/*"]}],
                }
            },
        )

        assert await service.resolve_role_name(CONTRIBUTOR_ID) == "Contributor"
        assert await service.get_role_actions(CONTRIBUTOR_ID) == ["*", "Microsoft.Support/*"]
        assert len(fake_azure.requests) == 1

    async def test_deleted_role_definition(self, service: AzureResourceService) -> None:
        with pytest.raises(RoleNotFoundError):
            await service.resolve_role_name(f"{AUTH}/roleDefinitions/gone")


class TestPolicies:
    """Tests for policy reads and writes."""

    async def test_effective_policy(
        self, service: AzureResourceService, fake_azure: FakeAzure
    ) -> None:
        fake_azure.json(
            "GET",
            f"{RG_AUTH}/roleDefinitions",
            {"value": [{"id": CONTRIBUTOR_ID}]},
        )
        fake_azure.json(
            "GET",
            f"{RG_AUTH}/roleManagementPolicyAssignments",
            {
                "value": [
                    {
                        "properties": {
                            "policyId": f"{AUTH}/roleManagementPolicies/policy-1",
                            "effectiveRules": [{"id": "Expiration_Admin_Eligibility"}],
                        }
                    }
                ]
            },
        )

        policy = await service.get_effective_policy(RESOURCE_GROUP_SCOPE, "Contributor")

        assert policy.policy_id.endswith("/policy-1")
        assert policy.target == RESOURCE_GROUP_SCOPE
        assert policy.rules == ({"id": "Expiration_Admin_Eligibility"},)
        policy_filter = fake_azure.requests[1].url.params["$filter"]
        assert policy_filter == f"roleDefinitionId eq '{CONTRIBUTOR_ID}'"

    async def test_missing_policy(
        self, service: AzureResourceService, fake_azure: FakeAzure
    ) -> None:
        fake_azure.json("GET", f"{AUTH}/roleDefinitions", {"value": [{"id": CONTRIBUTOR_ID}]})
        fake_azure.json("GET", f"{AUTH}/roleManagementPolicyAssignments", {"value": []})

        with pytest.raises(PolicyNotFoundError):
            await service.get_effective_policy(SUBSCRIPTION_SCOPE, "Contributor")

    async def test_update_policy_replaces_rules(
        self, service: AzureResourceService, fake_azure: FakeAzure
    ) -> None:
        policy_id = f"{AUTH}/roleManagementPolicies/policy-1"
        fake_azure.json("PATCH", policy_id, {})
        rules = ({"id": "Expiration_Admin_Eligibility", "maximumDuration": "P30D"},)

        await service.update_policy(
            PolicyUpdate(
                target=SUBSCRIPTION_SCOPE, role_name="Contributor", policy_id=policy_id, rules=rules
            )
        )

        request = fake_azure.sent("PATCH")[0]
        assert fake_azure.body(request) == {"properties": {"rules": list(rules)}}


class TestCaller:
    """Tests for the caller's own assignments."""

    async def test_caller_assignments(
        self, service: AzureResourceService, fake_azure: FakeAzure
    ) -> None:
        fake_azure.json("GET", "/v1.0/me", {"id": "caller-1"})
        fake_azure.json(
            "GET",
            f"{AUTH}/roleAssignments",
            {
                "value": [
                    {
                        "properties": {
                            "roleDefinitionId": CONTRIBUTOR_ID,
                            "scope": SUBSCRIPTION_SCOPE,
                        }
                    }
                ]
            },
        )

        assignments = await service.get_caller_assignments(SUBSCRIPTION_SCOPE)

        assert [(a.role_definition_id, a.scope) for a in assignments] == [
            (CONTRIBUTOR_ID, SUBSCRIPTION_SCOPE)
        ]
        assert fake_azure.requests[1].url.params["$filter"] == "assignedTo('caller-1')"


class TestMutations:
    """Tests for schedule requests."""

    async def test_assign_request_body(
        self, service: AzureResourceService, fake_azure: FakeAzure
    ) -> None:
        url = f"{AUTH}/roleEligibilityScheduleRequests/request-new-1"
        fake_azure.json("PUT", url, {}, status_code=201)

        await service.submit_request(
            ScheduleRequest(
                kind=GrantKind.ELIGIBLE,
                request_type=RequestType.ADMIN_ASSIGN,
                request_name="request-new-1",
                target=SUBSCRIPTION_SCOPE,
                principal_id="group-1",
                role_definition_id=CONTRIBUTOR_ID,
                schedule=ScheduleInfo(start_date_time=NOW, end_date_time=NOW + timedelta(days=30)),
            )
        )

        assert fake_azure.body(fake_azure.sent("PUT")[0]) == {
            "properties": {
                "principalId": "group-1",
                "roleDefinitionId": CONTRIBUTOR_ID,
                "requestType": "AdminAssign",
                "justification": "Managed by rolewarden",
                "scheduleInfo": {
                    "startDateTime": "2025-01-01T09:00:00Z",
                    "expiration": {"type": "AfterDateTime", "endDateTime": "2025-01-31T09:00:00Z"},
                },
            }
        }

    async def test_remove_request_targets_schedule(
        self, service: AzureResourceService, fake_azure: FakeAzure
    ) -> None:
        url = f"{AUTH}/roleAssignmentScheduleRequests/request-new-2"
        fake_azure.json("PUT", url, {}, status_code=201)

        await service.submit_request(
            ScheduleRequest(
                kind=GrantKind.ACTIVE,
                request_type=RequestType.ADMIN_REMOVE,
                request_name="request-new-2",
                target=SUBSCRIPTION_SCOPE,
                principal_id="group-1",
                role_definition_id=CONTRIBUTOR_ID,
                target_schedule_id="schedule-5",
            )
        )

        properties = fake_azure.body(fake_azure.sent("PUT")[0])["properties"]
        assert properties["requestType"] == "AdminRemove"
        assert properties["targetRoleAssignmentScheduleId"] == "schedule-5"
        assert "scheduleInfo" not in properties

    async def test_cancel_request(
        self, service: AzureResourceService, fake_azure: FakeAzure
    ) -> None:
        url = f"{AUTH}/roleEligibilityScheduleRequests/request-77/cancel"
        fake_azure.json("POST", url, {})

        await service.cancel_request(GrantKind.ELIGIBLE, SUBSCRIPTION_SCOPE, "request-77")

        assert fake_azure.sent("POST")[0].url.path == url

"""Unit tests for the reconciliation service."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from rolewarden.adapters.memory import InMemoryAuthorizationService
from rolewarden.config import LoadedConfig
from rolewarden.core.domain_types import DesiredState
from rolewarden.core.exceptions import ConfigurationError, PermissionDeniedError
from rolewarden.core.permissions import DIRECTORY_ACTIONS, RESOURCE_ACTIONS
from rolewarden.services import (
    Mode,
    ReconciliationService,
    RunOptions,
    load_config,
    planner_config,
)
from tests.fixtures.domain_objects import (
    SUBSCRIPTION_ID,
    SUBSCRIPTION_SCOPE,
    make_existing,
    make_grant,
)

RESOURCES = RunOptions(
    mode=Mode.RESOURCES, config_dir=Path("config"), subscription_id=SUBSCRIPTION_ID
)


def _loaded(*grants: object) -> LoadedConfig:
    return LoadedConfig(desired=DesiredState(grants=tuple(grants)))


class TestRunOptions:
    """Tests for RunOptions and the per-mode planner configuration."""

    def test_resources_scope(self) -> None:
        assert RESOURCES.scope == SUBSCRIPTION_SCOPE

    def test_groups_scope(self) -> None:
        assert RunOptions(mode=Mode.GROUPS, config_dir=Path("config")).scope == "managed groups"

    def test_resources_planner_config(self) -> None:
        config = planner_config(RESOURCES)

        assert config.guard_target == SUBSCRIPTION_SCOPE
        assert config.required_actions == RESOURCE_ACTIONS
        assert config.managed_groups is False

    def test_groups_planner_config(self) -> None:
        config = planner_config(RunOptions(mode=Mode.GROUPS, config_dir=Path("config")))

        assert config.guard_target == "/"
        assert config.required_actions == DIRECTORY_ACTIONS
        assert config.managed_groups is True


class TestLoadConfig:
    """Tests for load_config."""

    def test_resources_mode_requires_subscription(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="subscription id"):
            load_config(RunOptions(mode=Mode.RESOURCES, config_dir=tmp_path))

    def test_loads_per_mode(self, tmp_path: Path) -> None:
        (tmp_path / "managed-groups.yml").write_text("managedGroups:\n  - Payments Admins\n")
        (tmp_path / "users").mkdir()
        (tmp_path / "users" / "alice@example.com.yml").write_text(
            "managedGroups:\n  Payments Admins:\n    active:\n      - roleName: member\n"
        )

        loaded = load_config(RunOptions(mode=Mode.GROUPS, config_dir=tmp_path))

        assert [g.target for g in loaded.desired.grants] == ["Payments Admins"]
        assert loaded.managed_groups == ("Payments Admins",)


class TestReconciliationService:
    """Tests for ReconciliationService against the in-memory service."""

    async def test_plan_only_does_not_apply(
        self, memory_service: InMemoryAuthorizationService
    ) -> None:
        service = ReconciliationService(memory_service, planner_config(RESOURCES))

        result = await service.run(_loaded(make_grant()), plan_only=True)

        assert len(result.plan.creates) == 1
        assert result.summary is None
        assert await memory_service.list_existing_grants(
            make_grant().kind, make_grant().principal_kind
        ) == []

    async def test_apply_reports_summary(
        self, memory_service: InMemoryAuthorizationService
    ) -> None:
        memory_service.add_grant(make_existing(role_definition_id="role-reader", id="schedule-2"))
        service = ReconciliationService(memory_service, planner_config(RESOURCES))

        result = await service.run(_loaded(make_grant()), plan_only=False)

        assert result.summary is not None
        assert (result.summary.added, result.summary.changed, result.summary.deleted) == (1, 0, 1)

    async def test_empty_plan_skips_executor(
        self, memory_service: InMemoryAuthorizationService
    ) -> None:
        service = ReconciliationService(memory_service, planner_config(RESOURCES))
        service.executor.apply = AsyncMock()  # type: ignore[method-assign]

        result = await service.run(_loaded(), plan_only=False)

        assert result.plan.is_empty
        assert result.summary is None
        service.executor.apply.assert_not_awaited()

    async def test_permission_failure_propagates(self) -> None:
        service = ReconciliationService(InMemoryAuthorizationService(), planner_config(RESOURCES))

        with pytest.raises(PermissionDeniedError):
            await service.run(_loaded(make_grant()), plan_only=True)

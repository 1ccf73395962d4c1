"""Reconciliation service - wires config, adapters and the core for one run."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

import httpx
import structlog

from rolewarden.adapters.azure import (
    ARM_SCOPE,
    GRAPH_SCOPE,
    AzureHttpClient,
    AzureResourceService,
    CredentialTokenProvider,
    GraphDirectory,
    GraphGroupService,
)
from rolewarden.adapters.cache import RunCache
from rolewarden.config import (
    LoadedConfig,
    Settings,
    get_settings,
    load_groups_config,
    load_resources_config,
)
from rolewarden.core.executor import ApplySummary, PlanExecutor
from rolewarden.core.exceptions import ConfigurationError
from rolewarden.core.interfaces import RemoteMutator, RemoteStateReader
from rolewarden.core.permissions import DIRECTORY_ACTIONS, RESOURCE_ACTIONS
from rolewarden.core.plan import Plan
from rolewarden.core.planner import PlannerConfig, ReconciliationPlanner

if TYPE_CHECKING:
    from azure.core.credentials_async import AsyncTokenCredential

logger = structlog.get_logger()


class Mode(str, Enum):
    """What a run reconciles."""

    RESOURCES = "resources"
    GROUPS = "groups"


@dataclass(frozen=True)
class RunOptions:
    """Options of one run.

    Attributes:
        mode: Resources (ARM) or groups (PIM for Groups).
        config_dir: Config directory.
        subscription_id: Subscription to reconcile; resources mode only.
        plan_only: Compute and render the plan without applying it.
    """

    mode: Mode
    config_dir: Path
    subscription_id: str | None = None
    plan_only: bool = True

    @property
    def scope(self) -> str:
        """Scope the run operates at, as shown in reports."""
        if self.mode is Mode.RESOURCES:
            return f"/subscriptions/{self.subscription_id}"
        return "managed groups"


@dataclass(frozen=True)
class RunResult:
    """Outcome of a run. `summary` is None when nothing was applied."""

    loaded: LoadedConfig
    plan: Plan
    summary: ApplySummary | None = None


class AuthorizationService(RemoteStateReader, RemoteMutator, Protocol):
    """A remote service the planner reads from and the executor writes to."""


def load_config(options: RunOptions) -> LoadedConfig:
    """Load and validate the desired state for a run, without remote calls.

    Raises:
        ConfigurationError: If the config directory is invalid.
    """
    if options.mode is Mode.RESOURCES:
        if not options.subscription_id:
            raise ConfigurationError("a subscription id is required in resources mode")
        return load_resources_config(options.config_dir, options.subscription_id)
    return load_groups_config(options.config_dir)


def planner_config(options: RunOptions) -> PlannerConfig:
    """Permission guard scope and allow-lists for a mode."""
    if options.mode is Mode.RESOURCES:
        return PlannerConfig(guard_target=options.scope, required_actions=RESOURCE_ACTIONS)
    return PlannerConfig(guard_target="/", required_actions=DIRECTORY_ACTIONS, managed_groups=True)


class ReconciliationService:
    """Plans and optionally applies one reconciliation run."""

    def __init__(self, service: AuthorizationService, config: PlannerConfig) -> None:
        """Initialize the service.

        Args:
            service: Remote state reader and mutator for the run.
            config: Planner configuration for the run's mode.
        """
        self.service = service
        self.planner = ReconciliationPlanner(service, config)
        self.executor = PlanExecutor(service)

    async def run(self, loaded: LoadedConfig, plan_only: bool) -> RunResult:
        """Compute the plan and, unless plan_only, apply it.

        Raises:
            RolewardenError: On the first failure; nothing after it is applied.
        """
        plan = await self.planner.plan(loaded.desired, plan_only)
        if plan_only or plan.is_empty:
            return RunResult(loaded=loaded, plan=plan)

        summary = await self.executor.apply(plan)
        return RunResult(loaded=loaded, plan=plan, summary=summary)


@asynccontextmanager
async def open_azure_service(
    options: RunOptions,
    loaded: LoadedConfig,
    settings: Settings | None = None,
    credential: AsyncTokenCredential | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> AsyncIterator[AuthorizationService]:
    """Open the Azure adapter for a run's mode, closing its clients on exit.

    Args:
        options: Run options.
        loaded: Loaded config; supplies the managed groups in groups mode.
        settings: Runtime settings; defaults to the environment.
        credential: Async Azure credential; defaults to DefaultAzureCredential.
        transport: Optional HTTP transport shared by both clients.
    """
    settings = settings or get_settings()
    tokens = CredentialTokenProvider(credential)
    cache = RunCache()

    graph = AzureHttpClient(
        settings.graph_endpoint,
        tokens.for_scope(GRAPH_SCOPE),
        service_name="graph",
        timeout_seconds=settings.http_timeout_seconds,
        max_attempts=settings.max_attempts,
        transport=transport,
    )
    arm: AzureHttpClient | None = None
    try:
        directory = GraphDirectory(graph, cache)
        service: AuthorizationService
        if options.mode is Mode.RESOURCES:
            arm = AzureHttpClient(
                settings.arm_endpoint,
                tokens.for_scope(ARM_SCOPE),
                service_name="arm",
                timeout_seconds=settings.http_timeout_seconds,
                max_attempts=settings.max_attempts,
                transport=transport,
            )
            service = AzureResourceService(
                arm,
                directory,
                cache,
                subscription_id=options.subscription_id or "",
                justification=settings.justification,
            )
        else:
            service = GraphGroupService(
                graph,
                directory,
                cache,
                managed_groups=loaded.managed_groups,
                justification=settings.justification,
            )
        yield service
    finally:
        logger.debug("run_cache_released", entries=len(cache), hits=cache.hits, misses=cache.misses)
        if arm is not None:
            await arm.close()
        await graph.close()
        await tokens.close()


async def reconcile(
    options: RunOptions,
    loaded: LoadedConfig | None = None,
    settings: Settings | None = None,
    credential: AsyncTokenCredential | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> RunResult:
    """Plan and optionally apply against Azure, loading config unless given.

    Raises:
        RolewardenError: On configuration, permission, resolution or
            remote failures.
    """
    log = logger.bind(mode=options.mode.value, scope=options.scope, plan_only=options.plan_only)
    if loaded is None:
        loaded = load_config(options)

    async with open_azure_service(options, loaded, settings, credential, transport) as service:
        result = await ReconciliationService(service, planner_config(options)).run(
            loaded, options.plan_only
        )

    log.info("run_completed", changes=not result.plan.is_empty, applied=result.summary is not None)
    return result

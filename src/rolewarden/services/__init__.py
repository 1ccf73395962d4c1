"""Services - one reconciliation run, wired end to end."""

from .reconcile import (
    Mode,
    ReconciliationService,
    RunOptions,
    RunResult,
    load_config,
    open_azure_service,
    planner_config,
    reconcile,
)

__all__ = [
    "Mode",
    "ReconciliationService",
    "RunOptions",
    "RunResult",
    "load_config",
    "open_azure_service",
    "planner_config",
    "reconcile",
]

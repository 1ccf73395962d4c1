"""Plain-text rendering of a plan and of an apply summary."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

from rolewarden.core.domain_types import GrantKind
from rolewarden.core.executor import ApplySummary
from rolewarden.core.plan import Plan

DATE_FORMAT = "%a, %d %b %Y %H:%M:%S %Z"

_LABEL_WIDTH = 15


def _line(marker: str, label: str, value: str) -> str:
    return f"    {marker} {label + ':':<{_LABEL_WIDTH}}{value}"


def _format_date(value: datetime | None) -> str | None:
    return value.strftime(DATE_FORMAT) if value is not None else None


def _entry(
    marker: str,
    principal_kind: str,
    principal_name: str,
    role_name: str,
    target_label: str,
    target: str,
    start: datetime | None = None,
    end: datetime | None = None,
    note: str | None = None,
) -> list[str]:
    lines = [
        _line(marker, principal_kind, principal_name),
        _line(" ", "Role", role_name),
        _line(" ", target_label, target),
    ]
    for label, value in (("Start", _format_date(start)), ("End", _format_date(end))):
        if value is not None:
            lines.append(_line(" ", label, value))
    if note:
        lines.append(_line(" ", "Note", note))
    lines.append("")
    return lines


def _section(title: str, entries: Iterable[list[str]]) -> list[str]:
    body = [line for entry in entries for line in entry]
    if not body:
        return []
    return [f"  # {title}:", "", *body]


def render_plan(plan: Plan, managed_groups: bool = False) -> str:
    """Render every planned change, grouped by operation and grant kind.

    Args:
        plan: The plan to render.
        managed_groups: Label targets as managed groups instead of scopes.
    """
    target_label = "Managed group" if managed_groups else "Scope"
    lines: list[str] = []

    for kind in (GrantKind.ACTIVE, GrantKind.ELIGIBLE):
        lines += _section(
            f"Create {kind.value} assignments",
            (
                _entry(
                    "+",
                    c.grant.principal_kind.value,
                    c.grant.principal_name,
                    c.grant.role_name,
                    target_label,
                    c.grant.target,
                    c.request.schedule.start_date_time if c.request.schedule else None,
                    c.request.schedule.end_date_time if c.request.schedule else None,
                )
                for c in plan.creates_for(kind)
            ),
        )

    for kind in (GrantKind.ACTIVE, GrantKind.ELIGIBLE):
        lines += _section(
            f"Update {kind.value} assignments",
            (
                _entry(
                    "~",
                    u.grant.principal_kind.value,
                    u.grant.principal_name,
                    u.grant.role_name,
                    target_label,
                    u.grant.target,
                    u.request.schedule.start_date_time if u.request.schedule else None,
                    u.request.schedule.end_date_time if u.request.schedule else None,
                )
                for u in plan.updates_for(kind)
            ),
        )

    if plan.policy_updates:
        lines += ["  # Update role management policies:", ""]
        for update in plan.policy_updates:
            lines += [
                _line("~", "Role", update.role_name),
                _line(" ", target_label, update.target),
                "",
            ]

    for kind in (GrantKind.ACTIVE, GrantKind.ELIGIBLE):
        lines += _section(
            f"Delete {kind.value} assignments",
            (
                _entry(
                    "-",
                    d.principal_kind.value,
                    d.principal_name,
                    d.role_name,
                    target_label,
                    d.existing.target,
                    d.existing.start_date_time,
                    d.existing.end_date_time,
                    note=f"cancel pending request ({d.existing.status})" if d.cancel else None,
                )
                for d in plan.deletes_for(kind)
            ),
        )

    if not lines:
        lines = ["(none)", ""]

    changed = len(plan.updates) + len(plan.policy_updates)
    lines.append(
        f"Plan: {len(plan.creates)} to add, {changed} to change, {len(plan.deletes)} to delete."
    )
    return "\n".join(lines)


def render_header(
    config_dir: str,
    mode: str,
    scope: str,
    plan_only: bool,
    warnings: Iterable[str] = (),
) -> str:
    """Render the run header, including any config warnings."""
    lines = [
        f"Config dir: {config_dir}",
        f"Mode:       {mode}",
        f"Scope:      {scope}",
        f"Plan only:  {'yes' if plan_only else 'no'}",
    ]
    warnings = list(warnings)
    if warnings:
        lines += ["", "!!! One or more warnings were generated !!!"]
        lines += [f"- {warning}" for warning in warnings]
    return "\n".join(lines)


def render_intro(plan: Plan, plan_only: bool) -> str:
    if plan.is_empty:
        return "Nothing to do!"
    if plan_only:
        return "rolewarden would perform the following actions:"
    return "rolewarden will perform the following actions:"


def render_summary(summary: ApplySummary) -> str:
    return f"Apply complete: {summary}"

"""Schedule payload helpers shared by the ARM and Graph adapters."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from rolewarden.core.plan import ScheduleInfo


def format_timestamp(value: datetime) -> str:
    """Render a timestamp the way both APIs accept it (UTC, `Z` suffix)."""
    return value.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def schedule_info_body(schedule: ScheduleInfo, camel_case_enums: bool = False) -> dict[str, Any]:
    """Build a `scheduleInfo` object.

    Args:
        schedule: Start and optional end.
        camel_case_enums: Graph spells expiration types `afterDateTime` and
            `noExpiration`; ARM capitalises them.
    """
    expiration_type = schedule.expiration_type.value
    if camel_case_enums:
        expiration_type = expiration_type[0].lower() + expiration_type[1:]

    expiration: dict[str, Any] = {"type": expiration_type}
    if schedule.end_date_time is not None:
        expiration["endDateTime"] = format_timestamp(schedule.end_date_time)

    return {
        "startDateTime": format_timestamp(schedule.start_date_time),
        "expiration": expiration,
    }


def last_segment(resource_id: str | None) -> str | None:
    """Last path segment of a resource id."""
    if not resource_id:
        return None
    return resource_id.rstrip("/").rsplit("/", 1)[-1]

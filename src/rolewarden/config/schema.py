"""Pydantic models for the YAML configuration files.

Files use camelCase keys. Models forbid unknown keys.
"""

from __future__ import annotations

from datetime import date, datetime, time
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from rolewarden.core.domain_types import as_utc_seconds


class ConfigModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        frozen=True,
    )


class ActiveAssignmentConfig(ConfigModel):
    """An active (permanent) grant of one role."""

    role_name: str = Field(min_length=1)


class EligibleAssignmentConfig(ConfigModel):
    """An eligible grant of one role."""

    role_name: str = Field(min_length=1)
    start_date_time: datetime | None = None
    end_date_time: datetime | None = None
    ruleset_name: str | None = None

    @field_validator("start_date_time", "end_date_time", mode="before")
    @classmethod
    def _date_as_midnight(cls, value: Any) -> Any:
        # YAML reads a bare 2025-06-01 as a date.
        if isinstance(value, date) and not isinstance(value, datetime):
            return datetime.combine(value, time.min)
        return value

    @field_validator("start_date_time", "end_date_time")
    @classmethod
    def _as_utc(cls, value: datetime | None) -> datetime | None:
        return as_utc_seconds(value)

    @model_validator(mode="after")
    def _end_after_start(self) -> EligibleAssignmentConfig:
        if (
            self.start_date_time is not None
            and self.end_date_time is not None
            and self.end_date_time <= self.start_date_time
        ):
            raise ValueError(f"endDateTime must be after startDateTime for role '{self.role_name}'")
        return self


class AssignmentsConfig(ConfigModel):
    """Active and eligible grants at one target.

    A role may appear at most once per list.
    """

    active: list[ActiveAssignmentConfig] = []
    eligible: list[EligibleAssignmentConfig] = []

    @field_validator("active", "eligible", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @model_validator(mode="after")
    def _unique_roles(self) -> AssignmentsConfig:
        for label, items in (("active", self.active), ("eligible", self.eligible)):
            names = [item.role_name for item in items]
            duplicates = sorted({name for name in names if names.count(name) > 1})
            if duplicates:
                raise ValueError(f"duplicate {label} role name(s): {', '.join(duplicates)}")
        return self


class ResourcesPrincipalConfig(ConfigModel):
    """A principal file in resources mode."""

    subscription: AssignmentsConfig | None = None
    resource_groups: dict[str, AssignmentsConfig] = {}
    resources: dict[str, AssignmentsConfig] = {}

    @field_validator("resource_groups", "resources", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return {} if value is None else value


class GroupsPrincipalConfig(ConfigModel):
    """A principal file in groups mode."""

    managed_groups: dict[str, AssignmentsConfig] = {}

    @field_validator("managed_groups", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return {} if value is None else value


class ManagedGroupsConfig(ConfigModel):
    """The groups-mode list of groups whose schedules are reconciled."""

    managed_groups: list[str] = []

    @field_validator("managed_groups", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @model_validator(mode="after")
    def _unique_names(self) -> ManagedGroupsConfig:
        names = self.managed_groups
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"duplicate managed group(s): {', '.join(duplicates)}")
        return self


class RulesetReferenceConfig(ConfigModel):
    ruleset_name: str = Field(min_length=1)


class PolicyConfig(ConfigModel):
    """A policy file. Which keys are meaningful depends on the mode."""

    default: list[RulesetReferenceConfig] = []
    subscription: list[RulesetReferenceConfig] | None = None
    resource_groups: dict[str, list[RulesetReferenceConfig]] = {}
    resources: dict[str, list[RulesetReferenceConfig]] = {}
    managed_groups: dict[str, list[RulesetReferenceConfig]] = {}

    @field_validator("default", mode="before")
    @classmethod
    def _none_as_empty_list(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("resource_groups", "resources", "managed_groups", mode="before")
    @classmethod
    def _none_as_empty_dict(cls, value: Any) -> Any:
        return {} if value is None else value


class RulePatchConfig(ConfigModel):
    id: str = Field(min_length=1)
    patch: dict[str, Any] | None = None


class RulesetConfig(ConfigModel):
    rules: list[RulePatchConfig] = []

    @field_validator("rules", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value

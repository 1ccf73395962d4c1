"""Desired state loading from a config directory.

Layout::

    <config-dir>/
      managed-groups.yml                  (groups mode only)
      groups/<group display name>.yml
      users/<user principal name>.yml
      policies/<role name | default>.yml
      policies/rulesets/<ruleset name>.yml

Files with other extensions are ignored; unexpected directories, and
files where only directories belong, are errors.
"""

from __future__ import annotations

from collections.abc import Collection, Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import TypeVar

import structlog
import yaml
from pydantic import BaseModel, ValidationError

from rolewarden.core.domain_types import (
    DesiredState,
    Grant,
    GrantKind,
    GrantPolicy,
    PolicyRuleset,
    PrincipalKind,
    RulePatch,
    RulesetReference,
)
from rolewarden.core.exceptions import ConfigurationEmptyError, ConfigurationError
from rolewarden.core.validation import validate_desired_state

from .schema import (
    AssignmentsConfig,
    GroupsPrincipalConfig,
    ManagedGroupsConfig,
    PolicyConfig,
    ResourcesPrincipalConfig,
    RulesetConfig,
    RulesetReferenceConfig,
)

logger = structlog.get_logger()

YAML_SUFFIXES = (".yml", ".yaml")
PRINCIPAL_DIRS = {"groups": PrincipalKind.GROUP, "users": PrincipalKind.USER}
GROUP_ACCESS_IDS = ("member", "owner")
MANAGED_GROUPS_FILES = tuple(f"managed-groups{suffix}" for suffix in YAML_SUFFIXES)
EMPTY_CONFIG_WARNING = "Configuration is empty, is the config path correct?"

ModelT = TypeVar("ModelT", bound=BaseModel)


@dataclass(frozen=True)
class LoadedConfig:
    """Desired state plus any warnings raised while loading it.

    Attributes:
        desired: The validated desired state.
        warnings: Non-fatal problems found while loading.
        managed_groups: Groups mode only. Every group whose schedules are
            reconciled, whether or not any grant still targets it.
    """

    desired: DesiredState
    warnings: tuple[str, ...] = ()
    managed_groups: tuple[str, ...] = ()


def validate_directory_structure(config_dir: Path, root_files: Collection[str] = ()) -> list[str]:
    """Return every structural problem of a config directory.

    Args:
        config_dir: Config directory.
        root_files: File names allowed directly in the config directory.
    """
    if not config_dir.is_dir():
        return [f"config dir path does not exist: {config_dir}"]

    errors = []
    for entry in sorted(config_dir.iterdir()):
        if not entry.is_dir():
            if entry.name in root_files:
                continue
            errors.append(f"unexpected file in config dir: {entry.name}")
        elif entry.name in PRINCIPAL_DIRS:
            errors.extend(
                f"unexpected dir in {entry.name}: {child.name}"
                for child in sorted(entry.iterdir())
                if child.is_dir()
            )
        elif entry.name == "policies":
            for child in sorted(entry.iterdir()):
                if not child.is_dir():
                    continue
                if child.name != "rulesets":
                    errors.append(f"unexpected dir in policies: {child.name}")
                    continue
                errors.extend(
                    f"unexpected dir in rulesets: {grandchild.name}"
                    for grandchild in sorted(child.iterdir())
                    if grandchild.is_dir()
                )
        else:
            errors.append(f"unexpected dir in config dir: {entry.name}")
    return errors


def _yaml_files(directory: Path) -> Iterator[Path]:
    if not directory.is_dir():
        return
    for path in sorted(directory.iterdir()):
        if path.is_file() and path.suffix in YAML_SUFFIXES:
            yield path


def _parse(path: Path, model: type[ModelT]) -> ModelT | None:
    """Parse one YAML file into a model; None for an empty file."""
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigurationError(f"{path}: invalid YAML: {e}") from e

    if data is None:
        return None
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path}: expected a mapping at top level")
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"{path}: {e}") from e


def _grants(
    principal_name: str,
    principal_kind: PrincipalKind,
    target: str,
    assignments: AssignmentsConfig,
) -> Iterator[Grant]:
    for active in assignments.active:
        yield Grant(
            principal_name=principal_name,
            principal_kind=principal_kind,
            role_name=active.role_name,
            target=target,
            kind=GrantKind.ACTIVE,
        )
    for eligible in assignments.eligible:
        yield Grant(
            principal_name=principal_name,
            principal_kind=principal_kind,
            role_name=eligible.role_name,
            target=target,
            kind=GrantKind.ELIGIBLE,
            start_date_time=eligible.start_date_time,
            end_date_time=eligible.end_date_time,
            ruleset_name=eligible.ruleset_name,
        )


def _references(refs: list[RulesetReferenceConfig] | None) -> tuple[RulesetReference, ...] | None:
    if refs is None:
        return None
    return tuple(RulesetReference(ruleset_name=ref.ruleset_name) for ref in refs)


def _reference_map(
    overrides: dict[str, list[RulesetReferenceConfig]],
) -> dict[str, tuple[RulesetReference, ...]]:
    return {key: _references(refs) or () for key, refs in overrides.items()}


def _policy_name(stem: str, groups_mode: bool) -> str:
    # Groups-mode roles are access ids, matched case-insensitively.
    if groups_mode and stem.lower() in GROUP_ACCESS_IDS:
        return stem.lower()
    return stem


def _load_policies(config_dir: Path, groups_mode: bool) -> list[GrantPolicy]:
    policies = []
    for path in _yaml_files(config_dir / "policies"):
        parsed = _parse(path, PolicyConfig)
        if parsed is None:
            continue

        resource_keys = (
            parsed.subscription is not None or parsed.resource_groups or parsed.resources
        )
        if groups_mode and resource_keys:
            raise ConfigurationError(
                f"{path}: subscription, resourceGroups and resources are not valid in groups mode"
            )
        if not groups_mode and parsed.managed_groups:
            raise ConfigurationError(f"{path}: managedGroups is only valid in groups mode")

        policies.append(
            GrantPolicy(
                name=_policy_name(path.stem, groups_mode),
                default=_references(parsed.default) or (),
                subscription=_references(parsed.subscription),
                resource_groups=_reference_map(parsed.resource_groups),
                resources=_reference_map(parsed.resources),
                managed_groups=_reference_map(parsed.managed_groups),
            )
        )
    return policies


def _load_rulesets(config_dir: Path) -> list[PolicyRuleset]:
    rulesets = []
    for path in _yaml_files(config_dir / "policies" / "rulesets"):
        parsed = _parse(path, RulesetConfig) or RulesetConfig()
        rulesets.append(
            PolicyRuleset(
                name=path.stem,
                rules=tuple(RulePatch(id=rule.id, patch=rule.patch) for rule in parsed.rules),
            )
        )
    return rulesets


def _finish(
    config_dir: Path,
    grants: list[Grant],
    principal_count: int,
    strict: bool,
    managed_groups: tuple[str, ...] | None = None,
) -> LoadedConfig:
    groups_mode = managed_groups is not None
    desired = DesiredState(
        grants=tuple(grants),
        policies=tuple(_load_policies(config_dir, groups_mode)),
        rulesets=tuple(_load_rulesets(config_dir)),
    )
    validate_desired_state(desired)

    for policy in desired.policies if managed_groups is not None else ():
        undeclared = [name for name in policy.managed_groups if name not in managed_groups]
        if undeclared:
            raise ConfigurationError(
                f"policy '{policy.name}': managed group(s) not listed in "
                f"{MANAGED_GROUPS_FILES[0]}: {', '.join(undeclared)}"
            )

    warnings: list[str] = []
    if principal_count == 0:
        if strict:
            raise ConfigurationEmptyError(EMPTY_CONFIG_WARNING)
        logger.warning("configuration_empty", config_dir=str(config_dir))
        warnings.append(EMPTY_CONFIG_WARNING)

    logger.info(
        "configuration_loaded",
        config_dir=str(config_dir),
        principals=principal_count,
        grants=len(desired.grants),
        policies=len(desired.policies),
        rulesets=len(desired.rulesets),
    )
    return LoadedConfig(
        desired=desired, warnings=tuple(warnings), managed_groups=managed_groups or ()
    )


def _check_structure(config_dir: Path, root_files: Collection[str] = ()) -> None:
    errors = validate_directory_structure(config_dir, root_files)
    if errors:
        raise ConfigurationError(f"invalid config dir structure: {'; '.join(errors)}")


def load_resources_config(
    config_dir: Path, subscription_id: str, strict: bool = False
) -> LoadedConfig:
    """Load a resources-mode config directory.

    Args:
        config_dir: Config directory.
        subscription_id: Subscription that principal files' targets expand under.
        strict: Raise ConfigurationEmptyError instead of warning when no
            principal is declared.

    Returns:
        The validated desired state.

    Raises:
        ConfigurationError: On any structural, parse or validation failure.
    """
    _check_structure(config_dir)
    scope = f"/subscriptions/{subscription_id}"

    grants: list[Grant] = []
    principal_count = 0
    for dir_name, principal_kind in PRINCIPAL_DIRS.items():
        for path in _yaml_files(config_dir / dir_name):
            parsed = _parse(path, ResourcesPrincipalConfig)
            if parsed is None or (
                parsed.subscription is None and not parsed.resource_groups and not parsed.resources
            ):
                continue
            principal_count += 1
            name = path.stem

            if parsed.subscription is not None:
                grants.extend(_grants(name, principal_kind, scope, parsed.subscription))
            for group_name, assignments in parsed.resource_groups.items():
                target = f"{scope}/resourceGroups/{group_name}"
                grants.extend(_grants(name, principal_kind, target, assignments))
            for resource_path, assignments in parsed.resources.items():
                target = f"{scope}/resourceGroups/{resource_path}"
                grants.extend(_grants(name, principal_kind, target, assignments))

    return _finish(config_dir, grants, principal_count, strict)


def _load_managed_groups(config_dir: Path) -> tuple[str, ...]:
    paths = [config_dir / name for name in MANAGED_GROUPS_FILES if (config_dir / name).is_file()]
    if not paths:
        raise ConfigurationError(
            f"groups mode requires a managed groups list: {config_dir / MANAGED_GROUPS_FILES[0]}"
        )
    if len(paths) > 1:
        raise ConfigurationError(
            f"more than one managed groups list: {', '.join(p.name for p in paths)}"
        )
    parsed = _parse(paths[0], ManagedGroupsConfig) or ManagedGroupsConfig()
    return tuple(parsed.managed_groups)


def load_groups_config(config_dir: Path, strict: bool = False) -> LoadedConfig:
    """Load a groups-mode config directory.

    Targets are managed group display names; roles are `member` or `owner`
    in any letter case. Every group a principal or policy names must be
    listed in `managed-groups.yml`. Schedules on listed groups that no
    principal file declares are deleted.

    Raises:
        ConfigurationError: On any structural, parse or validation failure.
    """
    _check_structure(config_dir, MANAGED_GROUPS_FILES)
    managed_groups = _load_managed_groups(config_dir)

    grants: list[Grant] = []
    principal_count = 0
    for dir_name, principal_kind in PRINCIPAL_DIRS.items():
        for path in _yaml_files(config_dir / dir_name):
            parsed = _parse(path, GroupsPrincipalConfig)
            if parsed is None or not parsed.managed_groups:
                continue
            principal_count += 1

            for group_name, assignments in parsed.managed_groups.items():
                if group_name not in managed_groups:
                    raise ConfigurationError(
                        f"{path}: managed group '{group_name}' is not listed in "
                        f"{MANAGED_GROUPS_FILES[0]}"
                    )
                for grant in _grants(path.stem, principal_kind, group_name, assignments):
                    access_id = grant.role_name.lower()
                    if access_id not in GROUP_ACCESS_IDS:
                        raise ConfigurationError(
                            f"{path}: role '{grant.role_name}' for managed group '{group_name}' "
                            f"must be one of {', '.join(GROUP_ACCESS_IDS)}"
                        )
                    grants.append(grant.model_copy(update={"role_name": access_id}))

    return _finish(config_dir, grants, principal_count, strict, managed_groups)

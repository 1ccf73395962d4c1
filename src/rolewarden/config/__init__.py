"""Configuration - desired state files and runtime settings."""

from .loader import (
    LoadedConfig,
    load_groups_config,
    load_resources_config,
    validate_directory_structure,
)
from .settings import Settings, get_settings

__all__ = [
    "LoadedConfig",
    "Settings",
    "get_settings",
    "load_groups_config",
    "load_resources_config",
    "validate_directory_structure",
]

"""The embedded default role management policy."""

from __future__ import annotations

import json
from functools import lru_cache
from importlib import resources
from typing import Any

TEMPLATE_RESOURCE = "default_role_management_policy.json"


@lru_cache(maxsize=1)
def _template_text() -> str:
    return resources.files(__package__).joinpath(TEMPLATE_RESOURCE).read_text(encoding="utf-8")


def default_rules() -> list[dict[str, Any]]:
    """Return a fresh copy of the default policy's rules.

    Each call parses the template anew, so callers may mutate the result.
    """
    return list(json.loads(_template_text())["rules"])

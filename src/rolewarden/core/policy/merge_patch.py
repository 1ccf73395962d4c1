"""JSON merge patch (RFC 7396)."""

from __future__ import annotations

import copy
from typing import Any


def merge_patch(document: Any, patch: Any) -> Any:
    """Apply a merge patch to a document without mutating either.

    Patch keys overwrite, `None` deletes, keys absent from the patch are
    left untouched. A non-object patch replaces the document wholesale.

    Args:
        document: Base JSON value.
        patch: Merge patch.

    Returns:
        The patched document.
    """
    if not isinstance(patch, dict):
        return copy.deepcopy(patch)
    if not isinstance(document, dict):
        document = {}
    result = copy.deepcopy(document)
    for key, value in patch.items():
        if value is None:
            result.pop(key, None)
        elif isinstance(value, dict):
            result[key] = merge_patch(result.get(key), value)
        else:
            result[key] = copy.deepcopy(value)
    return result

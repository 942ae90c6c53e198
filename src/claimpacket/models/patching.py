"""JSON merge-patch (RFC 7386) for the free-form metadata maps."""

from __future__ import annotations

import copy
from typing import Any


def merge_patch(target: Any, patch: Any) -> Any:
    """Apply an RFC 7386 merge patch and return the result.

    Keys set to None in the patch are removed; nested objects merge
    recursively; any non-object patch value replaces the target wholesale.
    Neither argument is mutated.
    """
    if not isinstance(patch, dict):
        return copy.deepcopy(patch)

    result: dict[str, Any] = copy.deepcopy(target) if isinstance(target, dict) else {}
    for key, value in patch.items():
        if value is None:
            result.pop(key, None)
        else:
            result[key] = merge_patch(result.get(key), value)
    return result

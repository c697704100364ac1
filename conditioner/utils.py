"""Small shared helpers."""

from __future__ import annotations

import copy
from typing import Any, Mapping


def merge_options(base: Mapping[str, Any] | None, override: Mapping[str, Any] | None) -> dict[str, Any]:
    """Recursively merge *override* into *base*, returning a new dict.

    - Dicts merge key by key; *override* wins for scalar values.
    - Lists merge position by position: a dict entry in *override* is merged
      into (or replaces) the entry at the same index, other *override*
      entries are appended unless already present.
    - Neither argument is mutated.

    Usage::

        merge_options({"zoom": 4, "layers": ["roads"]}, {"layers": ["rail"]})
        # {"zoom": 4, "layers": ["roads", "rail"]}
    """
    result: dict[str, Any] = copy.deepcopy(dict(base or {}))
    for key, value in (override or {}).items():
        current = result.get(key)
        if isinstance(current, dict) and isinstance(value, Mapping):
            result[key] = merge_options(current, value)
        elif isinstance(current, list) and isinstance(value, list):
            result[key] = _merge_lists(current, value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def _merge_lists(base: list[Any], override: list[Any]) -> list[Any]:
    merged = list(base)
    for i, item in enumerate(override):
        if i < len(merged) and isinstance(item, Mapping):
            current = merged[i]
            merged[i] = merge_options(current if isinstance(current, dict) else None, item)
        elif item not in merged:
            merged.append(copy.deepcopy(item))
    return merged

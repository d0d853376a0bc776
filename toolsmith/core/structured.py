"""Helpers for narrowing untyped data (parsed TOML, GitHub JSON).

Use these at ingestion boundaries so the rest of the engine only sees
concrete types.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TypeGuard, cast

StrDict = dict[str, object]
ObjList = list[object]


def is_str_dict(obj: object) -> TypeGuard[StrDict]:
    """Return True if obj is a dict keyed by strings."""
    if not isinstance(obj, dict):
        return False
    return all(isinstance(k, str) for k in cast(dict[object, object], obj))


def as_str_dict(obj: object) -> StrDict | None:
    return obj if is_str_dict(obj) else None


def as_obj_list(obj: object) -> ObjList | None:
    return cast(ObjList, obj) if isinstance(obj, list) else None


def get_str(table: Mapping[str, object], key: str) -> str | None:
    """Get a stripped, non-empty string value, else None."""
    value = table.get(key)
    if not isinstance(value, str):
        return None
    return value.strip() or None


def get_number(table: Mapping[str, object], key: str) -> float | None:
    """Get an int or float value (bools excluded), else None."""
    value = table.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def get_table(table: Mapping[str, object], key: str) -> StrDict | None:
    return as_str_dict(table.get(key))


def str_field_of_items(items: ObjList, field: str) -> list[str]:
    """Collect ``item[field]`` for each dict item whose field is a string.

    Example: releases JSON ``[{"tag_name": "v1.0.0"}, ...]`` -> ``["v1.0.0"]``.
    """
    out: list[str] = []
    for item in items:
        obj = as_str_dict(item)
        if obj is None:
            continue
        value = obj.get(field)
        if isinstance(value, str):
            out.append(value)
    return out

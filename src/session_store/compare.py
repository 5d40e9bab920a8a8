"""Structural equality over nested JSON-like data."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any


def _is_sequence(value: Any) -> bool:
    return isinstance(value, Sequence) and not isinstance(
        value, str | bytes | bytearray
    )


def deep_equal(a: Any, b: Any) -> bool:
    """Return True if ``a`` and ``b`` hold the same nested data.

    Mapping key order is ignored; sequences compare element-wise. Booleans only
    equal booleans (``0`` is not ``False``). Inputs must be acyclic.
    """
    if a is b:
        return True

    if isinstance(a, Mapping) and isinstance(b, Mapping):
        if len(a) != len(b):
            return False
        for key, value in a.items():
            if key not in b or not deep_equal(value, b[key]):
                return False
        return True

    if _is_sequence(a) and _is_sequence(b):
        if len(a) != len(b):
            return False
        return all(deep_equal(x, y) for x, y in zip(a, b, strict=True))

    if any(isinstance(v, Mapping) or _is_sequence(v) for v in (a, b)):
        return False
    if isinstance(a, bool) or isinstance(b, bool):
        return type(a) is type(b) and a == b
    return bool(a == b)

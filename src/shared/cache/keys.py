"""Deterministic cache key derivation.

    {prefix}:{endpoint}
    {prefix}:{endpoint}:{k1=v1&k2=v2...}

Parameters are sorted by name, ``None`` values are dropped and every name
and value is percent-encoded the way browsers' ``encodeURIComponent``
does, so two requests with the same parameters in any order share a key.
"""

from collections.abc import Mapping
from enum import Enum
from typing import Any
from urllib.parse import quote

# Characters encodeURIComponent leaves untouched besides alphanumerics and "-_.~"
_SAFE = "!*'()"


def _render(value: Any) -> str:
    if isinstance(value, Enum):
        value = value.value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, list | tuple):
        return ",".join(_render(item) for item in value)
    return str(value)


def encode_component(value: Any) -> str:
    return quote(_render(value), safe=_SAFE)


def cache_key(endpoint: str, params: Mapping[str, Any] | None = None, prefix: str = "reviews") -> str:
    base = f"{prefix}:{endpoint}"
    if not params:
        return base
    pairs = [
        f"{encode_component(name)}={encode_component(value)}"
        for name, value in sorted(params.items())
        if value is not None
    ]
    return f"{base}:{'&'.join(pairs)}" if pairs else base

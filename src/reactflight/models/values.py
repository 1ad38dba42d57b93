# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Plain value types that have a dedicated wire form."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


class _Undefined:
    """Explicitly absent value; distinct from `None` (null) on the wire."""

    _instance: "_Undefined | None" = None

    def __new__(cls) -> "_Undefined":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "UNDEFINED"

    def __reduce__(self) -> str:
        return "UNDEFINED"


UNDEFINED = _Undefined()


class Symbol:
    """
    Interned, name-keyed marker value (the registry form of JS `Symbol.for`).

    `Symbol("react.suspense") is Symbol("react.suspense")` holds, so symbols compare
    by identity and dedupe by name within a stream.
    """

    # Process-wide and never pruned; the only table shared across requests and responses.
    _registry: dict[str, "Symbol"] = {}

    def __new__(cls, name: str) -> "Symbol":
        existing = cls._registry.get(name)
        if existing is not None:
            return existing
        instance = super().__new__(cls)
        instance._name = str(name)
        cls._registry[instance._name] = instance
        return instance

    @property
    def name(self) -> str:
        return self._name

    def __repr__(self) -> str:
        return f"Symbol({self._name!r})"

    def __reduce__(self) -> tuple[Any, ...]:
        return (Symbol, (self._name,))


@dataclass
class Element:
    """
    A composed literal tree node (`type`, `key`, `props`).

    `type` is a tag string, a Symbol or a client reference. Elements are plain data
    here; nothing in this package renders them.
    """

    type: Any
    key: str | None = None
    props: dict[str, Any] = field(default_factory=dict)


def element(type_: Any, props: dict[str, Any] | None = None, *children: Any, key: str | None = None) -> Element:
    """Small builder mirroring JSX: children are folded into `props["children"]`."""
    merged = dict(props or {})
    if len(children) == 1:
        merged["children"] = children[0]
    elif children:
        merged["children"] = list(children)
    return Element(type=type_, key=key, props=merged)


__all__ = ["Element", "Symbol", "UNDEFINED", "element"]

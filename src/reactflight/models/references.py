# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Client references and deferred values."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, NoReturn

from ..errors import ClientReferenceAccessError

WHOLE_MODULE = "*"


@dataclass(frozen=True)
class ClientReference:
    """
    Opaque stand-in for a value the consumer loads through its own module resolver.

    The encoder never walks into a client reference; it writes a module row instead.
    Equal references (same module id and export name) share one descriptor per stream.
    """

    module_id: str
    export_name: str = WHOLE_MODULE

    @property
    def key(self) -> str:
        return f"{self.module_id}#{self.export_name}"

    def member(self, name: str) -> NoReturn:
        """Structural access below an export is never allowed; only the export itself passes through."""
        if name == "Provider":
            raise ClientReferenceAccessError(
                "Cannot render a Client Context Provider on the Server. "
                "Instead, you can export a Client Component wrapper "
                "that itself renders a Client Context Provider."
            )
        raise ClientReferenceAccessError(
            f"Cannot access {self.export_name}.{name} on the server. "
            "You cannot dot into a client module from a server component. "
            "You can only pass the imported name through."
        )

    def __getitem__(self, name: str) -> NoReturn:
        self.member(name)


class ClientModule:
    """Export table for one client module; every export is handed out as a cached ClientReference."""

    def __init__(self, module_id: str, export_names: Iterable[str] | None = None):
        self.module_id = str(module_id)
        self._names = None if export_names is None else frozenset(str(name) for name in export_names)
        self._references: dict[str, ClientReference] = {}

    @property
    def reference(self) -> ClientReference:
        return self.export(WHOLE_MODULE)

    def export(self, name: str) -> ClientReference:
        if name != WHOLE_MODULE and self._names is not None and name not in self._names:
            raise KeyError(f"Client module {self.module_id!r} has no export named {name!r}")
        cached = self._references.get(name)
        if cached is None:
            cached = ClientReference(self.module_id, name)
            self._references[name] = cached
        return cached

    def __getitem__(self, name: str) -> ClientReference:
        return self.export(name)

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"ClientModule({self.module_id!r})"


def client_exports(module_id: str, exports: Any = None) -> ClientModule:
    """
    Mark a module as client-only.

    `exports` may be a mapping or iterable of export names, or any object whose public
    attribute names are the exports. `None` accepts any name.
    """
    if exports is None:
        return ClientModule(module_id)
    if isinstance(exports, dict):
        return ClientModule(module_id, exports.keys())
    if isinstance(exports, (list, tuple, set, frozenset)):
        return ClientModule(module_id, exports)
    return ClientModule(module_id, [name for name in dir(exports) if not name.startswith("_")])


@dataclass(frozen=True, eq=False)
class Deferred:
    """
    Wrap an awaitable so the consumer receives a handle to it instead of blocking on it.

    A bare awaitable inside a model is substituted in place once it settles; a Deferred
    is written as a promise reference (`$@id`) and never holds up its parent.
    """

    awaitable: Any


__all__ = ["ClientModule", "ClientReference", "Deferred", "WHOLE_MODULE", "client_exports"]

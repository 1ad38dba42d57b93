# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""In-process module resolver for client references."""

from __future__ import annotations

import concurrent.futures
from collections.abc import Mapping
from typing import Any

from ..errors import FlightResolverError
from ..models.references import WHOLE_MODULE
from ..models.rows import ClientReferenceMetadata
from ..utils.awaitables import future_outcome, is_future


def select_export(module: Any, name: str) -> Any:
    """Pick `name` out of a loaded module; `*` means the module itself."""
    if name == WHOLE_MODULE:
        return module
    if isinstance(module, Mapping):
        if name not in module:
            raise FlightResolverError(f"Client module has no export named {name!r}")
        return module[name]
    try:
        return getattr(module, name)
    except AttributeError as exc:
        raise FlightResolverError(f"Client module has no export named {name!r}") from exc


def _chain_export(source: Any, name: str) -> Any:
    if hasattr(source, "get_loop"):
        target = source.get_loop().create_future()
    else:
        target = concurrent.futures.Future()

    def _forward(done: Any) -> None:
        if target.done():
            return
        value, error = future_outcome(done)
        if error is not None:
            target.set_exception(error)
            return
        try:
            target.set_result(select_export(value, name))
        except FlightResolverError as exc:
            target.set_exception(exc)

    source.add_done_callback(_forward)
    return target


class ModuleRegistry:
    """
    Maps module ids to loaded modules for `Response(resolve_module=...)`.

    A registered module may be the module object/mapping itself, a future that is
    still loading, or an exception raised while initializing it.
    """

    def __init__(self, modules: Mapping[str, Any] | None = None):
        self._modules: dict[str, Any] = dict(modules or {})

    def register(self, module_id: str, module: Any) -> None:
        self._modules[str(module_id)] = module

    def register_error(self, module_id: str, error: BaseException) -> None:
        self._modules[str(module_id)] = error

    def __contains__(self, module_id: object) -> bool:
        return module_id in self._modules

    def __call__(self, descriptor: ClientReferenceMetadata) -> Any:
        if descriptor.id not in self._modules:
            raise FlightResolverError(f"Could not find client module {descriptor.id!r}")
        module = self._modules[descriptor.id]
        if isinstance(module, BaseException):
            raise module
        if is_future(module):
            if module.done():
                value, error = future_outcome(module)
                if error is not None:
                    raise error
                return select_export(value, descriptor.name)
            return _chain_export(module, descriptor.name)
        return select_export(module, descriptor.name)


__all__ = ["ModuleRegistry", "select_export"]

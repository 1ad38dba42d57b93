# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Server-side client manifest (module id -> bundle metadata)."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from ..errors import FlightResolverError
from ..models.references import ClientReference
from ..models.rows import ClientReferenceMetadata


class ClientManifest:
    """
    Resolves client references to the descriptor written in `I` rows.

    In strict mode an unknown module is a resolver failure; otherwise the module id
    is passed through with no chunks.
    """

    def __init__(self, modules: Mapping[str, Mapping[str, Any]] | None = None, *, strict: bool = True):
        self._modules: dict[str, dict[str, Any]] = {key: dict(value) for key, value in (modules or {}).items()}
        self.strict = strict

    def register(self, module_id: str, *, chunks: Iterable[str] = (), bundle_id: str | None = None) -> None:
        self._modules[str(module_id)] = {"id": bundle_id or str(module_id), "chunks": list(chunks)}

    def __contains__(self, module_id: object) -> bool:
        return module_id in self._modules

    def resolve(self, reference: ClientReference) -> ClientReferenceMetadata:
        entry = self._modules.get(reference.module_id)
        if entry is None:
            if self.strict:
                raise FlightResolverError(
                    f"Could not find the module {reference.module_id!r} in the client manifest"
                )
            entry = {"id": reference.module_id, "chunks": []}
        return ClientReferenceMetadata(
            id=str(entry.get("id") or reference.module_id),
            name=reference.export_name,
            chunks=[str(chunk) for chunk in entry.get("chunks") or []],
        )


__all__ = ["ClientManifest"]

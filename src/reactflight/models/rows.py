# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Row and module-descriptor models for the Flight wire format."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class RowTag(str, Enum):
    """Single-character discriminator written between `<id>:` and the payload."""

    MODEL = ""
    MODULE = "I"
    HINT = "H"
    ERROR = "E"
    SYMBOL = "S"
    POSTPONE = "P"


TAGGED_ROWS = {tag.value: tag for tag in RowTag if tag.value}


@dataclass(frozen=True)
class Row:
    id: int
    tag: RowTag
    payload: str


@dataclass(frozen=True)
class ClientReferenceMetadata:
    """Module descriptor carried by an `I` row."""

    id: str
    name: str
    chunks: list[str] = field(default_factory=list)

    def to_mapping(self) -> dict[str, Any]:
        return {"id": self.id, "chunks": list(self.chunks), "name": self.name}

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ClientReferenceMetadata":
        raw_chunks = data.get("chunks") or []
        return cls(
            id=str(data.get("id", "")),
            name=str(data.get("name", "")),
            chunks=[str(chunk) for chunk in raw_chunks],
        )


__all__ = ["ClientReferenceMetadata", "Row", "RowTag", "TAGGED_ROWS"]

# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Dataclass exports for reactflight."""

from .references import WHOLE_MODULE, ClientModule, ClientReference, Deferred, client_exports
from .rows import ClientReferenceMetadata, Row, RowTag
from .values import UNDEFINED, Element, Symbol, element

__all__ = [
    "ClientModule",
    "ClientReference",
    "ClientReferenceMetadata",
    "Deferred",
    "Element",
    "Row",
    "RowTag",
    "Symbol",
    "UNDEFINED",
    "WHOLE_MODULE",
    "client_exports",
    "element",
]

# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Decoder exports."""

from .graph import Entry, EntryStatus, Failed, Handle, HandleState, Pending, Ready, ReferenceGraph
from .modules import ModuleRegistry, select_export
from .response import ROOT_ID, Hint, Response
from .streams import create_from_chunks, create_from_stream, pump

__all__ = [
    "Entry",
    "EntryStatus",
    "Failed",
    "Handle",
    "HandleState",
    "Hint",
    "ModuleRegistry",
    "Pending",
    "ROOT_ID",
    "Ready",
    "ReferenceGraph",
    "Response",
    "create_from_chunks",
    "create_from_stream",
    "pump",
    "select_export",
]

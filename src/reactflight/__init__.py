# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""
reactflight package entrypoint.

This package implements the React Flight streaming serialization protocol: a Request
encodes a model tree into newline-delimited rows, and a Response decodes those rows
incrementally into a reference graph whose values become available as they arrive.
Client modules are resolved through an injectable resolver, and domain objects are
modeled with typed dataclasses for clarity.
"""

from .client import Handle, ModuleRegistry, Response, create_from_chunks, create_from_stream
from .config import FlightSettings, load_flight_settings
from .errors import (
    ClientReferenceAccessError,
    FlightConnectionClosed,
    FlightError,
    FlightPostponed,
    FlightProtocolError,
    FlightResolverError,
    FlightSerializationError,
    Postpone,
    ValueNotReady,
    postpone,
)
from .http import create_from_fetch, fetch_flight
from .log import setup_logging
from .models import UNDEFINED, ClientModule, ClientReference, Deferred, Element, Symbol, client_exports, element
from .runtime import FlightRuntime
from .server import (
    BufferSink,
    ClientManifest,
    FlightStream,
    Request,
    prefetch_dns,
    preconnect,
    preinit,
    preload,
    render_to_stream,
)
from .version import __version__

__all__ = [
    "BufferSink",
    "ClientManifest",
    "ClientModule",
    "ClientReference",
    "ClientReferenceAccessError",
    "Deferred",
    "Element",
    "FlightConnectionClosed",
    "FlightError",
    "FlightPostponed",
    "FlightProtocolError",
    "FlightResolverError",
    "FlightRuntime",
    "FlightSerializationError",
    "FlightSettings",
    "FlightStream",
    "Handle",
    "ModuleRegistry",
    "Postpone",
    "Request",
    "Response",
    "Symbol",
    "UNDEFINED",
    "ValueNotReady",
    "client_exports",
    "create_from_chunks",
    "create_from_fetch",
    "create_from_stream",
    "element",
    "fetch_flight",
    "load_flight_settings",
    "postpone",
    "prefetch_dns",
    "preconnect",
    "preinit",
    "preload",
    "render_to_stream",
    "setup_logging",
    "__version__",
]

# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""
Per-render ambient context.

This module provides a ContextVar-backed FlightContext that carries the request
currently doing work (and optional settings). Coroutines scheduled by a request copy
the context at creation time, so helpers such as hint emitters can find their request
after an `await` without any process-wide state.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, replace
from typing import Any

from ..config import FlightSettings, load_flight_settings


@dataclass(frozen=True)
class FlightContext:
    request: Any | None = None
    settings: FlightSettings | None = None


_current_flight_context: ContextVar[FlightContext | None] = ContextVar("reactflight_context", default=None)


def get_flight_context() -> FlightContext:
    """Return the current ambient flight context."""
    return _current_flight_context.get() or FlightContext()


def get_current_request() -> Any | None:
    return get_flight_context().request


def get_flight_settings() -> FlightSettings:
    """Return FlightSettings from context, falling back to loading defaults."""
    context = get_flight_context()
    if context.settings is not None:
        return context.settings
    return load_flight_settings()


@contextmanager
def flight_context(**overrides: Any) -> Iterator[FlightContext]:
    """
    Context manager that layers overrides onto the ambient FlightContext.

    None-valued overrides are ignored to preserve outer context values.
    """
    current = get_flight_context()
    filtered = {key: value for key, value in overrides.items() if value is not None}
    new_context = replace(current, **filtered) if filtered else current
    token = _current_flight_context.set(new_context)
    try:
        yield new_context
    finally:
        _current_flight_context.reset(token)


__all__ = [
    "FlightContext",
    "flight_context",
    "get_current_request",
    "get_flight_context",
    "get_flight_settings",
]

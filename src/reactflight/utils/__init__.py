# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Utility exports for reactflight."""

from .awaitables import future_outcome, is_awaitable, is_coroutine, is_future
from .context import FlightContext, flight_context, get_current_request, get_flight_context, get_flight_settings
from .keyset import KeySet

__all__ = [
    "FlightContext",
    "KeySet",
    "flight_context",
    "future_outcome",
    "get_current_request",
    "get_flight_context",
    "get_flight_settings",
    "is_awaitable",
    "is_coroutine",
    "is_future",
]

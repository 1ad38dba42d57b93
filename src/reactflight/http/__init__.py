# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""HTTP transport for Flight streams."""

from .fetch import FLIGHT_CONTENT_TYPE, create_from_fetch, fetch_flight

__all__ = ["FLIGHT_CONTENT_TYPE", "create_from_fetch", "fetch_flight"]

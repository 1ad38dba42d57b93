# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Configuration helpers for reactflight."""

import os
from dataclasses import dataclass

from .version import __version__

DEFAULT_USER_AGENT = f"reactflight/{__version__} (Flight stream client)"
DEFAULT_MAX_ROW_BYTES = 16 * 1024 * 1024


def _float_env(name: str, default: float) -> float:
    try:
        value = os.getenv(name)
        return float(value) if value is not None else default
    except ValueError:
        return default


def _int_env(name: str, default: int) -> int:
    try:
        value = os.getenv(name)
        return int(value) if value is not None else default
    except ValueError:
        return default


def _bool_env(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class FlightSettings:
    """Stream and transport defaults shared by the encoder and decoder."""

    dev: bool = False
    max_row_bytes: int = DEFAULT_MAX_ROW_BYTES
    http_timeout: float = 10.0
    user_agent: str = DEFAULT_USER_AGENT
    verify_ssl: bool = True

    @classmethod
    def from_env(cls) -> "FlightSettings":
        """Create settings from environment variables (evaluated at call time)."""
        max_row_bytes = _int_env("REACTFLIGHT_MAX_ROW_BYTES", cls.max_row_bytes)
        if max_row_bytes <= 0:
            max_row_bytes = cls.max_row_bytes
        return cls(
            dev=_bool_env("REACTFLIGHT_DEV", cls.dev),
            max_row_bytes=max_row_bytes,
            http_timeout=_float_env("REACTFLIGHT_HTTP_TIMEOUT", cls.http_timeout),
            user_agent=os.getenv("REACTFLIGHT_USER_AGENT", cls.user_agent),
            verify_ssl=_bool_env("REACTFLIGHT_HTTP_VERIFY_SSL", cls.verify_ssl),
        )


def load_flight_settings() -> FlightSettings:
    """Load Flight settings from environment with sensible defaults."""
    return FlightSettings.from_env()

# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Logging helpers for reactflight."""

from __future__ import annotations

import logging
import os

LOG_LEVEL_ENV = "REACTFLIGHT_LOG_LEVEL"
LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"
PACKAGE_LOGGER = "reactflight"


def resolve_log_level(level: str | int | None = None) -> int:
    """Map a level name (or the REACTFLIGHT_LOG_LEVEL env var, read at call time) to a logging level."""
    if isinstance(level, int):
        return level
    name = (level or os.getenv(LOG_LEVEL_ENV) or "WARNING").upper()
    resolved = getattr(logging, name, None)
    return resolved if isinstance(resolved, int) else logging.WARNING


def setup_logging(level: str | int | None = None) -> int:
    """
    Configure standard logging for CLI use.

    Library modules only create `logging.getLogger(__name__)` loggers; this is the one
    place that installs a handler and sets the package level.
    """
    resolved = resolve_log_level(level)
    logging.basicConfig(level=resolved, format=LOG_FORMAT)
    logging.getLogger(PACKAGE_LOGGER).setLevel(resolved)
    return resolved


__all__ = ["resolve_log_level", "setup_logging"]

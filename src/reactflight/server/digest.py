# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Turn producer failures into transport-safe digests."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

ErrorHandler = Callable[[Any], "str | None"]


def error_message(error: Any) -> str:
    if isinstance(error, BaseException):
        return str(error)
    if isinstance(error, str):
        return error
    return repr(error)


def default_on_error(error: Any) -> None:
    logger.error("Flight producer failure: %s", error_message(error))
    return None


@dataclass(frozen=True)
class ErrorInfo:
    """What crosses the wire for one failure: the digest, plus the message in dev mode only."""

    digest: str | None = None
    message: str | None = None

    def to_payload(self) -> dict[str, str]:
        payload: dict[str, str] = {}
        if self.digest is not None:
            payload["digest"] = self.digest
        if self.message is not None:
            payload["message"] = self.message
        return payload


class DigestReporter:
    """Calls the user's `on_error` once per failure point and shapes the result for the wire."""

    def __init__(self, on_error: ErrorHandler | None = None, *, dev: bool = False):
        self._on_error = on_error or default_on_error
        self.dev = dev

    def report(self, error: Any) -> ErrorInfo:
        try:
            digest = self._on_error(error)
        except Exception:  # noqa: BLE001
            logger.exception("on_error handler raised while reporting %s", error_message(error))
            digest = None
        if digest is not None and not isinstance(digest, str):
            logger.warning(
                "on_error returned %s; digests must be strings and this one is dropped",
                type(digest).__name__,
            )
            digest = None
        return ErrorInfo(digest=digest, message=error_message(error) if self.dev else None)


__all__ = ["DigestReporter", "ErrorHandler", "ErrorInfo", "default_on_error", "error_message"]

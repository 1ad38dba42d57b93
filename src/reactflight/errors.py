# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Error taxonomy and exception helpers."""

from __future__ import annotations

import asyncio
import concurrent.futures
from enum import Enum
from typing import Any

PRODUCTION_ERROR_MESSAGE = (
    "An error occurred while producing this value. The specific message is omitted in "
    "production mode to avoid leaking sensitive details. A digest property is included "
    "on this error instance which may provide additional details about the nature of the error."
)


class FlightErrorKind(str, Enum):
    PRODUCER = "PRODUCER"
    PROTOCOL = "PROTOCOL"
    ABORT = "ABORT"
    RESOLVER = "RESOLVER"
    CLOSED = "CLOSED"
    POSTPONED = "POSTPONED"
    UNKNOWN = "UNKNOWN"


class FlightError(Exception):
    """
    Error surfaced to consumers of a Flight stream.

    `digest` is the opaque string produced by the server's error handler. It is kept
    apart from the message so boundary code can report one without the other.
    """

    kind = FlightErrorKind.PRODUCER

    def __init__(self, message: str = "", *, digest: str | None = None):
        super().__init__(message)
        self.message = message
        self.digest = digest

    @classmethod
    def from_payload(cls, payload: Any) -> "FlightError":
        """Rebuild an error from an `E` row payload (`{"digest": ..., "message": ...}`)."""
        if not isinstance(payload, dict):
            raise FlightProtocolError(f"Error row payload must be an object, got {type(payload).__name__}")
        digest = payload.get("digest")
        message = payload.get("message")
        return cls(
            str(message) if message is not None else PRODUCTION_ERROR_MESSAGE,
            digest=str(digest) if digest is not None else None,
        )


class FlightProtocolError(FlightError):
    """Malformed input, redefinition of a settled id, or misuse of a reference."""

    kind = FlightErrorKind.PROTOCOL


class FlightConnectionClosed(FlightProtocolError):
    kind = FlightErrorKind.CLOSED

    def __init__(self, message: str = "Connection closed.", *, digest: str | None = None):
        super().__init__(message, digest=digest)


class FlightPostponed(FlightError):
    kind = FlightErrorKind.POSTPONED


class FlightResolverError(FlightError):
    """The injected module resolver could not produce a client module."""

    kind = FlightErrorKind.RESOLVER


class FlightSerializationError(FlightError):
    """Raised by the encoder for values it cannot put on the wire."""


class ClientReferenceAccessError(FlightProtocolError):
    """Raised when code dots into a client reference instead of passing it through."""


class ValueNotReady(Exception):
    """Signals that a handle was read before its identifier settled."""

    def __init__(self, handle: Any):
        super().__init__(f"Value for identifier {getattr(handle, 'id', '?')} is not ready yet")
        self.handle = handle


class Postpone(Exception):
    """Raised by a producer to leave a value out of this stream (emitted as a `P` row)."""

    def __init__(self, reason: str = ""):
        super().__init__(reason)
        self.reason = reason


def postpone(reason: str = "") -> None:
    raise Postpone(reason)


def categorize_exception(exc: BaseException) -> FlightErrorKind:
    """
    Map exceptions seen by the encoder/decoder to FlightErrorKind.
    """
    if isinstance(exc, FlightError):
        return exc.kind
    if isinstance(exc, Postpone):
        return FlightErrorKind.POSTPONED
    if isinstance(exc, (asyncio.CancelledError, concurrent.futures.CancelledError)):
        return FlightErrorKind.ABORT
    if isinstance(exc, (LookupError, ImportError)):
        return FlightErrorKind.RESOLVER
    if isinstance(exc, Exception):
        return FlightErrorKind.PRODUCER
    return FlightErrorKind.UNKNOWN


def error_kind_to_reason(kind: FlightErrorKind | None) -> str:
    """User-facing reason string."""
    mapping = {
        FlightErrorKind.PRODUCER: "Value could not be produced",
        FlightErrorKind.PROTOCOL: "Malformed or inconsistent Flight stream",
        FlightErrorKind.ABORT: "Stream aborted by the producer",
        FlightErrorKind.RESOLVER: "Client module could not be resolved",
        FlightErrorKind.CLOSED: "Stream closed before the value arrived",
        FlightErrorKind.POSTPONED: "Value postponed by the producer",
        FlightErrorKind.UNKNOWN: "",
        None: "",
    }
    return mapping.get(kind, "Flight stream failure")


__all__ = [
    "ClientReferenceAccessError",
    "FlightConnectionClosed",
    "FlightError",
    "FlightErrorKind",
    "FlightPostponed",
    "FlightProtocolError",
    "FlightResolverError",
    "FlightSerializationError",
    "PRODUCTION_ERROR_MESSAGE",
    "Postpone",
    "ValueNotReady",
    "categorize_exception",
    "error_kind_to_reason",
    "postpone",
]

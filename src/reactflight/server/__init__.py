# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Flight encoder: requests, sinks, hints and digests."""

from .digest import DigestReporter, ErrorInfo, default_on_error
from .hints import HintCode, HintEmitter, prefetch_dns, preconnect, preinit, preload
from .manifest import ClientManifest
from .request import Request, RequestStatus, Sink, TaskStatus
from .streams import AsyncByteQueue, BufferSink, FlightStream, render_to_stream

__all__ = [
    "AsyncByteQueue",
    "BufferSink",
    "ClientManifest",
    "DigestReporter",
    "ErrorInfo",
    "FlightStream",
    "HintCode",
    "HintEmitter",
    "Request",
    "RequestStatus",
    "Sink",
    "TaskStatus",
    "default_on_error",
    "prefetch_dns",
    "preconnect",
    "preinit",
    "preload",
    "render_to_stream",
]

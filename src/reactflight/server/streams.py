# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Server entry points and byte sinks."""

from __future__ import annotations

import asyncio
from typing import Any

from .manifest import ClientManifest
from .request import Request, Sink


class FlightStream:
    """A started request; rows flow once a sink is piped in."""

    def __init__(self, request: Request):
        self.request = request

    def pipe(self, destination: Sink) -> Sink:
        self.request.start_flowing(destination)
        return destination

    def abort(self, reason: Any = None) -> None:
        self.request.abort(reason)


def render_to_stream(model: Any, client_manifest: ClientManifest | None = None, **options: Any) -> FlightStream:
    request = Request(model, client_manifest, **options)
    request.start()
    return FlightStream(request)


class BufferSink:
    """Collects rows in memory."""

    def __init__(self):
        self.chunks: list[bytes] = []
        self.closed = False

    def write(self, data: bytes) -> None:
        if self.closed:
            raise RuntimeError("Cannot write to a closed sink")
        self.chunks.append(bytes(data))

    def close(self) -> None:
        self.closed = True

    def getvalue(self) -> bytes:
        return b"".join(self.chunks)


class AsyncByteQueue:
    """Sink that is also an async iterator, for handing rows to an async consumer."""

    def __init__(self):
        self._queue: asyncio.Queue[bytes | None] = asyncio.Queue()
        self.closed = False

    def write(self, data: bytes) -> None:
        if self.closed:
            raise RuntimeError("Cannot write to a closed sink")
        self._queue.put_nowait(bytes(data))

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._queue.put_nowait(None)

    def __aiter__(self) -> "AsyncByteQueue":
        return self

    async def __anext__(self) -> bytes:
        chunk = await self._queue.get()
        if chunk is None:
            # keep the end marker for other consumers
            self._queue.put_nowait(None)
            raise StopAsyncIteration
        return chunk


__all__ = ["AsyncByteQueue", "BufferSink", "FlightStream", "render_to_stream"]

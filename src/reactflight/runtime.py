# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""High-level facade that pairs the encoder and decoder."""

from __future__ import annotations

from collections.abc import Iterable
from contextlib import suppress
from typing import Any

import httpx

from .client.graph import ModuleResolver
from .client.response import Response
from .client.streams import create_from_chunks, create_from_stream
from .config import FlightSettings, load_flight_settings
from .http.fetch import fetch_flight
from .server.digest import ErrorHandler
from .server.manifest import ClientManifest
from .server.streams import AsyncByteQueue, BufferSink, FlightStream, render_to_stream
from .utils.context import flight_context


class FlightRuntime:
    """
    Convenience wrapper that shares one manifest, resolver and settings object.

    The same configuration is used for rendering, decoding, fetching and in-process
    round trips, which keeps tests and the CLI from wiring things up by hand.
    """

    def __init__(
        self,
        client_manifest: ClientManifest | None = None,
        resolve_module: ModuleResolver | None = None,
        *,
        on_error: ErrorHandler | None = None,
        settings: FlightSettings | None = None,
        http_client: httpx.Client | None = None,
    ):
        self.settings = settings or load_flight_settings()
        self.client_manifest = client_manifest or ClientManifest(strict=False)
        self.resolve_module = resolve_module
        self.on_error = on_error
        self.http_client = http_client

    def render(self, model: Any, **options: Any) -> FlightStream:
        options.setdefault("on_error", self.on_error)
        with flight_context(settings=self.settings):
            return render_to_stream(model, self.client_manifest, settings=self.settings, **options)

    def render_bytes(self, model: Any, **options: Any) -> bytes:
        """
        Render synchronously into memory.

        Only models without pending awaitables finish this way; anything still
        outstanding when rendering returns is aborted.
        """
        stream = self.render(model, **options)
        sink = stream.pipe(BufferSink())
        if not sink.closed:
            stream.abort()
        return sink.getvalue()

    async def render_async(self, model: Any, **options: Any) -> bytes:
        stream = self.render(model, **options)
        queue = stream.pipe(AsyncByteQueue())
        return b"".join([chunk async for chunk in queue])

    def decode(self, chunks: Iterable[bytes | str], **options: Any) -> Response:
        options.setdefault("resolve_module", self.resolve_module)
        return create_from_chunks(chunks, settings=self.settings, **options)

    def fetch(self, url: str, **options: Any) -> Response:
        options.setdefault("resolve_module", self.resolve_module)
        return fetch_flight(url, client=self.http_client, settings=self.settings, **options)

    async def round_trip(self, model: Any, **options: Any) -> Any:
        """Encode `model`, decode it again in-process and return the revived root value."""
        stream = self.render(model, **options)
        queue = stream.pipe(AsyncByteQueue())
        response = create_from_stream(queue, resolve_module=self.resolve_module, settings=self.settings)
        return await response.root()

    def close(self) -> None:
        with suppress(Exception):
            if self.http_client is not None:
                self.http_client.close()

    def __enter__(self) -> FlightRuntime:
        return self

    def __exit__(self, _exc_type, _exc, _tb) -> None:  # noqa: ANN001
        self.close()


__all__ = ["FlightRuntime"]

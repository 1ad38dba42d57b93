# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Byte-source adapters for Response."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterable, Iterable
from typing import Any

from ..errors import FlightProtocolError
from .response import Response

logger = logging.getLogger(__name__)


def create_from_chunks(chunks: Iterable[bytes | str], **options: Any) -> Response:
    """Decode an already-available sequence of chunks; the stream is ended afterwards."""
    response = Response(**options)
    for chunk in chunks:
        response.feed(chunk)
    response.end()
    return response


async def pump(response: Response, source: AsyncIterable[bytes | str]) -> None:
    """Feed `source` into `response` until exhausted; a failing source closes the response."""
    try:
        async for chunk in source:
            response.feed(chunk)
    except FlightProtocolError:
        return
    except asyncio.CancelledError:
        response.close()
        raise
    except Exception as exc:  # noqa: BLE001
        logger.debug("Flight byte source failed: %s", exc)
        response.close(exc)
        return
    try:
        response.end()
    except FlightProtocolError:
        return


def create_from_stream(source: AsyncIterable[bytes | str], **options: Any) -> Response:
    """
    Start decoding an async byte source in a background task and return immediately.

    Must be called with a running event loop. Values become available through the
    returned response's handles as rows arrive.
    """
    response = Response(**options)
    loop = asyncio.get_running_loop()
    response.pump_task = loop.create_task(pump(response, source))
    return response


__all__ = ["create_from_chunks", "create_from_stream", "pump"]

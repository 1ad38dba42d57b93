# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""httpx-backed byte sources for Response."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Any

import httpx

from ..client.response import Response
from ..config import FlightSettings
from ..errors import FlightError, FlightProtocolError
from ..utils.context import get_flight_settings

logger = logging.getLogger(__name__)

FLIGHT_CONTENT_TYPE = "text/x-component"


def _request_headers(settings: FlightSettings, headers: Mapping[str, str] | None) -> dict[str, str]:
    merged = {"Accept": FLIGHT_CONTENT_TYPE}
    merged.update(headers or {})
    merged.setdefault("User-Agent", settings.user_agent)
    return merged


def _status_error(url: str, status_code: int) -> FlightError:
    return FlightError(f"Flight endpoint {url} responded with HTTP {status_code}")


def fetch_flight(
    url: str,
    *,
    client: httpx.Client | None = None,
    settings: FlightSettings | None = None,
    headers: Mapping[str, str] | None = None,
    **response_options: Any,
) -> Response:
    """
    GET `url` and decode the body as it streams in.

    Transport failures and non-2xx statuses do not raise; they close the returned
    response so every handle observes the failure.
    """
    settings = settings or get_flight_settings()
    response = Response(settings=settings, **response_options)
    http = client or httpx.Client(
        follow_redirects=True,
        timeout=settings.http_timeout,
        verify=settings.verify_ssl,
    )
    try:
        with http.stream("GET", url, headers=_request_headers(settings, headers)) as resp:
            if not resp.is_success:
                response.close(_status_error(url, resp.status_code))
                return response
            for chunk in resp.iter_bytes():
                if chunk:
                    response.feed(chunk)
        response.end()
    except FlightProtocolError:
        # feed/end already closed the response with the violation
        pass
    except httpx.HTTPError as exc:
        logger.warning("Fetching Flight stream from %s failed: %s", url, exc)
        response.close(exc)
    finally:
        if client is None:
            http.close()
    return response


async def _pump_http(response: Response, client: httpx.AsyncClient, url: str, headers: dict[str, str]) -> None:
    try:
        async with client.stream("GET", url, headers=headers) as resp:
            if not resp.is_success:
                response.close(_status_error(url, resp.status_code))
                return
            async for chunk in resp.aiter_bytes():
                if chunk:
                    response.feed(chunk)
        response.end()
    except FlightProtocolError:
        pass
    except asyncio.CancelledError:
        response.close()
        raise
    except httpx.HTTPError as exc:
        logger.warning("Fetching Flight stream from %s failed: %s", url, exc)
        response.close(exc)


def create_from_fetch(
    client: httpx.AsyncClient,
    url: str,
    *,
    settings: FlightSettings | None = None,
    headers: Mapping[str, str] | None = None,
    **response_options: Any,
) -> Response:
    """Start streaming `url` through `client` in a background task (needs a running loop)."""
    settings = settings or get_flight_settings()
    response = Response(settings=settings, **response_options)
    loop = asyncio.get_running_loop()
    response.pump_task = loop.create_task(_pump_http(response, client, url, _request_headers(settings, headers)))
    return response


__all__ = ["FLIGHT_CONTENT_TYPE", "create_from_fetch", "fetch_flight"]

# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Helpers for the future-like objects producers and resolvers hand us."""

from __future__ import annotations

import inspect
from typing import Any


def is_future(value: Any) -> bool:
    """asyncio and concurrent.futures futures (anything with done/result/add_done_callback)."""
    return (
        not isinstance(value, type)
        and callable(getattr(value, "add_done_callback", None))
        and callable(getattr(value, "done", None))
        and callable(getattr(value, "result", None))
    )


def is_coroutine(value: Any) -> bool:
    return inspect.iscoroutine(value)


def is_awaitable(value: Any) -> bool:
    return is_future(value) or is_coroutine(value)


def future_outcome(future: Any) -> tuple[Any, BaseException | None]:
    """Return `(value, error)` for a finished future; cancellation is reported as an error."""
    if future.cancelled():
        try:
            future.result()
        except BaseException as exc:  # noqa: BLE001 - CancelledError differs between asyncio and concurrent
            return None, exc
    error = future.exception()
    if error is not None:
        return None, error
    return future.result(), None


__all__ = ["future_outcome", "is_awaitable", "is_coroutine", "is_future"]

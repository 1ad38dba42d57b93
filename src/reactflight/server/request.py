# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""
Flight encoder.

A Request turns one model into a stream of rows. The root model is row 1; every
awaitable found while walking the model is outlined into its own row and written once
it settles, so the consumer can render what is ready without waiting for the rest.
Rows are buffered until a sink is attached with `start_flowing`.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from functools import partial
from typing import Any, Protocol

from ..codec import (
    ELEMENT_MARKER,
    PATH_SEPARATOR,
    UNDEFINED_TOKEN,
    dumps,
    encode_date,
    encode_number,
    encode_row,
    escape_string,
    format_promise_reference,
    format_reference,
)
from ..config import FlightSettings
from ..errors import FlightError, FlightSerializationError, Postpone, categorize_exception
from ..models.references import ClientModule, ClientReference, Deferred
from ..models.rows import RowTag
from ..models.values import UNDEFINED, Element, Symbol
from ..utils.awaitables import future_outcome, is_awaitable, is_coroutine, is_future
from ..utils.context import flight_context, get_flight_settings
from .digest import DigestReporter, ErrorHandler, error_message
from .hints import HintEmitter
from .manifest import ClientManifest

logger = logging.getLogger(__name__)

ABORT_WITHOUT_REASON = "The render was aborted by the server without a reason."


class Sink(Protocol):
    def write(self, data: bytes) -> Any: ...

    def close(self) -> Any: ...


class TaskStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    ERRORED = "errored"
    ABORTED = "aborted"


class RequestStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


@dataclass(eq=False)
class _Task:
    id: int
    model: Any
    status: TaskStatus = TaskStatus.PENDING
    waiting_on: Any = None


_SUSPENDED = object()


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


class Request:
    def __init__(
        self,
        model: Any,
        client_manifest: ClientManifest | None = None,
        *,
        on_error: ErrorHandler | None = None,
        on_postpone: Callable[[str], Any] | None = None,
        dev: bool | None = None,
        settings: FlightSettings | None = None,
    ):
        self.settings = settings or get_flight_settings()
        self.dev = self.settings.dev if dev is None else dev
        self.client_manifest = client_manifest or ClientManifest(strict=False)
        self.digests = DigestReporter(on_error, dev=self.dev)
        self.hints = HintEmitter(self)
        self.status = RequestStatus.OPEN
        self._on_postpone = on_postpone
        self._next_id = 1
        self._pending: dict[int, _Task] = {}
        self._pinged: deque[_Task] = deque()
        self._rows: list[bytes] = []
        self._destination: Sink | None = None
        self._destination_closed = False
        self._working = False
        # thread-pool futures settle on worker threads when no loop is running
        self._lock = threading.RLock()
        # id(obj) -> (obj, row id, path); the object is kept alive so ids are not reused.
        self._written: dict[int, tuple[Any, int, tuple[str, ...]]] = {}
        self._outlined: dict[int, tuple[Any, int]] = {}
        self._client_references: dict[str, str] = {}
        self._symbols: dict[str, str] = {}
        self._owned: list[asyncio.Task] = []
        self.root_id = self._create_task(model).id

    @property
    def closed(self) -> bool:
        return self.status is RequestStatus.CLOSED

    @property
    def pending_ids(self) -> list[int]:
        return sorted(self._pending)

    def start(self) -> None:
        self._perform_work()

    def start_flowing(self, destination: Sink) -> None:
        with self._lock:
            if self._destination is not None:
                raise RuntimeError("This request is already flowing into a destination")
            self._destination = destination
            self._flush()

    def abort(self, reason: Any = None) -> None:
        """
        Fail every pending row with one shared error and close the stream.

        `on_error` is called once for the abort; the same digest is written for
        each identifier still pending.
        """
        with self._lock:
            if self.closed:
                return
            if reason is None:
                reason = FlightError(ABORT_WITHOUT_REASON)
            logger.info(
                "Aborting Flight request with %d pending row(s): %s", len(self._pending), error_message(reason)
            )
            pending = [task for task in self._pending.values() if task.status is TaskStatus.PENDING]
            if pending:
                payload = dumps(self.digests.report(reason).to_payload())
                for task in pending:
                    task.status = TaskStatus.ABORTED
                    self._rows.append(encode_row(task.id, RowTag.ERROR, payload))
            self._pending.clear()
            self._pinged.clear()
            for owned in self._owned:
                if not owned.done():
                    owned.cancel()
            self.status = RequestStatus.CLOSED
            self._flush()

    def emit_hint(self, code: str, payload: Any) -> None:
        with self._lock:
            row_id = self._allocate_id()
            self._rows.append(encode_row(row_id, RowTag.HINT, code + dumps(payload)))
            if not self._working:
                self._flush()

    def _allocate_id(self) -> int:
        row_id = self._next_id
        self._next_id += 1
        return row_id

    def _create_task(self, model: Any) -> _Task:
        task = _Task(id=self._allocate_id(), model=model)
        self._pending[task.id] = task
        self._pinged.append(task)
        return task

    def _ping(self, task: _Task, _future: Any = None) -> None:
        with self._lock:
            if self.closed or task.status is not TaskStatus.PENDING:
                return
            self._pinged.append(task)
            self._perform_work()

    def _perform_work(self) -> None:
        with self._lock:
            if self._working:
                return
            self._working = True
            try:
                with flight_context(request=self):
                    while self._pinged:
                        self._retry_task(self._pinged.popleft())
            finally:
                self._working = False
            if not self._pending and not self.closed:
                logger.debug("Flight request finished after %d row id(s)", self._next_id - 1)
                self.status = RequestStatus.CLOSED
            self._flush()

    def _flush(self) -> None:
        if self._destination is None:
            return
        rows, self._rows = self._rows, []
        for row in rows:
            self._destination.write(row)
        if self.closed and not self._destination_closed:
            self._destination_closed = True
            self._destination.close()

    def _retry_task(self, task: _Task) -> None:
        if task.status is not TaskStatus.PENDING:
            return
        first_outlined = self._next_id
        try:
            value = self._unwrap(task)
            if value is _SUSPENDED:
                return
            payload = dumps(self._encode(value, task, (), set()))
        except Postpone as exc:
            self._discard_partial(task, first_outlined)
            self._emit_postpone(task, exc)
        except Exception as exc:  # noqa: BLE001
            self._discard_partial(task, first_outlined)
            self._emit_error(task, exc)
        else:
            self._rows.append(encode_row(task.id, RowTag.MODEL, payload))
            self._complete(task, TaskStatus.COMPLETED)

    def _complete(self, task: _Task, status: TaskStatus) -> None:
        task.status = status
        task.waiting_on = None
        self._pending.pop(task.id, None)

    def _emit_error(self, task: _Task, error: BaseException) -> None:
        logger.debug("Row %x failed (%s): %s", task.id, categorize_exception(error).value, error_message(error))
        info = self.digests.report(error)
        self._rows.append(encode_row(task.id, RowTag.ERROR, dumps(info.to_payload())))
        self._complete(task, TaskStatus.ERRORED)

    def _emit_postpone(self, task: _Task, postponed: Postpone) -> None:
        if self._on_postpone is not None:
            try:
                self._on_postpone(postponed.reason)
            except Exception:  # noqa: BLE001
                logger.exception("on_postpone handler raised")
        payload = {"reason": postponed.reason} if self.dev and postponed.reason else {}
        self._rows.append(encode_row(task.id, RowTag.POSTPONE, dumps(payload)))
        self._complete(task, TaskStatus.ERRORED)

    def _discard_partial(self, task: _Task, first_outlined: int) -> None:
        """Drop what a failed encode left behind: its paths and the tasks it outlined."""
        stale = [marker for marker, (_, row_id, _) in self._written.items() if row_id == task.id]
        for marker in stale:
            del self._written[marker]

        dropped = [pending for pending in self._pending.values() if pending.id >= first_outlined]
        if not dropped:
            return
        dropped_ids = {pending.id for pending in dropped}
        for pending in dropped:
            pending.status = TaskStatus.ABORTED
            del self._pending[pending.id]
            if is_coroutine(pending.model):
                pending.model.close()
        self._pinged = deque(pending for pending in self._pinged if pending.id not in dropped_ids)
        outlined = [key for key, (_, row_id) in self._outlined.items() if row_id in dropped_ids]
        for key in outlined:
            del self._outlined[key]
        logger.debug("Row %x failed; dropped outlined row(s) %s", task.id, sorted(dropped_ids))

    def _unwrap(self, task: _Task) -> Any:
        """Follow the task's model through awaitables until a plain value (or a suspension)."""
        while True:
            value = task.model
            if isinstance(value, Deferred):
                task.model = value.awaitable
                continue
            if is_coroutine(value):
                task.model = self._schedule(value)
                continue
            if is_future(value):
                if not value.done() and not asyncio.isfuture(value) and _running_loop() is not None:
                    # settle thread-pool futures on the loop, not in the worker thread
                    value = task.model = asyncio.wrap_future(value)
                if not value.done():
                    if task.waiting_on is not value:
                        task.waiting_on = value
                        value.add_done_callback(partial(self._ping, task))
                    return _SUSPENDED
                result, error = future_outcome(value)
                if error is not None:
                    if not isinstance(error, Exception):
                        raise FlightError("The awaited value was cancelled") from error
                    raise error
                task.model = result
                continue
            return value

    def _schedule(self, coroutine: Any) -> asyncio.Task:
        loop = _running_loop()
        if loop is None:
            coroutine.close()
            raise FlightSerializationError("Coroutines can only be serialized while an event loop is running") from None
        owned = loop.create_task(coroutine)
        self._owned.append(owned)
        return owned

    def _encode(self, value: Any, task: _Task, path: tuple[str, ...], ancestors: set[int]) -> Any:
        if value is None or isinstance(value, bool):
            return value
        if isinstance(value, str):
            return escape_string(value)
        if isinstance(value, (int, float)):
            return encode_number(value)
        if value is UNDEFINED:
            return UNDEFINED_TOKEN
        if isinstance(value, datetime):
            return encode_date(value)
        if isinstance(value, Symbol):
            return self._symbol_reference(value)
        if isinstance(value, ClientModule):
            value = value.reference
        if isinstance(value, ClientReference):
            return self._client_reference(value)
        if isinstance(value, Deferred):
            return format_promise_reference(self._outline(value, value.awaitable))
        if is_awaitable(value):
            return format_reference(self._outline(value, value))
        if isinstance(value, (Element, dict, list, tuple)):
            return self._encode_container(value, task, path, ancestors)
        raise FlightSerializationError(f"Values of type {type(value).__name__} cannot be serialized")

    def _encode_container(self, value: Any, task: _Task, path: tuple[str, ...], ancestors: set[int]) -> Any:
        marker = id(value)
        if marker in ancestors:
            raise FlightSerializationError(
                f"Cannot serialize a cyclic {type(value).__name__}; the value contains itself"
            )
        seen = self._written.get(marker)
        if seen is not None:
            return format_reference(seen[1], seen[2])
        if all(PATH_SEPARATOR not in segment for segment in path):
            self._written[marker] = (value, task.id, path)
        ancestors.add(marker)
        try:
            if isinstance(value, Element):
                key = value.key if value.key is None else str(value.key)
                return [
                    ELEMENT_MARKER,
                    self._encode(value.type, task, path + ("type",), ancestors),
                    key,
                    self._encode(value.props, task, path + ("props",), ancestors),
                ]
            if isinstance(value, dict):
                encoded: dict[str, Any] = {}
                for name, item in value.items():
                    if not isinstance(name, str):
                        raise FlightSerializationError(
                            f"Object keys must be strings, got {type(name).__name__}"
                        )
                    encoded[name] = self._encode(item, task, path + (name,), ancestors)
                return encoded
            return [self._encode(item, task, path + (str(index),), ancestors) for index, item in enumerate(value)]
        finally:
            ancestors.discard(marker)

    def _outline(self, key: Any, awaitable: Any) -> int:
        seen = self._outlined.get(id(key))
        if seen is not None:
            return seen[1]
        task = self._create_task(awaitable)
        self._outlined[id(key)] = (key, task.id)
        return task.id

    def _client_reference(self, reference: ClientReference) -> str:
        existing = self._client_references.get(reference.key)
        if existing is not None:
            return existing
        row_id = self._allocate_id()
        token = format_reference(row_id)
        self._client_references[reference.key] = token
        try:
            metadata = self.client_manifest.resolve(reference)
        except Exception as exc:  # noqa: BLE001
            info = self.digests.report(exc)
            self._rows.append(encode_row(row_id, RowTag.ERROR, dumps(info.to_payload())))
        else:
            self._rows.append(encode_row(row_id, RowTag.MODULE, dumps(metadata.to_mapping())))
        return token

    def _symbol_reference(self, symbol: Symbol) -> str:
        existing = self._symbols.get(symbol.name)
        if existing is not None:
            return existing
        row_id = self._allocate_id()
        token = format_reference(row_id)
        self._symbols[symbol.name] = token
        self._rows.append(encode_row(row_id, RowTag.SYMBOL, dumps(symbol.name)))
        return token


__all__ = ["ABORT_WITHOUT_REASON", "Request", "RequestStatus", "Sink", "TaskStatus"]

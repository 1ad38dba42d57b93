# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""
Reference graph: one entry per identifier, settled exactly once.

An entry is PENDING until its row arrives, BLOCKED while its row waits on other
identifiers, and then RESOLVED or ERRORED for good. Continuations registered on an
entry are plain callbacks that run synchronously when it settles, which is how
resolutions cascade up through the models that reference it.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from typing import Any, Union

from ..codec import TokenKind, parse_token
from ..errors import (
    PRODUCTION_ERROR_MESSAGE,
    FlightConnectionClosed,
    FlightError,
    FlightProtocolError,
    FlightResolverError,
    ValueNotReady,
)
from ..models.rows import ClientReferenceMetadata
from ..models.values import UNDEFINED, Element
from ..utils.awaitables import future_outcome, is_coroutine, is_future

logger = logging.getLogger(__name__)

OnResolve = Callable[[Any], None]
OnReject = Callable[[BaseException], None]
ModuleResolver = Callable[[ClientReferenceMetadata], Any]


class EntryStatus(str, Enum):
    PENDING = "pending"
    BLOCKED = "blocked"
    RESOLVED = "resolved"
    ERRORED = "errored"


@dataclass(eq=False)
class Entry:
    id: int
    status: EntryStatus = EntryStatus.PENDING
    value: Any = None
    error: BaseException | None = None
    listeners: list[tuple[OnResolve, OnReject | None]] = field(default_factory=list)
    waiting_on: set[int] = field(default_factory=set)
    remaining: int = 0
    # Single-slot holder for a BLOCKED model; the root itself may be a hole.
    partial_model: list[Any] | None = None

    @property
    def settled(self) -> bool:
        return self.status in (EntryStatus.RESOLVED, EntryStatus.ERRORED)


@dataclass(frozen=True)
class Ready:
    value: Any


@dataclass(frozen=True)
class Pending:
    handle: "Handle"


@dataclass(frozen=True)
class Failed:
    error: BaseException


HandleState = Union[Ready, Pending, Failed]


def _set_future_result(future: asyncio.Future, value: Any) -> None:
    if not future.done():
        future.set_result(value)


def _set_future_exception(future: asyncio.Future, error: BaseException) -> None:
    if not future.done():
        future.set_exception(error)


class Handle:
    """
    Consumer-facing view of one identifier.

    `peek()` never raises; `unwrap()` gives blocking-style ergonomics by raising
    `ValueNotReady` (or the stored error); `then()` and `await` are the async paths.
    All handles for an identifier observe the same single settlement.
    """

    def __init__(self, graph: "ReferenceGraph", entry_id: int):
        self._graph = graph
        self._id = entry_id

    @property
    def id(self) -> int:
        return self._id

    def peek(self) -> HandleState:
        entry = self._graph.get_or_create(self._id)
        if entry.status is EntryStatus.RESOLVED:
            return Ready(entry.value)
        if entry.status is EntryStatus.ERRORED:
            return Failed(entry.error)  # type: ignore[arg-type]
        return Pending(self)

    def done(self) -> bool:
        return not isinstance(self.peek(), Pending)

    def unwrap(self) -> Any:
        state = self.peek()
        if isinstance(state, Ready):
            return state.value
        if isinstance(state, Failed):
            raise state.error
        raise ValueNotReady(self)

    def then(self, on_resolve: OnResolve, on_reject: OnReject | None = None) -> None:
        self._graph.subscribe(self._id, on_resolve, on_reject)

    def __await__(self):
        loop = asyncio.get_running_loop()
        future = loop.create_future()
        self.then(partial(_set_future_result, future), partial(_set_future_exception, future))
        return future.__await__()

    def __repr__(self) -> str:
        entry = self._graph.get_or_create(self._id)
        return f"Handle(id={self._id:x}, status={entry.status.value})"


@dataclass
class _Revival:
    """Bookkeeping while one model row is being revived."""

    entry: Entry
    waits: dict[int, list[tuple[OnResolve, tuple[str, ...]]]] = field(default_factory=dict)
    local: list[tuple[OnResolve, tuple[str, ...]]] = field(default_factory=list)
    failure: BaseException | None = None


class ReferenceGraph:
    """Identifier -> entry map owned by exactly one Response."""

    def __init__(self, resolve_module: ModuleResolver | None = None):
        self._entries: dict[int, Entry] = {}
        self._handles: dict[int, Handle] = {}
        self._resolve_module = resolve_module
        self._closed_reason: BaseException | None = None

    @property
    def closed(self) -> bool:
        return self._closed_reason is not None

    def entry(self, entry_id: int) -> Entry | None:
        return self._entries.get(entry_id)

    def pending_ids(self) -> list[int]:
        return [entry_id for entry_id, entry in self._entries.items() if not entry.settled]

    def get_or_create(self, entry_id: int) -> Entry:
        entry = self._entries.get(entry_id)
        if entry is None:
            entry = Entry(id=entry_id)
            self._entries[entry_id] = entry
            if self._closed_reason is not None:
                self._fail(entry, self._closed_reason)
        return entry

    def get_handle(self, entry_id: int) -> Handle:
        handle = self._handles.get(entry_id)
        if handle is None:
            self.get_or_create(entry_id)
            handle = Handle(self, entry_id)
            self._handles[entry_id] = handle
        return handle

    def subscribe(self, entry_id: int, on_resolve: OnResolve, on_reject: OnReject | None = None) -> None:
        entry = self.get_or_create(entry_id)
        if entry.status is EntryStatus.RESOLVED:
            on_resolve(entry.value)
        elif entry.status is EntryStatus.ERRORED:
            if on_reject is not None:
                on_reject(entry.error)  # type: ignore[arg-type]
        else:
            entry.listeners.append((on_resolve, on_reject))

    # Row application -------------------------------------------------------------------

    def resolve_value(self, entry_id: int, value: Any) -> None:
        """Settle an identifier with an already-revived value (symbol rows)."""
        entry = self._claim(entry_id)
        self._settle(entry, value)

    def resolve_model(self, entry_id: int, raw: Any) -> None:
        entry = self._claim(entry_id)
        state = _Revival(entry=entry)
        holder: list[Any] = [None]
        holder[0] = self._revive(raw, state, partial(holder.__setitem__, 0))

        if state.failure is not None:
            self._fail(entry, state.failure)
            return

        for assign, path in state.local:
            if not path:
                raise FlightProtocolError(f"Identifier {entry_id:x} references itself")
            assign(self._follow(holder[0], path, entry_id))

        if not state.waits:
            self._settle(entry, holder[0])
            return

        entry.partial_model = holder
        entry.remaining = len(state.waits)
        entry.waiting_on = set(state.waits)
        logger.debug("Identifier %x blocked on %s", entry_id, sorted(state.waits))
        for target_id, fixups in state.waits.items():
            self.subscribe(
                target_id,
                partial(self._dependency_resolved, entry, target_id, fixups),
                partial(self._dependency_failed, entry),
            )

    def resolve_module(self, entry_id: int, descriptor: ClientReferenceMetadata) -> None:
        entry = self._claim(entry_id)
        if self._resolve_module is None:
            self._fail(entry, FlightResolverError(f"No module resolver configured for client module {descriptor.id!r}"))
            return
        try:
            loaded = self._resolve_module(descriptor)
        except Exception as exc:  # noqa: BLE001
            logger.debug("Module resolver failed for %s: %s", descriptor.id, exc)
            self._fail(entry, exc)
            return
        self._adopt(entry, loaded)

    def reject(
        self,
        entry_id: int,
        digest: str | None = None,
        message: str | None = None,
        *,
        error: BaseException | None = None,
    ) -> None:
        entry = self._claim(entry_id)
        if error is None:
            error = FlightError(message if message is not None else PRODUCTION_ERROR_MESSAGE, digest=digest)
        self._fail(entry, error)

    def close(self, reason: Any = None, *, fail_blocked: bool = False) -> None:
        """
        Reject every identifier whose row never arrived; later lookups of unknown ids fail the same way.

        Models blocked on those identifiers fail through their listeners. Rows that are only
        waiting for a client module to load are left to finish unless `fail_blocked` is set.
        """
        if self._closed_reason is not None:
            return
        if reason is None:
            error: BaseException = FlightConnectionClosed()
        elif isinstance(reason, BaseException):
            error = reason
        else:
            error = FlightError(str(reason))
        self._closed_reason = error
        pending = [
            entry
            for entry in self._entries.values()
            if entry.status is EntryStatus.PENDING or (fail_blocked and entry.status is EntryStatus.BLOCKED)
        ]
        if pending:
            logger.debug("Closing graph with %d unsettled identifiers: %s", len(pending), error)
        for entry in pending:
            self._fail(entry, error)

    # Internals ----------------------------------------------------------------------------

    def _claim(self, entry_id: int) -> Entry:
        entry = self.get_or_create(entry_id)
        if entry.status is not EntryStatus.PENDING:
            raise FlightProtocolError(
                f"Row for identifier {entry_id:x} arrived but the identifier is already {entry.status.value}"
            )
        entry.status = EntryStatus.BLOCKED
        return entry

    def _revive(self, raw: Any, state: _Revival, assign: OnResolve) -> Any:
        if isinstance(raw, str):
            return self._revive_string(raw, state, assign)
        if isinstance(raw, list):
            if len(raw) == 4 and raw[0] == "$":
                return self._revive_element(raw, state)
            out: list[Any] = []
            for index, item in enumerate(raw):
                out.append(None)
                out[index] = self._revive(item, state, partial(out.__setitem__, index))
            return out
        if isinstance(raw, dict):
            obj: dict[str, Any] = {}
            for key, item in raw.items():
                obj[key] = None
                obj[key] = self._revive(item, state, partial(obj.__setitem__, key))
            return obj
        return raw

    def _revive_element(self, raw: list[Any], state: _Revival) -> Element:
        key = raw[2]
        if key is not None and not isinstance(key, str):
            raise FlightProtocolError(f"Element key must be a string or null, got {type(key).__name__}")
        node = Element(type=None, key=key, props={})
        node.type = self._revive(raw[1], state, partial(setattr, node, "type"))
        node.props = self._revive(raw[3], state, partial(setattr, node, "props"))
        return node

    def _revive_string(self, raw: str, state: _Revival, assign: OnResolve) -> Any:
        token = parse_token(raw)
        if token.kind is TokenKind.REFERENCE:
            return self._reference(token.id, token.path, state, assign)  # type: ignore[arg-type]
        if token.kind is TokenKind.PROMISE:
            return self.get_handle(token.id)  # type: ignore[arg-type]
        if token.kind is TokenKind.UNDEFINED:
            return UNDEFINED
        if token.kind is TokenKind.ELEMENT:
            raise FlightProtocolError("Element marker found outside of an element")
        return token.value

    def _reference(self, target_id: int, path: tuple[str, ...], state: _Revival, assign: OnResolve) -> Any:
        if target_id == state.entry.id:
            state.local.append((assign, path))
            return None
        target = self.get_or_create(target_id)
        if target.status is EntryStatus.RESOLVED:
            return self._follow(target.value, path, target_id)
        if target.status is EntryStatus.BLOCKED and target.partial_model is not None:
            # containers inside a blocked row already exist and are filled in place
            shared = self._follow_partial(target.partial_model[0], path)
            if shared is not None:
                return shared
        if target.status is EntryStatus.ERRORED:
            if state.failure is None:
                state.failure = target.error
            return None
        if target_id not in state.waits:
            self._check_cycle(state.entry.id, target_id)
        state.waits.setdefault(target_id, []).append((assign, path))
        return None

    def _check_cycle(self, waiter_id: int, target_id: int) -> None:
        seen: set[int] = set()
        stack = [target_id]
        while stack:
            current = stack.pop()
            if current == waiter_id:
                raise FlightProtocolError(f"Cyclic wait between identifiers {waiter_id:x} and {target_id:x}")
            if current in seen:
                continue
            seen.add(current)
            entry = self._entries.get(current)
            if entry is not None:
                stack.extend(entry.waiting_on)

    @staticmethod
    def _follow(value: Any, path: tuple[str, ...], target_id: int) -> Any:
        current = value
        for segment in path:
            if isinstance(current, dict) and segment in current:
                current = current[segment]
            elif isinstance(current, list) and segment.isdigit() and int(segment) < len(current):
                current = current[int(segment)]
            elif isinstance(current, Element) and segment in ("type", "key", "props"):
                current = getattr(current, segment)
            else:
                raise FlightProtocolError(
                    f"Reference path {':'.join(path)!r} does not exist in identifier {target_id:x}"
                )
        return current

    @classmethod
    def _follow_partial(cls, value: Any, path: tuple[str, ...]) -> Any:
        try:
            found = cls._follow(value, path, 0)
        except FlightProtocolError:
            return None
        return found if isinstance(found, (dict, list, Element)) else None

    def _dependency_resolved(
        self,
        entry: Entry,
        target_id: int,
        fixups: list[tuple[OnResolve, tuple[str, ...]]],
        value: Any,
    ) -> None:
        if entry.status is not EntryStatus.BLOCKED:
            return
        try:
            for assign, path in fixups:
                assign(self._follow(value, path, target_id))
        except FlightProtocolError as exc:
            logger.warning("Identifier %x references a missing path: %s", entry.id, exc)
            self._fail(entry, exc)
            return
        entry.waiting_on.discard(target_id)
        entry.remaining -= 1
        if entry.remaining == 0:
            holder = entry.partial_model or [None]
            self._settle(entry, holder[0])

    def _dependency_failed(self, entry: Entry, error: BaseException) -> None:
        if entry.status is EntryStatus.BLOCKED:
            self._fail(entry, error)

    def _adopt(self, entry: Entry, loaded: Any) -> None:
        if isinstance(loaded, Handle):
            loaded.then(partial(self._settle_blocked, entry), partial(self._dependency_failed, entry))
            return
        if is_coroutine(loaded):
            try:
                loaded = asyncio.get_running_loop().create_task(loaded)
            except RuntimeError:
                loaded.close()
                self._fail(entry, FlightResolverError("Module resolver returned a coroutine outside of an event loop"))
                return
        if is_future(loaded):
            loaded.add_done_callback(partial(self._module_loaded, entry))
            return
        self._settle(entry, loaded)

    def _module_loaded(self, entry: Entry, future: Any) -> None:
        if entry.status is not EntryStatus.BLOCKED:
            return
        value, error = future_outcome(future)
        if error is not None:
            if future.cancelled():
                error = FlightResolverError(f"Loading the client module for identifier {entry.id:x} was cancelled")
            self._fail(entry, error)
        else:
            self._settle(entry, value)

    def _settle_blocked(self, entry: Entry, value: Any) -> None:
        if entry.status is EntryStatus.BLOCKED:
            self._settle(entry, value)

    def _settle(self, entry: Entry, value: Any) -> None:
        entry.status = EntryStatus.RESOLVED
        entry.value = value
        entry.partial_model = None
        entry.waiting_on.clear()
        listeners, entry.listeners = entry.listeners, []
        self._notify(entry, [on_resolve for on_resolve, _on_reject in listeners], value)

    def _fail(self, entry: Entry, error: BaseException) -> None:
        if entry.settled:
            return
        entry.status = EntryStatus.ERRORED
        entry.error = error
        entry.partial_model = None
        entry.waiting_on.clear()
        listeners, entry.listeners = entry.listeners, []
        self._notify(entry, [on_reject for _on_resolve, on_reject in listeners if on_reject is not None], error)

    @staticmethod
    def _notify(entry: Entry, callbacks: list[Callable[[Any], None]], argument: Any) -> None:
        # every consumer of an identifier is told, whatever an earlier one did
        for callback in callbacks:
            try:
                callback(argument)
            except Exception:  # noqa: BLE001
                logger.exception("Listener for identifier %x raised", entry.id)


__all__ = [
    "Entry",
    "EntryStatus",
    "Failed",
    "Handle",
    "HandleState",
    "ModuleResolver",
    "Pending",
    "Ready",
    "ReferenceGraph",
]

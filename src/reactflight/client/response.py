# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Decoder side of a Flight stream."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from ..codec import RowReader, loads
from ..config import FlightSettings
from ..errors import FlightError, FlightPostponed, FlightProtocolError
from ..models.rows import ClientReferenceMetadata, Row, RowTag
from ..models.values import Symbol
from ..utils.context import get_flight_settings
from .graph import Handle, ModuleResolver, ReferenceGraph

logger = logging.getLogger(__name__)

ROOT_ID = 1

HintCallback = Callable[[str, Any], None]


@dataclass(frozen=True)
class Hint:
    code: str
    payload: Any


class Response:
    """
    Incrementally applies rows from a byte stream to a ReferenceGraph.

    Bytes may arrive in any chunking. Rows are applied synchronously and in arrival
    order; consumers read values through `root()` / `get_handle()`. A consumer callback
    that raises is logged and does not stop the rows after it.
    """

    def __init__(
        self,
        resolve_module: ModuleResolver | None = None,
        *,
        on_hint: HintCallback | None = None,
        settings: FlightSettings | None = None,
    ):
        self.settings = settings or get_flight_settings()
        self.graph = ReferenceGraph(resolve_module=resolve_module)
        self.hints: list[Hint] = []
        self._on_hint = on_hint
        self._reader = RowReader(max_row_bytes=self.settings.max_row_bytes)
        self._closed = False
        self.pump_task: asyncio.Task | None = None

    @property
    def closed(self) -> bool:
        return self._closed

    def root(self) -> Handle:
        return self.graph.get_handle(ROOT_ID)

    def get_handle(self, entry_id: int) -> Handle:
        return self.graph.get_handle(entry_id)

    def feed(self, chunk: bytes | bytearray | str) -> None:
        if self._closed:
            raise FlightProtocolError("Cannot feed bytes into a closed response")
        try:
            for row in self._reader.feed(chunk):
                self.apply_row(row)
        except FlightProtocolError as exc:
            logger.warning("Protocol violation in Flight stream: %s", exc)
            self._abandon(exc)
            raise

    def end(self) -> None:
        """Signal end-of-stream; anything still pending is rejected as connection closed."""
        if self._closed:
            return
        try:
            self._reader.finish()
        except FlightProtocolError as exc:
            logger.warning("Protocol violation in Flight stream: %s", exc)
            self._abandon(exc)
            raise
        pending = self.graph.pending_ids()
        if pending:
            logger.debug("Stream ended with %d pending identifiers", len(pending))
        self.close()

    def close(self, reason: Any = None) -> None:
        self._closed = True
        self.graph.close(reason)

    def _abandon(self, error: FlightProtocolError) -> None:
        # a malformed stream cannot be trusted to finish any row, loaded modules included
        self._closed = True
        self.graph.close(error, fail_blocked=True)

    def apply_row(self, row: Row) -> None:
        if row.tag is RowTag.MODEL:
            self.graph.resolve_model(row.id, loads(row.payload))
        elif row.tag is RowTag.MODULE:
            self.graph.resolve_module(row.id, self._parse_descriptor(row))
        elif row.tag is RowTag.HINT:
            self._apply_hint(row)
        elif row.tag is RowTag.ERROR:
            error = FlightError.from_payload(loads(row.payload))
            self.graph.reject(row.id, error=error)
        elif row.tag is RowTag.SYMBOL:
            name = loads(row.payload)
            if not isinstance(name, str):
                raise FlightProtocolError(f"Symbol row {row.id:x} must carry a string")
            self.graph.resolve_value(row.id, Symbol(name))
        elif row.tag is RowTag.POSTPONE:
            payload = loads(row.payload) if row.payload else {}
            reason = payload.get("reason") if isinstance(payload, dict) else None
            self.graph.reject(row.id, error=FlightPostponed(str(reason or "This value was postponed by the producer")))
        else:  # pragma: no cover - RowTag is closed
            raise FlightProtocolError(f"Unsupported row tag {row.tag!r}")

    @staticmethod
    def _parse_descriptor(row: Row) -> ClientReferenceMetadata:
        data = loads(row.payload)
        if not isinstance(data, Mapping) or "id" not in data or "name" not in data:
            raise FlightProtocolError(f"Module row {row.id:x} is missing its id or export name")
        return ClientReferenceMetadata.from_mapping(data)

    def _apply_hint(self, row: Row) -> None:
        if not row.payload:
            raise FlightProtocolError(f"Hint row {row.id:x} has no hint code")
        hint = Hint(code=row.payload[0], payload=loads(row.payload[1:]))
        self.hints.append(hint)
        if self._on_hint is not None:
            try:
                self._on_hint(hint.code, hint.payload)
            except Exception:  # noqa: BLE001
                logger.exception("on_hint handler raised for hint row %x", row.id)


__all__ = ["Hint", "ROOT_ID", "Response"]

# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""
Row codec for the Flight wire format.

Each row is `<hex id>:<tag><payload>\\n`. Model payloads are JSON extended with
`$`-prefixed tokens:

- `$$...`      literal string that happened to start with `$`
- `$<id>`      the value at another identifier, optionally followed by `:key:key` path segments
- `$@<id>`     a handle to another identifier (the parent does not wait for it)
- `$undefined`, `$NaN`, `$Infinity`, `$-Infinity`, `$-0`, `$n<digits>`, `$D<iso date>`
- `"$"` as the first item of a 4-item array marks an element `["$", type, key, props]`

Everything here is pure and synchronous; applying rows to a graph happens elsewhere.
"""

from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from .config import DEFAULT_MAX_ROW_BYTES
from .errors import FlightProtocolError
from .models.rows import TAGGED_ROWS, Row, RowTag

REFERENCE_MARKER = "$"
ELEMENT_MARKER = "$"
PROMISE_SIGIL = "@"
PATH_SEPARATOR = ":"
UNDEFINED_TOKEN = "$undefined"
NAN_TOKEN = "$NaN"
INFINITY_TOKEN = "$Infinity"
NEGATIVE_INFINITY_TOKEN = "$-Infinity"
NEGATIVE_ZERO_TOKEN = "$-0"
BIGINT_PREFIX = "$n"
DATE_PREFIX = "$D"
MAX_SAFE_INTEGER = 2**53 - 1

_ID_RE = re.compile(r"^[0-9a-f]+$")
_REFERENCE_RE = re.compile(r"^\$(?P<promise>@?)(?P<id>[0-9a-f]+)(?::(?P<path>.*))?$", re.DOTALL)


class TokenKind(str, Enum):
    LITERAL = "literal"
    REFERENCE = "reference"
    PROMISE = "promise"
    UNDEFINED = "undefined"
    NUMBER = "number"
    BIGINT = "bigint"
    DATE = "date"
    ELEMENT = "element"


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    value: Any = None
    id: int | None = None
    path: tuple[str, ...] = ()


def format_id(row_id: int) -> str:
    if row_id < 0:
        raise ValueError("Row identifiers must be non-negative")
    return f"{row_id:x}"


def parse_id(text: str) -> int:
    if not _ID_RE.match(text or ""):
        raise FlightProtocolError(f"Invalid row identifier: {text!r}")
    return int(text, 16)


def format_reference(row_id: int, path: tuple[str, ...] | list[str] = ()) -> str:
    segments = [REFERENCE_MARKER + format_id(row_id)]
    segments.extend(str(segment) for segment in path)
    return PATH_SEPARATOR.join(segments)


def format_promise_reference(row_id: int) -> str:
    return f"{REFERENCE_MARKER}{PROMISE_SIGIL}{format_id(row_id)}"


def escape_string(value: str) -> str:
    if value.startswith(REFERENCE_MARKER):
        return REFERENCE_MARKER + value
    return value


def encode_number(value: int | float) -> int | float | str:
    """Encode numbers so that every value survives a strict JSON parser."""
    if isinstance(value, int):
        if abs(value) > MAX_SAFE_INTEGER:
            return f"{BIGINT_PREFIX}{value}"
        return value
    if math.isnan(value):
        return NAN_TOKEN
    if math.isinf(value):
        return INFINITY_TOKEN if value > 0 else NEGATIVE_INFINITY_TOKEN
    if value == 0 and math.copysign(1.0, value) < 0:
        return NEGATIVE_ZERO_TOKEN
    return value


def encode_date(value: datetime) -> str:
    return DATE_PREFIX + value.isoformat()


_CONSTANT_TOKENS: dict[str, Token] = {
    UNDEFINED_TOKEN: Token(TokenKind.UNDEFINED),
    NAN_TOKEN: Token(TokenKind.NUMBER, math.nan),
    INFINITY_TOKEN: Token(TokenKind.NUMBER, math.inf),
    NEGATIVE_INFINITY_TOKEN: Token(TokenKind.NUMBER, -math.inf),
    NEGATIVE_ZERO_TOKEN: Token(TokenKind.NUMBER, -0.0),
}


def parse_token(value: str) -> Token:
    """Classify a string from a model payload. Strings without the marker are literals."""
    if not value.startswith(REFERENCE_MARKER):
        return Token(TokenKind.LITERAL, value)
    if value == ELEMENT_MARKER:
        return Token(TokenKind.ELEMENT)
    if value[1] == REFERENCE_MARKER:
        return Token(TokenKind.LITERAL, value[1:])

    constant = _CONSTANT_TOKENS.get(value)
    if constant is not None:
        return constant

    if value.startswith(BIGINT_PREFIX):
        try:
            return Token(TokenKind.BIGINT, int(value[len(BIGINT_PREFIX) :]))
        except ValueError as exc:
            raise FlightProtocolError(f"Invalid bigint token: {value!r}") from exc

    if value.startswith(DATE_PREFIX):
        try:
            return Token(TokenKind.DATE, datetime.fromisoformat(value[len(DATE_PREFIX) :]))
        except ValueError as exc:
            raise FlightProtocolError(f"Invalid date token: {value!r}") from exc

    match = _REFERENCE_RE.match(value)
    if not match:
        raise FlightProtocolError(f"Unknown token in model payload: {value!r}")
    row_id = int(match.group("id"), 16)
    if match.group("promise"):
        if match.group("path") is not None:
            raise FlightProtocolError(f"Promise references cannot carry a path: {value!r}")
        return Token(TokenKind.PROMISE, id=row_id)
    raw_path = match.group("path")
    path = tuple(raw_path.split(PATH_SEPARATOR)) if raw_path is not None else ()
    return Token(TokenKind.REFERENCE, id=row_id, path=path)


def _reject_constant(name: str) -> Any:
    raise FlightProtocolError(f"Non-finite literal {name} is not valid in a Flight payload")


def dumps(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, allow_nan=False)


def loads(text: str) -> Any:
    try:
        return json.loads(text, parse_constant=_reject_constant)
    except json.JSONDecodeError as exc:
        raise FlightProtocolError(f"Malformed payload: {exc.msg} at position {exc.pos}") from exc


def encode_row(row_id: int, tag: RowTag, payload: str) -> bytes:
    if "\n" in payload:
        raise ValueError("Row payloads cannot contain a raw newline")
    return f"{format_id(row_id)}:{tag.value}{payload}\n".encode("utf-8")


def parse_row(line: bytes | bytearray) -> Row:
    try:
        text = bytes(line).decode("utf-8")
    except UnicodeDecodeError as exc:
        raise FlightProtocolError(f"Row is not valid UTF-8: {exc.reason}") from exc
    if text.endswith("\r"):
        text = text[:-1]
    colon = text.find(":")
    if colon <= 0:
        raise FlightProtocolError(f"Row is missing an identifier: {text[:32]!r}")
    row_id = parse_id(text[:colon])
    rest = text[colon + 1 :]
    tag = TAGGED_ROWS.get(rest[:1])
    if tag is not None:
        return Row(id=row_id, tag=tag, payload=rest[1:])
    return Row(id=row_id, tag=RowTag.MODEL, payload=rest)


def decode_rows(buffer: bytes | bytearray) -> tuple[list[Row], bytes]:
    """
    Split `buffer` into complete rows.

    Returns the rows plus the unconsumed tail; a partial row yields no rows and is
    handed back untouched so the caller can prepend it to the next chunk.
    """
    rows: list[Row] = []
    start = 0
    while True:
        newline = buffer.find(b"\n", start)
        if newline < 0:
            break
        line = buffer[start:newline]
        start = newline + 1
        if not line:
            raise FlightProtocolError("Empty row in Flight stream")
        rows.append(parse_row(line))
    return rows, bytes(buffer[start:])


class RowReader:
    """Resumable row splitter for a byte stream that arrives in arbitrary chunks."""

    def __init__(self, max_row_bytes: int = DEFAULT_MAX_ROW_BYTES):
        self.max_row_bytes = max_row_bytes
        self._buffer = bytearray()

    @property
    def pending_bytes(self) -> int:
        return len(self._buffer)

    def feed(self, chunk: bytes | bytearray | str) -> list[Row]:
        if isinstance(chunk, str):
            chunk = chunk.encode("utf-8")
        self._buffer.extend(chunk)
        rows, rest = decode_rows(self._buffer)
        self._buffer = bytearray(rest)
        if self.max_row_bytes and len(self._buffer) > self.max_row_bytes:
            raise FlightProtocolError(f"Row exceeds the maximum size of {self.max_row_bytes} bytes")
        return rows

    def finish(self) -> None:
        if self._buffer:
            raise FlightProtocolError("Stream ended in the middle of a row")


__all__ = [
    "DATE_PREFIX",
    "ELEMENT_MARKER",
    "MAX_SAFE_INTEGER",
    "REFERENCE_MARKER",
    "RowReader",
    "Token",
    "TokenKind",
    "UNDEFINED_TOKEN",
    "decode_rows",
    "dumps",
    "encode_date",
    "encode_number",
    "encode_row",
    "escape_string",
    "format_id",
    "format_promise_reference",
    "format_reference",
    "loads",
    "parse_id",
    "parse_row",
    "parse_token",
]

# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""reactflight CLI: inspect a Flight stream from a file, stdin or URL."""

from __future__ import annotations

import argparse
import json
import sys
from typing import Any

from ..client.graph import Failed, Handle, Pending, Ready
from ..codec import RowReader
from ..config import FlightSettings, load_flight_settings
from ..errors import FlightError, FlightProtocolError, categorize_exception, error_kind_to_reason
from ..log import setup_logging
from ..models.rows import ClientReferenceMetadata
from ..models.values import UNDEFINED, Element, Symbol
from ..runtime import FlightRuntime

CLI_TEXT_TRUNCATION_BYTES = 4096


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Decode and inspect React Flight streams")
    parser.add_argument("source", help="Path to a Flight payload, '-' for stdin, or an http(s) URL")
    parser.add_argument(
        "--rows",
        action="store_true",
        help="List the raw rows instead of decoding the model",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output indented JSON instead of a compact line",
    )
    parser.add_argument(
        "--ignore-ssl-errors",
        action="store_true",
        help="Skip TLS verification when SOURCE is a URL",
    )
    return parser


def _truncate_text_bytes(text: str, max_bytes: int) -> str:
    raw = text.encode("utf-8")
    if len(raw) <= max_bytes:
        return text
    suffix = "...[truncated]"
    suffix_bytes = suffix.encode("utf-8")
    keep = max_bytes - len(suffix_bytes)
    if keep <= 0:
        return suffix_bytes[:max_bytes].decode("utf-8", errors="ignore")
    prefix = raw[:keep].decode("utf-8", errors="ignore")
    return prefix + suffix


def _describe_error(error: BaseException) -> dict[str, Any]:
    kind = categorize_exception(error)
    described: dict[str, Any] = {
        "error": str(error),
        "type": type(error).__name__,
        "kind": kind.value,
        "reason": error_kind_to_reason(kind),
    }
    digest = getattr(error, "digest", None)
    if digest is not None:
        described["digest"] = digest
    return described


def _to_cli_value(value: Any, *, max_bytes: int, _stack: set[int] | None = None) -> Any:
    """
    Convert revived values into JSON-friendly data, truncating long strings.

    Only the current recursion stack is tracked, so shared (deduplicated) objects are
    printed at every occurrence and only true cycles become "<circular>".
    """
    if _stack is None:
        _stack = set()

    if isinstance(value, str):
        return _truncate_text_bytes(value, max_bytes)
    if value is UNDEFINED:
        return None
    if isinstance(value, Symbol):
        return f"Symbol({value.name})"
    if isinstance(value, ClientReferenceMetadata):
        return {"$module": value.id, "name": value.name, "chunks": list(value.chunks)}
    if isinstance(value, Handle):
        state = value.peek()
        if isinstance(state, Ready):
            return {"$handle": value.id, "value": _to_cli_value(state.value, max_bytes=max_bytes, _stack=_stack)}
        if isinstance(state, Failed):
            return {"$handle": value.id, **_describe_error(state.error)}
        return {"$handle": value.id, "pending": True}
    if isinstance(value, BaseException):
        return _describe_error(value)

    if isinstance(value, (dict, list, Element)):
        obj_id = id(value)
        if obj_id in _stack:
            return "<circular>"
        _stack.add(obj_id)
        try:
            if isinstance(value, Element):
                return {
                    "$element": _to_cli_value(value.type, max_bytes=max_bytes, _stack=_stack),
                    "key": value.key,
                    "props": _to_cli_value(value.props, max_bytes=max_bytes, _stack=_stack),
                }
            if isinstance(value, dict):
                return {k: _to_cli_value(v, max_bytes=max_bytes, _stack=_stack) for k, v in value.items()}
            return [_to_cli_value(v, max_bytes=max_bytes, _stack=_stack) for v in value]
        finally:
            _stack.discard(obj_id)

    return value


def _print_json(data: Any, *, indent: int | None) -> None:
    json.dump(data, sys.stdout, indent=indent, sort_keys=indent is not None, ensure_ascii=False, default=repr)
    sys.stdout.write("\n")


def _read_source(source: str) -> bytes:
    if source == "-":
        return sys.stdin.buffer.read()
    with open(source, "rb") as handle:
        return handle.read()


def _list_rows(data: bytes, settings: FlightSettings) -> list[dict[str, Any]]:
    reader = RowReader(max_row_bytes=settings.max_row_bytes)
    rows = reader.feed(data)
    reader.finish()
    return [{"id": row.id, "tag": row.tag.name, "payload": row.payload} for row in rows]


def _is_url(source: str) -> bool:
    return source.startswith(("http://", "https://"))


def main(argv: list[str] | None = None) -> int:
    setup_logging()
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = load_flight_settings()
    if args.ignore_ssl_errors:
        settings.verify_ssl = False
    indent = 2 if args.json else None

    with FlightRuntime(resolve_module=lambda descriptor: descriptor, settings=settings) as runtime:
        if _is_url(args.source):
            if args.rows:
                parser.error("--rows needs a file or stdin source")
            response = runtime.fetch(args.source)
        else:
            try:
                data = _read_source(args.source)
            except OSError as exc:
                print(f"reactflight: cannot read {args.source}: {exc}", file=sys.stderr)
                return 2
            if args.rows:
                try:
                    rows = _list_rows(data, settings)
                except FlightProtocolError as exc:
                    print(f"reactflight: {exc}", file=sys.stderr)
                    return 1
                _print_json(rows, indent=indent)
                return 0
            try:
                response = runtime.decode([data])
            except FlightError as exc:
                print(f"reactflight: {exc}", file=sys.stderr)
                return 1

    state = response.root().peek()
    if isinstance(state, Ready):
        _print_json(_to_cli_value(state.value, max_bytes=CLI_TEXT_TRUNCATION_BYTES), indent=indent)
        return 0
    if isinstance(state, Pending):  # pragma: no cover - decode always closes the response
        print("reactflight: root value never arrived", file=sys.stderr)
        return 1
    _print_json(_describe_error(state.error), indent=indent)
    return 1


if __name__ == "__main__":
    raise SystemExit(main())

# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

import math
from datetime import datetime, timezone

import pytest

from reactflight.codec import (
    RowReader,
    TokenKind,
    decode_rows,
    dumps,
    encode_date,
    encode_number,
    encode_row,
    escape_string,
    format_promise_reference,
    format_reference,
    loads,
    parse_row,
    parse_token,
)
from reactflight.errors import FlightProtocolError
from reactflight.models.rows import RowTag


def test_encode_row_uses_hex_ids_and_tag_letters():
    assert encode_row(1, RowTag.MODEL, '{"a":1}') == b'1:{"a":1}\n'
    assert encode_row(26, RowTag.MODULE, "{}") == b"1a:I{}\n"
    assert encode_row(255, RowTag.HINT, 'D"x"') == b'ff:HD"x"\n'


def test_encode_row_rejects_raw_newlines():
    with pytest.raises(ValueError):
        encode_row(1, RowTag.MODEL, '"a\nb"')


def test_parse_row_splits_tag_and_payload():
    row = parse_row(b'a:E{"digest":"x"}')
    assert row.id == 10
    assert row.tag is RowTag.ERROR
    assert row.payload == '{"digest":"x"}'

    model = parse_row(b'2:["$","div",null,{}]\r')
    assert model.tag is RowTag.MODEL
    assert model.payload == '["$","div",null,{}]'


@pytest.mark.parametrize("line", [b":x", b"1x", b"G:{}", b"1"])
def test_parse_row_rejects_bad_identifiers(line):
    with pytest.raises(FlightProtocolError):
        parse_row(line)


def test_decode_rows_returns_unconsumed_tail():
    rows, rest = decode_rows(b'1:"a"\n2:"b"\n3:"c')
    assert [row.id for row in rows] == [1, 2]
    assert rest == b'3:"c'

    with pytest.raises(FlightProtocolError):
        decode_rows(b'1:"a"\n\n')


def test_row_reader_handles_one_byte_chunks_and_split_utf8():
    data = encode_row(1, RowTag.MODEL, dumps({"text": "héllo ☃"})) + encode_row(2, RowTag.SYMBOL, dumps("react.fragment"))
    reader = RowReader()
    rows = []
    for index in range(len(data)):
        rows.extend(reader.feed(data[index : index + 1]))
    reader.finish()

    assert [row.payload for row in rows] == ['{"text":"héllo ☃"}', '"react.fragment"']
    assert rows[1].tag is RowTag.SYMBOL
    assert reader.pending_bytes == 0


def test_row_reader_limits_and_truncation():
    reader = RowReader(max_row_bytes=8)
    with pytest.raises(FlightProtocolError):
        reader.feed(b"1:" + b"x" * 20)

    partial = RowReader()
    assert partial.feed(b'1:{"a"') == []
    with pytest.raises(FlightProtocolError):
        partial.finish()


def test_parse_token_literals_and_references():
    assert parse_token("plain").value == "plain"
    assert parse_token("@div").kind is TokenKind.LITERAL
    assert parse_token("$$1").value == "$1"

    ref = parse_token("$1a:props:children")
    assert ref.kind is TokenKind.REFERENCE
    assert ref.id == 26
    assert ref.path == ("props", "children")

    promise = parse_token("$@3")
    assert promise.kind is TokenKind.PROMISE
    assert promise.id == 3

    assert parse_token("$").kind is TokenKind.ELEMENT
    assert parse_token("$undefined").kind is TokenKind.UNDEFINED


def test_parse_token_numbers_and_dates():
    assert math.isnan(parse_token("$NaN").value)
    assert parse_token("$Infinity").value == math.inf
    assert parse_token("$-Infinity").value == -math.inf
    negative_zero = parse_token("$-0").value
    assert negative_zero == 0 and math.copysign(1.0, negative_zero) < 0
    assert parse_token("$n9007199254740993").value == 9007199254740993
    assert parse_token("$n-1152921504606846976").value == -(2**60)

    stamp = parse_token("$D2024-01-02T03:04:05+00:00")
    assert stamp.kind is TokenKind.DATE
    assert stamp.value == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


@pytest.mark.parametrize("raw", ["$Zzz", "$@1:x", "$nope", "$D-not-a-date"])
def test_parse_token_rejects_unknown_forms(raw):
    with pytest.raises(FlightProtocolError):
        parse_token(raw)


def test_value_encoders():
    assert escape_string("$1") == "$$1"
    assert escape_string("a$") == "a$"
    assert encode_number(2**53 - 1) == 2**53 - 1
    assert encode_number(2**53) == "$n9007199254740992"
    assert encode_number(float("nan")) == "$NaN"
    assert encode_number(-math.inf) == "$-Infinity"
    assert encode_number(-0.0) == "$-0"
    assert encode_number(1.5) == 1.5
    assert encode_date(datetime(2024, 1, 2)) == "$D2024-01-02T00:00:00"
    assert format_reference(3, ("a", "0")) == "$3:a:0"
    assert format_promise_reference(16) == "$@10"


def test_json_helpers_are_compact_and_strict():
    assert dumps({"a": [1, "é"]}) == '{"a":[1,"é"]}'
    with pytest.raises(ValueError):
        dumps(float("nan"))
    with pytest.raises(FlightProtocolError):
        loads("NaN")
    with pytest.raises(FlightProtocolError):
        loads("{")

# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

import asyncio
import concurrent.futures
import logging
import threading
from datetime import datetime

import pytest

from reactflight.client import create_from_chunks
from reactflight.codec import decode_rows, loads
from reactflight.errors import FlightError, FlightResolverError, FlightSerializationError, Postpone
from reactflight.models import UNDEFINED, Deferred, Symbol, client_exports, element
from reactflight.models.rows import RowTag
from reactflight.server import BufferSink, ClientManifest, Request, render_to_stream
from reactflight.server.request import ABORT_WITHOUT_REASON


def _render(model, **options):
    options.setdefault("dev", False)
    return render_to_stream(model, **options).pipe(BufferSink())


def _rows(data):
    rows, rest = decode_rows(data)
    assert rest == b""
    return rows


async def _drain(sink, rounds=50):
    for _ in range(rounds):
        if sink.closed:
            return
        await asyncio.sleep(0)


def test_plain_model_is_a_single_row():
    sink = _render({"a": 1, "b": [True, None, 1.5]})
    assert sink.getvalue() == b'1:{"a":1,"b":[true,null,1.5]}\n'
    assert sink.closed


def test_special_values_use_tokens():
    sink = _render(
        {
            "u": UNDEFINED,
            "n": float("nan"),
            "big": 2**60,
            "s": "$x",
            "d": datetime(2024, 1, 2),
            "t": ("a", "b"),
        }
    )
    (row,) = _rows(sink.getvalue())
    assert loads(row.payload) == {
        "u": "$undefined",
        "n": "$NaN",
        "big": "$n1152921504606846976",
        "s": "$$x",
        "d": "$D2024-01-02T00:00:00",
        "t": ["a", "b"],
    }


def test_shared_containers_become_path_references():
    shared = {"k": 1}
    span = element("span", None, "x")
    sink = _render({"first": shared, "second": shared, "list": [shared], "nodes": [span, span]})
    (row,) = _rows(sink.getvalue())
    assert loads(row.payload) == {
        "first": {"k": 1},
        "second": "$1:first",
        "list": ["$1:first"],
        "nodes": [["$", "span", None, {"children": "x"}], "$1:nodes:0"],
    }


def test_elements_encode_type_key_and_props():
    sink = _render(element("div", {"className": "x"}, "hi", key="k"))
    (row,) = _rows(sink.getvalue())
    assert loads(row.payload) == ["$", "div", "k", {"className": "x", "children": "hi"}]


def test_cycles_and_unsupported_values_become_error_rows():
    reported = []
    cyclic = {}
    cyclic["self"] = cyclic

    sink = _render(cyclic, on_error=lambda error: reported.append(error) or "dg")
    assert sink.getvalue() == b'1:E{"digest":"dg"}\n'
    assert isinstance(reported[0], FlightSerializationError)

    for bad in (object(), {1: "a"}):
        rows = _rows(_render(bad, on_error=reported.append).getvalue())
        assert rows[0].tag is RowTag.ERROR
    assert len(reported) == 3


def test_symbols_and_client_references_are_written_once():
    ui = client_exports("ui", ["Button"])
    sink = _render([Symbol("react.fragment"), Symbol("react.fragment"), ui["Button"], ui["Button"], ui.reference])
    rows = _rows(sink.getvalue())

    assert [row.tag for row in rows] == [RowTag.SYMBOL, RowTag.MODULE, RowTag.MODULE, RowTag.MODEL]
    assert rows[0].payload == '"react.fragment"'
    assert loads(rows[1].payload) == {"id": "ui", "chunks": [], "name": "Button"}
    assert loads(rows[2].payload)["name"] == "*"
    assert loads(rows[3].payload) == ["$2", "$2", "$3", "$3", "$4"]


def test_manifest_metadata_is_used_for_module_rows():
    ui = client_exports("ui/button.js")
    manifest = ClientManifest({"ui/button.js": {"id": "chunk-ui", "chunks": ["chunk-ui.js"]}})
    rows = _rows(_render(ui["Button"], client_manifest=manifest).getvalue())
    assert loads(rows[0].payload) == {"id": "chunk-ui", "chunks": ["chunk-ui.js"], "name": "Button"}
    assert rows[1].payload == '"$2"'


def test_missing_manifest_entry_reports_once():
    ui = client_exports("ui")
    reported = []
    sink = _render([ui["Button"], ui["Button"]], client_manifest=ClientManifest(), on_error=reported.append)
    rows = _rows(sink.getvalue())

    assert rows[0].tag is RowTag.ERROR
    assert rows[0].payload == "{}"
    assert loads(rows[1].payload) == ["$2", "$2"]
    assert len(reported) == 1
    assert isinstance(reported[0], FlightResolverError)


def test_rows_are_buffered_until_a_sink_is_attached():
    request = Request({"ok": True}, dev=False)
    request.start()
    assert request.closed

    sink = BufferSink()
    request.start_flowing(sink)
    assert sink.getvalue() == b'1:{"ok":true}\n'
    assert sink.closed
    with pytest.raises(RuntimeError):
        request.start_flowing(BufferSink())


def test_awaitables_are_outlined_and_written_when_settled():
    async def scenario():
        later = asyncio.get_running_loop().create_future()
        sink = _render({"now": "ready", "later": later})
        first = sink.getvalue()
        closed_early = sink.closed
        later.set_result({"value": 42})
        await _drain(sink)
        return first, closed_early, sink

    first, closed_early, sink = asyncio.run(scenario())
    assert first == b'1:{"now":"ready","later":"$2"}\n'
    assert closed_early is False
    assert sink.getvalue() == first + b'2:{"value":42}\n'
    assert sink.closed


def test_coroutines_and_deferred_values():
    async def fetch_user():
        await asyncio.sleep(0)
        return {"name": "ada"}

    async def scenario():
        sink = _render({"user": fetch_user(), "deferred": Deferred(fetch_user())})
        await _drain(sink)
        return sink

    sink = asyncio.run(scenario())
    rows = _rows(sink.getvalue())
    assert loads(rows[0].payload) == {"user": "$2", "deferred": "$@3"}
    assert sorted(row.id for row in rows[1:]) == [2, 3]
    assert all(loads(row.payload) == {"name": "ada"} for row in rows[1:])
    assert sink.closed


def test_coroutine_without_event_loop_is_an_error_row():
    async def value():
        return 1

    reported = []
    rows = _rows(_render({"v": value()}, on_error=reported.append).getvalue())
    assert rows[0].payload == '{"v":"$2"}'
    assert rows[1].tag is RowTag.ERROR
    assert isinstance(reported[0], FlightSerializationError)


def test_rejected_awaitable_uses_digest_and_dev_message():
    async def scenario(dev):
        failing = asyncio.get_running_loop().create_future()
        sink = _render([failing], on_error=lambda error: "d", dev=dev)
        failing.set_exception(ValueError("nope"))
        await _drain(sink)
        return _rows(sink.getvalue())

    prod = asyncio.run(scenario(False))
    assert prod[1].tag is RowTag.ERROR
    assert loads(prod[1].payload) == {"digest": "d"}

    dev = asyncio.run(scenario(True))
    assert loads(dev[1].payload) == {"digest": "d", "message": "nope"}


def test_postpone_writes_a_postpone_row():
    async def dynamic():
        raise Postpone("dynamic")

    async def scenario(dev):
        postponed = []
        sink = _render({"v": dynamic()}, on_postpone=postponed.append, dev=dev)
        await _drain(sink)
        return postponed, _rows(sink.getvalue())

    postponed, rows = asyncio.run(scenario(False))
    assert postponed == ["dynamic"]
    assert rows[1].tag is RowTag.POSTPONE
    assert rows[1].payload == "{}"

    _, dev_rows = asyncio.run(scenario(True))
    assert loads(dev_rows[1].payload) == {"reason": "dynamic"}


def test_abort_fails_pending_rows_with_one_digest():
    async def forever():
        await asyncio.sleep(3600)

    async def scenario():
        loop = asyncio.get_running_loop()
        never = loop.create_future()
        calls = []
        stream = render_to_stream(
            {"a": never, "b": forever()},
            on_error=lambda reason: calls.append(reason) or "abort-digest",
            dev=False,
        )
        sink = stream.pipe(BufferSink())
        await asyncio.sleep(0)
        owned = list(stream.request._owned)
        stream.abort("for reasons")
        await asyncio.sleep(0)
        never.set_result("too late")
        await asyncio.sleep(0)
        return calls, sink, owned

    calls, sink, owned = asyncio.run(scenario())
    rows = _rows(sink.getvalue())
    assert calls == ["for reasons"]
    assert [row.id for row in rows] == [1, 2, 3]
    assert all(loads(row.payload) == {"digest": "abort-digest"} for row in rows[1:])
    assert sink.closed
    assert owned and all(task.cancelled() for task in owned)


def test_abort_without_reason_uses_default_error():
    async def scenario():
        reported = []
        stream = render_to_stream([asyncio.get_running_loop().create_future()], on_error=reported.append)
        stream.pipe(BufferSink())
        stream.abort()
        stream.abort()
        return reported

    reported = asyncio.run(scenario())
    assert len(reported) == 1
    assert isinstance(reported[0], FlightError)
    assert str(reported[0]) == ABORT_WITHOUT_REASON


def test_non_string_digest_is_dropped(caplog):
    sink = _render(object(), on_error=lambda error: 123)
    assert sink.getvalue() == b"1:E{}\n"
    assert "digests must be strings" in caplog.text


def test_failed_rows_are_logged_with_their_kind(caplog):
    caplog.set_level(logging.DEBUG, logger="reactflight.server.request")
    _render(object())
    assert "Row 1 failed (PRODUCER)" in caplog.text


def test_failed_row_drops_the_values_it_outlined():
    started = []

    async def load():
        started.append(True)
        return "never written"

    async def scenario():
        first = concurrent.futures.Future()
        sink = _render({"later": load(), "first": first, "bad": object()}, on_error=lambda error: "dg")
        first.set_result("unreferenced")
        await _drain(sink)
        return sink

    sink = asyncio.run(scenario())
    assert sink.getvalue() == b'1:E{"digest":"dg"}\n'
    assert sink.closed
    assert started == []


def test_thread_pool_futures_settling_together_get_distinct_rows():
    ui = client_exports("ui", ["Button", "Link"])
    first, second = concurrent.futures.Future(), concurrent.futures.Future()
    sink = _render({"a": first, "b": second})
    barrier = threading.Barrier(2, timeout=5)

    def settle(future, value):
        barrier.wait()
        future.set_result(value)

    with concurrent.futures.ThreadPoolExecutor(max_workers=2) as pool:
        jobs = [
            pool.submit(settle, first, [ui["Button"], Symbol("react.fragment")]),
            pool.submit(settle, second, [ui["Link"], Symbol("react.suspense")]),
        ]
        for job in jobs:
            job.result()

    assert sink.closed
    rows = _rows(sink.getvalue())
    ids = [row.id for row in rows]
    assert sorted(ids) == list(range(1, 8))

    root = create_from_chunks([sink.getvalue()], resolve_module=lambda descriptor: descriptor.name).root().unwrap()
    assert root == {
        "a": ["Button", Symbol("react.fragment")],
        "b": ["Link", Symbol("react.suspense")],
    }

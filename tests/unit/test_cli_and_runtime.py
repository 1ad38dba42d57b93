# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

import asyncio
import concurrent.futures
import io
import json
import sys

import httpx

from reactflight.cli.main import _to_cli_value, build_parser, main
from reactflight.client import ModuleRegistry
from reactflight.client.graph import ReferenceGraph
from reactflight.config import FlightSettings
from reactflight.errors import PRODUCTION_ERROR_MESSAGE
from reactflight.models import UNDEFINED, Deferred, Symbol, client_exports, element
from reactflight.runtime import FlightRuntime
from reactflight.server import ClientManifest


def _runtime(**kwargs):
    return FlightRuntime(settings=FlightSettings(dev=False), **kwargs)


def _done(value):
    future = concurrent.futures.Future()
    future.set_result(value)
    return future


def test_build_parser():
    parser = build_parser()
    args = parser.parse_args(["payload.rsc", "--json", "--rows"])
    assert args.source == "payload.rsc"
    assert args.json is True
    assert args.rows is True
    assert args.ignore_ssl_errors is False


def test_cli_decodes_file(tmp_path, capsys):
    ui = client_exports("ui")
    model = {
        "title": "hi",
        "node": element("div", {"id": "x"}),
        "sym": Symbol("react.fragment"),
        "u": UNDEFINED,
        "later": Deferred(_done("done")),
        "button": ui["Button"],
    }
    path = tmp_path / "payload.rsc"
    path.write_bytes(_runtime().render_bytes(model))

    assert main([str(path), "--json"]) == 0
    output = json.loads(capsys.readouterr().out)
    assert output == {
        "title": "hi",
        "node": {"$element": "div", "key": None, "props": {"id": "x"}},
        "sym": "Symbol(react.fragment)",
        "u": None,
        "later": {"$handle": 3, "value": "done"},
        "button": {"$module": "ui", "name": "Button", "chunks": []},
    }


def test_cli_lists_rows_from_stdin(monkeypatch, capsys):
    monkeypatch.setattr(sys, "stdin", io.TextIOWrapper(io.BytesIO(b'1:E{"digest":"d1"}\n')))
    assert main(["-", "--rows"]) == 0
    assert json.loads(capsys.readouterr().out) == [{"id": 1, "tag": "ERROR", "payload": '{"digest":"d1"}'}]


def test_cli_reports_failed_root(tmp_path, capsys):
    path = tmp_path / "error.rsc"
    path.write_bytes(b'1:E{"digest":"d1"}\n')
    assert main([str(path)]) == 1
    output = json.loads(capsys.readouterr().out)
    assert output == {
        "error": PRODUCTION_ERROR_MESSAGE,
        "type": "FlightError",
        "kind": "PRODUCER",
        "reason": "Value could not be produced",
        "digest": "d1",
    }


def test_cli_handles_unreadable_and_malformed_sources(tmp_path, capsys):
    assert main([str(tmp_path / "missing.rsc")]) == 2
    assert "cannot read" in capsys.readouterr().err

    path = tmp_path / "broken.rsc"
    path.write_bytes(b"garbage\n")
    assert main([str(path)]) == 1
    assert main([str(path), "--rows"]) == 1


def test_cli_value_conversion_truncates_and_marks_cycles():
    long_text = _to_cli_value("x" * 5000, max_bytes=100)
    assert long_text.endswith("...[truncated]")
    assert len(long_text.encode("utf-8")) <= 100

    cyclic = []
    cyclic.append(cyclic)
    assert _to_cli_value(cyclic, max_bytes=100) == ["<circular>"]

    shared = {"a": 1}
    assert _to_cli_value([shared, shared], max_bytes=100) == [{"a": 1}, {"a": 1}]

    graph = ReferenceGraph()
    assert _to_cli_value(graph.get_handle(5), max_bytes=100) == {"$handle": 5, "pending": True}


class DummyClient:
    def __init__(self):
        self.closed = False

    def close(self):
        self.closed = True


def test_runtime_render_and_decode_with_modules():
    ui = client_exports("ui", ["Button"])
    runtime = _runtime(
        client_manifest=ClientManifest({"ui": {"id": "chunk-ui", "chunks": ["chunk-ui.js"]}}),
        resolve_module=ModuleRegistry({"chunk-ui": {"Button": "ButtonImpl"}}),
    )
    data = runtime.render_bytes(element(ui["Button"], {"label": "go"}))
    assert data.startswith(b'2:I{"id":"chunk-ui"')

    node = runtime.decode([data]).root().unwrap()
    assert node.type == "ButtonImpl"
    assert node.props == {"label": "go"}


def test_runtime_render_bytes_aborts_unfinished_work():
    reported = []
    runtime = _runtime(on_error=lambda error: reported.append(error) or "aborted")
    data = runtime.render_bytes({"later": concurrent.futures.Future()})
    assert data == b'1:{"later":"$2"}\n2:E{"digest":"aborted"}\n'
    assert len(reported) == 1


def test_runtime_round_trip_and_render_async():
    async def load():
        await asyncio.sleep(0)
        return ["a", "b"]

    async def scenario():
        runtime = _runtime()
        value = await runtime.round_trip({"items": load()})
        data = await runtime.render_async({"items": load()})
        return value, data

    value, data = asyncio.run(scenario())
    assert value == {"items": ["a", "b"]}
    assert data == b'1:{"items":"$2"}\n2:["a","b"]\n'


def test_runtime_fetch_and_close():
    transport = httpx.MockTransport(lambda request: httpx.Response(200, content=b'1:"fetched"\n'))
    client = httpx.Client(transport=transport)
    with _runtime(http_client=client) as runtime:
        assert runtime.fetch("https://example.test/rsc").root().unwrap() == "fetched"
    assert client.is_closed

    dummy = DummyClient()
    with _runtime(http_client=dummy):
        pass
    assert dummy.closed

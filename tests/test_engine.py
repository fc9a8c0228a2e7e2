import io

import httpx
import pytest

from scriptscan.core import checkpoint
from scriptscan.core.config import ScanConfig
from scriptscan.core.engine import Engine
from scriptscan.core.errors import InputError, MalformedUrl, ScriptError
from scriptscan.core.inputs import derive, read_lines
from scriptscan.core.models import ScanKind
from scriptscan.reporters.jsonl import JsonlSink

RECORD_INPUT = "SCAN_TYPE = {kind}\n\ndef main(ctx):\n    return {{'input': ctx.input, 'index': ctx.target.index}}\n"


def script(tmp_path, name, source):
    scripts = tmp_path / "scripts"
    scripts.mkdir(exist_ok=True)
    (scripts / name).write_text(source)
    return str(scripts)


def engine_for(tmp_path, make_http, log, sink, script_path, handler=None, **kw):
    kw.setdefault("checkpoint", str(tmp_path / "resume.cfg"))
    kw.setdefault("verbose", 0)
    config = ScanConfig(script_path=script_path, **kw)
    http = make_http(handler) if handler else make_http()
    return Engine(config, logger=log, sink=sink, http=http, results=JsonlSink(keep=True))


def inputs(records):
    return sorted(r["input"] for r in records)


def test_read_lines_file_then_stdin(tmp_path):
    path = tmp_path / "urls.txt"
    path.write_text("http://a.com/\n\n  http://b.com/  \n")
    lines = list(read_lines(str(path), stdin=io.StringIO("http://c.com/\n\n")))
    assert lines == ["http://a.com/", "http://b.com/", "http://c.com/"]


def test_read_lines_missing_file(tmp_path):
    with pytest.raises(InputError):
        list(read_lines(str(tmp_path / "nope.txt"), stdin=io.StringIO("")))


@pytest.mark.parametrize("kind,line,value", [
    (ScanKind.HOST, "https://a.com:8443/x?y=1", "a.com"),
    (ScanKind.HOST, "a.com/path", "a.com"),
    (ScanKind.URL, "https://a.com/x?y=1", "https://a.com/x?y=1"),
    (ScanKind.PATH, "https://a.com/x?y=1#f", "https://a.com/x"),
    (ScanKind.CUSTOM, "anything at all", "anything at all"),
    (ScanKind.HTTP, "reqs/login.req", "reqs/login.req"),
])
def test_derive(kind, line, value):
    assert derive(kind, line) == value


def test_resume_skips_done_targets(tmp_path, make_http, log, sink):
    resume = tmp_path / "old.cfg"
    resume.write_text("URL_SCAN_ID=5\n")
    path = script(tmp_path, "rec.py", RECORD_INPUT.format(kind=2))
    engine = engine_for(tmp_path, make_http, log, sink, path,
                        resume=str(resume), checkpoint=str(resume))
    lines = [f"http://lab/?n={i}" for i in range(10)]

    assert engine.run(lines) == 0
    assert inputs(engine.results.records) == [f"http://lab/?n={i}" for i in range(6, 10)]
    assert engine.skipped == 6
    assert checkpoint.load(str(resume))[ScanKind.URL] == 9


def test_fresh_run_writes_checkpoint(tmp_path, make_http, log, sink):
    path = script(tmp_path, "rec.py", RECORD_INPUT.format(kind=2))
    engine = engine_for(tmp_path, make_http, log, sink, path, workers=4)
    assert engine.run([f"http://lab/?n={i}" for i in range(7)]) == 0
    assert engine.completed == 7
    assert checkpoint.load(str(tmp_path / "resume.cfg"))[ScanKind.URL] == 6


def test_error_budget_stops_dispatch(tmp_path, make_http, log, sink):
    path = script(tmp_path, "boom.py", "SCAN_TYPE = 2\n\ndef main(ctx):\n    raise RuntimeError('boom')\n")
    engine = engine_for(tmp_path, make_http, log, sink, path, exit_after=3, workers=1)

    assert engine.run([f"http://lab/?n={i}" for i in range(4)]) == 1
    assert engine.budget.errors == 3
    assert engine.budget.exhausted
    assert engine.completed == 2
    assert checkpoint.load(str(tmp_path / "resume.cfg"))[ScanKind.URL] == 1


def test_transport_errors_count_once(tmp_path, make_http, log, sink):
    def refused(request):
        raise httpx.ConnectError("refused", request=request)

    path = script(tmp_path, "get.py", "SCAN_TYPE = 2\n\ndef main(ctx):\n    ctx.send('GET', ctx.input)\n")
    engine = engine_for(tmp_path, make_http, log, sink, path, handler=refused)
    assert engine.run(["http://lab/a", "http://lab/b"]) == 0
    assert engine.budget.errors == 2


def test_hosts_and_paths_are_deduplicated(tmp_path, make_http, log, sink):
    script(tmp_path, "host.py", RECORD_INPUT.format(kind=1))
    path = script(tmp_path, "path.py", RECORD_INPUT.format(kind=3))
    engine = engine_for(tmp_path, make_http, log, sink, path)
    engine.run(["https://a.com/x?id=1", "http://a.com/x?id=2", "b.com", "https://a.com/y"])

    values = [(r["input"], r["index"]) for r in engine.results.records]
    assert sorted(v for v in values if "/" not in v[0]) == [("a.com", 0), ("b.com", 1)]
    # "b.com" is not a URL, so it only yields a HOST target
    assert sorted(v for v in values if "/" in v[0]) == [("http://a.com/x", 1), ("https://a.com/x", 0),
                                                      ("https://a.com/y", 2)]


def test_malformed_lines_are_skipped(tmp_path, make_http, log, sink):
    path = script(tmp_path, "rec.py", RECORD_INPUT.format(kind=2))
    engine = engine_for(tmp_path, make_http, log, sink, path)
    assert engine.run(["not a url", "http://lab/ok"]) == 0
    assert inputs(engine.results.records) == ["http://lab/ok"]
    assert engine.budget.errors == 0


def test_malformed_ipv6_host_line_is_skipped(tmp_path, make_http, log, sink):
    path = script(tmp_path, "host.py", RECORD_INPUT.format(kind=1))
    engine = engine_for(tmp_path, make_http, log, sink, path)
    assert engine.run(["http://[::1", "good.com"]) == 0
    assert inputs(engine.results.records) == ["good.com"]
    assert engine.completed == 1


def test_derive_host_rejects_broken_ipv6():
    with pytest.raises(MalformedUrl):
        derive(ScanKind.HOST, "http://[::1")


def test_http_targets(tmp_path, make_http, log, sink):
    req = tmp_path / "login.req"
    req.write_text("POST /login HTTP/1.1\nHost: lab\nContent-Type: application/json\n\n{\"u\": \"a\"}")
    path = script(tmp_path, "http.py",
                  "SCAN_TYPE = 5\n\ndef main(ctx):\n"
                  "    return {'method': ctx.request.method, 'body': ctx.request.body}\n")
    engine = engine_for(tmp_path, make_http, log, sink, path)

    assert engine.run([str(req), str(tmp_path / "missing.req")]) == 0
    assert engine.results.records == [{"method": "POST", "body": {"u": "a"}}]
    assert engine.budget.errors == 1


def test_input_handler_builds_custom_targets(tmp_path, make_http, log, sink):
    handler = tmp_path / "handler.py"
    handler.write_text("def parse_input(line):\n    return [line + '-1', line + '-2']\n")
    path = script(tmp_path, "custom.py", RECORD_INPUT.format(kind=4))
    engine = engine_for(tmp_path, make_http, log, sink, path, input_handler=str(handler))
    engine.run(["x", "y"])
    assert inputs(engine.results.records) == ["x-1", "x-2", "y-1", "y-2"]


def test_input_handler_without_parse_input_fails_before_targets(tmp_path, make_http, log, sink):
    handler = tmp_path / "handler.py"
    handler.write_text("X = 1\n")
    path = script(tmp_path, "custom.py", RECORD_INPUT.format(kind=4))
    engine = engine_for(tmp_path, make_http, log, sink, path, input_handler=str(handler))
    with pytest.raises(ScriptError, match="parse_input"):
        engine.run(["x", "y"])
    assert engine.budget.errors == 0
    assert engine.results.count == 0


def test_one_line_feeds_every_kind(tmp_path, make_http, log, sink):
    script(tmp_path, "host.py", RECORD_INPUT.format(kind=1))
    path = script(tmp_path, "url.py", RECORD_INPUT.format(kind=2))
    engine = engine_for(tmp_path, make_http, log, sink, path)
    engine.run(["https://a.com/?q=1"])
    assert inputs(engine.results.records) == ["a.com", "https://a.com/?q=1"]


def test_missing_resume_file(tmp_path, make_http, log, sink):
    path = script(tmp_path, "rec.py", RECORD_INPUT.format(kind=2))
    with pytest.raises(InputError):
        engine_for(tmp_path, make_http, log, sink, path, resume=str(tmp_path / "none.cfg"))


def test_no_scripts(tmp_path, make_http, log, sink):
    (tmp_path / "empty").mkdir()
    engine = engine_for(tmp_path, make_http, log, sink, str(tmp_path / "empty"))
    with pytest.raises(InputError):
        engine.run([])

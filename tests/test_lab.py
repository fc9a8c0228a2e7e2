"""End-to-end runs of the bundled scripts against VulnLab over WSGI."""

import os

import httpx
import pytest

from scriptscan.core.config import ScanConfig
from scriptscan.core.engine import Engine
from scriptscan.core.models import InjectionLocation, RequestOptions
from scriptscan.reporters.jsonl import JsonlSink
from vuln_lab.app import app

SCRIPTS = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "scripts")


@pytest.fixture
def lab(make_http):
    return make_http(transport=httpx.WSGITransport(app=app))


def run(tmp_path, lab, log, sink, script, lines, **kw):
    config = ScanConfig(script_path=os.path.join(SCRIPTS, script), verbose=0,
                        checkpoint=str(tmp_path / "resume.cfg"), **kw)
    engine = Engine(config, logger=log, sink=sink, http=lab, results=JsonlSink(keep=True))
    assert engine.run(lines) == 0
    return engine.results.records


def test_reflection_and_json(lab):
    assert "<b>x</b>" in lab.send("GET", "http://lab/search?q=<b>x</b>").body
    resp = lab.send("POST", "http://lab/json", body='{"a": 1}',
                    options=RequestOptions(headers={"Content-Type": "application/json",
                                                    "User-Agent": "scriptscan-test"}))
    assert resp.json() == {"received": {"a": 1}, "user_agent": "scriptscan-test"}


def test_header_reflection(lab):
    resp = lab.send("GET", "http://lab/header", options=RequestOptions(headers={"X-Lang": "fr-canary"}))
    assert resp.get_header("x-custom-language") == "fr-canary"
    assert "Language set to: fr-canary" in resp.body


def test_redirect_chain(lab):
    resp = lab.send("GET", "http://lab/chain/5", options=RequestOptions(redirects=2))
    assert resp.url == "http://lab/chain/3"
    assert resp.is_redirect
    assert resp.get_header("location") == "/chain/2"
    assert lab.send("GET", "http://lab/chain/5").body == "end of chain"


def test_sqli_script(tmp_path, lab, log, sink):
    records = run(tmp_path, lab, log, sink, "sqli_error.py",
                  ["http://lab/sqli?id=1", "http://lab/search?q=1"])
    assert len(records) == 1
    assert records[0]["param"] == "id"
    assert records[0]["url"] == "http://lab/sqli?id=1"


def test_open_redirect_script(tmp_path, lab, log, sink):
    records = run(tmp_path, lab, log, sink, "open_redirect.py", ["http://lab/redirect?url=/"])
    assert [r["param"] for r in records] == ["url"]
    assert "evil.com" in records[0]["location"]


def test_exposed_files_script(tmp_path, lab, log, sink):
    records = run(tmp_path, lab, log, sink, "exposed_files.py", ["http://lab/"])
    assert [r["payload"] for r in records] == [".env"]


def test_ssti_script_on_raw_request(tmp_path, lab, log, sink):
    req = tmp_path / "ssti.req"
    req.write_text("GET /ssti?name=World HTTP/1.1\nHost: lab\nAccept: */*\n\n")
    records = run(tmp_path, lab, log, sink, "ssti.py", [str(req)],
                  scheme="http", locations=[InjectionLocation.URL])
    assert len(records) == 1
    assert records[0]["point"] == "url:name"
    assert records[0]["payload"].endswith("{{7*7}}")

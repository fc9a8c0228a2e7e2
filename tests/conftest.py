import io

import httpx
import pytest

from scriptscan.core.models import RequestOptions
from scriptscan.core.ratelimit import RateState
from scriptscan.core.transport import HttpClient
from scriptscan.reporters.console import Log, StatusSink


class _Lines:
    """Sink stand-in that keeps every printed line."""

    def __init__(self):
        self.lines = []

    def println(self, line):
        self.lines.append(str(line))

    def advance(self, n=1):
        pass

    def close(self):
        pass


@pytest.fixture
def lines():
    return _Lines()


@pytest.fixture
def sink():
    return StatusSink(file=io.StringIO(), progress=False)


@pytest.fixture
def log(sink):
    return Log(verbose=0, sink=sink)


def ok_handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, text=f"ok {request.url}")


@pytest.fixture
def make_http():
    clients = []

    def _make(handler=ok_handler, requests_limit=2000, sleep=None, verbose=False,
              sink=None, headers=None, transport=None):
        rate = RateState(requests_limit, 0, verbose, sink=sink,
                         sleep=sleep or (lambda s: None))
        http = HttpClient(rate, RequestOptions(headers=dict(headers or {})), sink=sink,
                          transport=transport or httpx.MockTransport(handler))
        clients.append(http)
        return http

    yield _make
    for http in clients:
        http.close()

"""Boundary between the engine and user scripts.

A script runtime turns a file into a ``LoadedScript`` that knows its
``ScanKind`` and can be run against one target with a ``ScriptContext``.
The bundled ``PythonScriptRuntime`` accepts ``.py`` files of the form::

    SCAN_TYPE = 2          # 1=HOST 2=URL 3=PATH 4=CUSTOM 5=HTTP

    def main(ctx):
        resp = ctx.send("GET", ctx.url.set_param("id", "'", True))
        if "SQL syntax" in resp.body:
            ctx.report({"name": "sqli", "url": resp.url})

Every run executes the compiled file in a fresh namespace, so module-level
state never leaks between runs. Values handed back through ``report`` are
normalised to null/bool/int/float/str/list/dict.
"""

import os
import time
from abc import ABC, abstractmethod
from dataclasses import asdict, is_dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, List, Optional

from scriptscan.core.errors import NoScanType, ScriptError, TransportError
from scriptscan.core.fuzz import FuzzPool, FuzzResult
from scriptscan.core.injection import build_variant, injection_points
from scriptscan.core.models import (InjectionLocation, MultiPart, RequestOptions,
                                    RequestVariant, Response, ScanKind, Target)
from scriptscan.parsers.request import Request
from scriptscan.parsers.url import UrlTarget


def to_script_value(value: Any) -> Any:
    """Convert a Python value into the JSON-shaped values scripts exchange."""
    if isinstance(value, Enum):
        return to_script_value(value.value)
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        return value if value == value and value not in (float("inf"), float("-inf")) else None
    if isinstance(value, dict):
        return {str(k): to_script_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        items = sorted(value, key=str) if isinstance(value, (set, frozenset)) else value
        return [to_script_value(v) for v in items]
    if is_dataclass(value) and not isinstance(value, type):
        return to_script_value(asdict(value))
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


# ── runtimes ───────────────────────────────────────────────────

class LoadedScript(ABC):
    """A script ready to run; ``kind`` decides which targets it receives."""

    def __init__(self, path: str, kind: ScanKind):
        self.path = path
        self.kind = kind
        self.name = os.path.splitext(os.path.basename(path))[0]

    @abstractmethod
    def run(self, ctx: "ScriptContext") -> Any:
        ...

    def parse_input(self, line: str) -> Optional[List[str]]:
        """Input-handler hook: turn one input line into CUSTOM target values."""
        raise ScriptError(self.path, NotImplementedError("parse_input is not defined"))

    def __repr__(self):
        return f"<{type(self).__name__} {self.name} kind={self.kind.name}>"


class ScriptRuntime(ABC):
    extensions: tuple = ()

    @abstractmethod
    def load(self, path: str, require_kind: bool = True) -> LoadedScript:
        ...

    def discover(self, path: str) -> List[LoadedScript]:
        """One script file, or every script file directly inside a directory."""
        if os.path.isdir(path):
            files = sorted(
                os.path.join(path, f) for f in os.listdir(path)
                if f.endswith(self.extensions) and not f.startswith("_"))
            return [self.load(f) for f in files]
        return [self.load(path)]


class PythonScript(LoadedScript):

    def __init__(self, path: str, kind: ScanKind, code):
        super().__init__(path, kind)
        self._code = code

    def _namespace(self) -> Dict[str, Any]:
        ns = {"__name__": "__scriptscan__", "__file__": self.path,
              "SCRIPT_PATH": self.path}
        exec(self._code, ns)
        return ns

    def run(self, ctx: "ScriptContext") -> Any:
        return self._namespace()["main"](ctx)

    def parse_input(self, line: str) -> Optional[List[str]]:
        func = self._namespace().get("parse_input")
        if not callable(func):
            return super().parse_input(line)
        out = func(line)
        if out is None:
            return None
        if isinstance(out, str):
            return [out]
        return [str(v) for v in out]


class PythonScriptRuntime(ScriptRuntime):
    extensions = (".py",)

    def load(self, path: str, require_kind: bool = True) -> PythonScript:
        try:
            with open(path, "r", encoding="utf-8") as f:
                source = f.read()
            code = compile(source, path, "exec")
            ns = {"__name__": "__scriptscan__", "__file__": path, "SCRIPT_PATH": path}
            exec(code, ns)
        except OSError as exc:
            raise ScriptError(path, exc) from None
        except Exception as exc:
            raise ScriptError(path, exc) from exc

        if not require_kind:
            if not callable(ns.get("parse_input")):
                raise ScriptError(path, AttributeError("input handler does not define parse_input(line)"))
            return PythonScript(path, ScanKind.CUSTOM, code)
        try:
            kind = ScanKind(int(ns.get("SCAN_TYPE")))
        except (TypeError, ValueError):
            raise NoScanType(path) from None
        if not callable(ns.get("main")):
            raise ScriptError(path, AttributeError("script does not define main(ctx)"))
        return PythonScript(path, kind, code)


# ── host API ───────────────────────────────────────────────────

class ScriptContext:
    """Host functions available to one script run against one target."""

    def __init__(self, script: LoadedScript, target: Target, http, logger, sink,
                 results=None, budget=None, options: Optional[RequestOptions] = None,
                 env: Optional[Dict[str, Any]] = None, fuzz_workers: int = 15,
                 locations: Optional[List[InjectionLocation]] = None,
                 scheme: str = "https", request: Optional[Request] = None,
                 stop_event=None):
        self.script = script
        self.target = target
        self.input = target.value
        self.http = http
        self.logger = logger
        self.sink = sink
        self.results = results
        self.budget = budget
        self.options = (options or http.defaults).copy()
        self.env = MappingProxyType(dict(env or {}))
        self.fuzz_workers = fuzz_workers
        self.locations = list(locations or [InjectionLocation.URL, InjectionLocation.BODY,
                                            InjectionLocation.HEADERS])
        self.scheme = scheme
        self.request = request
        self.stop_event = stop_event
        self.url: Optional[UrlTarget] = None
        if target.kind in (ScanKind.URL, ScanKind.PATH):
            self.url = UrlTarget(target.value)

    # ── transport ──

    def send(self, method: str, url: str, body: Optional[str] = None,
             multipart: Optional[Dict[str, MultiPart]] = None,
             options: Optional[RequestOptions] = None) -> Response:
        """Send through the shared transport; failures count against the error budget."""
        try:
            return self.http.send(method, url, body=body, multipart=multipart,
                                  options=options or self.options)
        except TransportError:
            if self.budget is not None:
                self.budget.record()
            raise

    def send_variant(self, variant: RequestVariant) -> Response:
        opts = self.options.copy()
        opts.headers = {**opts.headers, **variant.headers}
        return self.send(variant.method, variant.url, body=variant.body, options=opts)

    def rate_status(self) -> dict:
        return self.http.rate.snapshot()

    # ── output ──

    def println(self, msg: Any) -> None:
        self.sink.println(str(msg))

    def log_info(self, msg: Any) -> None:
        self.logger.info(f"[{self.script.name}] {msg}")

    def log_warn(self, msg: Any) -> None:
        self.logger.warn(f"[{self.script.name}] {msg}")

    def log_debug(self, msg: Any) -> None:
        self.logger.debug(f"[{self.script.name}] {msg}")

    def log_error(self, msg: Any) -> None:
        self.logger.error(f"[{self.script.name}] {msg}")

    def report(self, finding: Any) -> None:
        record = to_script_value(finding)
        if self.results is not None:
            self.results.write(record)
        if isinstance(record, dict):
            self.logger.finding(str(record.get("severity", "info")),
                                str(record.get("name", self.script.name)),
                                str(record.get("url", self.input)),
                                str(record.get("payload", "")))
        else:
            self.logger.finding("info", self.script.name, self.input)

    # ── misc ──

    def sleep(self, seconds: float) -> None:
        time.sleep(seconds)

    def secret(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return os.environ.get(name, default)

    def join_script_dir(self, path: str) -> str:
        return os.path.join(os.path.dirname(os.path.abspath(self.script.path)), path)

    # ── fuzzing ──

    def fuzz(self, payloads: Iterable[str], send: Callable[[str], Any],
             match: Callable[[Any, str], Optional[bool]], accept_nil: bool = False,
             stop_on_find: bool = False, workers: Optional[int] = None,
             label: str = "") -> FuzzResult:
        pool = FuzzPool(workers or self.fuzz_workers, accept_nil=accept_nil,
                        stop_on_find=stop_on_find, logger=self.logger,
                        stop_event=self.stop_event)
        return pool.scan(payloads, send, match, label=label)

    def fuzz_request(self, payloads: Iterable[str],
                     match: Callable[[Response, str], Optional[bool]],
                     locations: Optional[List[InjectionLocation]] = None,
                     remove_existing: bool = True, accept_nil: bool = False,
                     stop_on_find: bool = False) -> Dict[str, FuzzResult]:
        """Fuzz every injection point of the target, one pool per point.

        HTTP targets use their raw request; URL and PATH targets are fuzzed as
        a GET of their URL. Returns results keyed by ``location:name``.
        """
        if self.request is not None:
            request, scheme = self.request, self.scheme
        else:
            request = Request.from_url(self.input)
            scheme = self.url.scheme if self.url is not None else self.scheme
        payloads = list(payloads)
        results: Dict[str, FuzzResult] = {}
        for location in locations or self.locations:
            for point in injection_points(request, location):
                def send(payload, point=point):
                    return self.send_variant(
                        build_variant(request, point, payload, remove_existing, scheme))
                results[str(point)] = self.fuzz(
                    payloads, send, match, accept_nil=accept_nil,
                    stop_on_find=stop_on_find, label=f"{self.input} {point}")
        return results

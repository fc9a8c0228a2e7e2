import threading
import traceback
from concurrent.futures import ThreadPoolExecutor
from copy import deepcopy
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from scriptscan.core import checkpoint
from scriptscan.core.checkpoint import CheckpointTracker
from scriptscan.core.config import ScanConfig
from scriptscan.core.errors import InputError, MalformedUrl, TransportError
from scriptscan.core.inputs import derive, read_lines
from scriptscan.core.models import ScanKind, Target
from scriptscan.core.ratelimit import ErrorBudget, RateState
from scriptscan.core.scripts import LoadedScript, PythonScriptRuntime, ScriptContext, ScriptRuntime
from scriptscan.core.transport import HttpClient
from scriptscan.parsers.request import Request
from scriptscan.reporters.console import Log, StatusSink
from scriptscan.reporters.jsonl import JsonlSink

_DEDUP_KINDS = (ScanKind.HOST, ScanKind.PATH)


class Engine:
    """Target worker pool feeding a per-target script worker pool.

    Input lines are turned into one ``Target`` per ScanKind that has scripts.
    At most ``workers`` targets run at once (reading input blocks while the
    pool is full); each target runs its scripts ``scripts_workers`` at a time.
    When the error budget runs out no new target is dispatched, in-flight
    targets drain, the checkpoint is flushed and ``run()`` returns 1.
    """

    def __init__(self, config: ScanConfig, logger: Optional[Log] = None,
                 sink: Optional[StatusSink] = None, http: Optional[HttpClient] = None,
                 runtime: Optional[ScriptRuntime] = None,
                 results: Optional[JsonlSink] = None):
        self.name = "scriptscan"
        self.version = "1.0.0"
        self.config = config
        self.sink = sink or StatusSink()
        self.logger = logger or Log(verbose=config.verbose, sink=self.sink, log_file=config.log)
        self.stop_event = threading.Event()
        self.budget = ErrorBudget(config.exit_after, on_exhausted=self._on_budget_exhausted)
        if http is None:
            rate = RateState(config.requests_limit, config.delay, config.verbose_requests,
                             sink=self.sink, logger=self.logger)
            http = HttpClient(rate, config.request_options(), sink=self.sink, logger=self.logger)
        self.http = http
        self.runtime = runtime or PythonScriptRuntime()
        self.results = results or JsonlSink(config.output)

        resume = None
        if config.resume:
            try:
                resume = checkpoint.load(config.resume)
            except OSError as exc:
                raise InputError(f"Cannot read resume file {config.resume}: {exc}") from None
        self.tracker = CheckpointTracker(config.checkpoint, resume)

        self.scripts: Dict[ScanKind, List[LoadedScript]] = {}
        self.input_handler: Optional[LoadedScript] = None
        self.completed = 0
        self.skipped = 0
        self._lock = threading.Lock()
        self._crashes: List[BaseException] = []

    def close(self) -> None:
        self.http.close()
        self.sink.close()
        self.logger.close()

    # ── setup ──────────────────────────────────────────────────

    def load_scripts(self) -> Dict[ScanKind, List[LoadedScript]]:
        scripts = self.runtime.discover(self.config.script_path)
        if not scripts:
            raise InputError(f"No scripts found in {self.config.script_path}")
        grouped: Dict[ScanKind, List[LoadedScript]] = {}
        for script in scripts:
            grouped.setdefault(script.kind, []).append(script)
        self.scripts = {kind: grouped[kind] for kind in sorted(grouped)}
        if self.config.input_handler:
            self.input_handler = self.runtime.load(self.config.input_handler, require_kind=False)
        for kind, group in self.scripts.items():
            self.logger.info(f"{kind.name}: {', '.join(s.name for s in group)}")
        return self.scripts

    # ── targets ────────────────────────────────────────────────

    def _derive(self, kind: ScanKind, line: str) -> List[str]:
        if kind is ScanKind.CUSTOM and self.input_handler is not None:
            try:
                return self.input_handler.parse_input(line) or []
            except Exception as exc:
                self._script_failed(self.input_handler, line, exc)
                return []
        try:
            value = derive(kind, line)
        except MalformedUrl as exc:
            self.logger.warn(f"Skipping {kind.name} input: {exc}")
            return []
        return [value] if value else []

    def targets(self, lines: Iterable[str]) -> Iterator[Tuple[Target, List[LoadedScript]]]:
        """Number targets per kind; HOST and PATH values are deduplicated."""
        counters = {kind: 0 for kind in ScanKind}
        seen = {kind: set() for kind in _DEDUP_KINDS}
        for line in lines:
            for kind, scripts in self.scripts.items():
                for value in self._derive(kind, line):
                    if kind in seen:
                        if value in seen[kind]:
                            continue
                        seen[kind].add(value)
                    yield Target(kind, value, counters[kind]), scripts
                    counters[kind] += 1

    # ── run ────────────────────────────────────────────────────

    def run(self, lines: Optional[Iterable[str]] = None) -> int:
        if not self.scripts:
            self.load_scripts()
        if lines is None:
            lines = read_lines(self.config.urls)

        slots = threading.BoundedSemaphore(self.config.workers)

        def _done(fut):
            slots.release()
            if fut.exception() is not None:
                with self._lock:
                    self._crashes.append(fut.exception())
                self.stop_event.set()

        try:
            with ThreadPoolExecutor(max_workers=self.config.workers) as pool:
                for target, scripts in self.targets(lines):
                    if self.stop_event.is_set():
                        break
                    if self.tracker.should_skip(target.kind, target.index):
                        self.skipped += 1
                        self.logger.debug(f"Resume: skipping {target.kind.name} #{target.index} {target.value}")
                        continue
                    slots.acquire()
                    if self.stop_event.is_set():
                        slots.release()
                        break
                    pool.submit(self._run_target, target, scripts).add_done_callback(_done)
        except KeyboardInterrupt:
            self.stop_event.set()
            self.logger.warn("Interrupted, waiting for running targets")
            raise
        finally:
            self.tracker.flush()

        if self._crashes:
            raise self._crashes[0]
        if self.budget.exhausted:
            self.logger.fail(f"Stopped after {self.budget.errors} errors "
                             f"({self.completed} targets completed)")
            return 1
        self.logger.ok(f"Scan finished: {self.completed} targets, {self.skipped} skipped, "
                       f"{self.budget.errors} errors, {self.results.count} results")
        return 0

    def _run_target(self, target: Target, scripts: List[LoadedScript]) -> None:
        try:
            request = None
            if target.kind is ScanKind.HTTP:
                try:
                    request = Request.from_file(target.value)
                except InputError as exc:
                    self.logger.fail(str(exc))
                    self.budget.record()
                    scripts = []

            workers = min(self.config.scripts_workers, len(scripts))
            if workers <= 1:
                for script in scripts:
                    self._run_script(script, target, request)
            else:
                with ThreadPoolExecutor(max_workers=workers) as pool:
                    futures = [pool.submit(self._run_script, s, target, request) for s in scripts]
                    for fut in futures:
                        fut.result()

            if not self.stop_event.is_set():
                self.tracker.complete(target.kind, target.index)
                with self._lock:
                    self.completed += 1
        finally:
            self.sink.advance()

    def _run_script(self, script: LoadedScript, target: Target,
                    request: Optional[Request] = None) -> None:
        if self.stop_event.is_set():
            return
        ctx = ScriptContext(
            script, target, self.http, self.logger, self.sink,
            results=self.results, budget=self.budget, options=self.http.defaults,
            env=self.config.env_vars, fuzz_workers=self.config.fuzz_workers,
            locations=self.config.locations, scheme=self.config.scheme,
            request=deepcopy(request), stop_event=self.stop_event,
        )
        self.logger.debug(f"Running {script.name} on {target.value}")
        try:
            result = script.run(ctx)
        except TransportError as exc:
            # already counted by ScriptContext.send
            self.logger.fail(f"{script.name} on {target.value}: {exc}")
            return
        except Exception as exc:
            self._script_failed(script, target.value, exc)
            return

        if isinstance(result, dict):
            ctx.report(result)
        elif isinstance(result, (list, tuple)):
            for record in result:
                ctx.report(record)

    def _script_failed(self, script: LoadedScript, value: str, exc: BaseException) -> None:
        self.logger.fail(f"Script error in {script.name} ({value}): {type(exc).__name__}: {exc}")
        self.logger.debug(traceback.format_exc())
        self.budget.record()

    def _on_budget_exhausted(self) -> None:
        self.stop_event.set()
        self.logger.fail(f"Error limit reached ({self.budget.exit_after}), "
                         f"no new targets will be dispatched")

"""Concurrent payload attempts against one injection point."""

import itertools
import threading
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, List, Optional, Tuple

from scriptscan.core.errors import FuzzVerdictError, TransportError


@dataclass
class FuzzResult:
    finds: bool = False
    matches: List[Tuple[str, Any]] = field(default_factory=list)
    attempts: int = 0
    errors: int = 0


class FuzzPool:
    """Runs ``send(payload)`` / ``match(result, payload)`` for every payload.

    ``finds`` latches to True on the first positive verdict and never goes
    back. With ``stop_on_find`` no further payloads are started once it is set.
    ``accept_nil`` turns a ``None`` verdict into a plain non-match; otherwise
    it raises ``FuzzVerdictError`` out of ``scan()``.
    """

    def __init__(self, workers: int = 15, accept_nil: bool = False,
                 stop_on_find: bool = False, logger=None,
                 stop_event: Optional[threading.Event] = None):
        self.workers = max(1, int(workers))
        self.accept_nil = accept_nil
        self.stop_on_find = stop_on_find
        self.logger = logger
        self.stop_event = stop_event
        self._lock = threading.Lock()
        self._result = FuzzResult()

    @property
    def finds(self) -> bool:
        with self._lock:
            return self._result.finds

    def _stopped(self) -> bool:
        if self.stop_event is not None and self.stop_event.is_set():
            return True
        return self.stop_on_find and self.finds

    def _attempt(self, payload: str, send: Callable[[str], Any],
                 match: Callable[[Any, str], Optional[bool]]) -> None:
        if self._stopped():
            return
        try:
            result = send(payload)
        except TransportError as exc:
            with self._lock:
                self._result.attempts += 1
                self._result.errors += 1
            if self.logger:
                self.logger.debug(f"payload {payload!r}: {exc}")
            return

        verdict = match(result, payload)
        with self._lock:
            self._result.attempts += 1
            if verdict is None:
                if not self.accept_nil:
                    raise FuzzVerdictError(payload)
            elif verdict:
                self._result.finds = True
                self._result.matches.append((payload, result))

    def scan(self, payloads: Iterable[str], send: Callable[[str], Any],
             match: Callable[[Any, str], Optional[bool]], label: str = "") -> FuzzResult:
        """Feed payloads to at most ``workers`` concurrent attempts."""
        if self.logger and label:
            self.logger.debug(f"Fuzzing {label} with {self.workers} workers")

        payloads = iter(payloads)
        with ThreadPoolExecutor(max_workers=self.workers) as pool:
            pending = set()
            for payload in itertools.islice(payloads, self.workers):
                pending.add(pool.submit(self._attempt, payload, send, match))
            try:
                while pending:
                    done, pending = wait(pending, return_when=FIRST_COMPLETED)
                    for fut in done:
                        fut.result()
                    if self._stopped():
                        continue
                    for payload in itertools.islice(payloads, len(done)):
                        pending.add(pool.submit(self._attempt, payload, send, match))
            except BaseException:
                for fut in pending:
                    fut.cancel()
                raise

        with self._lock:
            result = self._result
            self._result = FuzzResult(finds=result.finds)
        return result

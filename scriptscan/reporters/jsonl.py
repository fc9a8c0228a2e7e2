"""Newline-delimited JSON results sink."""

import json
import threading
from typing import Any, Mapping, Optional


class JsonlSink:
    """Appends one JSON record per line to ``path``.

    Without a path records are only counted (they already went to the log).
    ``keep=True`` also holds them in ``records``.
    """

    def __init__(self, path: Optional[str] = None, keep: bool = False):
        self.path = path
        self.keep = keep
        self.count = 0
        self.records = []
        self._lock = threading.Lock()

    def write(self, record: Mapping[str, Any]) -> None:
        line = json.dumps(record, ensure_ascii=False, default=str)
        with self._lock:
            self.count += 1
            if self.path:
                with open(self.path, "a", encoding="utf-8") as f:
                    f.write(line + "\n")
            if self.keep:
                self.records.append(json.loads(line))

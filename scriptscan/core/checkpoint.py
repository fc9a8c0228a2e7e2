"""Per-kind resume cursors and the ``KEY=VALUE`` checkpoint file.

A cursor is the 0-based index of the last target of that kind whose whole
script/fuzz subtree finished, with every lower index finished as well.
Targets at ``index <= cursor`` are skipped on resume. A cursor of 0 is
treated as "nothing done", so index 0 is always re-run.

Resume is index based: if the input changes between runs, skipped indices may
belong to different targets.
"""

import os
import threading
from typing import Dict, Optional, Set

from scriptscan.core.models import ScanKind

Cursors = Dict[ScanKind, int]

_KEYS = {kind.checkpoint_key: kind for kind in ScanKind}


def empty_cursors() -> Cursors:
    return {kind: 0 for kind in ScanKind}


def load(path: str) -> Cursors:
    """Read a checkpoint file. Unknown keys are ignored, bad numbers become 0."""
    cursors = empty_cursors()
    with open(path, "r", encoding="utf-8", errors="ignore") as f:
        for line in f:
            parts = line.strip().split("=")
            if len(parts) != 2:
                continue
            kind = _KEYS.get(parts[0].strip())
            if kind is None:
                continue
            try:
                cursors[kind] = max(0, int(parts[1].strip()))
            except ValueError:
                cursors[kind] = 0
    return cursors


def save(path: str, cursors: Cursors) -> None:
    """Write all five keys, replacing the file atomically."""
    lines = [f"{kind.checkpoint_key}={int(cursors.get(kind, 0))}\n"
             for kind in (ScanKind.HTTP, ScanKind.URL, ScanKind.HOST,
                          ScanKind.PATH, ScanKind.CUSTOM)]
    tmp = f"{path}.tmp"
    with open(tmp, "w", encoding="utf-8") as f:
        f.writelines(lines)
    os.replace(tmp, path)


class CheckpointTracker:
    """Tracks out-of-order completions and advances cursors contiguously."""

    def __init__(self, path: Optional[str] = None, resume: Optional[Cursors] = None):
        self.path = path
        self.resume = dict(resume) if resume else empty_cursors()
        self.cursors = dict(self.resume)
        self._done: Dict[ScanKind, Set[int]] = {kind: set() for kind in ScanKind}
        self._next: Dict[ScanKind, int] = {
            kind: (self.resume[kind] + 1 if self.resume[kind] > 0 else 0)
            for kind in ScanKind}
        self._dirty = False
        self._lock = threading.Lock()

    def should_skip(self, kind: ScanKind, index: int) -> bool:
        cursor = self.resume.get(kind, 0)
        return cursor > 0 and index <= cursor

    def complete(self, kind: ScanKind, index: int) -> None:
        """Mark one target done and persist if its kind's cursor moved."""
        with self._lock:
            done = self._done[kind]
            done.add(index)
            moved = False
            while self._next[kind] in done:
                done.discard(self._next[kind])
                self.cursors[kind] = self._next[kind]
                self._next[kind] += 1
                moved = True
            if moved:
                self._dirty = True
                self._flush_locked()

    def flush(self) -> None:
        with self._lock:
            self._flush_locked(force=True)

    def _flush_locked(self, force: bool = False) -> None:
        if not self.path or not (self._dirty or force):
            return
        save(self.path, self.cursors)
        self._dirty = False

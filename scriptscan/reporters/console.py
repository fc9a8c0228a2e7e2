import re
import sys
import threading
from datetime import datetime
from typing import Optional

from colorama import init as colorama_init, Fore, Style
from tqdm import tqdm

colorama_init(autoreset=True)

_ANSI = re.compile(r"\x1b\[[0-9;]*m")


class StatusSink:
    """Single shared line sink. Lines are written above the progress bar."""

    def __init__(self, total: Optional[int] = None, desc: str = "Scanning",
                 file=None, progress: Optional[bool] = None):
        self.file = file or sys.stderr
        if progress is None:
            progress = self.file.isatty()
        self._lock = threading.Lock()
        self.bar = tqdm(total=total, desc=desc, unit="target",
                        file=self.file, disable=not progress, leave=False)

    def println(self, line: str) -> None:
        with self._lock:
            tqdm.write(str(line), file=self.file)

    def advance(self, n: int = 1) -> None:
        with self._lock:
            self.bar.update(n)

    def close(self) -> None:
        self.bar.close()


class Log:
    def __init__(self, verbose: int = 1, sink: Optional[StatusSink] = None,
                 log_file: Optional[str] = None):
        self.verbose = verbose
        self.PAY = Fore.MAGENTA
        self.sink = sink or StatusSink(progress=False)
        self._file = open(log_file, "a", encoding="utf-8") if log_file else None
        self._file_lock = threading.Lock()

    def _time(self):
        return datetime.now().strftime("[%H:%M:%S]")

    def _fmt(self, level: str, color: str):
        return f"{self._time()} {color}[{level}]{Style.RESET_ALL}"

    def _emit(self, level: str, color: str, msg: str, show: bool = True):
        line = f"{self._fmt(level, color)} {msg}"
        if show:
            self.sink.println(line)
        if self._file:
            with self._file_lock:
                self._file.write(_ANSI.sub("", line) + "\n")
                self._file.flush()

    def info(self, msg: str):
        self._emit("INFO", Fore.CYAN, msg, self.verbose >= 1)

    def warn(self, msg: str):
        self._emit("WARNING", Fore.YELLOW, msg, self.verbose >= 0)

    def ok(self, msg: str):
        self._emit("SUCCESS", Fore.GREEN, msg)

    def fail(self, msg: str):
        self._emit("FAIL", Fore.RED, msg)

    def error(self, msg: str):
        self._emit("ERROR", Fore.RED + Style.BRIGHT, msg)

    def debug(self, msg: str):
        self._emit("DEBUG", Fore.MAGENTA, msg, self.verbose >= 2)

    def finding(self, sev: str, name: str, target: str, detail: str = ""):
        sev_col = {"critical": Fore.RED + Style.BRIGHT, "high": Fore.RED,
                   "medium": Fore.YELLOW, "low": Fore.GREEN}.get(sev, Fore.WHITE)
        extra = f" {Style.DIM}({detail}){Style.RESET_ALL}" if detail else ""
        self._emit(sev.upper() or "FOUND", sev_col,
                   f"{name} @ {self.PAY}{target}{Style.RESET_ALL}{extra}")

    def close(self):
        if self._file:
            self._file.close()
            self._file = None

"""Input stream: target lines from a file and/or stdin.

Order is fixed: every line of the ``--urls`` file first, then stdin. Lines are
stripped and blank lines dropped. Stdin is only read when it is not a TTY.
"""

import sys
from typing import Iterator, Optional, TextIO
from urllib.parse import urlsplit

from scriptscan.core.errors import InputError, MalformedUrl
from scriptscan.core.models import ScanKind
from scriptscan.parsers.url import UrlTarget


def _lines(stream: TextIO) -> Iterator[str]:
    for line in stream:
        line = line.strip()
        if line:
            yield line


def read_lines(path: Optional[str] = None, stdin: Optional[TextIO] = None) -> Iterator[str]:
    if path:
        try:
            with open(path, "r", encoding="utf-8", errors="ignore") as f:
                yield from _lines(f)
        except OSError as exc:
            raise InputError(f"Cannot read file {path}: {exc}") from None
    if stdin is None:
        stdin = sys.stdin
        if stdin is None or stdin.isatty():
            return
    yield from _lines(stdin)


def derive(kind: ScanKind, line: str) -> Optional[str]:
    """Target value of ``kind`` for one input line, or None when it has none.

    HOST takes the hostname of URL lines and keeps bare hosts as they are.
    URL requires a parseable absolute URL. PATH is the URL without query or
    fragment. CUSTOM and HTTP pass the line through (HTTP lines name raw
    request files).
    """
    if kind is ScanKind.HOST:
        if "://" in line:
            try:
                return urlsplit(line).hostname or None
            except ValueError as exc:
                raise MalformedUrl(line, str(exc)) from None
        return line.split("/", 1)[0] or None
    if kind is ScanKind.URL:
        return UrlTarget(line).url
    if kind is ScanKind.PATH:
        return UrlTarget(line).without_query()
    return line

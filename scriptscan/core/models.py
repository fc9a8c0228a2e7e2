"""Shared data models for the scan engine."""

import json
from dataclasses import dataclass, field, replace
from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional

from scriptscan.core.errors import UnsupportedScanType


class ScanKind(IntEnum):
    """Input shape a script consumes; the value is the script's SCAN_TYPE."""
    HOST = 1
    URL = 2
    PATH = 3
    CUSTOM = 4
    HTTP = 5

    @property
    def checkpoint_key(self) -> str:
        return f"{self.name}_SCAN_ID"


class InjectionLocation(Enum):
    URL = "url"
    BODY = "body"
    BODY_JSON = "json"
    HEADERS = "headers"

    @classmethod
    def parse_list(cls, raw: str) -> List["InjectionLocation"]:
        """Parse ``url,body,json,headers`` style lists, keeping order."""
        locations: List[InjectionLocation] = []
        for name in raw.split(","):
            name = name.strip().lower()
            try:
                loc = cls(name)
            except ValueError:
                raise UnsupportedScanType(name) from None
            if loc not in locations:
                locations.append(loc)
        return locations


@dataclass(frozen=True)
class Target:
    """One unit of work read from the input stream."""
    kind: ScanKind
    value: str
    index: int             # 0-based position within its kind


@dataclass
class MultiPart:
    """A single part of a multipart/form-data body."""
    content: str
    filename: Optional[str] = None
    content_type: Optional[str] = None
    headers: Optional[Dict[str, str]] = None


@dataclass
class RequestOptions:
    """Per-call transport configuration.

    TLS certificates are NOT validated unless ``verify`` is set, either with
    ``--verify`` on the CLI or ``options.verify = True`` from a script.
    """
    headers: Dict[str, str] = field(default_factory=dict)
    timeout: float = 10.0
    redirects: int = 10
    proxy: Optional[str] = None
    http1_only: bool = False
    http2_only: bool = False
    merge_headers: bool = True
    verify: bool = False

    def set_proxy(self, proxy: Optional[str]) -> "RequestOptions":
        self.proxy = proxy or None
        return self

    def set_timeout(self, timeout: float) -> "RequestOptions":
        self.timeout = float(timeout)
        return self

    def set_redirects(self, redirects: int) -> "RequestOptions":
        self.redirects = max(0, int(redirects))
        return self

    def set_headers(self, headers: Dict[str, str], merge: bool = True) -> "RequestOptions":
        self.headers = dict(headers)
        self.merge_headers = merge
        return self

    def copy(self) -> "RequestOptions":
        return replace(self, headers=dict(self.headers))

    def fingerprint(self) -> tuple:
        """Key for the pooled client cache; headers are sent per request."""
        return (self.timeout, self.proxy, self.redirects,
                self.http1_only, self.http2_only, self.verify)


@dataclass
class RequestVariant:
    """Candidate outbound request: a parsed request with one payload spliced in."""
    method: str
    url: str
    headers: Dict[str, str]
    body: Optional[str]
    location: InjectionLocation
    param: str
    payload: str

    def __str__(self):
        return f"{self.method} {self.url} [{self.location.value}:{self.param}]"


@dataclass
class Response:
    """Normalized HTTP response handed to scripts."""
    status: int
    reason: str
    version: str
    url: str
    is_redirect: bool
    headers: Dict[str, str] = field(default_factory=dict)
    body: str = ""

    def json(self) -> Any:
        return json.loads(self.body)

    def status_ok(self) -> bool:
        return 200 <= self.status < 300

    def has_header(self, name: str) -> bool:
        return self.get_header(name) is not None

    def get_header(self, name: str) -> Optional[str]:
        lower = name.lower()
        for k, v in self.headers.items():
            if k.lower() == lower:
                return v
        return None

"""Addressable URL target with query-parameter mutation helpers.

Mutators never touch the loaded URL; they return the rewritten URL string so
every fuzzed variant is derived from the same original:

    u = UrlTarget("http://example.com/item?id=1&cat=2")
    u.set_param("id", "'", True)    # http://example.com/item?id=%27&cat=2
    u.set_param("id", "'", False)   # http://example.com/item?id=1%27&cat=2
"""

from typing import Dict, List, Optional, Tuple
from urllib.parse import SplitResult, parse_qsl, urlencode, urljoin, urlsplit, urlunsplit

from scriptscan.core.errors import MalformedUrl, NoUrlLoaded

_DEFAULT_PORTS = {"http": 80, "https": 443, "ws": 80, "wss": 443, "ftp": 21}


def parse_url(url: str) -> SplitResult:
    """urlsplit plus the checks urlsplit leaves out. Raises MalformedUrl."""
    try:
        parts = urlsplit(url.strip())
        parts.port  # out-of-range / non-numeric ports only fail here
    except ValueError as exc:
        raise MalformedUrl(url, str(exc)) from None
    if not parts.scheme:
        raise MalformedUrl(url, "relative URL without a base")
    if not parts.hostname:
        raise MalformedUrl(url, "empty host")
    return parts


class UrlTarget:

    def __init__(self, url: Optional[str] = None):
        self._parts: Optional[SplitResult] = None
        if url is not None:
            self.load(url)

    def load(self, url: str) -> "UrlTarget":
        self._parts = parse_url(url)
        return self

    @property
    def loaded(self) -> bool:
        return self._parts is not None

    def _require(self) -> SplitResult:
        if self._parts is None:
            raise NoUrlLoaded()
        return self._parts

    def _pairs(self) -> List[Tuple[str, str]]:
        return parse_qsl(self._require().query, keep_blank_values=True)

    def _with_query(self, pairs: List[Tuple[str, str]]) -> str:
        return urlunsplit(self._require()._replace(query=urlencode(pairs)))

    # ── read-only ─────────────────────────────────────────────

    @property
    def url(self) -> str:
        return urlunsplit(self._require())

    @property
    def host(self) -> str:
        return self._require().hostname or ""

    @property
    def scheme(self) -> str:
        return self._require().scheme

    @property
    def port(self) -> int:
        parts = self._require()
        return parts.port or _DEFAULT_PORTS.get(parts.scheme, 0)

    @property
    def path(self) -> str:
        return self._require().path or "/"

    def param_str(self) -> str:
        return self._require().query

    def list_params(self) -> List[str]:
        return [k for k, _ in self._pairs()]

    param_list = list_params

    def params_as_map(self) -> Dict[str, str]:
        params: Dict[str, str] = {}
        for k, v in self._pairs():
            params.setdefault(k, v)
        return params

    def get_param(self, name: str) -> Optional[str]:
        for k, v in self._pairs():
            if k == name:
                return v
        return None

    def has_param(self, name: str) -> bool:
        return any(k == name for k, _ in self._pairs())

    # ── derived URLs ──────────────────────────────────────────

    def set_param(self, name: str, payload: str, remove_existing: bool = True) -> str:
        """Rewrite every value of ``name``; append to it unless ``remove_existing``."""
        pairs = [(k, (payload if remove_existing else v + payload) if k == name else v)
                 for k, v in self._pairs()]
        return self._with_query(pairs)

    def set_all_params(self, payload: str, remove_existing: bool = True) -> str:
        pairs = [(k, payload if remove_existing else v + payload)
                 for k, v in self._pairs()]
        return self._with_query(pairs)

    def variants(self, payload: str, remove_existing: bool = True) -> List[Tuple[str, str]]:
        """One ``(param, url)`` per distinct parameter with the payload injected."""
        return [(name, self.set_param(name, payload, remove_existing))
                for name in dict.fromkeys(self.list_params())]

    def join(self, path: str) -> str:
        return urljoin(self.url, path)

    def set_path(self, path: str) -> str:
        if not path.startswith("/"):
            path = "/" + path
        return urlunsplit(self._require()._replace(path=path))

    def without_query(self) -> str:
        parts = self._require()
        return urlunsplit(parts._replace(query="", fragment=""))

    def __str__(self):
        return self.url if self._parts is not None else ""

    def __repr__(self):
        return f"UrlTarget({str(self)!r})"

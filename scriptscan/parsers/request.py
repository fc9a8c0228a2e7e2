from typing import Dict, List, Optional
from urllib.parse import parse_qs, urlencode, urlsplit
import json

from scriptscan.core.errors import InputError


class Request:
    def __init__(self) -> None:
        """
        GET /item?id=1 HTTP/1.1
        Host: example.com
        Content-Type: application/x-www-form-urlencoded

        data=xxx
        """

        self.method = ""
        self.path = ""
        self.version = "HTTP/1.1"
        self.host = ""
        self.parameters: Dict[str, List[str]] = {}
        self.headers: Dict[str, str] = {}
        self.body = {}
        self.body_type = ""     # "json" | "form" | "raw" | ""

    @classmethod
    def from_file(cls, filename: str) -> "Request":
        try:
            with open(filename, 'r', encoding='utf-8', errors='ignore') as f:
                raw = f.read()
        except OSError as exc:
            raise InputError(f"Cannot read request file {filename}: {exc}") from None
        return cls.parse(raw)

    @classmethod
    def parse(cls, raw: str) -> "Request":
        req = cls()
        raw = raw.replace("\r\n", "\n")

        head, _, body_raw = raw.partition("\n\n")
        if not head.strip():
            raise InputError("Request is empty.")

        lines = [l for l in head.split("\n") if l.strip()]

        # METHOD SP PATH [SP HTTP/x.y]
        parts0 = lines[0].split()
        if len(parts0) < 2:
            raise InputError(f"Invalid request line: {lines[0]!r}")
        req.method = parts0[0].upper()
        if len(parts0) > 2:
            req.version = parts0[2]

        url_parts = urlsplit(parts0[1])
        req.path = url_parts.path or "/"
        req.parameters = dict(
            parse_qs(url_parts.query, keep_blank_values=True))

        for line in lines[1:]:
            if ':' in line:
                k, v = line.split(':', 1)
                req.headers[k.strip()] = v.strip()

        # absolute-form request line carries the host itself
        req.host = url_parts.netloc or req.header("Host") or ""
        req._set_body(body_raw.strip(), req.header("Content-Type") or "")

        for name in list(req.headers):
            if name.lower() == "content-length":
                req.headers.pop(name)
        return req

    @classmethod
    def from_url(cls, url: str, method: str = "GET", body=None,
                 content_type: Optional[str] = None) -> "Request":
        parts = urlsplit(url)
        req = cls()
        req.method = method.upper()
        req.host = parts.netloc
        req.path = parts.path or "/"
        req.parameters = dict(parse_qs(parts.query, keep_blank_values=True))
        req.headers = {"Host": parts.netloc}
        if content_type:
            req.headers["Content-Type"] = content_type
        if isinstance(body, dict):
            req.body = body
            req.body_type = "json" if content_type and "json" in content_type else "form"
        elif body:
            req._set_body(str(body), content_type or "")
        return req

    def _set_body(self, body_raw: str, content_type: str) -> None:
        self.body = {}
        self.body_type = ""
        if not body_raw:
            return
        ctype = content_type.lower()
        if "application/json" in ctype:
            try:
                self.body = json.loads(body_raw)
                self.body_type = "json"
                return
            except ValueError:
                pass  # keep it raw if it is not valid JSON
        elif "application/x-www-form-urlencoded" in ctype:
            self.body = dict(parse_qs(body_raw, keep_blank_values=True))
            self.body_type = "form"
            return
        self.body = body_raw
        self.body_type = "raw"

    def header(self, name: str) -> Optional[str]:
        lower = name.lower()
        for k, v in self.headers.items():
            if k.lower() == lower:
                return v
        return None

    def url(self, scheme: str = "https", parameters: Optional[Dict[str, List[str]]] = None,
            path: Optional[str] = None) -> str:
        if not self.host:
            raise InputError("Host not defined in request.")
        params = self.parameters if parameters is None else parameters
        query = urlencode(params, doseq=True)
        return f"{scheme}://{self.host}{path or self.path}" + (f"?{query}" if query else "")

    def encode_body(self, body=None) -> Optional[str]:
        body = self.body if body is None else body
        if self.body_type == "json":
            return json.dumps(body)
        if self.body_type == "form":
            return urlencode(body, doseq=True)
        if self.body_type == "raw":
            return body
        return None

    def __str__(self) -> str:
        return f"Method: {self.method}\nPath: {self.path}\nHost: {self.host}\nParameters: {self.parameters}\nHeaders: {self.headers}\nBody: {self.body}"

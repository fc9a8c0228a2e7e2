"""Rate-limited HTTP transport shared by every script and fuzz worker."""

import threading
from http.cookiejar import CookieJar, DefaultCookiePolicy
from typing import Dict, Optional

import httpx

from scriptscan.core.errors import TransportError
from scriptscan.core.models import MultiPart, RequestOptions, Response
from scriptscan.core.ratelimit import RateState


def classify(exc: Exception) -> str:
    """Map an httpx failure onto a TransportError kind."""
    if isinstance(exc, httpx.TimeoutException):
        return "timeout"
    if isinstance(exc, (httpx.ConnectError, httpx.ProxyError)):
        return "connect"
    if isinstance(exc, httpx.TooManyRedirects):
        return "too_many_redirects"
    if isinstance(exc, (httpx.WriteError, httpx.StreamError)):
        return "request_body"
    if isinstance(exc, httpx.DecodingError):
        return "decode"
    return "other"


def protocol_flags(options: RequestOptions) -> Dict[str, bool]:
    """httpx version switches: ALPN negotiation by default, or one version pinned."""
    return {"http1": not options.http2_only, "http2": not options.http1_only}


def _encode_headers(headers: Dict[str, str]) -> Dict[str, bytes]:
    # httpx encodes str values as ASCII; payloads go out as UTF-8 bytes instead
    return {k: v.encode("utf-8") if isinstance(v, str) else v for k, v in headers.items()}


def _files(multipart: Dict[str, MultiPart]) -> dict:
    return {name: (part.filename, part.content, part.content_type, part.headers or {})
            for name, part in multipart.items()}


class HttpClient:
    """Issues requests through pooled httpx clients.

    One ``httpx.Client`` is kept per ``RequestOptions.fingerprint()``; headers
    travel with each request so scripts with different headers share a pool.
    Clients never store cookies.
    """

    def __init__(self, rate: Optional[RateState] = None,
                 defaults: Optional[RequestOptions] = None,
                 sink=None, logger=None,
                 transport: Optional[httpx.BaseTransport] = None):
        self.rate = rate or RateState()
        self.defaults = defaults or RequestOptions()
        self.sink = sink
        self.logger = logger
        self._transport = transport
        self._clients: Dict[tuple, httpx.Client] = {}
        self._lock = threading.Lock()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def close(self) -> None:
        with self._lock:
            clients, self._clients = list(self._clients.values()), {}
        for client in clients:
            client.close()

    @property
    def pool_size(self) -> int:
        return len(self._clients)

    def _client(self, options: RequestOptions) -> httpx.Client:
        key = options.fingerprint()
        with self._lock:
            client = self._clients.get(key)
            if client is None:
                kwargs = dict(
                    timeout=options.timeout,
                    verify=options.verify,
                    follow_redirects=False,
                    trust_env=False,
                    cookies=CookieJar(policy=DefaultCookiePolicy(allowed_domains=[])),
                    **protocol_flags(options),
                )
                if self._transport is not None:
                    kwargs["transport"] = self._transport
                elif options.proxy:
                    kwargs["proxy"] = options.proxy
                client = httpx.Client(**kwargs)
                self._clients[key] = client
            return client

    def _headers(self, options: RequestOptions) -> Dict[str, str]:
        if options.merge_headers:
            headers = dict(self.defaults.headers)
            headers.update(options.headers)
            return headers
        return dict(options.headers)

    def send(self, method: str, url: str, body: Optional[str] = None,
             multipart: Optional[Dict[str, MultiPart]] = None,
             options: Optional[RequestOptions] = None) -> Response:
        """Send one request, following at most ``options.redirects`` redirects.

        Hitting the redirect limit is not an error: the last response is
        returned as-is. Failures raise ``TransportError``.
        """
        options = (options or self.defaults).copy()
        self.rate.acquire()
        client = self._client(options)

        try:
            request = client.build_request(
                method.upper(), url,
                headers=_encode_headers(self._headers(options)),
                content=body if body is not None and not multipart else None,
                files=_files(multipart) if multipart else None,
            )
        except httpx.InvalidURL as exc:
            raise TransportError(classify(exc), url, str(exc)) from exc
        except ValueError as exc:
            if self.logger:
                self.logger.debug(f"request_body on {method.upper()} {url}: {exc}")
            raise TransportError("request_body", url, str(exc)) from exc

        try:
            response = client.send(request, stream=True)
            hops = 0
            while response.next_request is not None and hops < options.redirects:
                next_request = response.next_request
                response.close()
                hops += 1
                response = client.send(next_request, stream=True)
        except (httpx.HTTPError, httpx.InvalidURL, httpx.StreamError) as exc:
            kind = classify(exc)
            if self.logger:
                self.logger.debug(f"{kind} on {method.upper()} {url}: {exc}")
            raise TransportError(kind, url, str(exc)) from exc

        try:
            raw = response.read()
        except httpx.DecodingError as exc:
            raise TransportError("decode", url, str(exc)) from exc
        except httpx.HTTPError as exc:
            if self.logger:
                self.logger.error("Timeout Body")
            raise TransportError("timeout_body", url, str(exc)) from exc
        finally:
            response.close()

        if self.rate.verbose:
            msg = f"Sent HTTP request: {url}"
            if self.sink:
                self.sink.println(msg)
            if self.logger:
                self.logger.debug(msg)

        return Response(
            status=response.status_code,
            reason=response.reason_phrase,
            version=response.http_version,
            url=str(response.url),
            is_redirect=300 <= response.status_code < 400,
            headers={k: v for k, v in response.headers.items()},
            body=raw.decode("utf-8", errors="replace"),
        )

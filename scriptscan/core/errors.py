"""Exception hierarchy shared by the engine, the transport and the scripts."""


class ScanError(Exception):
    """Base class for every error raised by scriptscan."""


class InputError(ScanError):
    """Input stream or file could not be read."""


class NoUrlLoaded(ScanError):
    def __init__(self):
        super().__init__("No url found")


class MalformedUrl(ScanError):
    """URL failed to parse; the parser message is kept in ``reason``."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"{reason}: {url!r}")


class UnsupportedScanType(ScanError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(
            f"Invalid content-type {name!r} (valid: url, body, json, headers)")


class NoScanType(ScanError):
    def __init__(self, script: str):
        self.script = script
        super().__init__(
            f"Missing or invalid SCAN_TYPE in {script} (1=HOST 2=URL 3=PATH 4=CUSTOM 5=HTTP)")


class ScriptError(ScanError):
    """A user script failed while loading or running."""

    def __init__(self, script: str, cause: BaseException):
        self.script = script
        self.cause = cause
        super().__init__(f"{script}: {type(cause).__name__}: {cause}")


class FuzzVerdictError(ScanError):
    """Match predicate returned no verdict and accept_nil is off."""

    def __init__(self, payload: str):
        self.payload = payload
        super().__init__(f"match function returned no verdict for payload {payload!r}")



class TransportError(ScanError):
    """A send failed. ``kind`` is one of ``TransportError.KINDS``."""

    KINDS = ("timeout", "connect", "too_many_redirects",
             "request_body", "decode", "timeout_body", "other")

    def __init__(self, kind: str, url: str = "", detail: str = ""):
        if kind not in self.KINDS:
            kind = "other"
        self.kind = kind
        self.url = url
        self.detail = detail
        msg = f"{kind}_error" if kind not in ("too_many_redirects", "timeout_body") else kind
        if url:
            msg += f" ({url})"
        super().__init__(msg)

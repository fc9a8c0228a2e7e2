"""Scan configuration built from the command line."""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from scriptscan.core.errors import ScanError
from scriptscan.core.models import InjectionLocation, RequestOptions

DEFAULT_USER_AGENT = ("Mozilla/5.0 (X11; Linux x86_64; rv:128.0) "
                      "Gecko/20100101 Firefox/128.0")


class ConfigError(ScanError):
    pass


def parse_headers(raw: str) -> Dict[str, str]:
    """JSON object of default headers; a User-Agent is always present."""
    try:
        parsed = json.loads(raw or "{}")
    except ValueError as exc:
        raise ConfigError(f"--headers is not valid JSON: {exc}") from None
    if not isinstance(parsed, dict):
        raise ConfigError("--headers must be a JSON object")
    headers = {"User-Agent": DEFAULT_USER_AGENT}
    for k, v in parsed.items():
        if str(k).lower() == "user-agent":
            headers.pop("User-Agent", None)
        headers[str(k)] = str(v)
    return headers


def parse_env_vars(raw: str) -> Dict[str, Any]:
    try:
        parsed = json.loads(raw or "{}")
    except ValueError as exc:
        raise ConfigError(f"--env-vars is not valid JSON: {exc}") from None
    if not isinstance(parsed, dict):
        raise ConfigError("--env-vars must be a JSON object")
    return parsed


@dataclass
class ScanConfig:
    script_path: str
    output: Optional[str] = None
    workers: int = 10
    fuzz_workers: int = 15
    scripts_workers: int = 10
    timeout: float = 10
    redirects: int = 10
    proxy: Optional[str] = None
    verbose: int = 1
    urls: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=lambda: parse_headers("{}"))
    env_vars: Dict[str, Any] = field(default_factory=dict)
    input_handler: Optional[str] = None
    locations: List[InjectionLocation] = field(default_factory=lambda: InjectionLocation.parse_list("url,body,headers"))
    requests_limit: int = 2000
    delay: float = 5
    log: Optional[str] = None
    exit_after: int = 2000
    resume: Optional[str] = None
    checkpoint: str = "resume.cfg"
    verify: bool = False
    scheme: str = "https"
    http1_only: bool = False
    http2_only: bool = False

    @property
    def verbose_requests(self) -> bool:
        return self.verbose >= 2

    def request_options(self) -> RequestOptions:
        return RequestOptions(
            headers=dict(self.headers),
            timeout=self.timeout,
            redirects=self.redirects,
            proxy=self.proxy,
            http1_only=self.http1_only,
            http2_only=self.http2_only,
            verify=self.verify,
        )

    @classmethod
    def from_args(cls, args) -> "ScanConfig":
        for name in ("workers", "fuzz_workers", "scripts_workers"):
            if getattr(args, name) < 1:
                raise ConfigError(f"--{name.replace('_', '-')} must be at least 1")
        return cls(
            script_path=args.script_path,
            output=args.output,
            workers=args.workers,
            fuzz_workers=args.fuzz_workers,
            scripts_workers=args.scripts_workers,
            timeout=args.timeout,
            redirects=args.redirects,
            proxy=args.proxy,
            verbose=args.verbose,
            urls=args.urls,
            headers=parse_headers(args.headers),
            env_vars=parse_env_vars(args.env_vars),
            input_handler=args.input_handler,
            locations=InjectionLocation.parse_list(args.content_type),
            requests_limit=args.requests_limit,
            delay=args.delay,
            log=args.log,
            exit_after=args.exit_after_errors,
            resume=args.resume,
            checkpoint=args.resume or args.checkpoint,
            verify=args.verify,
            scheme=args.request_proto,
            http1_only=args.http1,
            http2_only=args.http2,
        )

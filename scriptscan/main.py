import argparse
import os
import sys

from scriptscan.core.config import ScanConfig
from scriptscan.core.engine import Engine
from scriptscan.core.errors import ScanError
from scriptscan.core.models import ScanKind
from scriptscan.reporters.console import Log, StatusSink

_TEMPLATES = {
    ScanKind.HOST: '''SCAN_TYPE = 1


def main(ctx):
    resp = ctx.send("GET", f"https://{ctx.input}/")
    if resp.has_header("server"):
        ctx.report({"name": "server-banner", "host": ctx.input,
                    "server": resp.get_header("server")})
''',
    ScanKind.URL: '''SCAN_TYPE = 2

PAYLOADS = ["'", "\\"", "<svg/onload=alert(1)>"]


def main(ctx):
    for param in ctx.url.list_params():
        for payload in PAYLOADS:
            resp = ctx.send("GET", ctx.url.set_param(param, payload, True))
            if payload in resp.body:
                ctx.report({"name": "reflection", "url": resp.url,
                            "param": param, "payload": payload})
''',
    ScanKind.PATH: '''SCAN_TYPE = 3

FILES = [".git/config", ".env", "server-status"]


def main(ctx):
    for name in FILES:
        resp = ctx.send("GET", ctx.url.join(name))
        if resp.status_ok():
            ctx.report({"name": "exposed-file", "url": resp.url})
''',
    ScanKind.CUSTOM: '''SCAN_TYPE = 4


def main(ctx):
    ctx.println(f"custom input: {ctx.input}")
''',
    ScanKind.HTTP: '''SCAN_TYPE = 5

PAYLOADS = ["{{7*7}}", "${7*7}"]


def main(ctx):
    results = ctx.fuzz_request(PAYLOADS, lambda resp, payload: "49" in resp.body)
    for point, result in results.items():
        for payload, resp in result.matches:
            ctx.report({"name": "ssti", "point": point, "payload": payload,
                        "url": resp.url})
''',
}


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="scriptscan",
        description="Run user scripts concurrently against hosts, URLs, paths or raw HTTP requests")
    sub = p.add_subparsers(dest="command", required=True)

    s = sub.add_parser("scan", help="Run scripts against targets from --urls and/or stdin")
    s.add_argument("script_path", help="Script file or directory of scripts")
    s.add_argument("-o", "--output", help="Append results as JSON lines to FILE")
    s.add_argument("-w", "--workers", type=int, default=10, help="Concurrent targets")
    s.add_argument("--fuzz-workers", type=int, default=15, help="Concurrent payloads per injection point")
    s.add_argument("--scripts-workers", "-sw", type=int, default=10, help="Concurrent scripts per target")
    s.add_argument("-t", "--timeout", type=float, default=10, help="HTTP timeout (seconds)")
    s.add_argument("-r", "--redirects", type=int, default=10, help="Max redirects to follow (0 = none)")
    s.add_argument("-p", "--proxy", help="Proxy (ej: http://127.0.0.1:8080)")
    s.add_argument("-v", "--verbose", action="count", default=1,
                   help="-v: debug output and every request sent")
    s.add_argument("--urls", help="File with one target per line (read before stdin)")
    s.add_argument("--headers", default="{}", help="Default headers as a JSON object")
    s.add_argument("--env-vars", default="{}", help="JSON object exposed to scripts as ctx.env")
    s.add_argument("--input-handler", help="Script whose parse_input(line) builds CUSTOM targets")
    s.add_argument("-c", "--content-type", default="url,body,headers",
                   help="Injection locations for HTTP targets: url,body,json,headers")
    s.add_argument("--requests-limit", type=int, default=2000, help="Requests before a rate-limit pause")
    s.add_argument("--delay", type=float, default=5, help="Rate-limit pause (seconds)")
    s.add_argument("--log", help="Also write log lines to FILE")
    s.add_argument("--exit-after-errors", type=int, default=2000, help="Stop after N errors (0 = never)")
    s.add_argument("--resume", help="Resume from (and keep updating) a checkpoint file")
    s.add_argument("--checkpoint", default="resume.cfg", help="Checkpoint file written during the scan")
    s.add_argument("--verify", action="store_true",
                   help="Validate TLS certificates (off by default)")
    s.add_argument("--request-proto", default="https", choices=["http", "https"],
                   help="Scheme for raw HTTP request targets")
    version = s.add_mutually_exclusive_group()
    version.add_argument("--http1", action="store_true",
                         help="Only use HTTP/1.1 (default negotiates HTTP/2 via ALPN)")
    version.add_argument("--http2", action="store_true", help="Use HTTP/2 with prior knowledge")

    n = sub.add_parser("new", help="Write a script template")
    n.add_argument("-t", "--type", type=int, required=True, choices=[k.value for k in ScanKind],
                   help="1=HOST 2=URL 3=PATH 4=CUSTOM 5=HTTP")
    n.add_argument("-o", "--output", required=True, help="Template file to create")
    return p


def new_script(kind: int, output: str, log: Log) -> int:
    if os.path.exists(output):
        log.fail(f"File already exists: {output}")
        return 1
    with open(output, "w", encoding="utf-8") as f:
        f.write(_TEMPLATES[ScanKind(kind)])
    log.ok(f"{ScanKind(kind).name} script written to {output}")
    return 0


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    if args.command == "new":
        return new_script(args.type, args.output, Log())

    sink = StatusSink()
    log = Log(verbose=args.verbose, sink=sink, log_file=args.log)
    try:
        config = ScanConfig.from_args(args)
        engine = Engine(config, logger=log, sink=sink)
    except ScanError as exc:
        log.fail(str(exc))
        log.close()
        sink.close()
        return 2

    try:
        return engine.run()
    except ScanError as exc:
        log.fail(str(exc))
        return 2
    except KeyboardInterrupt:
        return 130
    finally:
        engine.close()


if __name__ == "__main__":
    sys.exit(main())

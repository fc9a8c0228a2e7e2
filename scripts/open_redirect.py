"""Open redirect: a parameter value ends up in an external Location header."""

from urllib.parse import urlsplit

SCAN_TYPE = 2

PAYLOADS = [
    # Protocol-relative
    "//evil.com",
    "///evil.com",
    # Full URL
    "https://evil.com",
    "http://evil.com",
    # Backslash trick
    "/\\evil.com",
    # @ trick
    "http://vulnlab@evil.com",
    # Javascript protocol
    "javascript:alert(1)",
]


def is_external(location, host):
    if not location:
        return False
    if location.startswith("//"):
        location = "https:" + location
    if location.lower().strip().startswith(("javascript:", "data:", "vbscript:")):
        return True
    hostname = (urlsplit(location.replace("\\", "/")).hostname or "").lower()
    return bool(hostname) and hostname != host.lower()


def main(ctx):
    # no redirects: the Location header is what we want
    options = ctx.options.copy().set_redirects(0)
    for param in dict.fromkeys(ctx.url.list_params()):
        for payload in PAYLOADS:
            resp = ctx.send("GET", ctx.url.set_param(param, payload, True), options=options)
            location = resp.get_header("location")
            if resp.is_redirect and is_external(location, ctx.url.host):
                ctx.report({
                    "name": "Open Redirect",
                    "severity": "medium",
                    "url": ctx.url.url,
                    "param": param,
                    "payload": payload,
                    "location": location,
                })
                break

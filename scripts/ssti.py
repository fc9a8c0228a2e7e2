"""Template injection through every injection point of a raw HTTP request."""

import random
import re
import string

SCAN_TYPE = 5


def generate_random_string(length: int) -> str:
    chars = string.ascii_letters + string.digits
    return ''.join(random.choice(chars) for _ in range(length))


def main(ctx):
    canary = generate_random_string(8)
    payloads = [canary + p for p in (
        "{{7*7}}", "${7*7}", "#{7*7}", "<%= 7*7 %>",
        "${{7*7}}", "{{= 7*7}}", "[[7*7]]", "@(7*7)",
    )]
    rx = re.compile(re.escape(canary) + r"49")

    def match(resp, payload):
        return bool(rx.search(resp.body))

    for point, result in ctx.fuzz_request(payloads, match, stop_on_find=True).items():
        for payload, resp in result.matches:
            ctx.report({
                "name": "Server-Side Template Injection",
                "severity": "critical",
                "url": resp.url,
                "point": point,
                "payload": payload,
            })

"""Error-based SQL injection on every query parameter of a URL."""

import re

SCAN_TYPE = 2

PAYLOADS = ["'", '"', "')", "' OR '1'='1", "1'-- -"]

# SOLO errores reales
ERRORS = [
    # MySQL / MariaDB
    r"SQL syntax.*MySQL",
    r"You have an error in your SQL syntax",
    r"Warning.*mysql_",
    r"Unknown column.*in.*field list",
    # PostgreSQL
    r"PostgreSQL.*ERROR",
    r"syntax error at or near",
    # MSSQL
    r"Unclosed quotation mark after the character string",
    r"Incorrect syntax near",
    # Oracle
    r"ORA-\d+",
    # SQLite
    r"SQLite.*error",
    r"unrecognized token",
    r"no such table",
    # ORM
    r"PDOException",
    r"SQLSTATE\[\d+\]",
]
ERRORS_RX = [re.compile(p, re.I) for p in ERRORS]


def sql_error(body):
    for rx in ERRORS_RX:
        m = rx.search(body)
        if m:
            return m.group(0)
    return None


def main(ctx):
    baseline = ctx.send("GET", ctx.url.url)
    if sql_error(baseline.body):
        ctx.log_debug(f"{ctx.url.url} already shows SQL errors, skipping")
        return

    for param in dict.fromkeys(ctx.url.list_params()):
        def send(payload, param=param):
            return ctx.send("GET", ctx.url.set_param(param, payload, False))

        def match(resp, payload):
            return sql_error(resp.body) is not None

        result = ctx.fuzz(PAYLOADS, send, match, stop_on_find=True, label=f"{param}")
        for payload, resp in result.matches[:1]:
            ctx.report({
                "name": "SQL Injection",
                "severity": "high",
                "url": ctx.url.url,
                "param": param,
                "payload": payload,
                "evidence": sql_error(resp.body),
            })

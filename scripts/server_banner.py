SCAN_TYPE = 1

HEADERS = ("server", "x-powered-by", "x-aspnet-version")


def main(ctx):
    resp = ctx.send("GET", f"https://{ctx.input}/")
    found = {h: resp.get_header(h) for h in HEADERS if resp.has_header(h)}
    if found:
        return {"name": "Server banner", "severity": "low", "url": resp.url, "headers": found}

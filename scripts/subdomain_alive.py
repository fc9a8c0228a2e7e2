SCAN_TYPE = 4


def main(ctx):
    options = ctx.options.copy().set_timeout(5).set_redirects(0)
    resp = ctx.send("GET", f"https://{ctx.input}/", options=options)
    ctx.log_info(f"{ctx.input} -> {resp.status}")
    return {"name": "Live host", "severity": "info", "url": resp.url, "status": resp.status}

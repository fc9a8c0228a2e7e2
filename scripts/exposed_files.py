SCAN_TYPE = 3

FILES = {
    ".env": "=",
    ".git/config": "[core]",
    "server-status": "Apache Server Status",
    "phpinfo.php": "PHP Version",
}


def main(ctx):
    found = []
    for name, marker in FILES.items():
        resp = ctx.send("GET", ctx.url.join(name))
        if resp.status_ok() and marker in resp.body:
            found.append({"name": "Exposed file", "severity": "medium",
                          "url": resp.url, "payload": name})
    return found

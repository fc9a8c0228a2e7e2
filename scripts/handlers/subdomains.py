"""Input handler: ``example.com`` becomes one CUSTOM target per common subdomain.

    scriptscan scan scripts/ --input-handler scripts/handlers/subdomains.py
"""

PREFIXES = ["www", "api", "dev", "staging", "admin"]


def parse_input(line):
    host = line.split("://", 1)[-1].split("/", 1)[0]
    if not host:
        return None
    return [f"{p}.{host}" for p in PREFIXES]

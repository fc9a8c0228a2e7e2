"""VulnLab: deliberately vulnerable web server for scriptscan testing.

Every endpoint misbehaves in one small, predictable way so the bundled
scripts (and the test-suite, through ``httpx.WSGITransport``) have
something real to find.
"""

import re
import sqlite3
import time

from flask import (
    Flask, request, render_template_string, redirect,
    make_response, g, jsonify, abort,
)

app = Flask(__name__)

SEED = [
    (1, "admin", "admin@vulnlab.local", "admin"),
    (2, "alice", "alice@vulnlab.local", "user"),
    (3, "bob",   "bob@vulnlab.local",   "user"),
    (4, "secret_flag", "flag{sql1_d3t3ct3d}", "flag"),
]

# ── Database helpers ────────────────────────────────────────────

def get_db():
    """Per-request in-memory SQLite, seeded on first use."""
    if "db" not in g:
        g.db = sqlite3.connect(":memory:")
        g.db.row_factory = sqlite3.Row
        g.db.execute("CREATE TABLE users (id INTEGER PRIMARY KEY, name TEXT, email TEXT, role TEXT)")
        g.db.executemany("INSERT INTO users VALUES (?,?,?,?)", SEED)
    return g.db


@app.teardown_appcontext
def close_db(exc):
    db = g.pop("db", None)
    if db:
        db.close()


_LAYOUT = """<!DOCTYPE html>
<html><head><title>VulnLab - {{ title }}</title></head>
<body>
<h1>VulnLab</h1>
<h2>{{ title }}</h2>
{{ content|safe }}
</body></html>
"""


def page(title, content):
    return render_template_string(_LAYOUT, title=title, content=content)


@app.route("/")
def home():
    return page("Home", """
    <ul>
        <li><a href="/search?q=test">Reflected XSS</a></li>
        <li><a href="/ssti?name=World">SSTI (Jinja2)</a></li>
        <li><a href="/sqli?id=1">SQL Injection</a></li>
        <li><a href="/redirect?url=/">Open Redirect</a></li>
        <li><a href="/chain/3">Redirect chain</a></li>
        <li><a href="/header">Header reflection</a></li>
    </ul>
    """)


# VULNERABLE: reflected input, no escaping
@app.route("/search", methods=["GET", "POST"])
def search():
    q = request.values.get("q", "")
    return page("Search", f"<p>Search results for: {q}</p>")


# VULNERABLE: user input concatenated into a Jinja2 template
@app.route("/ssti", methods=["GET", "POST"])
def ssti():
    name = request.values.get("name", "World")
    try:
        greeting = render_template_string("Hello " + name + "!")
    except Exception as e:
        greeting = f"Template error: {type(e).__name__}"
    return page("SSTI", f"<div>{greeting}</div>")


# VULNERABLE: raw string interpolation in SQL, errors leaked
@app.route("/sqli", methods=["GET", "POST"])
def sqli():
    id_val = request.values.get("id", "")
    query = f"SELECT * FROM users WHERE id = '{id_val}'"
    try:
        rows = get_db().execute(query).fetchall()
        result = "".join(f"<tr><td>{r['id']}</td><td>{r['name']}</td></tr>" for r in rows) \
            or "<p>No user found.</p>"
    except sqlite3.Error as e:
        result = f"<p>SQLite error: {e}</p>"
    return page("SQL Injection", result)


# VULNERABLE: open redirect
@app.route("/redirect", methods=["GET", "POST"])
def open_redirect():
    return redirect(request.values.get("url", "/"))


@app.route("/chain/<int:n>")
def chain(n):
    """``/chain/5`` redirects five times before answering 200."""
    if n <= 0:
        return "end of chain"
    return redirect(f"/chain/{n - 1}")


@app.route("/json", methods=["POST"])
def json_echo():
    data = request.get_json(silent=True)
    if data is None:
        abort(400)
    return jsonify({"received": data, "user_agent": request.headers.get("User-Agent", "")})


# VULNERABLE: request header value reflected into a response header and body
@app.route("/header", methods=["GET", "POST"])
def header_reflection():
    lang = request.headers.get("X-Lang", "en")
    resp = make_response(page("Header", f"<p>Language set to: {lang}</p>"))
    resp.headers["X-Custom-Language"] = re.sub(r"[\r\n]", "", lang)
    return resp


@app.route("/slow")
def slow():
    time.sleep(min(float(request.args.get("s", "1")), 10))
    return "done"


@app.route("/.env")
def dotenv():
    return "SECRET_KEY=vulnlab\n"


if __name__ == "__main__":
    print("\n  VulnLab starting on http://127.0.0.1:5000\n")
    app.run(host="127.0.0.1", port=5000, debug=True)

"""Shared fixtures: scripted table backends run as real child processes"""

import sys
import textwrap

import pytest


# Answers from a fixed map; every key in it exists, fetch walks the values.
ECHO_BACKEND = textwrap.dedent("""
    import sys

    TABLE = {"root": "admin@example.com", "bob": "bob@example.com", "a|b": "x|y"}

    def reply(line):
        print(line, flush=True)

    for line in sys.stdin:
        if line.rstrip("\\n") == "config|ready":
            break

    for service in SERVICES:
        reply("register|" + service)
    reply("register|ready")

    values = iter(TABLE.values())
    for line in sys.stdin:
        fields = line.rstrip("\\n").split("|", 7)
        op = fields[4]
        if op == "update":
            reply("update-result|%s|ok" % fields[5])
        elif op == "check":
            reply("check-result|%s|%s" % (fields[6], "found" if fields[7] in TABLE else "error"))
        elif op == "lookup":
            if fields[7] in TABLE:
                reply("lookup-result|%s|found|%s" % (fields[6], TABLE[fields[7]]))
            else:
                reply("lookup-result|%s|not-found" % fields[6])
        elif op == "fetch":
            value = next(values, None)
            if value is None:
                reply("fetch-result|%s|not-found" % fields[6])
            else:
                reply("fetch-result|%s|found|%s" % (fields[6], value))
""")


@pytest.fixture
def backend_command(tmp_path):
    """Build the command line of a scripted backend

    `services` lists the registrations it announces; `body` replaces the
    whole script when given.
    """
    def make(services=("alias", "source"), body=None):
        script = tmp_path / "backend.py"
        if body is None:
            body = f"SERVICES = {list(services)!r}\n" + ECHO_BACKEND
        script.write_text(body)
        return [sys.executable, str(script)]

    return make

"""Tests for cli - process entry point and exit codes

The host channel is handed to main() as in-memory buffers holding host
frames.
"""

import io
import logging

import pytest

from table_procexec import cli
from table_procexec.backend import spawn_backend
from table_procexec.host_frame import HostFrame
from table_procexec.host_io import HostFrameReader, HostFrameWriter
from table_procexec.line_io import SpawnError
from table_procexec.services import ServiceKind
from table_procexec.table_api import TableResult


def host_input(*frames):
    stream = io.BytesIO()
    writer = HostFrameWriter(stream)
    for frame in frames:
        writer.write(frame)
    stream.seek(0)
    return stream


def host_output(stream):
    reader = HostFrameReader(io.BytesIO(stream.getvalue()))
    frames = []
    while True:
        frame = reader.read()
        if frame is None:
            return frames
        frames.append(frame)


@pytest.fixture(autouse=True)
def restore_root_logger():
    root_logger = logging.getLogger()
    handlers = list(root_logger.handlers)
    level = root_logger.level
    yield
    root_logger.handlers = handlers
    root_logger.setLevel(level)


@pytest.fixture
def spawned(monkeypatch):
    """Record every argv handed to spawn_backend and refuse to start it"""
    calls = []

    def fake_spawn(argv):
        calls.append(list(argv))
        raise SpawnError("not started")

    monkeypatch.setattr(cli, "spawn_backend", fake_spawn)
    return calls


# TEST500: no backend command prints usage and exits 1
def test_usage(capsys):
    assert cli.main([]) == 1
    assert "usage: table-procexec" in capsys.readouterr().err


# TEST501: an unstartable backend exits 1
def test_spawn_failure():
    assert cli.main(["/nonexistent/table-backend"]) == 1


# TEST502: a full session serves host requests and exits 0 when the host closes
def test_full_session(backend_command):
    host_in = host_input(
        HostFrame.open(1, "aliases"),
        HostFrame.check(2, ServiceKind.ALIAS, "root"),
        HostFrame.lookup(3, ServiceKind.ALIAS, "bob", size=64),
        HostFrame.lookup(4, ServiceKind.DOMAIN, "example.com"),
        HostFrame.update(5),
    )
    host_out = io.BytesIO()

    assert cli.main(backend_command(), host_in=host_in, host_out=host_out) == 0

    results = host_output(host_out)
    assert [r.id for r in results] == [1, 2, 3, 4, 5]
    assert results[1].result == int(TableResult.FOUND)
    assert results[2].result == int(TableResult.FOUND)
    assert results[2].value == "bob@example.com"
    assert results[3].result == int(TableResult.UNSUPPORTED)
    assert results[4].result == 1


# TEST503: a handshake failure exits 1 without serving the host
def test_handshake_failure(backend_command):
    host_in = host_input(HostFrame.open(1, "aliases"))
    host_out = io.BytesIO()

    assert cli.main(backend_command(services=[]), host_in=host_in, host_out=host_out) == 1
    assert host_output(host_out) == []


# TEST504: a host protocol violation exits 1
def test_host_violation(backend_command):
    host_in = host_input(HostFrame.update(1))
    host_out = io.BytesIO()

    assert cli.main(backend_command(), host_in=host_in, host_out=host_out) == 1
    assert host_output(host_out) == []


# TEST505: a leading option terminator is not passed on as the backend program
def test_option_terminator(spawned):
    assert cli.main(["--", "table-ldap", "-f", "ldap.conf"]) == 1
    assert spawned == [["table-ldap", "-f", "ldap.conf"]]


# TEST506: only the option terminator counts as no backend command
def test_option_terminator_alone(spawned, capsys):
    assert cli.main(["--"]) == 1
    assert spawned == []
    assert "usage: table-procexec" in capsys.readouterr().err


# TEST507: an unknown option prints usage and exits 1, not argparse's 2
def test_unknown_option(spawned, capsys):
    assert cli.main(["-x", "cat"]) == 1
    assert spawned == []
    err = capsys.readouterr().err
    assert "usage: table-procexec" in err
    assert "error:" in err


# TEST508: an unexpected error terminates and reaps the backend before propagating
def test_unexpected_error_reaps_backend(monkeypatch, backend_command):
    backends = []

    def recording_spawn(argv):
        backend = spawn_backend(argv)
        backends.append(backend)
        return backend

    def broken_serve(backend, api, config, host_in, host_out):
        raise TypeError("broken callback")

    monkeypatch.setattr(cli, "spawn_backend", recording_spawn)
    monkeypatch.setattr(cli, "serve", broken_serve)

    command = backend_command(body="import time\ntime.sleep(60)\n")
    with pytest.raises(TypeError, match="broken callback"):
        cli.main(command, host_in=io.BytesIO(), host_out=io.BytesIO())

    assert len(backends) == 1
    assert not backends[0].running()
    assert backends[0].process.returncode is not None

"""Backend process management

The backend is an arbitrary program that answers table requests on its
stdin/stdout. Both are bound to one end of a socket pair, so the bridge
talks to it over a single duplex stream. stderr is inherited so the
backend's diagnostics end up wherever the bridge's own go.
"""

import logging
import socket
import subprocess
from typing import List, Optional

from table_procexec.line_io import LineReader, LineWriter, SpawnError


logger = logging.getLogger(__name__)


class BackendProcess:
    """A spawned backend and the bridge's end of its stream"""

    def __init__(self, process: subprocess.Popen, sock: socket.socket):
        self.process = process
        self.pid = process.pid
        self._sock: Optional[socket.socket] = sock
        self._rfile = sock.makefile("rb")
        self._wfile = sock.makefile("wb")
        self.reader = LineReader(self._rfile)
        self.writer = LineWriter(self._wfile)

    def running(self) -> bool:
        """Check whether the backend has not exited yet"""
        return self.process.poll() is None

    def terminate(self) -> None:
        """Send SIGTERM to the backend if it is still running"""
        if self.running():
            logger.info("terminating backend pid %d", self.pid)
            try:
                self.process.terminate()
            except ProcessLookupError:
                pass

    def close_stream(self) -> None:
        """Close the bridge's end of the stream; the backend reads EOF"""
        if self._sock is None:
            return
        for f in (self._wfile, self._rfile):
            try:
                f.close()
            except OSError:
                pass
        try:
            self._sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        self._sock.close()
        self._sock = None

    def close(self, timeout: float) -> Optional[int]:
        """Close the stream and reap the backend

        Waits up to `timeout` seconds for the backend to exit on its own
        before terminating it.

        Returns:
            Backend exit status
        """
        self.close_stream()
        try:
            return self.process.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            logger.warning("backend pid %d did not exit within %.1fs", self.pid, timeout)
            self.terminate()
            return self.process.wait()


def spawn_backend(argv: List[str]) -> BackendProcess:
    """Start a backend with stdin and stdout bound to a socket pair

    Args:
        argv: Backend command line; argv[0] is searched in PATH

    Returns:
        The running backend

    Raises:
        SpawnError: If the socket pair or the process cannot be created
    """
    if not argv:
        raise SpawnError("no backend command given")

    try:
        parent, child = socket.socketpair(socket.AF_UNIX, socket.SOCK_STREAM)
    except OSError as e:
        raise SpawnError(f"socketpair: {e}")

    try:
        process = subprocess.Popen(
            argv,
            stdin=child.fileno(),
            stdout=child.fileno(),
        )
    except (OSError, ValueError) as e:
        parent.close()
        child.close()
        raise SpawnError(f"exec {argv[0]}: {e}")

    # The backend holds its own copies of the child end
    child.close()

    logger.info("spawned backend pid %d: %s", process.pid, " ".join(argv))
    return BackendProcess(process, parent)

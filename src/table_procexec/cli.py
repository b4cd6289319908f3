"""table-procexec entry point

    table-procexec table-backend [args...]

Spawns the backend, negotiates its services, then serves the MTA's table
requests on stdin/stdout until the MTA closes them. stdout carries host
frames, so all diagnostics go to stderr.
"""

import argparse
import logging
import sys
from typing import BinaryIO, List, Optional

from table_procexec.backend import BackendProcess, spawn_backend
from table_procexec.bridge import TableBridge
from table_procexec.config import BridgeConfig
from table_procexec.host_io import HostError, HostFrameReader, HostFrameWriter
from table_procexec.line_io import ProcexecError, SpawnError
from table_procexec.table_api import TableApi


logger = logging.getLogger(__name__)


class UsageError(Exception):
    pass


class ArgumentParser(argparse.ArgumentParser):
    def error(self, message):
        raise UsageError(message)


def create_argparser():
    parser = ArgumentParser(
        prog="table-procexec",
        description="Forward MTA table lookups to an external program.")
    parser.add_argument(
        "command", metavar="table-backend", nargs=argparse.REMAINDER,
        help="backend program and its arguments")
    return parser


def create_logger():
    root_logger = logging.getLogger()

    term_formatter_args = {"style": "{",
        "fmt": "{levelname[0]:s}: {name:s}: {message:s}"}
    term_handler = logging.StreamHandler(sys.stderr)
    term_handler.setFormatter(logging.Formatter(**term_formatter_args))
    root_logger.addHandler(term_handler)
    root_logger.setLevel(logging.INFO)
    return term_handler


def parse_command(parser: argparse.ArgumentParser, argv: Optional[List[str]]) -> Optional[List[str]]:
    """Backend command line, or None after printing usage"""
    try:
        args = parser.parse_args(argv)
    except UsageError as e:
        parser.print_usage(sys.stderr)
        print(f"{parser.prog}: error: {e}", file=sys.stderr)
        return None

    command = args.command
    # REMAINDER keeps the option terminator
    if command[:1] == ["--"]:
        del command[0]
    if not command:
        parser.print_usage(sys.stderr)
        return None
    return command


def serve(backend: BackendProcess, api: TableApi, config: BridgeConfig,
          host_in: BinaryIO, host_out: BinaryIO) -> None:
    """Negotiate with the backend and serve the host until it closes the channel

    Raises:
        ProcexecError: On any backend protocol violation
        HostError: On any host channel violation
    """
    bridge = TableBridge.connect(
        backend.reader, backend.writer, config, name_fn=api.get_name)
    bridge.register(api)
    api.dispatch(
        HostFrameReader(host_in, config.max_host_frame),
        HostFrameWriter(host_out, config.max_host_frame),
    )


def main(argv: Optional[List[str]] = None,
         host_in: Optional[BinaryIO] = None,
         host_out: Optional[BinaryIO] = None) -> int:
    create_logger()

    command = parse_command(create_argparser(), argv)
    if command is None:
        return 1

    if host_in is None:
        host_in = sys.stdin.buffer
    if host_out is None:
        host_out = sys.stdout.buffer

    config = BridgeConfig.default()

    try:
        backend = spawn_backend(command)
    except SpawnError as e:
        logger.error("%s", e.message)
        return 1

    try:
        serve(backend, TableApi(), config, host_in, host_out)
    except (ProcexecError, HostError) as e:
        logger.error("%s", e.message)
        backend.terminate()
        backend.close(config.shutdown_timeout)
        return 1
    except BaseException:
        backend.terminate()
        backend.close(config.shutdown_timeout)
        raise

    status = backend.close(config.shutdown_timeout)
    logger.info("backend exited with status %s", status)
    return 0


def run():
    sys.exit(main())

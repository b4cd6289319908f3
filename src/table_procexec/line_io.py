"""Line I/O - Reading and Writing Backend Records

This module provides line record encoding/decoding over the duplex stream
shared with a table backend, and the startup handshake.

## Wire Format

```
┌─────────────────────────────────────────────────────────┐
│  UTF-8 text, `|`-separated fields                       │
├─────────────────────────────────────────────────────────┤
│  `\\n` terminator                                        │
└─────────────────────────────────────────────────────────┘
```

The record grammars are described in line_frame.py.

Every exception derived from ProcexecError is fatal for the bridge: once a
reply does not match the outstanding request there is no way to pair the
following replies again.
"""

import logging
from dataclasses import dataclass
from typing import BinaryIO, List, Optional

from table_procexec.line_frame import (
    Request,
    Reply,
    FIELD_SEPARATOR,
    REGISTER_PREFIX,
    READY,
    PROTOCOL_VERSION,
    SMTPD_VERSION,
    config_lines,
)
from table_procexec.services import ServiceKind, NO_SERVICES, mask_names


logger = logging.getLogger(__name__)

ENCODING = "utf-8"
# Payloads are opaque: undecodable bytes survive a decode/encode round trip
ENCODING_ERRORS = "surrogateescape"


class ProcexecError(Exception):
    """Base error for the backend side of the bridge"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class SpawnError(ProcexecError):
    """Backend process could not be started"""
    pass


class IoError(ProcexecError):
    """I/O error on the backend stream"""
    pass


class UnexpectedEofError(ProcexecError):
    """Backend stream closed while a record was expected"""

    def __init__(self, message: str = "unexpected end of stream"):
        super().__init__(message)


class HandshakeError(ProcexecError):
    """Handshake failed"""
    pass


class ProtocolError(ProcexecError):
    """Backend record does not match the outstanding request"""

    def __init__(self, message: str, line: Optional[str] = None):
        if line is not None:
            message = f"{message}: {line}"
        super().__init__(message)
        self.line = line


class FieldError(ValueError):
    """A request field cannot be carried on a single line"""
    pass


def encode_request(request: Request) -> str:
    """Encode a request to a single line (without terminator)

    Raises:
        FieldError: If a field contains a line terminator
    """
    fields = request.fields()
    for field in fields:
        if "\n" in field or "\r" in field:
            raise FieldError(f"line terminator in request field: {field!r}")
    return FIELD_SEPARATOR.join(fields)


def decode_reply(line: str) -> Reply:
    """Decode a reply line into its type, id and raw payload

    The payload is everything after the second separator, so separators
    inside it are preserved.

    Raises:
        ProtocolError: If the line has fewer than three fields
    """
    parts = line.split(FIELD_SEPARATOR, 2)
    if len(parts) != 3:
        raise ProtocolError("malformed line", line)
    return Reply(result_type=parts[0], id=parts[1], payload=parts[2])


class LineReader:
    """Line record reader"""

    def __init__(self, reader: BinaryIO):
        """Create a new line reader

        Args:
            reader: Binary input stream (buffered)
        """
        self.reader = reader
        self.lines_read = 0

    def read(self) -> Optional[str]:
        """Read the next line with its terminator stripped

        Returns:
            Line or None on EOF

        Raises:
            IoError: If read fails
        """
        try:
            data = self.reader.readline()
        except OSError as e:
            raise IoError(f"Read failed: {e}")

        if not data:
            return None

        self.lines_read += 1
        line = data.decode(ENCODING, ENCODING_ERRORS)
        if line.endswith("\n"):
            line = line[:-1]
            if line.endswith("\r"):
                line = line[:-1]
        return line


class LineWriter:
    """Line record writer

    Lines are buffered until flush(); `lines_written` counts every line
    handed to the stream.
    """

    def __init__(self, writer: BinaryIO):
        """Create a new line writer

        Args:
            writer: Binary output stream
        """
        self.writer = writer
        self.lines_written = 0

    def write(self, line: str) -> None:
        """Write one line, appending the terminator

        Raises:
            IoError: If write fails
        """
        try:
            self.writer.write(line.encode(ENCODING, ENCODING_ERRORS) + b"\n")
        except (OSError, ValueError) as e:
            raise IoError(f"Write failed: {e}")
        self.lines_written += 1

    def flush(self) -> None:
        """Flush buffered lines to the backend

        Raises:
            IoError: If flush fails
        """
        try:
            self.writer.flush()
        except (OSError, ValueError) as e:
            raise IoError(f"Flush failed: {e}")


@dataclass
class HandshakeResult:
    """Result of handshake negotiation"""
    services: ServiceKind
    registrations: List[str]


def handshake(
    reader: LineReader,
    writer: LineWriter,
    smtpd_version: str = SMTPD_VERSION,
    protocol_version: str = PROTOCOL_VERSION,
) -> HandshakeResult:
    """Send the startup records and collect the backend's service registrations

    Reading stops at `register|ready`; nothing after it is consumed.

    Args:
        reader: Line reader
        writer: Line writer
        smtpd_version: MTA version to advertise
        protocol_version: Line protocol version to advertise

    Returns:
        HandshakeResult with the registered service mask

    Raises:
        HandshakeError: If the registration sequence is invalid or empty
    """
    for line in config_lines(smtpd_version, protocol_version):
        writer.write(line)
    writer.flush()

    services = NO_SERVICES
    registrations = []
    prefix = REGISTER_PREFIX + FIELD_SEPARATOR
    while True:
        line = reader.read()
        if line is None:
            raise HandshakeError("connection closed before register|ready")

        if not line.startswith(prefix):
            raise HandshakeError(f"invalid line: {line}")

        name = line[len(prefix):]
        if name == READY:
            break

        kind = ServiceKind.from_name(name)
        if kind is None:
            raise HandshakeError(f"unknown service {name}")

        services |= kind
        registrations.append(name)

    if services == NO_SERVICES:
        raise HandshakeError("no services registered")

    logger.info("backend registered services: %s", mask_names(services))
    return HandshakeResult(services=services, registrations=registrations)

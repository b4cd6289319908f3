"""table-procexec - MTA table lookups served by an external program

The bridge spawns a backend program, negotiates the lookup services it
supports, and forwards every table request to it as a single line record,
matching each reply to its request by correlation id.
"""

from table_procexec.services import ServiceKind, ALL_SERVICES, NO_SERVICES

from table_procexec.line_frame import (
    Operation,
    Request,
    Reply,
    PROTOCOL_VERSION,
    SMTPD_VERSION,
    new_correlation_id,
)

from table_procexec.line_io import (
    LineReader,
    LineWriter,
    HandshakeResult,
    handshake,
    encode_request,
    decode_reply,
    ProcexecError,
    SpawnError,
    IoError,
    UnexpectedEofError,
    HandshakeError,
    ProtocolError,
    FieldError,
)

from table_procexec.backend import BackendProcess, spawn_backend
from table_procexec.config import BridgeConfig
from table_procexec.table_api import TableApi, TableResult, LookupResult
from table_procexec.bridge import TableBridge

from table_procexec.host_frame import HostFrame, HostFrameType, HOST_API_VERSION
from table_procexec.host_io import (
    HostFrameReader,
    HostFrameWriter,
    HostError,
    HostIoError,
    HostProtocolError,
    InvalidFrameError,
    FrameTooLargeError,
)

__all__ = [
    "ServiceKind",
    "ALL_SERVICES",
    "NO_SERVICES",
    "Operation",
    "Request",
    "Reply",
    "PROTOCOL_VERSION",
    "SMTPD_VERSION",
    "new_correlation_id",
    "LineReader",
    "LineWriter",
    "HandshakeResult",
    "handshake",
    "encode_request",
    "decode_reply",
    "ProcexecError",
    "SpawnError",
    "IoError",
    "UnexpectedEofError",
    "HandshakeError",
    "ProtocolError",
    "FieldError",
    "BackendProcess",
    "spawn_backend",
    "BridgeConfig",
    "TableApi",
    "TableResult",
    "LookupResult",
    "TableBridge",
    "HostFrame",
    "HostFrameType",
    "HOST_API_VERSION",
    "HostFrameReader",
    "HostFrameWriter",
    "HostError",
    "HostIoError",
    "HostProtocolError",
    "InvalidFrameError",
    "FrameTooLargeError",
]

"""Table bridge - forwards table operations to a backend over line records

The bridge owns the backend stream, the service mask from the handshake
and the one outstanding correlation id. Each operation is a single
request/reply round trip:

- check the service mask (update is unconditional)
- send one request line with a fresh correlation id
- read exactly one reply line and match its type and id
- decode the payload into a host result

Usage:
```python
from table_procexec.backend import spawn_backend
from table_procexec.bridge import TableBridge
from table_procexec.services import ServiceKind

backend = spawn_backend(["/usr/local/libexec/table-ldap", "-f", "ldap.conf"])
bridge = TableBridge.connect(backend.reader, backend.writer, name_fn=lambda: "aliases")
bridge.lookup(ServiceKind.ALIAS, "postmaster")
```

A reply that does not match the outstanding request leaves the stream
unpaired, so every mismatch raises a ProcexecError and the bridge must not
be used again.
"""

import logging
import threading
from typing import Callable, Optional

from table_procexec.config import BridgeConfig
from table_procexec.line_frame import (
    Operation,
    Request,
    OK,
    ERROR,
    FOUND,
    NOT_FOUND,
    FIELD_SEPARATOR,
    new_correlation_id,
)
from table_procexec.line_io import (
    LineReader,
    LineWriter,
    FieldError,
    ProtocolError,
    UnexpectedEofError,
    decode_reply,
    encode_request,
    handshake,
)
from table_procexec.services import ServiceKind
from table_procexec.table_api import TableApi, TableResult, LookupResult


logger = logging.getLogger(__name__)

FOUND_PREFIX = FOUND + FIELD_SEPARATOR


class TableBridge:
    """One backend connection and its four table operations"""

    def __init__(
        self,
        reader: LineReader,
        writer: LineWriter,
        services: ServiceKind,
        config: Optional[BridgeConfig] = None,
        name_fn: Optional[Callable[[], str]] = None,
        id_factory: Callable[[], str] = new_correlation_id,
    ):
        """Create a bridge over an already negotiated stream

        Args:
            reader: Backend line reader
            writer: Backend line writer
            services: Service mask registered by the backend
            config: Bridge configuration
            name_fn: Returns the table name stamped on each request
            id_factory: Returns a fresh correlation id per request
        """
        self.reader = reader
        self.writer = writer
        self.services = services
        self.config = config if config is not None else BridgeConfig.default()
        self.name_fn = name_fn if name_fn is not None else (lambda: "")
        self.id_factory = id_factory
        self._outstanding: Optional[str] = None
        self._lock = threading.Lock()

    @classmethod
    def connect(
        cls,
        reader: LineReader,
        writer: LineWriter,
        config: Optional[BridgeConfig] = None,
        **kwargs,
    ) -> "TableBridge":
        """Run the handshake and return a bridge for the registered services

        Raises:
            HandshakeError: If the handshake fails
        """
        config = config if config is not None else BridgeConfig.default()
        result = handshake(reader, writer, config.smtpd_version, config.protocol_version)
        return cls(reader, writer, result.services, config=config, **kwargs)

    def supports(self, service: ServiceKind) -> bool:
        """Check whether the backend registered a service"""
        return bool(self.services & service)

    def register(self, api: TableApi) -> None:
        """Install the four operations as the table's callbacks"""
        api.on_update(self.update)
        api.on_check(self.check)
        api.on_lookup(self.lookup)
        api.on_fetch(self.fetch)

    # =========================================================================
    # Request/reply codec
    # =========================================================================

    def send_request(
        self,
        operation: Operation,
        service: Optional[ServiceKind] = None,
        param: Optional[str] = None,
    ) -> str:
        """Write one request line and flush it

        Returns:
            The correlation id the reply must carry

        Raises:
            FieldError: If a field cannot be put on one line (nothing is written)
            ProtocolError: If another request is still outstanding
            IoError: If the write or flush fails
        """
        if self._outstanding is not None:
            raise ProtocolError(f"request {self._outstanding} still outstanding")

        id = self.id_factory()
        request = Request(
            operation,
            self.name_fn(),
            id,
            service=service,
            param=param,
            version=self.config.protocol_version,
        )
        line = encode_request(request)

        self.writer.write(line)
        self._outstanding = id
        self.writer.flush()
        logger.debug("sent %s", line)
        return id

    def parse_reply(self, operation: Operation) -> str:
        """Read the reply to the outstanding request

        Returns:
            Raw payload after `<op>-result|<id>|`

        Raises:
            UnexpectedEofError: If the backend closed the stream
            ProtocolError: If the type or correlation id does not match
        """
        id = self._outstanding
        if id is None:
            raise ProtocolError("no request outstanding")

        line = self.reader.read()
        if line is None:
            raise UnexpectedEofError(f"backend closed the stream awaiting {operation.result_type}")
        logger.debug("received %s", line)

        reply = decode_reply(line)
        if not reply.matches(operation, id):
            raise ProtocolError("malformed line", line)

        self._outstanding = None
        return reply.payload

    def _round_trip(
        self,
        operation: Operation,
        service: Optional[ServiceKind] = None,
        param: Optional[str] = None,
    ) -> Optional[str]:
        """Send a request and return its payload, None if it could not be encoded"""
        with self._lock:
            try:
                self.send_request(operation, service, param)
            except FieldError as e:
                logger.warning("%s: %s", operation.value, e)
                return None
            return self.parse_reply(operation)

    # =========================================================================
    # Operations
    # =========================================================================

    def update(self) -> bool:
        """Ask the backend to refresh the table"""
        r = self._round_trip(Operation.UPDATE)
        if r is None:
            return False

        if r == OK:
            return True

        if r != ERROR:
            logger.warning("update-result: unexpected value: %s", r)
        return False

    def check(self, service: ServiceKind, key: str) -> TableResult:
        """Check whether a key exists"""
        if not self.supports(service):
            return TableResult.UNSUPPORTED

        r = self._round_trip(Operation.CHECK, service, key)
        if r is None:
            return TableResult.ERROR

        if r == FOUND:
            return TableResult.FOUND

        if r != ERROR:
            logger.warning("invalid response: %s", r)
        return TableResult.NOT_FOUND

    def lookup(self, service: ServiceKind, key: str, size: Optional[int] = None) -> LookupResult:
        """Look up the value for a key

        Args:
            service: Service kind
            key: Lookup key, sent verbatim as the last field
            size: Host destination capacity in bytes, None for unbounded
        """
        if not self.supports(service):
            return LookupResult.unsupported()

        r = self._round_trip(Operation.LOOKUP, service, key)
        if r is None:
            return LookupResult.error()

        if r.startswith(FOUND_PREFIX):
            return self._found(r[len(FOUND_PREFIX):], size)

        if r == NOT_FOUND:
            return LookupResult.not_found()

        if r != ERROR:
            logger.warning("invalid response: %s", r)
        return LookupResult.error()

    def fetch(self, service: ServiceKind, size: Optional[int] = None) -> LookupResult:
        """Fetch the next value of an enumerable service

        Raises:
            ProtocolError: If the payload is none of found|<value>, not-found, error
        """
        if not self.supports(service):
            return LookupResult.unsupported()

        r = self._round_trip(Operation.FETCH, service)
        if r is None:
            return LookupResult.error()

        if r == NOT_FOUND:
            return LookupResult.not_found()
        if r == ERROR:
            return LookupResult.error()

        if not r.startswith(FOUND_PREFIX):
            raise ProtocolError("malformed fetch-result payload", r)

        return self._found(r[len(FOUND_PREFIX):], size)

    def _found(self, value: str, size: Optional[int]) -> LookupResult:
        if size is not None and not fits(value, size):
            logger.warning("result too large: %d bytes for a %d byte buffer",
                           len(encoded(value)), size)
            return LookupResult.error()
        return LookupResult.found(value)


def encoded(value: str) -> bytes:
    return value.encode("utf-8", "surrogateescape")


def fits(value: str, size: int) -> bool:
    """Check that a value and its NUL terminator fit a buffer of `size` bytes"""
    return len(encoded(value)) < size

"""Table API - Host-facing callback registry and dispatch loop

A table registers up to four callbacks and then hands control to
`dispatch()`, which serves the host's requests until the host closes the
channel:

```python
import sys

from table_procexec.host_io import HostFrameReader, HostFrameWriter
from table_procexec.table_api import TableApi, TableResult

api = TableApi()
api.on_check(lambda service, key: TableResult.FOUND)
api.dispatch(HostFrameReader(sys.stdin.buffer), HostFrameWriter(sys.stdout.buffer))
```

Every host call is synchronous: the callback runs to completion before the
next frame is read.
"""

import logging
from dataclasses import dataclass
from enum import IntEnum
from typing import Callable, Optional

from table_procexec.host_frame import HostFrame, HostFrameType, HOST_API_VERSION
from table_procexec.host_io import HostFrameReader, HostFrameWriter, HostProtocolError
from table_procexec.services import ServiceKind


logger = logging.getLogger(__name__)


class TableResult(IntEnum):
    """Result code returned to the host"""
    FOUND = 1
    NOT_FOUND = 0
    ERROR = -1
    UNSUPPORTED = -2  # Service not registered by the backend


@dataclass
class LookupResult:
    """Result of a lookup or fetch; value is set only when found"""
    result: TableResult
    value: Optional[str] = None

    @classmethod
    def found(cls, value: str) -> "LookupResult":
        return cls(TableResult.FOUND, value)

    @classmethod
    def not_found(cls) -> "LookupResult":
        return cls(TableResult.NOT_FOUND)

    @classmethod
    def error(cls) -> "LookupResult":
        return cls(TableResult.ERROR)

    @classmethod
    def unsupported(cls) -> "LookupResult":
        return cls(TableResult.UNSUPPORTED)


UpdateFn = Callable[[], bool]
CheckFn = Callable[[ServiceKind, str], TableResult]
LookupFn = Callable[[ServiceKind, str, Optional[int]], LookupResult]
FetchFn = Callable[[ServiceKind, Optional[int]], LookupResult]


class TableApi:
    """Callback registry for one table and the loop that serves the host"""

    def __init__(self):
        self.name: Optional[str] = None
        self._update: Optional[UpdateFn] = None
        self._check: Optional[CheckFn] = None
        self._lookup: Optional[LookupFn] = None
        self._fetch: Optional[FetchFn] = None

    def on_update(self, fn: UpdateFn) -> None:
        self._update = fn

    def on_check(self, fn: CheckFn) -> None:
        self._check = fn

    def on_lookup(self, fn: LookupFn) -> None:
        self._lookup = fn

    def on_fetch(self, fn: FetchFn) -> None:
        self._fetch = fn

    def get_name(self) -> str:
        """Table name announced by the host

        Raises:
            HostProtocolError: If the host has not opened the table yet
        """
        if self.name is None:
            raise HostProtocolError("table not opened")
        return self.name

    def dispatch(self, reader: HostFrameReader, writer: HostFrameWriter) -> None:
        """Serve host requests until the host closes the channel

        Raises:
            HostError: On any host channel violation
        """
        while True:
            frame = reader.read()
            if frame is None:
                logger.info("host closed the table channel")
                return

            writer.write(self.handle_frame(frame))

    def handle_frame(self, frame: HostFrame) -> HostFrame:
        """Run the callback for one host request and build its RESULT frame"""
        if frame.frame_type == HostFrameType.OPEN:
            return self._handle_open(frame)

        if not frame.is_request():
            raise HostProtocolError(f"unexpected {frame.frame_type.name} frame from host")

        if self.name is None:
            raise HostProtocolError(f"{frame.frame_type.name} before OPEN")

        if frame.frame_type == HostFrameType.UPDATE:
            if self._update is None:
                return HostFrame.result_for(frame, TableResult.ERROR)
            ok = self._update()
            return HostFrame.result_for(frame, 1 if ok else 0)

        service = _service(frame)

        if frame.frame_type == HostFrameType.CHECK:
            if self._check is None:
                return HostFrame.result_for(frame, TableResult.ERROR)
            return HostFrame.result_for(frame, self._check(service, _key(frame)))

        if frame.frame_type == HostFrameType.LOOKUP:
            if self._lookup is None:
                return HostFrame.result_for(frame, TableResult.ERROR)
            r = self._lookup(service, _key(frame), _size(frame))
        else:
            if self._fetch is None:
                return HostFrame.result_for(frame, TableResult.ERROR)
            r = self._fetch(service, _size(frame))

        return HostFrame.result_for(frame, r.result, r.value)

    def _handle_open(self, frame: HostFrame) -> HostFrame:
        if self.name is not None:
            raise HostProtocolError("table already opened")
        if frame.version != HOST_API_VERSION:
            raise HostProtocolError(
                f"bad API version {frame.version} (expected {HOST_API_VERSION})")
        if not isinstance(frame.name, str) or not frame.name:
            raise HostProtocolError("OPEN without table name")

        self.name = frame.name
        logger.info("table %s opened", self.name)
        return HostFrame.result_for(frame, 1)


def _service(frame: HostFrame) -> ServiceKind:
    kind = None
    if isinstance(frame.service, int):
        kind = ServiceKind.from_value(frame.service)
    if kind is None:
        raise HostProtocolError(f"unknown service {frame.service!r}")
    return kind


def _key(frame: HostFrame) -> str:
    if not isinstance(frame.key, str):
        raise HostProtocolError(f"{frame.frame_type.name} without key")
    return frame.key


def _size(frame: HostFrame) -> Optional[int]:
    if frame.size is None:
        return None
    if not isinstance(frame.size, int) or frame.size < 0:
        raise HostProtocolError(f"invalid destination size {frame.size!r}")
    return frame.size

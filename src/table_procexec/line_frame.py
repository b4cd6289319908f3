"""Line Records for Backend Communication

This module defines the text records exchanged with a table backend.
Every record is one UTF-8 line with `|`-separated positional fields.

## Startup (bridge → backend)

```
config|smtpd-version|<version>
config|protocol|<proto-version>
config|ready
```

## Registration (backend → bridge)

```
register|<service-name>
register|ready
```

## Requests (bridge → backend)

```
table|<proto-version>|<sec>.<usec>|<table>|update|<id>
table|<proto-version>|<sec>.<usec>|<table>|check|<service>|<id>|<key>
table|<proto-version>|<sec>.<usec>|<table>|lookup|<service>|<id>|<key>
table|<proto-version>|<sec>.<usec>|<table>|fetch|<service>|<id>
```

## Replies (backend → bridge)

```
<op>-result|<id>|<payload>
```
"""

import time
import uuid as uuid_module
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from table_procexec.services import ServiceKind


# Line protocol version advertised to the backend and stamped on every request.
PROTOCOL_VERSION = "0.1"

# MTA version advertised during the handshake
SMTPD_VERSION = "7.4.0"

FIELD_SEPARATOR = "|"

CONFIG_PREFIX = "config"
REGISTER_PREFIX = "register"
REQUEST_PREFIX = "table"
READY = "ready"

# Reply payload tokens
OK = "ok"
ERROR = "error"
FOUND = "found"
NOT_FOUND = "not-found"


class Operation(Enum):
    """Table operation carried by a request"""
    UPDATE = "update"
    CHECK = "check"
    LOOKUP = "lookup"
    FETCH = "fetch"

    @property
    def result_type(self) -> str:
        """Type field expected on the matching reply"""
        return f"{self.value}-result"


def new_correlation_id() -> str:
    """Create a new random correlation id (lowercase hex)"""
    return uuid_module.uuid4().hex


def format_timestamp(time_ns: Optional[int] = None) -> str:
    """Render a wall-clock time as `<seconds>.<microseconds>`"""
    if time_ns is None:
        time_ns = time.time_ns()
    seconds, nanoseconds = divmod(time_ns, 1_000_000_000)
    return f"{seconds}.{nanoseconds // 1000:06d}"


def config_lines(smtpd_version: str = SMTPD_VERSION,
                 protocol_version: str = PROTOCOL_VERSION) -> List[str]:
    """The fixed startup records, in the order they are sent"""
    return [
        f"{CONFIG_PREFIX}|smtpd-version|{smtpd_version}",
        f"{CONFIG_PREFIX}|protocol|{protocol_version}",
        f"{CONFIG_PREFIX}|{READY}",
    ]


@dataclass
class Request:
    """A request record sent to the backend"""
    operation: Operation
    table_name: str
    id: str
    service: Optional[ServiceKind] = None
    param: Optional[str] = None
    version: str = PROTOCOL_VERSION
    timestamp: Optional[str] = None

    @classmethod
    def update(cls, table_name: str, id: str) -> "Request":
        """Create an update request (no service, no parameter)"""
        return cls(Operation.UPDATE, table_name, id)

    @classmethod
    def check(cls, table_name: str, id: str, service: ServiceKind, key: str) -> "Request":
        """Create a check request for a key"""
        return cls(Operation.CHECK, table_name, id, service=service, param=key)

    @classmethod
    def lookup(cls, table_name: str, id: str, service: ServiceKind, key: str) -> "Request":
        """Create a lookup request for a key"""
        return cls(Operation.LOOKUP, table_name, id, service=service, param=key)

    @classmethod
    def fetch(cls, table_name: str, id: str, service: ServiceKind) -> "Request":
        """Create a fetch request (no parameter)"""
        return cls(Operation.FETCH, table_name, id, service=service)

    def fields(self) -> List[str]:
        """Positional fields in wire order"""
        timestamp = self.timestamp if self.timestamp is not None else format_timestamp()
        fields = [REQUEST_PREFIX, self.version, timestamp, self.table_name,
                  self.operation.value]
        if self.service is not None:
            fields.append(self.service.service_name)
            fields.append(self.id)
            if self.param is not None:
                fields.append(self.param)
        else:
            fields.append(self.id)
        return fields


@dataclass
class Reply:
    """A reply record received from the backend"""
    result_type: str
    id: str
    payload: str

    def matches(self, operation: Operation, id: str) -> bool:
        """Check that this reply answers the given request"""
        return self.result_type == operation.result_type and self.id == id

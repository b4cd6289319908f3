"""CBOR Frame Types for Host Communication

This module defines the binary CBOR frame format spoken between the MTA's
table framework and the bridge on the bridge's stdin/stdout.
Frames use integer keys for compact encoding.

## Frame Format

Each frame is a CBOR map with integer keys:
{
  0: version (uint, always 1)
  1: frame_type (uint)
  2: id (uint, echoed in the RESULT frame)
  3: name (tstr, OPEN only)
  4: service (uint, single service bit)
  5: key (tstr, CHECK/LOOKUP)
  6: size (uint, optional - destination capacity for LOOKUP/FETCH)
  7: result (int, RESULT only)
  8: value (tstr, RESULT only - looked-up value)
}

## Frame Types

- OPEN (0): Announce API version and table name, sent once first
- UPDATE (1): Refresh the table
- CHECK (2): Existence check for a key
- LOOKUP (3): Value lookup for a key
- FETCH (4): Fetch the next value of an enumerable service
- RESULT (5): Answer to any of the above
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Optional


# Host API version. Version 1: OPEN/UPDATE/CHECK/LOOKUP/FETCH with RESULT answers.
HOST_API_VERSION = 1


class HostFrameType(IntEnum):
    """Frame type discriminator"""
    OPEN = 0
    UPDATE = 1
    CHECK = 2
    LOOKUP = 3
    FETCH = 4
    RESULT = 5

    @classmethod
    def from_u8(cls, v: int) -> Optional["HostFrameType"]:
        """Convert u8 to HostFrameType, returns None if invalid"""
        try:
            return cls(v)
        except ValueError:
            return None


class Keys:
    """Integer map keys"""
    VERSION = 0
    FRAME_TYPE = 1
    ID = 2
    NAME = 3
    SERVICE = 4
    KEY = 5
    SIZE = 6
    RESULT = 7
    VALUE = 8


@dataclass
class HostFrame:
    """A host protocol frame"""
    frame_type: HostFrameType
    id: int
    version: int = HOST_API_VERSION
    name: Optional[str] = None
    service: Optional[int] = None
    key: Optional[str] = None
    size: Optional[int] = None
    result: Optional[int] = None
    value: Optional[str] = None

    @classmethod
    def open(cls, id: int, name: str, version: int = HOST_API_VERSION) -> "HostFrame":
        """Create an OPEN frame"""
        return cls(HostFrameType.OPEN, id, version=version, name=name)

    @classmethod
    def update(cls, id: int) -> "HostFrame":
        """Create an UPDATE frame"""
        return cls(HostFrameType.UPDATE, id)

    @classmethod
    def check(cls, id: int, service: int, key: str) -> "HostFrame":
        """Create a CHECK frame"""
        return cls(HostFrameType.CHECK, id, service=int(service), key=key)

    @classmethod
    def lookup(cls, id: int, service: int, key: str, size: Optional[int] = None) -> "HostFrame":
        """Create a LOOKUP frame"""
        return cls(HostFrameType.LOOKUP, id, service=int(service), key=key, size=size)

    @classmethod
    def fetch(cls, id: int, service: int, size: Optional[int] = None) -> "HostFrame":
        """Create a FETCH frame"""
        return cls(HostFrameType.FETCH, id, service=int(service), size=size)

    @classmethod
    def result_for(cls, request: "HostFrame", result: int, value: Optional[str] = None) -> "HostFrame":
        """Create the RESULT frame answering a request"""
        return cls(HostFrameType.RESULT, request.id, result=int(result), value=value)

    def is_request(self) -> bool:
        """Check whether this frame asks the bridge for an answer"""
        return self.frame_type in (
            HostFrameType.OPEN,
            HostFrameType.UPDATE,
            HostFrameType.CHECK,
            HostFrameType.LOOKUP,
            HostFrameType.FETCH,
        )

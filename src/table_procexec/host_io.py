"""CBOR I/O - Reading and Writing Host Frames

This module provides streaming CBOR frame encoding/decoding over the
bridge's stdin/stdout, which carry the MTA table framework's requests.

## Wire Format

```
┌─────────────────────────────────────────────────────────┐
│  4 bytes: u32 big-endian length                         │
├─────────────────────────────────────────────────────────┤
│  N bytes: CBOR-encoded HostFrame                        │
└─────────────────────────────────────────────────────────┘
```

The CBOR payload is a map with integer keys (see host_frame.py).
"""

from typing import BinaryIO, Optional

import cbor2

from table_procexec.config import DEFAULT_MAX_HOST_FRAME
from table_procexec.host_frame import HostFrame, HostFrameType, Keys


class HostError(Exception):
    """Base error for the host side of the bridge"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class HostIoError(HostError):
    """I/O error on the host channel"""
    pass


class EncodeError(HostError):
    """CBOR encoding error"""
    pass


class DecodeError(HostError):
    """CBOR decoding error"""
    pass


class FrameTooLargeError(HostError):
    """Frame exceeds size limits"""

    def __init__(self, size: int, max_size: int):
        super().__init__(f"Frame too large: {size} bytes (max {max_size})")
        self.size = size
        self.max = max_size


class InvalidFrameError(HostError):
    """Invalid frame structure"""
    pass


class HostProtocolError(HostError):
    """Host sent a frame that is not valid at this point"""
    pass


def encode_host_frame(frame: HostFrame) -> bytes:
    """Encode a frame to CBOR bytes

    Raises:
        EncodeError: If encoding fails
    """
    frame_map = {
        Keys.VERSION: frame.version,
        Keys.FRAME_TYPE: int(frame.frame_type),
        Keys.ID: frame.id,
    }

    if frame.name is not None:
        frame_map[Keys.NAME] = frame.name

    if frame.service is not None:
        frame_map[Keys.SERVICE] = frame.service

    if frame.key is not None:
        frame_map[Keys.KEY] = frame.key

    if frame.size is not None:
        frame_map[Keys.SIZE] = frame.size

    if frame.result is not None:
        frame_map[Keys.RESULT] = frame.result

    if frame.value is not None:
        frame_map[Keys.VALUE] = frame.value

    try:
        return cbor2.dumps(frame_map)
    except Exception as e:
        raise EncodeError(f"CBOR encoding failed: {e}")


def decode_host_frame(data: bytes) -> HostFrame:
    """Decode a frame from CBOR bytes

    Raises:
        DecodeError: If decoding fails
        InvalidFrameError: If frame structure is invalid
    """
    try:
        frame_map = cbor2.loads(data)
    except Exception as e:
        raise DecodeError(f"CBOR decoding failed: {e}")

    if not isinstance(frame_map, dict):
        raise InvalidFrameError("expected map")

    lookup = {k: v for k, v in frame_map.items() if isinstance(k, int)}

    version = lookup.get(Keys.VERSION)
    if not isinstance(version, int):
        raise InvalidFrameError("missing version")

    frame_type_u8 = lookup.get(Keys.FRAME_TYPE)
    if not isinstance(frame_type_u8, int):
        raise InvalidFrameError("missing frame_type")

    frame_type = HostFrameType.from_u8(frame_type_u8)
    if frame_type is None:
        raise InvalidFrameError(f"invalid frame_type: {frame_type_u8}")

    id_value = lookup.get(Keys.ID)
    if not isinstance(id_value, int) or id_value < 0:
        raise InvalidFrameError("missing id")

    return HostFrame(
        frame_type=frame_type,
        id=id_value,
        version=version,
        name=lookup.get(Keys.NAME),
        service=lookup.get(Keys.SERVICE),
        key=lookup.get(Keys.KEY),
        size=lookup.get(Keys.SIZE),
        result=lookup.get(Keys.RESULT),
        value=lookup.get(Keys.VALUE),
    )


def write_host_frame(writer: BinaryIO, frame: HostFrame, max_frame: int) -> None:
    """Write a length-prefixed CBOR frame

    Raises:
        FrameTooLargeError: If frame exceeds limits
        HostIoError: If write fails
    """
    frame_bytes = encode_host_frame(frame)

    if len(frame_bytes) > max_frame:
        raise FrameTooLargeError(len(frame_bytes), max_frame)

    length_bytes = len(frame_bytes).to_bytes(4, byteorder='big')

    try:
        writer.write(length_bytes)
        writer.write(frame_bytes)
        writer.flush()
    except (OSError, ValueError) as e:
        raise HostIoError(f"Write failed: {e}")


def read_host_frame(reader: BinaryIO, max_frame: int) -> Optional[HostFrame]:
    """Read a length-prefixed CBOR frame from a reader

    Returns:
        HostFrame or None on clean EOF

    Raises:
        HostIoError: On partial read or read failure
        FrameTooLargeError: If frame exceeds limits
    """
    try:
        len_buf = reader.read(4)
    except (OSError, ValueError) as e:
        raise HostIoError(f"Read failed: {e}")

    if not len_buf:
        return None

    if len(len_buf) < 4:
        raise HostIoError("unexpected end of stream in length prefix")

    length = int.from_bytes(len_buf, byteorder='big')
    if length > max_frame:
        raise FrameTooLargeError(length, max_frame)

    try:
        payload = reader.read(length)
    except (OSError, ValueError) as e:
        raise HostIoError(f"Read failed: {e}")

    if len(payload) < length:
        raise HostIoError("unexpected end of stream in frame")

    return decode_host_frame(payload)


class HostFrameReader:
    """Host frame reader"""

    def __init__(self, reader: BinaryIO, max_frame: int = DEFAULT_MAX_HOST_FRAME):
        self.reader = reader
        self.max_frame = max_frame

    def read(self) -> Optional[HostFrame]:
        """Read the next frame, None on EOF"""
        return read_host_frame(self.reader, self.max_frame)


class HostFrameWriter:
    """Host frame writer"""

    def __init__(self, writer: BinaryIO, max_frame: int = DEFAULT_MAX_HOST_FRAME):
        self.writer = writer
        self.max_frame = max_frame

    def write(self, frame: HostFrame) -> None:
        """Write a frame"""
        write_host_frame(self.writer, frame, self.max_frame)

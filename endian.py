# Classic Macintosh on-disk integers are stored most significant byte first.

import struct
from typing import Iterator

_U16 = struct.Struct('>H')
_U32 = struct.Struct('>I')


def read16(b: bytes) -> int:
    return _U16.unpack_from(b)[0]


def read32(b: bytes) -> int:
    return _U32.unpack_from(b)[0]


def write16(value: int, buffer: bytearray) -> None:
    _U16.pack_into(buffer, 0, value & 0xffff)


def write32(value: int, buffer: bytearray) -> None:
    _U32.pack_into(buffer, 0, value & 0xffffffff)


def words(data: bytes) -> Iterator[int]:
    """Yield each consecutive big-endian 16-bit word of data (length must be even)."""
    for (word,) in _U16.iter_unpack(data):
        yield word

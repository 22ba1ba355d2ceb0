# Credits: Kwark Team - 2024

import os
import struct
from dataclasses import dataclass
from io import IOBase
from typing import BinaryIO

from kwark.errors import FileError, TruncatedDataError, UnexpectedEOFError


@dataclass(frozen=True)
class ByteRange:
    """An (offset, size) pair locating a structure inside a file."""
    offset: int
    size: int

    @property
    def end(self):
        return self.offset + self.size

    def contains(self, other: "ByteRange"):
        return self.offset <= other.offset and other.end <= self.end

    def relative(self, other: "ByteRange") -> "ByteRange":
        # Lump ranges inside an asset are stored relative to the asset start
        return ByteRange(self.offset + other.offset, other.size)


class KwarkReader:
    """
    Little-endian reader over a seekable file.

    Every decoder owns one of these; the seek position is the only state
    and it is never shared between decoders.
    """

    def __init__(self, buffer: BinaryIO | IOBase, big_endian=False):
        self.f = buffer
        self.en = ">" if big_endian else "<"

    """
    name len range
    s8  | 1 | -128 to 127
    s16 | 2 | -32768 to 32767
    s32 | 4 | -2147483648 to 2147483647
    u8  | 1 | 0 to 255
    u16 | 2 | 0 to 65535
    u32 | 4 | 0 to 4294967295
    """

    @classmethod
    def open(cls, path):
        try:
            return cls(open(path, "rb"))
        except OSError as e:
            raise FileError(f"could not open {path}: {e}") from e

    def close(self):
        self.f.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    ### Positioning

    def tell(self):
        return self.f.tell()

    def seek(self, offset):
        if offset < 0:
            raise FileError(f"negative seek to {offset}")
        try:
            self.f.seek(offset)
        except OSError as e:
            raise FileError(f"could not seek to {offset:#x}: {e}") from e

    def size(self):
        try:
            cur = self.f.tell()
            end = self.f.seek(0, os.SEEK_END)
            self.f.seek(cur)
        except OSError as e:
            raise FileError(f"could not measure file: {e}") from e
        return end

    def require(self, byte_range: ByteRange, what="data"):
        """Raise before reading if byte_range runs past the end of the file."""
        if byte_range.offset < 0 or byte_range.size < 0 or byte_range.end > self.size():
            raise TruncatedDataError(
                f"{what} at {byte_range.offset:#x} (+{byte_range.size}) runs past end of file")

    ### File Get

    def read(self, length):
        try:
            data = self.f.read(length)
        except OSError as e:
            raise FileError(f"read of {length} bytes failed: {e}") from e
        if len(data) != length:
            raise UnexpectedEOFError(f"unexpected EOF: wanted {length} bytes, got {len(data)}")
        return data

    def read_range(self, byte_range: ByteRange):
        self.seek(byte_range.offset)
        return self.read(byte_range.size)

    def unpack(self, fmt):
        fmt = self.en + fmt
        return struct.unpack(fmt, self.read(struct.calcsize(fmt)))

    def unpack_array(self, fmt, count):
        """Read `count` consecutive records of `fmt` as a list of tuples."""
        fmt = self.en + fmt
        size = struct.calcsize(fmt)
        return list(struct.iter_unpack(fmt, self.read(size * count))) if count else []

    def get_s32(self):
        return self.unpack("i")[0]

    def get_string(self, length):
        return padded_name(self.read(length))


def padded_name(raw: bytes):
    """Decode a fixed-width, NUL padded name field."""
    return raw.split(b"\x00", 1)[0].decode("ascii", errors="replace")

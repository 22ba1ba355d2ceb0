# Credits: Kwark Team - 2024

# Read and extract content from PACK archives
import fnmatch
import logging
import os
import threading
from dataclasses import dataclass

from kwark import external_knowledge
from kwark.errors import EntryNotFoundError, InvalidArchiveError
from kwark.kwark_reader import ByteRange, KwarkReader, padded_name

logger = logging.getLogger()


@dataclass(frozen=True)
class ArchiveEntry:
    name: str
    offset: int
    size: int

    @property
    def range(self):
        return ByteRange(self.offset, self.size)


class Archive:
    """
    A PACK file opened for reading.

    The directory is read once when the archive is opened. The archive's own
    handle is only used under a lock; decoders should take their own reader
    from `reader()` so that they never share a seek position.
    """

    def __init__(self, path, reader: KwarkReader, entries):
        self.path = path
        self.entries = entries
        self._reader = reader
        self._lock = threading.Lock()
        self._by_name = {e.name: e for e in entries}

    @classmethod
    def open(cls, path):
        reader = KwarkReader.open(path)
        try:
            entries = cls._read_directory(reader)
        except BaseException:
            reader.close()
            raise
        logger.info("Opened %s with %i entries", path, len(entries))
        return cls(path, reader, entries)

    @staticmethod
    def _read_directory(reader: KwarkReader):
        # Header:
        # char[4]: "PACK"
        # uint32_le: Directory offset
        # uint32_le: Directory size in bytes
        reader.seek(0)
        magic = reader.read(4)
        if magic != external_knowledge.pak_magic:
            raise InvalidArchiveError(f"Expected PACK, got {magic!r}")
        dir_offset, dir_size = reader.unpack("ii")

        directory = ByteRange(dir_offset, dir_size)
        reader.require(directory, "archive directory")

        count = dir_size // external_knowledge.pak_entry_length
        logger.debug("Got a valid PACK with directory at %#x, %i entries", dir_offset, count)

        # Each record is name[56], offset, size
        reader.seek(dir_offset)
        records = reader.unpack_array(f"{external_knowledge.pak_name_length}sii", count)
        return [ArchiveEntry(padded_name(name), offset, size) for name, offset, size in records]

    def close(self):
        self._reader.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def __len__(self):
        return len(self.entries)

    def __contains__(self, name):
        return name in self._by_name

    def names(self):
        return [e.name for e in self.entries]

    def find_entry(self, name) -> ArchiveEntry:
        try:
            return self._by_name[name]
        except KeyError:
            raise EntryNotFoundError(f"{name} not found in {self.path}") from None

    def read_entry(self, entry) -> bytes:
        if isinstance(entry, str):
            entry = self.find_entry(entry)
        with self._lock:
            return self._reader.read_range(entry.range)

    def reader(self) -> KwarkReader:
        """A fresh reader with its own file handle, for one decoder to own."""
        return KwarkReader.open(self.path)


def open_archive(path) -> Archive:
    return Archive.open(path)


def find_entry(archive: Archive, name) -> ArchiveEntry:
    return archive.find_entry(name)


def extract(pack_file, target_directory, pattern=None):
    """Copy the archive entries (optionally only those matching an fnmatch pattern) into separate files."""
    written = []
    with Archive.open(pack_file) as archive:
        entries = archive.entries
        if pattern is not None:
            entries = [e for e in entries if fnmatch.fnmatch(e.name, pattern)]

        for i, e in enumerate(entries):
            logger.debug("Writing file %i of %i - %s", i + 1, len(entries), e.name)

            # Entry names use / as separator, the target should use whatever the OS uses
            parts = e.name.split("/")
            if ".." in parts or not e.name or e.name.startswith("/"):
                logger.warning("Skipping entry with unsafe name %r", e.name)
                continue
            target_path = os.path.join(target_directory, *parts)
            os.makedirs(os.path.dirname(target_path), exist_ok=True)

            with open(target_path, "wb") as target_file:
                target_file.write(archive.read_entry(e))
            written.append(target_path)

    logger.info("Extracted %i entries from %s", len(written), pack_file)
    return written

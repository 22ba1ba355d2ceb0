# Credits: Kwark Team - 2024

import logging

import numpy

from kwark import external_knowledge
from kwark.errors import UnexpectedEOFError

logger = logging.getLogger()


class Palette:
    """256 RGB colours shared by every 8-bit indexed image."""

    def __init__(self, colours):
        colours = numpy.array(colours, dtype=numpy.uint8).reshape(external_knowledge.palette_colours, 3)
        colours.setflags(write=False)
        self.colours = colours

    @classmethod
    def from_bytes(cls, data):
        expected = external_knowledge.palette_colours * 3
        if len(data) < expected:
            raise UnexpectedEOFError(f"palette needs {expected} bytes, got {len(data)}")
        return cls(numpy.frombuffer(data[:expected], dtype=numpy.uint8))

    def __getitem__(self, index):
        r, g, b = self.colours[index]
        return (int(r), int(g), int(b))

    def __len__(self):
        return len(self.colours)

    def to_rgba(self, indices, transparent_index=None) -> bytes:
        """
        Map palette indices to RGBA8 pixels.

        Every pixel is fully opaque, except those using `transparent_index`
        which get alpha 0.
        """
        indices = numpy.frombuffer(bytes(indices), dtype=numpy.uint8)
        rgba = numpy.empty((len(indices), 4), dtype=numpy.uint8)
        rgba[:, :3] = self.colours[indices]
        rgba[:, 3] = 255
        if transparent_index is not None:
            rgba[indices == transparent_index, 3] = 0
        return rgba.tobytes()


def load_palette(archive) -> Palette:
    data = archive.read_entry(external_knowledge.palette_entry)
    logger.debug("Loaded palette from %s (%i bytes)", external_knowledge.palette_entry, len(data))
    return Palette.from_bytes(data)

# Credits: Kwark Team - 2024

import logging
from dataclasses import dataclass, field
from enum import Enum

import numpy

from kwark import external_knowledge
from kwark.errors import InvalidSkyTextureError, TruncatedDataError
from kwark.kwark_reader import KwarkReader, padded_name
from kwark.parser.parse_palette import Palette

logger = logging.getLogger()

"""
struct TextureIndex {
    s32 numtex;
    s32 offset[numtex];   // relative to the start of the miptex lump, <= 0 if missing
};

struct TextureHeader {
    char name[16];
    u32 width;
    u32 height;
    u32 offset1;          // relative to this header
    u32 offset2;
    u32 offset4;
    u32 offset8;
};
"""
TEXTURE_HEADER_FORMAT = "16sIIIIII"


class TextureClass(Enum):
    DEFAULT = 0
    SKY = 1
    FLUID = 2
    DEBUG = 3


@dataclass(frozen=True)
class TextureHeader:
    name: str
    width: int
    height: int
    offsets: tuple = (0, 0, 0, 0)

    @classmethod
    def empty(cls):
        return cls("", 0, 0)

    @property
    def area(self):
        return self.width * self.height


@dataclass(frozen=True)
class DecodedImage:
    width: int
    height: int
    pixels: bytes

    def __post_init__(self):
        assert len(self.pixels) == self.width * self.height * 4, \
            f"Expected {self.width * self.height * 4} bytes of RGBA, got {len(self.pixels)}"

    def as_array(self):
        return numpy.frombuffer(self.pixels, dtype=numpy.uint8).reshape(self.height, self.width, 4)


@dataclass(frozen=True)
class TextureRoute:
    """
    Where a slot of the atlas ended up.

    `index` is the position in the destination array for `kind` (the front
    image for sky textures), or None if the texture is not drawn at all.
    """
    kind: TextureClass
    index: int | None = None
    reason: str | None = None

    @property
    def renderable(self):
        return self.index is not None

    @property
    def texture_index(self):
        return -1 if self.index is None else self.index


@dataclass
class TextureAtlas:
    headers: list = field(default_factory=list)
    classes: list = field(default_factory=list)
    images: list = field(default_factory=list)
    routes: list = field(default_factory=list)
    textures: list = field(default_factory=list)
    sky_textures: list = field(default_factory=list)
    fluid_textures: list = field(default_factory=list)

    def __len__(self):
        return len(self.headers)

    def destination(self, kind):
        return {
            TextureClass.DEFAULT: self.textures,
            TextureClass.SKY: self.sky_textures,
            TextureClass.FLUID: self.fluid_textures,
        }.get(kind)

    def image_for(self, slot) -> DecodedImage | None:
        """The image a slot was routed to, or None if it is not drawn."""
        route = self.routes[slot]
        if not route.renderable:
            return None
        return self.destination(route.kind)[route.index]


def classify_texture(header: TextureHeader) -> TextureClass:
    name = header.name
    for prefix in external_knowledge.debug_texture_prefixes:
        if name.startswith(prefix):
            return TextureClass.DEBUG
    # For some reason textures can sometimes have a zero area; they are never drawn
    if header.area == 0:
        return TextureClass.DEBUG
    if name.startswith(external_knowledge.sky_texture_prefix):
        return TextureClass.SKY
    if name.startswith(external_knowledge.fluid_texture_prefix):
        return TextureClass.FLUID
    return TextureClass.DEFAULT


def _debug_reason(header: TextureHeader, absent):
    if absent:
        return "absent"
    for prefix in external_knowledge.debug_texture_prefixes:
        if header.name.startswith(prefix):
            return prefix
    return "zero area"


def split_sky_texture(image: DecodedImage):
    """Sky textures hold two layers side by side: front on the left, back on the right."""
    if image.width % 2 != 0:
        raise InvalidSkyTextureError(f"Sky texture width {image.width} is not even")
    half = image.width // 2
    pixels = image.as_array()
    front = DecodedImage(half, image.height, numpy.ascontiguousarray(pixels[:, :half]).tobytes())
    back = DecodedImage(half, image.height, numpy.ascontiguousarray(pixels[:, half:]).tobytes())
    return front, back


def join_sky_texture(front: DecodedImage, back: DecodedImage) -> DecodedImage:
    assert front.width == back.width and front.height == back.height, "Sky layers differ in size"
    pixels = numpy.concatenate([front.as_array(), back.as_array()], axis=1)
    return DecodedImage(front.width * 2, front.height, pixels.tobytes())


def _read_directory(reader: KwarkReader, base_offset, size):
    reader.seek(base_offset)
    numtex = reader.get_s32()
    if numtex < 0:
        raise TruncatedDataError(f"Negative texture count {numtex}")
    if size is not None and 4 + 4 * numtex > size:
        raise TruncatedDataError(f"{numtex} texture offsets do not fit in a {size} byte lump")
    return [o for (o,) in reader.unpack_array("i", numtex)]


def _read_header(reader: KwarkReader, offset) -> TextureHeader:
    reader.seek(offset)
    name, width, height, *offsets = reader.unpack(TEXTURE_HEADER_FORMAT)
    return TextureHeader(padded_name(name), width, height, tuple(offsets))


def decode_texture(reader: KwarkReader, offset, header: TextureHeader, palette: Palette) -> DecodedImage:
    # Only the full size mip level is used
    reader.seek(offset + header.offsets[0])
    indices = reader.read(header.area)
    return DecodedImage(header.width, header.height, palette.to_rgba(indices))


def parse_atlas(reader: KwarkReader, base_offset, palette: Palette, size=None) -> TextureAtlas:
    directory = _read_directory(reader, base_offset, size)
    atlas = TextureAtlas()

    for slot, offset in enumerate(directory):
        absent = offset <= 0
        header = TextureHeader.empty() if absent else _read_header(reader, base_offset + offset)
        kind = classify_texture(header)
        atlas.headers.append(header)
        atlas.classes.append(kind)

        # Decoding does not depend on the class, only where the result goes
        image = None if absent else decode_texture(reader, base_offset + offset, header, palette)
        atlas.images.append(image)

        if kind == TextureClass.DEBUG:
            reason = _debug_reason(header, absent)
            logger.debug("Texture %i (%r) is not drawn: %s", slot, header.name, reason)
            atlas.routes.append(TextureRoute(kind, None, reason))
        elif kind == TextureClass.SKY:
            front, back = split_sky_texture(image)
            atlas.routes.append(TextureRoute(kind, len(atlas.sky_textures)))
            atlas.sky_textures.extend([front, back])
        else:
            destination = atlas.destination(kind)
            atlas.routes.append(TextureRoute(kind, len(destination)))
            destination.append(image)

    logger.info("Decoded %i textures: %i default, %i sky, %i fluid",
                len(directory), len(atlas.textures), len(atlas.sky_textures) // 2, len(atlas.fluid_textures))
    return atlas

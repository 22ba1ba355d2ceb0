# Credits: Kwark Team - 2024

import logging
import math
from dataclasses import dataclass, field

import numpy

from kwark import external_knowledge
from kwark.errors import (InvalidFrameCountError, InvalidGroupTypeError,
                          TruncatedDataError, UnexpectedEOFError,
                          UnsupportedGroupSkinError, UnsupportedVersionError)
from kwark.kwark_reader import KwarkReader
from kwark.parser.parse_palette import Palette
from kwark.parser.parse_textures import DecodedImage

logger = logging.getLogger()

# http://www.gamers.org/dEngine/quake/spec/quake-spec34/qkspec_5.htm

"""
struct Header {
    char id[4];         // "IDPO"
    s32 version;        // 6
    vec3 scale;
    vec3 origin;
    float radius;
    vec3 eye_position;
    s32 numskins;
    s32 skinwidth;
    s32 skinheight;
    s32 numverts;
    s32 numtris;
    s32 numframes;
    s32 synctype;       // 0 synchronised, 1 random
    s32 flags;
    float size;
};

skins[numskins]: s32 group (0 = single skin), u8 indices[skinwidth * skinheight]
texcoords[numverts]: s32 onseam, s32 s, s32 t
triangles[numtris]: s32 facesfront, s32 vertices[3]
frames[numframes]:
    s32 type == 0: FrameVertex min, max; char name[16]; FrameVertex vertices[numverts]
    s32 type > 0:  s32 count; FrameVertex min, max; float times[count]; frame[count] (as above, without type)

struct FrameVertex {
    u8 packed_position[3];
    u8 light_normal_index;
};
"""
HEADER_FORMAT = "4si3f3ff3fiiiiiiiif"
TEXCOORD_FORMAT = "iii"
TRIANGLE_FORMAT = "iiii"


@dataclass(frozen=True)
class ModelHeader:
    ident: bytes
    version: int
    scale: tuple
    origin: tuple
    radius: float
    eye_position: tuple
    numskins: int
    skinwidth: int
    skinheight: int
    numverts: int
    numtris: int
    numframes: int
    synctype: int
    flags: int
    size: float

    @classmethod
    def read(cls, reader: KwarkReader):
        values = reader.unpack(HEADER_FORMAT)
        ident, version = values[0:2]
        return cls(ident, version, values[2:5], values[5:8], values[8], values[9:12], *values[12:])


@dataclass(frozen=True)
class TexCoord:
    onseam: int
    s: int
    t: int


@dataclass(frozen=True)
class Triangle:
    faces_front: int
    vertices: tuple


@dataclass(frozen=True)
class FrameVertex:
    packed_position: tuple
    light_normal_index: int


@dataclass
class Frame:
    name: str
    bbox_min: FrameVertex
    bbox_max: FrameVertex
    # (numverts, 4) uint8: packed x, y, z and the normal index
    packed: numpy.ndarray

    def vertex(self, index):
        x, y, z, n = (int(v) for v in self.packed[index])
        return FrameVertex((x, y, z), n)


@dataclass
class FrameGroup:
    group_type: int
    bbox_min: FrameVertex
    bbox_max: FrameVertex
    times: list = field(default_factory=list)
    frames: list = field(default_factory=list)


@dataclass
class AnimatedModel:
    name: str
    header: ModelHeader
    skins: list
    tex_coords: list
    triangles: list
    groups: list
    # One (numtris * 3, 5) float32 array per frame: x, y, z, s, t
    frame_buffers: list = field(default_factory=list)

    @property
    def skin(self) -> DecodedImage | None:
        return self.skins[0] if self.skins else None

    @property
    def frames(self):
        return [frame for group in self.groups for frame in group.frames]

    @property
    def vertex_count(self):
        return self.header.numtris * 3

    def group_offset(self, group_index):
        """Index into frame_buffers of the first frame of a group."""
        return sum(len(g.frames) for g in self.groups[:group_index])

    def frame_at(self, group_index, elapsed):
        """The frame_buffers index showing `elapsed` seconds into a looping group."""
        group = self.groups[group_index]
        base = self.group_offset(group_index)
        if len(group.frames) < 2 or not group.times or group.times[-1] <= 0:
            return base

        animation_time = math.fmod(elapsed, group.times[-1])
        for i, frame_time in enumerate(group.times):
            if animation_time < frame_time:
                return base + i
        return base + len(group.frames) - 1


def _read_frame_vertex(reader: KwarkReader):
    x, y, z, n = reader.unpack("BBBB")
    return FrameVertex((x, y, z), n)


def _read_frame(reader: KwarkReader, numverts):
    bbox_min = _read_frame_vertex(reader)
    bbox_max = _read_frame_vertex(reader)
    name = reader.get_string(16)
    packed = numpy.frombuffer(reader.read(numverts * 4), dtype=numpy.uint8).reshape(numverts, 4)
    return Frame(name, bbox_min, bbox_max, packed)


def read_frame_group(reader: KwarkReader, numverts, end=None) -> FrameGroup:
    """Read one frame group; `end` is where the model entry stops, if known."""
    group_type = reader.get_s32()

    if group_type == 0:
        frame = _read_frame(reader, numverts)
        return FrameGroup(group_type, frame.bbox_min, frame.bbox_max, [], [frame])

    if group_type < 0:
        raise InvalidGroupTypeError(f"Invalid frame group type {group_type}")

    count = reader.get_s32()
    if count < 1:
        raise InvalidFrameCountError(f"Invalid frame count {count} in frame group")

    # bbox, then per frame a time, bbox, name and the packed vertices
    needed = 8 + count * (4 + 24 + 4 * numverts)
    if end is not None and needed > end - reader.tell():
        raise TruncatedDataError(f"Frame group of {count} frames needs {needed} bytes, {end - reader.tell()} left")

    bbox_min = _read_frame_vertex(reader)
    bbox_max = _read_frame_vertex(reader)
    times = [t for (t,) in reader.unpack_array("f", count)]
    frames = [_read_frame(reader, numverts) for _ in range(count)]
    return FrameGroup(group_type, bbox_min, bbox_max, times, frames)


def decode_skin(indices, width, height, palette: Palette) -> DecodedImage:
    return DecodedImage(width, height,
                        palette.to_rgba(indices, transparent_index=external_knowledge.skin_transparent_index))


def _check_header(header: ModelHeader, entry):
    if header.ident != external_knowledge.mdl_ident or header.version != external_knowledge.mdl_version:
        raise UnsupportedVersionError(f"Expected IDPO version 6 in {entry.name}, got {header.ident!r} version {header.version}")
    if header.numframes < 1:
        raise InvalidFrameCountError(f"{entry.name} declares {header.numframes} frames")

    counts = [header.numskins, header.skinwidth, header.skinheight, header.numverts, header.numtris]
    if any(c < 0 for c in counts):
        raise TruncatedDataError(f"Negative count in {entry.name} header: {counts}")

    # Everything up to the frames has a size known from the header
    fixed = 84 + header.numskins * (4 + header.skinwidth * header.skinheight) \
        + header.numverts * 12 + header.numtris * 16
    if fixed > entry.size:
        raise TruncatedDataError(f"{entry.name} declares {fixed} bytes of skins and tables but is {entry.size} bytes")


def expand_frame(frame: Frame, header: ModelHeader, tex_coords, triangles):
    """
    Turn the shared triangle table and one frame's packed vertices into a
    flat triangle list: three (x, y, z, s, t) rows per triangle, in
    triangle table order.
    """
    scale = numpy.array(header.scale, dtype=numpy.float32)
    origin = numpy.array(header.origin, dtype=numpy.float32)
    positions = frame.packed[:, :3].astype(numpy.float32) * scale + origin

    # The model is z-up, the renderer is y-up
    positions = numpy.column_stack([positions[:, 0], -positions[:, 2], positions[:, 1]])

    indices = numpy.array([t.vertices for t in triangles], dtype=numpy.int64).reshape(-1)
    st = numpy.array([(tc.s, tc.t) for tc in tex_coords], dtype=numpy.float32).reshape(-1, 2)
    onseam = numpy.array([tc.onseam != 0 for tc in tex_coords], dtype=bool)
    back_facing = numpy.repeat(numpy.array([t.faces_front == 0 for t in triangles], dtype=bool), 3)

    s = st[indices, 0] / header.skinwidth
    t = st[indices, 1] / header.skinheight

    # Back-facing triangles use the right half of the skin for seam vertices
    s[back_facing & onseam[indices]] += 0.5

    return numpy.column_stack([positions[indices], s, t]).astype(numpy.float32)


def parse_model(reader: KwarkReader, entry, palette: Palette) -> AnimatedModel:
    reader.require(entry.range, f"model {entry.name}")
    reader.seek(entry.offset)
    header = ModelHeader.read(reader)
    _check_header(header, entry)

    logger.debug("Model %s: %i skins %ix%i, %i verts, %i tris, %i frames", entry.name, header.numskins,
                 header.skinwidth, header.skinheight, header.numverts, header.numtris, header.numframes)

    skins = []
    skin_size = header.skinwidth * header.skinheight
    for i in range(header.numskins):
        group = reader.get_s32()
        if group != 0:
            raise UnsupportedGroupSkinError(f"Skin {i} of {entry.name} is a skin group, which is not supported")
        skins.append(decode_skin(reader.read(skin_size), header.skinwidth, header.skinheight, palette))
    if not skins:
        logger.warning("Model %s has no skin", entry.name)

    tex_coords = [TexCoord(*r) for r in reader.unpack_array(TEXCOORD_FORMAT, header.numverts)]
    triangles = [Triangle(r[0], tuple(r[1:])) for r in reader.unpack_array(TRIANGLE_FORMAT, header.numtris)]

    for t in triangles:
        if any(not 0 <= v < header.numverts for v in t.vertices):
            raise TruncatedDataError(f"Triangle {t.vertices} references vertices outside 0..{header.numverts - 1}")

    groups = [read_frame_group(reader, header.numverts, entry.range.end) for _ in range(header.numframes)]
    if reader.tell() > entry.range.end:
        raise UnexpectedEOFError(f"{entry.name} frames run {reader.tell() - entry.range.end} bytes past the entry")

    model = AnimatedModel(entry.name, header, skins, tex_coords, triangles, groups)
    model.frame_buffers = [expand_frame(frame, header, tex_coords, triangles) for frame in model.frames]

    logger.info("Model %s: %i frame groups, %i frames of %i vertices",
                entry.name, len(groups), len(model.frame_buffers), model.vertex_count)
    return model


def load_model(archive, name, palette: Palette) -> AnimatedModel:
    entry = archive.find_entry(name)
    with archive.reader() as reader:
        return parse_model(reader, entry, palette)

# Credits: Kwark Team - 2024

import logging
import struct
from dataclasses import dataclass, field
from enum import Enum

import numpy

from kwark import external_knowledge, util
from kwark.errors import (MissingEntityError, TruncatedDataError,
                          UnknownTextureSlotError, UnsupportedVersionError)
from kwark.kwark_reader import ByteRange, KwarkReader
from kwark.parser import parse_entities, parse_textures
from kwark.parser.parse_palette import Palette
from kwark.parser.parse_textures import DecodedImage, TextureAtlas, TextureRoute

logger = logging.getLogger()

# A level is a version number followed by one (offset, size) pair per lump,
# offsets relative to the start of the level. See external_knowledge.bsp_lumps for the order.

"""
struct Plane {
    vec3 normal;
    float dist;
    s32 type;
};

struct Edge {
    u16 v0;
    u16 v1;
};

struct Face {
    u16 plane_id;
    u16 side;
    s32 ledge_id;       // first entry in the edge reference list
    u16 ledge_num;      // number of edge references
    u16 texinfo_id;
    u8 light_type;
    u8 base_light;      // 0 bright, 255 dark
    u8 light[2];
    s32 lightmap;       // offset into the lightmap lump, -1 if none
};

struct TexInfo {
    vec3 u_vector;
    float u_offset;
    vec3 v_vector;
    float v_offset;
    u32 texture_id;     // slot in the miptex lump
    u32 animated;
};
"""


@dataclass(frozen=True)
class Plane:
    normal: tuple
    dist: float
    type: int


@dataclass(frozen=True)
class Edge:
    v0: int
    v1: int


@dataclass(frozen=True)
class Face:
    plane_id: int
    side: int
    ledge_id: int
    ledge_num: int
    texinfo_id: int
    light_type: int
    base_light: int
    light: tuple
    lightmap: int


@dataclass(frozen=True)
class TexInfo:
    u_vector: tuple
    u_offset: float
    v_vector: tuple
    v_offset: float
    texture_id: int
    animated: int


class Direction(Enum):
    FORWARD = 1
    BACKWARD = -1


@dataclass(frozen=True)
class EdgeRef:
    index: int
    direction: Direction

    def endpoints(self, edge: Edge):
        if self.direction == Direction.BACKWARD:
            return (edge.v1, edge.v0)
        return (edge.v0, edge.v1)


@dataclass(frozen=True)
class Vertex:
    position: tuple
    tex_coord: tuple
    light: tuple
    texture: TextureRoute

    @property
    def texture_index(self):
        return self.texture.texture_index


VERTEX_DTYPE = numpy.dtype([
    ("position", "<f4", 3),
    ("tex_coord", "<f4", 2),
    ("light", "<f4", 3),
    ("texture", "<i4"),
])


@dataclass
class LevelGeometry:
    version: int
    lumps: dict
    planes: list = field(default_factory=list)
    vertices: list = field(default_factory=list)
    edges: list = field(default_factory=list)
    edge_list: list = field(default_factory=list)
    faces: list = field(default_factory=list)
    texinfos: list = field(default_factory=list)
    entities: list = field(default_factory=list)
    atlas: TextureAtlas = None
    mesh: list = field(default_factory=list)

    def entities_by_class(self, classname):
        return [e for e in self.entities if e.classname == classname]

    def find_entity(self, classname):
        for entity in self.entities:
            if entity.classname == classname:
                return entity
        raise MissingEntityError(f"No {classname} entity in level")

    def player_start(self):
        return self.find_entity(external_knowledge.player_start_class)

    def vertex_buffer(self):
        """The triangulated mesh as one flat array, three vertices per triangle."""
        buffer = numpy.zeros(len(self.mesh), dtype=VERTEX_DTYPE)
        for i, v in enumerate(self.mesh):
            buffer[i] = (v.position, v.tex_coord, v.light, v.texture_index)
        return buffer

    def batches(self):
        """Triangulated vertices grouped by the texture they are drawn with, in first-use order."""
        groups = {}
        for v in self.mesh:
            groups.setdefault(v.texture, []).append(v)
        return groups


def handler_planes(records):
    return [Plane((nx, ny, nz), dist, type) for nx, ny, nz, dist, type in records]

def handler_vertices(records):
    return [tuple(r) for r in records]

def handler_edges(records):
    return [Edge(v0, v1) for v0, v1 in records]

def handler_ledges(records):
    return [value for (value,) in records]

def handler_faces(records):
    return [Face(plane_id, side, ledge_id, ledge_num, texinfo_id, light_type, base_light, (l0, l1), lightmap)
            for plane_id, side, ledge_id, ledge_num, texinfo_id, light_type, base_light, l0, l1, lightmap in records]

def handler_texinfo(records):
    return [TexInfo((ux, uy, uz), u_offset, (vx, vy, vz), v_offset, texture_id, animated)
            for ux, uy, uz, u_offset, vx, vy, vz, v_offset, texture_id, animated in records]


# Lump name -> (record format, handler)
handlers = {
    "planes": ("ffffi", handler_planes),
    "vertices": ("fff", handler_vertices),
    "edges": ("HH", handler_edges),
    "ledges": ("i", handler_ledges),
    "faces": ("HHiHHBBBBi", handler_faces),
    "texinfo": ("ffffffffII", handler_texinfo),
}


def decode_edge_ref(value) -> EdgeRef | None:
    """The sign of an edge reference is its winding; zero is not a valid reference."""
    if value == 0:
        return None
    return EdgeRef(abs(value), Direction.BACKWARD if value < 0 else Direction.FORWARD)


def _lookup(items, index, what):
    if not 0 <= index < len(items):
        raise TruncatedDataError(f"{what} {index} out of range (have {len(items)})")
    return items[index]


def face_loop(face: Face, edges, edge_list):
    """
    Vertex indices around a face, two per edge reference: the start and end
    of each directed edge. Zero references are skipped.
    """
    if face.ledge_id < 0 or face.ledge_id + face.ledge_num > len(edge_list):
        raise TruncatedDataError(
            f"Face edges {face.ledge_id}..{face.ledge_id + face.ledge_num} out of range (have {len(edge_list)})")

    loop = []
    for value in edge_list[face.ledge_id:face.ledge_id + face.ledge_num]:
        ref = decode_edge_ref(value)
        if ref is None:
            logger.debug("Skipping zero edge reference in face at %i", face.ledge_id)
            continue
        loop.extend(ref.endpoints(_lookup(edges, ref.index, "Edge")))
    return loop


def triangulate(loop):
    """
    Fan triangulation of a convex face loop, pivoting on its first vertex.

    Each edge after the first gives one triangle, so n edges give n-1 triangles.
    """
    pairs = len(loop) // 2
    if pairs < 2:
        return []
    pivot = loop[0]
    return [(pivot, loop[2 * i], loop[2 * i + 1]) for i in range(1, pairs)]


def tex_coord(position, texinfo: TexInfo, image: DecodedImage | None):
    if image is None or image.width == 0 or image.height == 0:
        return (0.0, 0.0)
    return (
        (util.dot(position, texinfo.u_vector) + texinfo.u_offset) / image.width,
        (util.dot(position, texinfo.v_vector) + texinfo.v_offset) / image.height,
    )


def face_light(face: Face):
    # TODO: use face.lightmap once the lightmap lump is decoded; base light only for now
    light = 1.0 - face.base_light / 255.0
    return (light, light, light)


def build_mesh(level: LevelGeometry):
    mesh = []
    atlas = level.atlas
    short_faces = 0

    for face in level.faces:
        texinfo = _lookup(level.texinfos, face.texinfo_id, "TexInfo")
        slot = texinfo.texture_id
        if slot >= len(atlas):
            raise UnknownTextureSlotError(f"TexInfo references texture {slot}, atlas has {len(atlas)}")
        route = atlas.routes[slot]
        image = atlas.image_for(slot)
        light = face_light(face)

        triangles = triangulate(face_loop(face, level.edges, level.edge_list))
        if not triangles:
            short_faces += 1

        for triangle in triangles:
            for index in triangle:
                position = _lookup(level.vertices, index, "Vertex")
                mesh.append(Vertex(position, tex_coord(position, texinfo, image), light, route))

    if short_faces:
        logger.warning("%i faces had fewer than two edges and were skipped", short_faces)
    return mesh


def _read_lumps(reader: KwarkReader, level_range: ByteRange):
    reader.seek(level_range.offset)
    version = reader.get_s32()
    if version != external_knowledge.bsp_version:
        raise UnsupportedVersionError(f"Bad level version, expected {external_knowledge.bsp_version} but got {version}")

    lumps = {}
    for name in external_knowledge.bsp_lumps:
        offset, size = reader.unpack("ii")
        lump = level_range.relative(ByteRange(offset, size))
        if size < 0 or not level_range.contains(lump):
            raise TruncatedDataError(f"Lump {name} ({offset:#x}, {size}) does not fit in the level")
        lumps[name] = lump
    return version, lumps


def _read_records(reader: KwarkReader, name, lump: ByteRange):
    fmt, handler = handlers[name]
    record_size = struct.calcsize("<" + fmt)
    count = lump.size // record_size
    if lump.size % record_size:
        logger.warning("Lump %s has %i trailing bytes", name, lump.size % record_size)
    reader.seek(lump.offset)
    return handler(reader.unpack_array(fmt, count))


def parse_level(reader: KwarkReader, entry, palette: Palette, atlas: TextureAtlas | None = None) -> LevelGeometry:
    level_range = entry.range
    reader.require(level_range, f"level {entry.name}")
    version, lumps = _read_lumps(reader, level_range)

    level = LevelGeometry(version, lumps)
    level.planes = _read_records(reader, "planes", lumps["planes"])
    level.vertices = _read_records(reader, "vertices", lumps["vertices"])
    level.edges = _read_records(reader, "edges", lumps["edges"])
    level.edge_list = _read_records(reader, "ledges", lumps["ledges"])
    level.faces = _read_records(reader, "faces", lumps["faces"])
    level.texinfos = _read_records(reader, "texinfo", lumps["texinfo"])
    level.entities = parse_entities.parse_entities(reader.read_range(lumps["entities"]))

    if atlas is None:
        miptex = lumps["miptex"]
        atlas = parse_textures.parse_atlas(reader, miptex.offset, palette, miptex.size)
    level.atlas = atlas

    level.mesh = build_mesh(level)

    logger.info("Level %s: %i faces, %i edges, %i entities -> %i triangles",
                entry.name, len(level.faces), len(level.edges), len(level.entities), len(level.mesh) // 3)
    return level


def load_level(archive, name, palette: Palette) -> LevelGeometry:
    entry = archive.find_entry(external_knowledge.map_entry_format.format(name))
    with archive.reader() as reader:
        return parse_level(reader, entry, palette)

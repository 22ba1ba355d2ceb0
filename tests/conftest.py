"""
Builders for the binary formats, so tests can assemble small archives,
levels and models in memory.
"""

import io
import struct

import pytest

from kwark import external_knowledge
from kwark.extraction.extract_pak import ArchiveEntry
from kwark.kwark_reader import KwarkReader
from kwark.parser.parse_palette import Palette

PALETTE_BYTES = bytes(c for i in range(256) for c in (i, 255 - i, (i * 7) % 256))


def palette_colour(index):
    return (index, 255 - index, (index * 7) % 256)


def build_pak(entries):
    """entries: dict of name -> bytes. Data follows the header, directory goes last."""
    body = b""
    records = b""
    for name, data in entries.items():
        records += struct.pack("<56sii", name.encode("ascii"), 12 + len(body), len(data))
        body += data
    header = struct.pack("<4sii", b"PACK", 12 + len(body), len(records))
    return header + body + records


def write_pak(path, entries):
    path.write_bytes(build_pak(entries))
    return path


def build_miptex(textures):
    """textures: list of (name, width, height, indices) or None for an absent slot."""
    count = len(textures)
    base = 4 + 4 * count
    offsets = []
    blobs = b""
    for tex in textures:
        if tex is None:
            offsets.append(-1)
            continue
        name, width, height, indices = tex
        offsets.append(base + len(blobs))
        blobs += struct.pack("<16sIIIIII", name.encode("ascii"), width, height, 40, 40, 40, 40)
        blobs += bytes(indices)
    return struct.pack("<i", count) + struct.pack(f"<{count}i", *offsets) + blobs


def pack_vertices(vertices):
    return b"".join(struct.pack("<fff", *v) for v in vertices)

def pack_edges(edges):
    return b"".join(struct.pack("<HH", *e) for e in edges)

def pack_ledges(ledges):
    return b"".join(struct.pack("<i", e) for e in ledges)

def pack_face(ledge_id, ledge_num, texinfo_id=0, base_light=0, lightmap=-1):
    return struct.pack("<HHiHHBBBBi", 0, 0, ledge_id, ledge_num, texinfo_id, 0, base_light, 0, 0, lightmap)

def pack_texinfo(u, u_offset, v, v_offset, texture_id, animated=0):
    return struct.pack("<ffffffffII", *u, u_offset, *v, v_offset, texture_id, animated)

def pack_plane(normal=(0.0, 0.0, 1.0), dist=0.0, type=2):
    return struct.pack("<ffffi", *normal, dist, type)


def build_bsp(lumps, version=external_knowledge.bsp_version):
    """lumps: dict of lump name -> bytes, missing lumps are empty."""
    header_size = 4 + 8 * len(external_knowledge.bsp_lumps)
    body = b""
    directory = []
    for name in external_knowledge.bsp_lumps:
        data = lumps.get(name, b"")
        directory.append((header_size + len(body), len(data)))
        body += data
        body += b"\x00" * (-len(body) % 4)
    header = struct.pack("<i", version) + b"".join(struct.pack("<ii", *d) for d in directory)
    return header + body


SQUARE_ENTITIES = b"""{
"classname" "worldspawn"
"wad" "gfx/base.wad"
}
{
"classname" "info_player_start"
"origin" "32 32 24"
"angle" "90"
}
{
"classname" "light_flame_large_yellow"
"origin" "0 64 40"
}
{
"classname" "light_flame_large_yellow"
"origin" "64 64 40"
}
\x00"""

SQUARE_TEXTURES = [
    ("brick", 16, 16, bytes(range(256))),
    ("sky1", 4, 2, bytes([1, 2, 3, 4, 5, 6, 7, 8])),
    ("*water", 2, 2, bytes([9, 9, 9, 9])),
    ("clip", 2, 2, bytes([0, 0, 0, 0])),
    None,
]


def square_level_lumps(**overrides):
    """
    One 64x64 square in the z=0 plane, wound through four edges.
    Edge 0 is unused since an edge reference of zero is invalid.
    """
    vertices = [(0.0, 0.0, 0.0), (64.0, 0.0, 0.0), (64.0, 64.0, 0.0), (0.0, 64.0, 0.0)]
    edges = [(0, 0), (0, 1), (1, 2), (3, 2), (3, 0)]
    ledges = [1, 2, -3, 4]
    lumps = {
        "entities": SQUARE_ENTITIES,
        "planes": pack_plane(),
        "miptex": build_miptex(SQUARE_TEXTURES),
        "vertices": pack_vertices(vertices),
        "texinfo": pack_texinfo((1.0, 0.0, 0.0), 0.0, (0.0, 1.0, 0.0), 0.0, 0),
        "faces": pack_face(0, 4, base_light=51),
        "edges": pack_edges(edges),
        "ledges": pack_ledges(ledges),
    }
    lumps.update(overrides)
    return lumps


def build_mdl(
    skins=None,
    skin_size=(4, 2),
    tex_coords=None,
    triangles=None,
    frames=None,
    scale=(2.0, 2.0, 2.0),
    origin=(1.0, 2.0, 3.0),
    numframes=None,
    ident=b"IDPO",
    version=6,
):
    """
    skins: list of (group, indices)
    tex_coords: list of (onseam, s, t)
    triangles: list of (facesfront, v0, v1, v2)
    frames: list of ("single", frame) or ("group", times, [frame, ...]) where frame is (name, [(x, y, z, n), ...])
    """
    skin_w, skin_h = skin_size
    if skins is None:
        skins = [(0, bytes([208, 1, 2, 3, 4, 5, 6, 7]))]
    if tex_coords is None:
        tex_coords = [(0, 0, 0), (0, 2, 0), (32, 2, 2), (0, 0, 2)]
    if triangles is None:
        triangles = [(1, 0, 1, 2), (0, 0, 2, 3)]
    if frames is None:
        verts = [(0, 0, 0, 0), (1, 0, 0, 0), (1, 1, 0, 0), (0, 1, 1, 0)]
        frames = [
            ("single", ("stand", verts)),
            ("group", [0.1, 0.2, 0.3], [
                ("flame1", verts),
                ("flame2", [(x, y, z + 1, n) for x, y, z, n in verts]),
                ("flame3", [(x, y, z + 2, n) for x, y, z, n in verts]),
            ]),
        ]
    if numframes is None:
        numframes = len(frames)

    numverts = len(tex_coords)
    data = struct.pack("<4si3f3ff3fiiiiiiiif", ident, version, *scale, *origin, 10.0, 0.0, 0.0, 0.0,
                       len(skins), skin_w, skin_h, numverts, len(triangles), numframes, 0, 0, 1.0)
    for group, indices in skins:
        data += struct.pack("<i", group) + bytes(indices)
    for tc in tex_coords:
        data += struct.pack("<iii", *tc)
    for tri in triangles:
        data += struct.pack("<iiii", *tri)

    def pack_frame(frame):
        name, verts = frame
        out = struct.pack("<4B4B16s", 0, 0, 0, 0, 255, 255, 255, 0, name.encode("ascii"))
        return out + b"".join(struct.pack("<4B", *v) for v in verts)

    for f in frames:
        if f[0] == "single":
            data += struct.pack("<i", 0) + pack_frame(f[1])
        else:
            _, times, group_frames = f
            data += struct.pack("<ii", 1, len(group_frames))
            data += struct.pack("<4B4B", 0, 0, 0, 0, 255, 255, 255, 0)
            data += struct.pack(f"<{len(times)}f", *times)
            data += b"".join(pack_frame(gf) for gf in group_frames)
    return data


def memory_asset(data, name="asset"):
    """A reader over `data` and an entry covering all of it."""
    return KwarkReader(io.BytesIO(data)), ArchiveEntry(name, 0, len(data))


@pytest.fixture
def palette():
    return Palette.from_bytes(PALETTE_BYTES)


@pytest.fixture
def game_pak(tmp_path):
    return write_pak(tmp_path / "PAK0.PAK", {
        external_knowledge.palette_entry: PALETTE_BYTES,
        "maps/start.bsp": build_bsp(square_level_lumps()),
        external_knowledge.flame_model: build_mdl(),
        "sound/ambience/fire1.wav": b"RIFF....",
    })

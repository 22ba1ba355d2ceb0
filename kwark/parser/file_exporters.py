# Credits: Kwark Team - 2024

import json
import logging
import os

from PIL import Image

from kwark import util
from kwark.parser.parse_textures import DecodedImage, TextureClass

logger = logging.getLogger()


def to_pil(image: DecodedImage) -> Image.Image:
    return Image.frombytes("RGBA", (image.width, image.height), image.pixels)


# .obj puts the texture origin at the bottom left
def obj_tex_coord(u, v):
    return u, 1.0 - v


def export_image(image: DecodedImage, filename):
    if image.width == 0 or image.height == 0:
        logger.warning("Not writing %s, image has zero area", filename)
        return None
    to_pil(image).save(filename, "PNG")
    return filename


def material_name(route):
    if not route.renderable:
        return "debug"
    return f"{route.kind.name.lower()}{route.index}"


def export_atlas(atlas, savepath):
    """Write every destination texture as <kind><index>.png, the names the .mtl file refers to."""
    os.makedirs(savepath, exist_ok=True)
    written = []
    for kind in (TextureClass.DEFAULT, TextureClass.SKY, TextureClass.FLUID):
        for index, image in enumerate(atlas.destination(kind)):
            path = export_image(image, os.path.join(savepath, f"{kind.name.lower()}{index}.png"))
            if path:
                written.append(path)
    logger.info("Exported %i textures to %s", len(written), savepath)
    return written


def generate_materials(routes, filename):
    written = set()
    with open(filename, "w") as f:
        for route in routes:
            name = material_name(route)
            # Debug routes differ by reason but share one material
            if name in written:
                continue
            written.add(name)
            f.write(f"""
newmtl {name}
Ka 1.000000 1.000000 1.000000
Kd 1.000000 1.000000 1.000000
Ks 0.000000 0.000000 0.000000
Tr 0.000000
illum 1
Ns 0.000000
""")
            if route.renderable:
                f.write(f"map_Kd {name}.png\n")


# Take the triangulated level and export it as an .obj file, one material per texture
def export_level_obj(level, filename, material_file=None):
    batches = level.batches()
    with open(filename, "w") as f:
        if material_file:
            f.write(f"mtllib {os.path.basename(material_file)}\n")

        count = 0
        for route, vertices in batches.items():
            f.write(f"usemtl {material_name(route)}\n")
            for v in vertices:
                f.write(f"v {v.position[0]} {v.position[1]} {v.position[2]}\n")
            for v in vertices:
                f.write("vt {} {}\n".format(*obj_tex_coord(*v.tex_coord)))
            for tri in util.chunks(range(count + 1, count + len(vertices) + 1), 3):
                a, b, c = tri
                f.write(f"f {a}/{a} {b}/{b} {c}/{c}\n")
            count += len(vertices)

    if material_file:
        generate_materials(batches.keys(), material_file)
    logger.info("Exported %i triangles to %s", len(level.mesh) // 3, filename)


def export_model_frame_obj(model, frame_index, filename, skin_file=None):
    buffer = model.frame_buffers[frame_index]
    with open(filename, "w") as f:
        if skin_file:
            f.write(f"# skin {os.path.basename(skin_file)}\n")
        for x, y, z, s, t in buffer:
            f.write(f"v {x} {y} {z}\n")
        for x, y, z, s, t in buffer:
            f.write("vt {} {}\n".format(*obj_tex_coord(s, t)))
        for a, b, c in util.chunks(range(1, len(buffer) + 1), 3):
            f.write(f"f {a}/{a} {b}/{b} {c}/{c}\n")


def export_entities(entities, filename):
    # Export entities to a .json file, for placing objects in an editor
    records = [{
        "classname": e.classname,
        "origin": list(e.origin),
        "angle": e.angle,
        "properties": e.properties,
    } for e in entities]

    with open(filename, "w") as f:
        json.dump({"entities": records}, f, indent=4)
    logger.info("Found %i entities", len(records))

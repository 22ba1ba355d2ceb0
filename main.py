#!/usr/bin/env python3
# Credits: Kwark Team - 2024

import argparse
import logging
import os
import sys

from kwark import external_knowledge
from kwark.errors import KwarkError
from kwark.extraction import extract_pak
from kwark.parser import file_exporters, parse_level, parse_model, parse_palette

logger = logging.getLogger()

TOOL_VERSION = "0.1.0"


def build_parser():
    parser = argparse.ArgumentParser(prog='kwark', description="Decode levels, textures and models from a PACK archive")
    parser.add_argument('pak', help="path to the archive, eg. PAK0.PAK")
    parser.add_argument('-o', '--out', default="kwark_unpack", help="output folder")
    parser.add_argument('-x', '--extract', nargs='?', const='*', metavar='PATTERN',
                        help="extract archive entries matching PATTERN (default: all)")
    parser.add_argument('-l', '--level', help="level to decode, eg. start")
    parser.add_argument('-m', '--model', help=f"model to decode, eg. {external_knowledge.flame_model}")
    parser.add_argument('-v', '--verbose', action="store_true")
    return parser


def export_level(archive, palette, name, out):
    level = parse_level.load_level(archive, name, palette)
    savepath = os.path.join(out, "maps", name)
    os.makedirs(savepath, exist_ok=True)

    file_exporters.export_atlas(level.atlas, savepath)
    file_exporters.export_level_obj(level, os.path.join(savepath, f"{name}.obj"), os.path.join(savepath, f"{name}.mtl"))
    file_exporters.export_entities(level.entities, os.path.join(savepath, "entities.json"))

    try:
        start = level.player_start()
        logger.info("Player starts at (%s, %s, %s) facing %s", *start.origin, start.angle)
    except KwarkError as e:
        logger.warning("%s", e)
    return level


def export_model(archive, palette, name, out):
    model = parse_model.load_model(archive, name, palette)
    base = os.path.splitext(os.path.basename(name))[0]
    savepath = os.path.join(out, "models", base)
    os.makedirs(savepath, exist_ok=True)

    skin_file = None
    for i, skin in enumerate(model.skins):
        path = file_exporters.export_image(skin, os.path.join(savepath, f"skin{i}.png"))
        skin_file = skin_file or path

    for i in range(len(model.frame_buffers)):
        file_exporters.export_model_frame_obj(model, i, os.path.join(savepath, f"frame{i:03}.obj"), skin_file)
    return model


def run(args):
    if args.extract is not None:
        extract_pak.extract(args.pak, args.out, args.extract)

    if args.level is None and args.model is None:
        return

    with extract_pak.open_archive(args.pak) as archive:
        palette = parse_palette.load_palette(archive)
        if args.level:
            level = export_level(archive, palette, args.level, args.out)
            flames = level.entities_by_class(external_knowledge.flame_class)
            logger.info("Level places %i %s entities", len(flames), external_knowledge.flame_class)
        if args.model:
            export_model(archive, palette, args.model, args.out)


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        stream=sys.stdout,
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='[%(asctime)s] [%(module)s] [%(levelname)s] %(message)s',
        datefmt='%H:%M:%S')

    logger.info("Running the kwark tool v%s", TOOL_VERSION)
    try:
        run(args)
    except KwarkError as e:
        logger.error("Could not load %s: %s", args.pak, e)
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())

# Credits: Kwark Team - 2024

# Take knowledge from outside the provided files, to make this easier to work with

# http://www.gamers.org/dEngine/quake/spec/quake-spec34/

pak_magic = b"PACK"
pak_header_length = 12
pak_entry_length = 64
pak_name_length = 56

palette_entry = "gfx/palette.lmp"
palette_colours = 256

map_entry_format = "maps/{}.bsp"
bsp_version = 29

# In header order
bsp_lumps = [
    "entities",
    "planes",
    "miptex",
    "vertices",
    "visilist",
    "nodes",
    "texinfo",
    "faces",
    "lightmaps",
    "clipnodes",
    "leaves",
    "lface",
    "edges",
    "ledges",
    "models",
]

mdl_ident = b"IDPO"
mdl_version = 6

# Colour 208 is keyed out of alias model skins
skin_transparent_index = 208

# Checked in this order, first match wins
debug_texture_prefixes = ["clip", "trigger"]
sky_texture_prefix = "sky"
fluid_texture_prefix = "*"

player_start_class = "info_player_start"
flame_class = "light_flame_large_yellow"
flame_model = "progs/flame2.mdl"

# See progs/world.qc. Index is the light style number, each letter is 0.1s.
# 'a' is dark, 'm' is normal, 'z' is double bright.
light_styles = [
    "m",
    "mmnmmommommnonmmonqnmmo",
    "abcdefghijklmnopqrstuvwxyzyxwvutsrqponmlkjihgfedcba",
    "mmmmmaaaaammmmmaaaaaabcdefgabcdefg",
    "mamamamamama",
    "jklmnopqrstuvwxyzyxwvutsrqponmlkj",
    "nmonqnmomnmomomno",
    "mmmaaaabcdefgmmmmaaaammmaamm",
    "mmmaaammmaaammmabcdefaaaammmmabcdefmmmaaaa",
    "aaaaaaaazzzzzzzz",
    "mmamammmmammamamaaamammma",
    "abcdefghijklmnopqrrqponmlkjihgfedcba",
]
light_style_rate = 10

import json

from PIL import Image

from conftest import build_bsp, build_mdl, memory_asset, square_level_lumps
from kwark.parser import file_exporters, parse_level, parse_model
from kwark.parser.parse_textures import DecodedImage, TextureClass, TextureRoute


def square_level(palette):
    reader, entry = memory_asset(build_bsp(square_level_lumps()), "maps/test.bsp")
    return parse_level.parse_level(reader, entry, palette)


def obj_lines(path, prefix):
    return [line for line in path.read_text().splitlines() if line.startswith(prefix + " ")]


class TestImages:
    def test_png_keeps_pixels(self, tmp_path):
        image = DecodedImage(2, 1, bytes([1, 2, 3, 255, 4, 5, 6, 0]))
        path = file_exporters.export_image(image, tmp_path / "tex.png")
        with Image.open(path) as png:
            assert png.mode == "RGBA"
            assert png.size == (2, 1)
            assert list(png.getdata()) == [(1, 2, 3, 255), (4, 5, 6, 0)]

    def test_zero_area_is_skipped(self, tmp_path):
        assert file_exporters.export_image(DecodedImage(0, 0, b""), tmp_path / "none.png") is None
        assert not (tmp_path / "none.png").exists()

    def test_atlas(self, palette, tmp_path):
        written = file_exporters.export_atlas(square_level(palette).atlas, tmp_path / "textures")
        names = sorted(p.rsplit("/", 1)[-1] for p in map(str, written))
        assert names == ["default0.png", "fluid0.png", "sky0.png", "sky1.png"]


class TestMaterials:
    def test_material_names(self):
        assert file_exporters.material_name(TextureRoute(TextureClass.SKY, 2)) == "sky2"
        assert file_exporters.material_name(TextureRoute(TextureClass.DEBUG, None, "clip")) == "debug"

    def test_debug_material_has_no_map(self, tmp_path):
        path = tmp_path / "level.mtl"
        file_exporters.generate_materials([TextureRoute(TextureClass.DEBUG, None, "clip")], path)
        text = path.read_text()
        assert "newmtl debug" in text
        assert "map_Kd" not in text

    def test_debug_routes_share_one_material(self, tmp_path):
        path = tmp_path / "level.mtl"
        routes = [TextureRoute(TextureClass.DEBUG, None, "clip"), TextureRoute(TextureClass.DEFAULT, 0),
                  TextureRoute(TextureClass.DEBUG, None, "absent")]
        file_exporters.generate_materials(routes, path)
        names = [line for line in path.read_text().splitlines() if line.startswith("newmtl ")]
        assert names == ["newmtl debug", "newmtl default0"]


class TestObj:
    def test_level(self, palette, tmp_path):
        obj = tmp_path / "test.obj"
        mtl = tmp_path / "test.mtl"
        file_exporters.export_level_obj(square_level(palette), obj, mtl)
        assert obj.read_text().startswith("mtllib test.mtl\n")
        assert len(obj_lines(obj, "v")) == 9
        assert len(obj_lines(obj, "vt")) == 9
        assert obj_lines(obj, "f") == ["f 1/1 2/2 3/3", "f 4/4 5/5 6/6", "f 7/7 8/8 9/9"]
        assert obj_lines(obj, "usemtl") == ["usemtl default0"]
        assert "map_Kd default0.png" in mtl.read_text()
        # vertex 0 sits at the texture origin
        assert obj_lines(obj, "vt")[0] == "vt 0.0 1.0"
        assert obj_lines(obj, "vt")[2] == "vt 4.0 -3.0"

    def test_model_frame(self, palette, tmp_path):
        reader, entry = memory_asset(build_mdl(), "progs/test.mdl")
        model = parse_model.parse_model(reader, entry, palette)
        obj = tmp_path / "frame.obj"
        file_exporters.export_model_frame_obj(model, 0, obj, "skin0.png")
        assert obj.read_text().startswith("# skin skin0.png\n")
        assert len(obj_lines(obj, "v")) == 6
        assert len(obj_lines(obj, "f")) == 2
        # Same V flip as the level export
        assert obj_lines(obj, "vt")[:2] == ["vt 0.0 1.0", "vt 0.5 1.0"]


def test_entities(palette, tmp_path):
    path = tmp_path / "entities.json"
    file_exporters.export_entities(square_level(palette).entities, path)
    records = json.loads(path.read_text())["entities"]
    assert len(records) == 4
    assert records[1]["classname"] == "info_player_start"
    assert records[1]["origin"] == [32.0, 32.0, 24.0]
    assert records[1]["properties"]["angle"] == "90"

import main
from kwark import external_knowledge


class TestMain:
    def test_level_and_model(self, game_pak, tmp_path):
        out = tmp_path / "out"
        assert main.main([str(game_pak), "-o", str(out), "-l", "start", "-m", external_knowledge.flame_model]) == 0

        level_dir = out / "maps" / "start"
        assert (level_dir / "start.obj").exists()
        assert (level_dir / "start.mtl").exists()
        assert (level_dir / "entities.json").exists()
        assert (level_dir / "default0.png").exists()

        model_dir = out / "models" / "flame2"
        assert (model_dir / "skin0.png").exists()
        assert sorted(p.name for p in model_dir.glob("frame*.obj")) == [
            "frame000.obj", "frame001.obj", "frame002.obj", "frame003.obj"]

    def test_extract(self, game_pak, tmp_path):
        out = tmp_path / "out"
        assert main.main([str(game_pak), "-o", str(out), "-x", "maps/*"]) == 0
        assert (out / "maps" / "start.bsp").exists()
        assert not (out / "progs").exists()

    def test_missing_level(self, game_pak, tmp_path):
        assert main.main([str(game_pak), "-o", str(tmp_path), "-l", "e1m1"]) == 1

    def test_missing_archive(self, tmp_path):
        assert main.main([str(tmp_path / "nope.pak"), "-l", "start"]) == 1

    def test_parser_defaults(self):
        args = main.build_parser().parse_args(["PAK0.PAK", "-x"])
        assert args.extract == "*"
        assert args.out == "kwark_unpack"
        assert args.level is None

"""
Tests for the batch CLI and the gallery enhancer pipeline.
"""
from pathlib import Path

from PIL import Image as PILImage

from headshot_studio.cli.batch_process import main
from headshot_studio.models.crop_geometry import SQUARE
from headshot_studio.models.image_adjustments import AdjustmentSettings
from headshot_studio.pipeline.gallery_enhancer import enhance_gallery
from headshot_studio.services.image_service import ImageService


class TestGalleryEnhancer:
    def test_writes_one_png_per_readable_image(self, make_png, tmp_path):
        src = tmp_path / "in"
        src.mkdir()
        (src / "one.png").write_bytes(make_png(120, 60))
        (src / "two.png").write_bytes(make_png(60, 120))
        (src / "broken.png").write_bytes(b"not an image")

        written = enhance_gallery(sorted(src.iterdir()), tmp_path / "out",
                                  settings=AdjustmentSettings(brightness=10, vignette=20),
                                  frame=SQUARE)

        assert [w.source.name for w in written] == ["one.png", "two.png"]
        for item in written:
            with PILImage.open(item.output) as img:
                assert img.size == (800, 800)


    def test_same_stem_files_do_not_overwrite_each_other(self, make_png, tmp_path):
        src = tmp_path / "in"
        (src / "a").mkdir(parents=True)
        (src / "b").mkdir()
        (src / "a" / "x.jpg").write_bytes(make_png(40, 40))
        (src / "b" / "x.jpg").write_bytes(make_png(40, 40))
        (src / "x.jpg").write_bytes(make_png(40, 40))
        (src / "x.png").write_bytes(make_png(40, 40))
        paths = sorted(p for p in src.rglob("*") if p.is_file())

        written = enhance_gallery(paths, tmp_path / "out", input_dir=src, frame=SQUARE)

        names = sorted(w.output.name for w in written)
        assert names == ["a__x_headshot.png", "b__x_headshot.png",
                         "x_headshot.png", "x_png_headshot.png"]
        assert len(list((tmp_path / "out").iterdir())) == 4

    def test_unwritable_output_is_skipped(self, make_png, tmp_path, monkeypatch):
        src = tmp_path / "in"
        src.mkdir()
        (src / "one.png").write_bytes(make_png(40, 40))
        (src / "two.png").write_bytes(make_png(40, 40))
        service = ImageService()
        real_save = service.save

        def flaky_save(buffer, path):
            if Path(path).name.startswith("one"):
                raise PermissionError(path)
            return real_save(buffer, path)

        monkeypatch.setattr(service, "save", flaky_save)
        written = enhance_gallery(sorted(src.iterdir()), tmp_path / "out",
                                  frame=SQUARE, image_service=service)

        assert [w.source.name for w in written] == ["two.png"]


class TestBatchCli:
    def test_cli_end_to_end(self, make_png, tmp_path):
        src = tmp_path / "photos"
        src.mkdir()
        (src / "me.png").write_bytes(make_png(300, 400))

        code = main([str(src), str(tmp_path / "out"), "--mode", "square", "--saturation", "-100"])

        assert code == 0
        assert (tmp_path / "out" / "me_headshot.png").exists()

    def test_cli_rejects_invalid_settings(self, tmp_path):
        assert main([str(tmp_path), str(tmp_path / "out"), "--contrast", "400"]) == 2

    def test_cli_missing_input_folder(self, tmp_path):
        assert main([str(tmp_path / "missing"), str(tmp_path / "out")]) == 2

    def test_cli_fails_when_nothing_decodes(self, tmp_path):
        (tmp_path / "bad.jpg").write_bytes(b"nope")
        assert main([str(tmp_path), str(tmp_path / "out")]) == 1

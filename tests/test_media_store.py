"""Tests for the shared Media/ directory."""

import pytest

from media_store import MEDIA_DIRNAME, extension_for_uti, image_extension, uti_for_extension


class TestMediaStore:
    def test_save_png(self, media, container):
        asset = media.save_image(b"\x89PNG\r\n\x1a\n....")
        assert asset.relative_path.endswith(".png")
        assert asset.uti == "public.png"
        assert (container / MEDIA_DIRNAME / asset.relative_path).exists()

    def test_empty_image_rejected(self, media):
        with pytest.raises(ValueError):
            media.save_image(b"")

    def test_copy_in_keeps_original_name(self, media, tmp_path):
        source = tmp_path / "notes.txt"
        source.write_text("hello")
        asset = media.copy_in(source, preferred_filename="ABC.txt")
        assert asset.relative_path == "ABC.txt"
        assert asset.original_filename == "notes.txt"
        assert asset.uti == "public.plain-text"

    def test_copy_in_never_overwrites(self, media, tmp_path):
        source = tmp_path / "a.pdf"
        source.write_bytes(b"one")
        first = media.copy_in(source, preferred_filename="SAME")
        source.write_bytes(b"two")
        second = media.copy_in(source, preferred_filename="SAME")
        assert first.relative_path == "SAME.pdf"
        assert second.relative_path != first.relative_path
        assert second.relative_path.startswith("SAME-") and second.relative_path.endswith(".pdf")
        assert media.absolute_path(first.relative_path).read_bytes() == b"one"
        assert media.absolute_path(second.relative_path).read_bytes() == b"two"

    def test_path_escape_rejected(self, media):
        with pytest.raises(ValueError):
            media.absolute_path("../shared_defaults.sqlite3")


class TestTypeTables:
    @pytest.mark.parametrize("data,ext", [
        (b"\x89PNG\r\n\x1a\nxx", "png"),
        (b"GIF89a....", "gif"),
        (b"\x00\x00\x00\x18ftypheic", "heic"),
        (b"\xff\xd8\xff", "jpg"),
    ])
    def test_image_sniffing(self, data, ext):
        assert image_extension(data) == ext

    def test_uti_lookup(self):
        assert uti_for_extension(".JPG") == "public.jpeg"
        assert uti_for_extension("bin") == "public.data"
        assert extension_for_uti("public.jpeg") == "jpg"
        assert extension_for_uti(None) == "dat"

"""Tests for content sniffing and the image store."""

import pytest

from gallery.security.uploads import (
    DEFAULT_EXTENSION,
    PNG_MAGIC,
    THUMB_PREFIX,
    ImageStore,
    StorageError,
    StoredNames,
    extension_for,
    is_image_type,
    sniff_media_type,
)
from tests.helpers import encode_image


@pytest.mark.parametrize(
    "fmt, expected",
    [
        ("PNG", "image/png"),
        ("JPEG", "image/jpeg"),
        ("GIF", "image/gif"),
        ("BMP", "image/bmp"),
        ("TIFF", "image/tiff"),
        ("WEBP", "image/webp"),
    ],
)
def test_sniffs_real_images(fmt, expected):
    data = encode_image((16, 16), fmt=fmt)
    assert sniff_media_type(data) == expected


def test_sniffs_iso_bmff_brands():
    avif_header = b"\x00\x00\x00\x1cftypavif\x00\x00\x00\x00"
    heic_header = b"\x00\x00\x00\x18ftypheic\x00\x00\x00\x00"
    assert sniff_media_type(avif_header) == "image/avif"
    assert sniff_media_type(heic_header) == "image/heic"


def test_unknown_and_non_image_content():
    assert sniff_media_type(b"just some text, not an image") is None
    assert sniff_media_type(b"") is None
    assert sniff_media_type(b"%PDF-1.7\n...") == "application/pdf"
    assert not is_image_type("application/pdf")
    assert not is_image_type(None)
    assert is_image_type("image/png")


def test_declared_type_is_ignored_by_sniffer():
    # Bytes decide, whatever name or header the client attached.
    assert sniff_media_type(b"<html><body>hi</body></html>") is None


def test_extension_mapping_and_default():
    assert extension_for("image/png") == "png"
    assert extension_for("image/jpeg") == "jpg"
    assert extension_for("image/x-unknown") == DEFAULT_EXTENSION


def test_allocate_generates_random_names(tmp_path):
    store = ImageStore(tmp_path / "full", tmp_path / "full" / "thumbs")
    first = store.allocate("image/png")
    second = store.allocate("image/png")

    assert first.filename.endswith(".png")
    assert first.thumb.startswith(THUMB_PREFIX)
    assert first.thumb.endswith(".png")
    assert len(first.filename.split(".")[0]) == 24
    assert first.filename != second.filename
    assert first.thumb != second.thumb
    assert first.thumb[len(THUMB_PREFIX):] != first.filename


def test_allocate_thumbnail_extension_can_differ(tmp_path):
    store = ImageStore(tmp_path / "full", tmp_path / "full" / "thumbs")
    names = store.allocate("image/x-icon", "image/png")
    assert names.filename.endswith(".ico")
    assert names.thumb.endswith(".png")


def test_write_persists_both_variants(tmp_path):
    store = ImageStore(tmp_path / "full", tmp_path / "full" / "thumbs")
    store.prepare()
    names = store.allocate("image/png")
    stored = store.write(names, PNG_MAGIC + b"full", PNG_MAGIC + b"thumb")

    assert stored.path == (tmp_path / "full" / names.filename).resolve()
    assert stored.path.read_bytes() == PNG_MAGIC + b"full"
    assert stored.thumb_path.read_bytes() == PNG_MAGIC + b"thumb"


def test_write_never_overwrites(tmp_path):
    store = ImageStore(tmp_path / "full", tmp_path / "full" / "thumbs")
    names = StoredNames(filename="fixed.png", thumb="thumb-fixed.png")
    store.write(names, b"first", b"first-thumb")

    with pytest.raises(StorageError):
        store.write(names, b"second", b"second-thumb")
    assert (tmp_path / "full" / "fixed.png").read_bytes() == b"first"


def test_failed_thumbnail_write_removes_full_file(tmp_path):
    store = ImageStore(tmp_path / "full", tmp_path / "full" / "thumbs")
    store.prepare()
    (tmp_path / "full" / "thumbs" / "thumb-taken.png").write_bytes(b"existing")
    names = StoredNames(filename="fresh.png", thumb="thumb-taken.png")

    with pytest.raises(StorageError):
        store.write(names, b"full", b"thumb")
    assert not (tmp_path / "full" / "fresh.png").exists()


def test_rejects_path_escaping_names(tmp_path):
    store = ImageStore(tmp_path / "full", tmp_path / "full" / "thumbs")
    with pytest.raises(StorageError):
        store.write(StoredNames(filename="../escape.png", thumb="thumb-ok.png"), b"x", b"y")
    assert not (tmp_path / "escape.png").exists()


def test_symlinked_storage_root_is_rejected(tmp_path):
    real = tmp_path / "real"
    real.mkdir()
    link = tmp_path / "link"
    link.symlink_to(real, target_is_directory=True)

    store = ImageStore(link, link / "thumbs")
    with pytest.raises(StorageError):
        store.prepare()


def test_prepare_fails_when_root_is_a_file(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    store = ImageStore(blocker, blocker / "thumbs")
    with pytest.raises(StorageError):
        store.prepare()

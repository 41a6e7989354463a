"""Content sniffing and secure file storage used by the upload pipeline."""

from __future__ import annotations

import logging
import os
import secrets
from dataclasses import dataclass
from pathlib import Path
from typing import Final, Optional

logger = logging.getLogger(__name__)

PNG_MAGIC: Final = b"\x89PNG\r\n\x1a\n"
JPEG_SOI: Final = b"\xff\xd8\xff"
GIF87_MAGIC: Final = b"GIF87a"
GIF89_MAGIC: Final = b"GIF89a"
BMP_MAGIC: Final = b"BM"
TIFF_LE_MAGIC: Final = b"II*\x00"
TIFF_BE_MAGIC: Final = b"MM\x00*"
ICO_MAGIC: Final = b"\x00\x00\x01\x00"
PDF_MAGIC: Final = b"%PDF-"
ZIP_MAGIC: Final = b"PK\x03\x04"
GZIP_MAGIC: Final = b"\x1f\x8b"

# Leading-byte signatures checked in order by `sniff_media_type`.
SIGNATURES: Final[tuple[tuple[bytes, str], ...]] = (
    (PNG_MAGIC, "image/png"),
    (JPEG_SOI, "image/jpeg"),
    (GIF87_MAGIC, "image/gif"),
    (GIF89_MAGIC, "image/gif"),
    (TIFF_LE_MAGIC, "image/tiff"),
    (TIFF_BE_MAGIC, "image/tiff"),
    (ICO_MAGIC, "image/x-icon"),
    (PDF_MAGIC, "application/pdf"),
    (ZIP_MAGIC, "application/zip"),
    (GZIP_MAGIC, "application/gzip"),
)

# ISO base media file brands found at offset 8 of an `ftyp` box.
FTYP_BRANDS: Final[dict[bytes, str]] = {
    b"avif": "image/avif",
    b"avis": "image/avif",
    b"heic": "image/heic",
    b"heix": "image/heic",
    b"mif1": "image/heif",
}

EXTENSIONS: Final[dict[str, str]] = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/bmp": "bmp",
    "image/tiff": "tiff",
    "image/x-icon": "ico",
    "image/avif": "avif",
    "image/heic": "heic",
    "image/heif": "heif",
}
DEFAULT_EXTENSION: Final = "jpg"
THUMB_PREFIX: Final = "thumb-"
NAME_TOKEN_BYTES: Final = 12


class UploadError(Exception):
    """Client input error raised at the transport boundary."""

    def __init__(self, code: str, message: str, status: int):
        self.code = code
        self.message = message
        self.status = status
        super().__init__(message)


class StorageError(Exception):
    """Filesystem failure while preparing or writing stored images."""


def sniff_media_type(data: bytes) -> str | None:
    """Return the media type detected from leading bytes, or None if unknown."""
    for magic, media_type in SIGNATURES:
        if data.startswith(magic):
            return media_type
    if len(data) >= 12 and data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    if len(data) >= 12 and data[4:8] == b"ftyp":
        brand = FTYP_BRANDS.get(data[8:12])
        if brand:
            return brand
    # BMP has a two byte magic; also require the reserved header words to be zero.
    if len(data) >= 14 and data.startswith(BMP_MAGIC) and data[6:10] == b"\x00\x00\x00\x00":
        return "image/bmp"
    return None


def is_image_type(media_type: str | None) -> bool:
    return bool(media_type) and media_type.split("/", 1)[0] == "image"


def extension_for(media_type: str) -> str:
    return EXTENSIONS.get(media_type, DEFAULT_EXTENSION)


@dataclass(frozen=True, slots=True)
class StoredNames:
    """Random names allocated for one image and its thumbnail."""

    filename: str
    thumb: str


@dataclass(frozen=True, slots=True)
class StoredFile:
    """Result descriptor returned by `ImageStore.write`."""

    filename: str
    thumb: str
    path: Path
    thumb_path: Path


def _resolve_storage_dir(base_dir: str | os.PathLike[str]) -> Path:
    base_path = Path(base_dir).expanduser()
    # Reject storage rooted in symlinks to avoid swapping directories at runtime.
    if base_path.is_symlink():
        raise StorageError(f"Storage directory must not be a symlink: {base_path}")
    try:
        base_path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise StorageError(f"Cannot create storage directory {base_path}: {exc}") from exc
    return base_path.resolve()


def _contained_path(root: Path, file_name: str) -> Path:
    file_path = (root / file_name).resolve()
    if file_path.parent != root:
        raise StorageError(f"Invalid storage path detected: {file_name}")
    return file_path


def _write_exclusive(path: Path, data: bytes) -> None:
    # "x" mode fails instead of overwriting an existing file.
    try:
        with open(path, "xb") as handle:
            handle.write(data)
    except OSError as exc:
        raise StorageError(f"Failed to write {path.name}: {exc}") from exc


class ImageStore:
    """Writes full-size images and thumbnails under unguessable names."""

    def __init__(self, upload_dir: str | os.PathLike[str], thumbs_dir: str | os.PathLike[str]):
        self.upload_dir = Path(upload_dir)
        self.thumbs_dir = Path(thumbs_dir)
        self._upload_root: Path | None = None
        self._thumbs_root: Path | None = None

    def prepare(self) -> None:
        """Create both storage directories, raising StorageError on failure."""
        self._upload_root = _resolve_storage_dir(self.upload_dir)
        self._thumbs_root = _resolve_storage_dir(self.thumbs_dir)

    def allocate(
        self, media_type: str, thumb_media_type: Optional[str] = None
    ) -> StoredNames:
        ext = extension_for(media_type)
        thumb_ext = extension_for(thumb_media_type or media_type)
        return StoredNames(
            filename=f"{secrets.token_hex(NAME_TOKEN_BYTES)}.{ext}",
            thumb=f"{THUMB_PREFIX}{secrets.token_hex(NAME_TOKEN_BYTES)}.{thumb_ext}",
        )

    def write(self, names: StoredNames, full: bytes, thumbnail: bytes) -> StoredFile:
        """
        Persist the full image and its thumbnail.

        Neither file is ever overwritten. If the thumbnail cannot be written the
        full image written just before it is removed again.
        """
        if self._upload_root is None or self._thumbs_root is None:
            self.prepare()
        path = _contained_path(self._upload_root, names.filename)
        thumb_path = _contained_path(self._thumbs_root, names.thumb)

        _write_exclusive(path, full)
        try:
            _write_exclusive(thumb_path, thumbnail)
        except StorageError:
            path.unlink(missing_ok=True)
            raise
        logger.debug("Stored %s (%d bytes) and %s", names.filename, len(full), names.thumb)
        return StoredFile(
            filename=names.filename, thumb=names.thumb, path=path, thumb_path=thumb_path
        )

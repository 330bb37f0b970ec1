"""Shared Media/ directory for photos and files captured from the share surface."""

import logging
import mimetypes
import shutil
import uuid
from pathlib import Path

from models import BookmarkAsset
from shared_store import require_container

log = logging.getLogger(__name__)

MEDIA_DIRNAME = "Media"

# Uniform type identifiers for the file types we expect to see
_UTI_BY_EXT = {
    "jpg": "public.jpeg",
    "jpeg": "public.jpeg",
    "png": "public.png",
    "heic": "public.heic",
    "gif": "com.compuserve.gif",
    "mp4": "public.mpeg-4",
    "mov": "com.apple.quicktime-movie",
    "pdf": "com.adobe.pdf",
    "eml": "com.apple.mail.email",
    "txt": "public.plain-text",
    "html": "public.html",
}

_EXT_BY_UTI = {uti: ext for ext, uti in reversed(list(_UTI_BY_EXT.items()))}


def uti_for_extension(ext: str) -> str:
    ext = ext.lower().lstrip(".")
    if ext in _UTI_BY_EXT:
        return _UTI_BY_EXT[ext]
    mime, _ = mimetypes.guess_type(f"file.{ext}")
    if mime and mime.startswith("text/"):
        return "public.text"
    return "public.data"


def extension_for_uti(uti: str | None, default: str = "dat") -> str:
    return _EXT_BY_UTI.get(uti or "", default)


def image_extension(data: bytes) -> str:
    """Sniff common image signatures; JPEG is assumed otherwise."""
    if data.startswith(b"\x89PNG\r\n\x1a\n"):
        return "png"
    if data[:6] in (b"GIF87a", b"GIF89a"):
        return "gif"
    if data[4:12] in (b"ftypheic", b"ftypheix", b"ftypmif1"):
        return "heic"
    return "jpg"


class SharedMediaStore:
    """Files referenced by BookmarkAsset.relative_path."""

    def __init__(self, container: str | Path):
        self.container = require_container(container)

    @property
    def base_dir(self) -> Path:
        path = self.container / MEDIA_DIRNAME
        path.mkdir(parents=True, exist_ok=True)
        return path

    def absolute_path(self, relative_path: str) -> Path:
        path = (self.base_dir / relative_path).resolve()
        if self.base_dir.resolve() not in path.parents:
            raise ValueError(f"Asset path escapes media dir: {relative_path}")
        return path

    def copy_in(self, source: str | Path, preferred_filename: str | None = None, uti: str | None = None) -> BookmarkAsset:
        """Copy an external file into Media/; a taken name gets a random suffix."""
        source = Path(source)
        ext = source.suffix.lstrip(".") or "dat"
        stem = Path(preferred_filename).stem if preferred_filename else uuid.uuid4().hex.upper()
        dest = self.base_dir / f"{stem}.{ext}"
        if dest.exists():
            # Existing files may still be referenced by other bookmarks
            dest = self.base_dir / f"{stem}-{uuid.uuid4().hex[:8].upper()}.{ext}"
        shutil.copyfile(source, dest)
        log.info("Copied %s into shared media as %s", source.name, dest.name)
        return BookmarkAsset(
            relative_path=dest.name,
            uti=uti or uti_for_extension(ext),
            original_filename=source.name,
        )

    def write_data(self, data: bytes, ext: str = "dat", uti: str | None = None,
                   original_filename: str | None = None) -> BookmarkAsset:
        filename = f"{uuid.uuid4().hex.upper()}.{ext}"
        tmp = self.base_dir / f".{filename}.tmp"
        tmp.write_bytes(data)
        tmp.replace(self.base_dir / filename)
        return BookmarkAsset(
            relative_path=filename,
            uti=uti or uti_for_extension(ext),
            original_filename=original_filename or filename,
        )

    def save_image(self, data: bytes) -> BookmarkAsset:
        if not data:
            raise ValueError("Empty image data")
        return self.write_data(data, ext=image_extension(data))

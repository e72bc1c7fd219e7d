"""
Scan image storage.

Uploaded scans are written under one directory with UUID file names, so
two uploads never collide, and are referenced from import items by that
file name only.
"""

import io
import logging
import uuid
from pathlib import Path

from PIL import Image, UnidentifiedImageError

from tcgscan.config import ALLOWED_IMAGE_TYPES, MAX_FILE_SIZE_BYTES, settings
from tcgscan.models.failure import InvalidImageError

logger = logging.getLogger(__name__)

# Pillow format name -> MIME type
_FORMAT_MIME_TYPES = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "GIF": "image/gif",
    "WEBP": "image/webp",
}

_MIME_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
}


def detect_image_type(data: bytes) -> str:
    """
    MIME type of an image, read from its content rather than its name.

    Returns an empty string if Pillow cannot identify the data.
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.verify()
            return _FORMAT_MIME_TYPES.get(img.format or "", "")
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError):
        return ""


def validate_image(data: bytes, filename: str) -> str:
    """
    Check an uploaded scan and return its MIME type.

    Raises:
        InvalidImageError: If the file is empty, too large, or not a supported image
    """
    if not data:
        raise InvalidImageError(filename, "file is empty")
    if len(data) > MAX_FILE_SIZE_BYTES:
        raise InvalidImageError(
            filename, f"file too large (max {MAX_FILE_SIZE_BYTES // (1024 * 1024)}MB)"
        )

    mime_type = detect_image_type(data)
    if mime_type not in ALLOWED_IMAGE_TYPES:
        raise InvalidImageError(filename, "not a valid image format")
    return mime_type


class ImageStorage:
    """Flat directory of UUID-named scan images."""

    def __init__(self, base_dir: str | Path | None = None):
        self.base_dir = Path(base_dir or settings.import_images_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)

    @classmethod
    def from_settings(cls) -> "ImageStorage":
        return cls(settings.import_images_dir)

    def _resolve(self, name: str) -> Path:
        """Absolute path for a stored name; rejects anything outside base_dir."""
        if not name:
            raise ValueError("Empty image name")
        base = self.base_dir.resolve()
        path = (base / name).resolve()
        if path.parent != base:
            raise ValueError(f"Invalid image name: {name!r}")
        return path

    def save(self, data: bytes, filename: str = "", mime_type: str = "") -> str:
        """
        Write image data and return its stored name.

        The extension follows the MIME type when known, else the original
        file name, else ".jpg".
        """
        if not data:
            raise ValueError("Empty image data")

        extension = _MIME_EXTENSIONS.get(mime_type, "")
        if not extension:
            extension = Path(filename).suffix.lower() if filename else ""
        if extension not in _MIME_EXTENSIONS.values():
            extension = ".jpg"

        name = f"{uuid.uuid4()}{extension}"
        self._resolve(name).write_bytes(data)
        logger.debug("IMAGE_SAVED", extra={"image_path": name, "bytes": len(data)})
        return name

    def read(self, name: str) -> bytes:
        """
        Raises:
            FileNotFoundError: If the image does not exist
            ValueError: If the name escapes the storage directory
        """
        return self._resolve(name).read_bytes()

    def delete(self, name: str) -> None:
        """Remove an image. Missing files and empty names are ignored."""
        if not name:
            return
        self._resolve(name).unlink(missing_ok=True)

    def mime_type_for(self, name: str) -> str:
        suffix = Path(name).suffix.lower()
        for mime_type, extension in _MIME_EXTENSIONS.items():
            if extension == suffix:
                return mime_type
        return "image/jpeg"

"""Photo ingestion for store uploads.

Flow:
1. No upload -> nothing to do (the store keeps its current photo)
2. Reject anything whose declared MIME type is not image/* (before decoding)
3. Name the file <uuid4>.<mime subtype>; the client's filename is never used
4. Decode, resize to a fixed width (aspect ratio kept) and encode in memory,
   in a worker thread
5. Write to a temp file in UPLOADS_DIR and rename onto the final name

The caller only receives the filename once step 5 has completed, so a store
record can never reference a photo that was not written.

Images narrower than the target width are not upscaled; they are re-encoded
at their original size.

Known limitation: uuid4 name collisions are not detected.
"""

import asyncio
import contextlib
import io
import logging
import os
import re
import tempfile
from dataclasses import dataclass
from pathlib import Path
from uuid import uuid4

from PIL import Image, UnidentifiedImageError

from app.services.errors import StorageWriteError, UnsupportedMediaType

logger = logging.getLogger("uvicorn.error")

PHOTO_WIDTH = 800

_SUBTYPE_RE = re.compile(r"^[a-z0-9][a-z0-9.+-]*$")


@dataclass(frozen=True)
class UploadedPhoto:
    """Raw upload as received from the client."""

    data: bytes
    content_type: str


def resize_to_width(image: Image.Image, width: int) -> Image.Image:
    """Scale `image` down to `width`, computing height from the aspect ratio."""
    if image.width <= width:
        return image
    height = max(1, round(image.height * width / image.width))
    return image.resize((width, height), Image.Resampling.LANCZOS)


def _extension_for(content_type: str) -> str:
    """MIME subtype used as the file extension ("image/jpeg" -> "jpeg")."""
    mime = content_type.split(";", 1)[0].strip().lower()
    if not mime.startswith("image/"):
        raise UnsupportedMediaType(
            "That file type isn't allowed",
            detail={"content_type": content_type},
        )
    subtype = mime.split("/", 1)[1]
    if not _SUBTYPE_RE.match(subtype):
        raise UnsupportedMediaType(
            "That file type isn't allowed",
            detail={"content_type": content_type},
        )
    return subtype


def _save_format(extension: str, decoded_format: str | None) -> str | None:
    """Pillow format name for writing, preferring the declared subtype."""
    return Image.registered_extensions().get(f".{extension}") or decoded_format


def _encode(image: Image.Image, fmt: str, extension: str) -> bytes:
    """Encode `image` in memory; UnsupportedMediaType if `fmt` cannot hold it."""
    buf = io.BytesIO()
    try:
        image.save(buf, format=fmt)
    except (OSError, ValueError, KeyError) as e:
        raise UnsupportedMediaType(
            f"Image cannot be stored as image/{extension}",
            detail={"extension": extension, "mode": image.mode},
        ) from e
    return buf.getvalue()


class MediaIngestor:
    """Validates, resizes and stores uploaded store photos."""

    def __init__(self, uploads_dir: str | Path, width: int = PHOTO_WIDTH) -> None:
        self.uploads_dir = Path(uploads_dir)
        self.width = width

    def path_for(self, filename: str) -> Path:
        return self.uploads_dir / Path(filename).name

    async def ingest(self, upload: UploadedPhoto | None) -> str | None:
        """Store an uploaded photo.

        Args:
            upload: The upload, or None when the form had no file.

        Returns:
            Generated filename, or None if there was nothing to ingest.

        Raises:
            UnsupportedMediaType: Not an image (declared type or content).
            StorageWriteError: The file could not be written.
        """
        if upload is None or not upload.data:
            return None

        extension = _extension_for(upload.content_type)
        filename = f"{uuid4()}.{extension}"

        await asyncio.to_thread(self._process, upload.data, extension, filename)
        logger.info(f"Stored photo {filename} ({len(upload.data)} bytes in)")
        return filename

    def discard(self, filename: str) -> None:
        """Remove a stored photo whose record write failed."""
        try:
            self.path_for(filename).unlink(missing_ok=True)
            logger.info(f"Discarded orphaned photo {filename}")
        except OSError as e:
            logger.warning(f"Failed to discard photo {filename}: {e}")

    def _process(self, data: bytes, extension: str, filename: str) -> None:
        try:
            image = Image.open(io.BytesIO(data))
            image.load()
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as e:
            raise UnsupportedMediaType(
                "Upload could not be read as an image",
                detail={"extension": extension},
            ) from e

        fmt = _save_format(extension, image.format)
        if fmt is None:
            raise UnsupportedMediaType(
                f"Cannot store images of type image/{extension}",
                detail={"extension": extension},
            )

        resized = resize_to_width(image, self.width)
        if fmt == "JPEG" and resized.mode not in ("RGB", "L"):
            resized = resized.convert("RGB")

        encoded = _encode(resized, fmt, extension)

        try:
            self._atomic_write(encoded, self.path_for(filename))
        except OSError as e:
            raise StorageWriteError(
                "Could not save the photo, please try again",
                detail={"filename": filename},
            ) from e

    def _atomic_write(self, data: bytes, target: Path) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(prefix=".upload-", suffix=".tmp", dir=target.parent)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, target)
        except BaseException:
            with contextlib.suppress(FileNotFoundError):
                os.unlink(tmp_path)
            raise

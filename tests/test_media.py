import io
import os

import pytest
from PIL import Image

from app.services.errors import StorageWriteError, UnsupportedMediaType
from app.services.media import MediaIngestor, UploadedPhoto, resize_to_width


def _image_bytes(width: int, height: int, fmt: str) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), color=(200, 40, 40)).save(buf, format=fmt)
    return buf.getvalue()


@pytest.mark.asyncio
async def test_ingest_jpeg_resizes_to_width(media: MediaIngestor, uploads_dir):
    upload = UploadedPhoto(data=_image_bytes(1600, 1200, "JPEG"), content_type="image/jpeg")

    filename = await media.ingest(upload)

    assert filename is not None
    assert filename.endswith(".jpeg")
    path = uploads_dir / filename
    assert path.stat().st_size > 0
    with Image.open(path) as stored:
        assert stored.size == (800, 600)


@pytest.mark.asyncio
async def test_ingest_png_keeps_subtype_extension(media: MediaIngestor, uploads_dir):
    upload = UploadedPhoto(data=_image_bytes(1000, 500, "PNG"), content_type="image/png")

    filename = await media.ingest(upload)

    assert filename.endswith(".png")
    with Image.open(uploads_dir / filename) as stored:
        assert stored.format == "PNG"
        assert stored.size == (800, 400)


@pytest.mark.asyncio
async def test_ingest_does_not_upscale_small_images(media: MediaIngestor, uploads_dir):
    upload = UploadedPhoto(data=_image_bytes(320, 200, "PNG"), content_type="image/png")

    filename = await media.ingest(upload)

    with Image.open(uploads_dir / filename) as stored:
        assert stored.size == (320, 200)


@pytest.mark.asyncio
async def test_ingest_generates_fresh_names(media: MediaIngestor):
    upload = UploadedPhoto(data=_image_bytes(10, 10, "PNG"), content_type="image/png")
    assert await media.ingest(upload) != await media.ingest(upload)


@pytest.mark.asyncio
async def test_ingest_without_upload_is_a_no_op(media: MediaIngestor, uploads_dir):
    assert await media.ingest(None) is None
    assert await media.ingest(UploadedPhoto(data=b"", content_type="image/png")) is None
    assert not uploads_dir.exists()


@pytest.mark.asyncio
@pytest.mark.parametrize("content_type", ["text/plain", "application/pdf", "", "image/../x"])
async def test_ingest_rejects_non_images_without_writing(media: MediaIngestor, uploads_dir, content_type):
    upload = UploadedPhoto(data=_image_bytes(10, 10, "PNG"), content_type=content_type)

    with pytest.raises(UnsupportedMediaType):
        await media.ingest(upload)

    assert not uploads_dir.exists()


@pytest.mark.asyncio
async def test_ingest_rejects_undecodable_image(media: MediaIngestor, uploads_dir):
    upload = UploadedPhoto(data=b"definitely not a png", content_type="image/png")

    with pytest.raises(UnsupportedMediaType):
        await media.ingest(upload)

    assert not uploads_dir.exists()


@pytest.mark.asyncio
async def test_ingest_write_failure_leaves_no_files(
    media: MediaIngestor, uploads_dir, monkeypatch: pytest.MonkeyPatch
):
    def failing_replace(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr(os, "replace", failing_replace)
    upload = UploadedPhoto(data=_image_bytes(10, 10, "PNG"), content_type="image/png")

    with pytest.raises(StorageWriteError):
        await media.ingest(upload)

    assert list(uploads_dir.iterdir()) == []


@pytest.mark.asyncio
async def test_discard_removes_photo(media: MediaIngestor, uploads_dir):
    upload = UploadedPhoto(data=_image_bytes(10, 10, "PNG"), content_type="image/png")
    filename = await media.ingest(upload)

    media.discard(filename)
    media.discard(filename)

    assert not (uploads_dir / filename).exists()


def test_resize_to_width_keeps_aspect_ratio():
    resized = resize_to_width(Image.new("RGB", (1200, 300)), 800)
    assert resized.size == (800, 200)


@pytest.mark.asyncio
async def test_ingest_image_the_declared_format_cannot_hold(media: MediaIngestor, uploads_dir):
    buf = io.BytesIO()
    Image.new("CMYK", (10, 10)).save(buf, format="JPEG")
    upload = UploadedPhoto(data=buf.getvalue(), content_type="image/png")

    with pytest.raises(UnsupportedMediaType):
        await media.ingest(upload)

    assert not uploads_dir.exists()

import io

import pytest
from PIL import Image

from conftest import EXIF_MAKE, EXIF_ORIENTATION, encode, make_receipt_image
from receipt_scanner.components.image_processor import (
    StepOutcome,
    rotate_to_upright,
    strip_privacy_metadata,
    to_original,
    to_recognition_optimized,
    to_thumbnail,
    validate_image,
)
from receipt_scanner.exception import CorruptedImageError, InvalidFormatError, TooLargeError
from receipt_scanner.models import DerivativeRole


def _open(data):
    return Image.open(io.BytesIO(data))


# ---------------------------------------------------------------------
# validate_image
# ---------------------------------------------------------------------

def test_validate_accepts_jpeg(jpeg_bytes):
    meta = validate_image(jpeg_bytes)
    assert meta.format == "JPEG"
    assert (meta.width, meta.height) == (400, 600)
    assert meta.size_bytes == len(jpeg_bytes)


def test_validate_accepts_png(png_bytes):
    assert validate_image(png_bytes).format == "PNG"


def test_validate_rejects_oversized_before_decoding():
    """The size check must fire even when the bytes are not an image at all."""
    with pytest.raises(TooLargeError) as excinfo:
        validate_image(b"\x00" * 11, max_bytes=10)
    assert excinfo.value.kind == "too_large"


def test_validate_rejects_unsupported_format(gif_bytes):
    with pytest.raises(InvalidFormatError) as excinfo:
        validate_image(gif_bytes)
    assert "gif" in str(excinfo.value)


def test_validate_rejects_garbage():
    with pytest.raises(CorruptedImageError):
        validate_image(b"definitely not an image")


def test_validate_rejects_truncated_jpeg(jpeg_bytes):
    with pytest.raises(CorruptedImageError):
        validate_image(jpeg_bytes[: len(jpeg_bytes) // 3])


def test_validate_rejects_empty_buffer():
    with pytest.raises(CorruptedImageError):
        validate_image(b"")


# ---------------------------------------------------------------------
# Best-effort steps
# ---------------------------------------------------------------------

def test_rotate_applies_exif_orientation(rotated_jpeg_bytes):
    outcome = rotate_to_upright(rotated_jpeg_bytes)
    assert outcome.ok
    with _open(outcome.value) as img:
        assert img.size == (200, 400)
        assert img.getexif().get(EXIF_ORIENTATION) in (None, 1)


def test_rotate_is_noop_without_orientation(jpeg_bytes):
    outcome = rotate_to_upright(jpeg_bytes)
    assert outcome.ok
    assert outcome.value == jpeg_bytes


def test_rotate_failure_falls_back_to_input():
    data = b"garbage"
    outcome = rotate_to_upright(data)
    assert not outcome.ok
    assert outcome.unwrap_or(data) == data


def test_strip_removes_camera_tags_but_keeps_orientation(rotated_jpeg_bytes):
    with _open(rotated_jpeg_bytes) as img:
        assert img.getexif().get(EXIF_MAKE) == "TestCam"

    outcome = strip_privacy_metadata(rotated_jpeg_bytes)
    assert outcome.ok
    with _open(outcome.value) as img:
        exif = img.getexif()
        assert exif.get(EXIF_MAKE) is None
        assert exif.get(EXIF_ORIENTATION) == 6
        assert img.format == "JPEG"


def test_strip_keeps_png_format(png_bytes):
    outcome = strip_privacy_metadata(png_bytes)
    assert outcome.ok
    with _open(outcome.value) as img:
        assert img.format == "PNG"
        assert img.size == (400, 600)


def test_strip_failure_is_reported_not_raised():
    outcome = strip_privacy_metadata(b"garbage")
    assert not outcome.ok
    assert outcome.error is not None


def test_step_outcome_unwrap_or():
    assert StepOutcome.success(b"new").unwrap_or(b"old") == b"new"
    assert StepOutcome.failure(ValueError("x")).unwrap_or(b"old") == b"old"


# ---------------------------------------------------------------------
# Derivatives
# ---------------------------------------------------------------------

def test_thumbnail_fits_inside_bounds_preserving_aspect():
    data = encode(make_receipt_image(size=(1200, 600)), "PNG")
    outcome = to_thumbnail(data)
    assert outcome.ok
    thumb = outcome.value
    assert thumb.role == DerivativeRole.THUMBNAIL
    assert (thumb.width, thumb.height) == (300, 150)
    with _open(thumb.data) as img:
        assert img.format == "JPEG"
        assert img.size == (300, 150)


def test_thumbnail_never_enlarges():
    data = encode(make_receipt_image(size=(120, 80)), "JPEG")
    thumb = to_thumbnail(data).value
    assert (thumb.width, thumb.height) == (120, 80)


def test_thumbnail_failure_is_non_fatal():
    outcome = to_thumbnail(b"garbage")
    assert not outcome.ok


def test_recognition_optimized_is_grayscale_jpeg(png_bytes):
    enhanced = to_recognition_optimized(png_bytes)
    assert enhanced.role == DerivativeRole.ENHANCED
    assert enhanced.content_type == "image/jpeg"
    assert enhanced.extension == ".jpg"
    with _open(enhanced.data) as img:
        assert img.mode == "L"
        assert img.format == "JPEG"
        assert img.size == (400, 600)


def test_original_keeps_bytes_and_format(png_bytes):
    meta = validate_image(png_bytes)
    original = to_original(png_bytes, meta)
    assert original.data == png_bytes
    assert original.format == "PNG"
    assert original.extension == ".png"

import io

import pytest
from PIL import Image, ImageDraw


EXIF_ORIENTATION = 0x0112
EXIF_MAKE = 0x010F


def make_receipt_image(size=(400, 600), color="white"):
    """A light image with a few dark 'text' bars so contrast steps have something to work on."""
    image = Image.new("RGB", size, color)
    draw = ImageDraw.Draw(image)
    for row in range(40, size[1] - 40, 60):
        draw.rectangle([30, row, size[0] - 30, row + 12], fill="black")
    return image


def encode(image, fmt="JPEG", **kwargs):
    buf = io.BytesIO()
    image.save(buf, format=fmt, **kwargs)
    return buf.getvalue()


@pytest.fixture
def jpeg_bytes():
    return encode(make_receipt_image(), "JPEG", quality=90)


@pytest.fixture
def png_bytes():
    return encode(make_receipt_image(), "PNG")


@pytest.fixture
def gif_bytes():
    return encode(make_receipt_image().convert("P"), "GIF")


@pytest.fixture
def rotated_jpeg_bytes():
    """400x200 pixels tagged with orientation 6 (display rotated 90 degrees clockwise)."""
    exif = Image.Exif()
    exif[EXIF_ORIENTATION] = 6
    exif[EXIF_MAKE] = "TestCam"
    return encode(make_receipt_image(size=(400, 200)), "JPEG", quality=90, exif=exif.tobytes())


@pytest.fixture
def no_sleep():
    """Records requested waits instead of sleeping."""
    calls = []
    return calls.append, calls

import io
import sys
from dataclasses import dataclass
from typing import Generic, Iterable, Optional, TypeVar

from PIL import Image, ImageFilter, ImageOps, UnidentifiedImageError

from receipt_scanner.constants import MAX_IMAGE_BYTES, SUPPORTED_FORMATS
from receipt_scanner.exception import CorruptedImageError, CustomException, InvalidFormatError, TooLargeError
from receipt_scanner.logger import get_logger
from receipt_scanner.models import DerivativeRole, ImageDerivative, ImageMetadata

logger = get_logger(__name__)

EXIF_ORIENTATION_TAG = 0x0112

T = TypeVar("T")


@dataclass(frozen=True)
class StepOutcome(Generic[T]):
    """Result of a best-effort processing step. Call sites decide how to fall back."""
    ok: bool
    value: Optional[T] = None
    error: Optional[BaseException] = None

    @classmethod
    def success(cls, value: T) -> "StepOutcome[T]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: BaseException) -> "StepOutcome[T]":
        return cls(ok=False, error=error)

    def unwrap_or(self, fallback: T) -> T:
        return self.value if self.ok else fallback


def _open(data: bytes) -> Image.Image:
    return Image.open(io.BytesIO(data))


def _encode(image: Image.Image, fmt: str, **save_kwargs) -> bytes:
    buf = io.BytesIO()
    if fmt == "JPEG" and image.mode not in ("RGB", "L"):
        image = image.convert("RGB")
    image.save(buf, format=fmt, **save_kwargs)
    return buf.getvalue()


# ---------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------

def validate_image(
    data: bytes,
    max_bytes: int = MAX_IMAGE_BYTES,
    supported_formats: Iterable[str] = SUPPORTED_FORMATS,
) -> ImageMetadata:
    """
    Checks size, format and decodability of an uploaded buffer.

    The size ceiling is enforced before any decoding is attempted.

    Raises:
        TooLargeError: buffer exceeds `max_bytes`.
        CorruptedImageError: buffer cannot be decoded or has zero width/height.
        InvalidFormatError: decoded format is not in `supported_formats`.
    """
    size = len(data or b"")
    if size > max_bytes:
        logger.warning("Rejected upload of %d bytes (limit %d)", size, max_bytes)
        raise TooLargeError(
            f"File size too large. Maximum size is {max_bytes / 1024 / 1024:g}MB", sys
        )

    try:
        with _open(data) as img:
            fmt = (img.format or "").upper()
            width, height = img.size
            orientation = img.getexif().get(EXIF_ORIENTATION_TAG)
            img.load()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError, SyntaxError) as exc:
        logger.error("Image validation failed: %s", exc)
        raise CorruptedImageError("Invalid or corrupted image file", sys)

    allowed = {f.upper() for f in supported_formats}
    if fmt not in allowed:
        raise InvalidFormatError(
            f"Invalid file format '{fmt.lower() or 'unknown'}'. Supported formats: {', '.join(sorted(allowed))}",
            sys,
        )

    if width == 0 or height == 0:
        raise CorruptedImageError("Invalid image dimensions", sys)

    return ImageMetadata(format=fmt, width=width, height=height, size_bytes=size, orientation=orientation)


# ---------------------------------------------------------------------
# Best-effort steps (never fail the pipeline)
# ---------------------------------------------------------------------

def rotate_to_upright(data: bytes) -> StepOutcome[bytes]:
    """Applies the embedded EXIF orientation so the pixels are upright."""
    try:
        with _open(data) as img:
            fmt = img.format or "JPEG"
            orientation = img.getexif().get(EXIF_ORIENTATION_TAG, 1)
            if orientation in (None, 1):
                return StepOutcome.success(data)
            upright = ImageOps.exif_transpose(img)
            return StepOutcome.success(_encode(upright, fmt, quality=95) if fmt == "JPEG" else _encode(upright, fmt))
    except Exception as exc:
        logger.error("Auto-rotation failed: %s", exc)
        return StepOutcome.failure(exc)


def strip_privacy_metadata(data: bytes) -> StepOutcome[bytes]:
    """
    Re-encodes the image without embedded metadata (GPS, camera, comments, ICC).
    Only the orientation tag survives.
    """
    try:
        with _open(data) as img:
            fmt = img.format or "JPEG"
            orientation = img.getexif().get(EXIF_ORIENTATION_TAG)
            clean = Image.new(img.mode, img.size)
            clean.paste(img)
            if img.mode == "P" and img.getpalette():
                clean.putpalette(img.getpalette())

        save_kwargs = {}
        if fmt == "JPEG":
            save_kwargs["quality"] = 95
        if orientation:
            exif = Image.Exif()
            exif[EXIF_ORIENTATION_TAG] = orientation
            save_kwargs["exif"] = exif.tobytes()
        return StepOutcome.success(_encode(clean, fmt, **save_kwargs))
    except Exception as exc:
        logger.error("EXIF sanitization failed: %s", exc)
        return StepOutcome.failure(exc)


def to_thumbnail(data: bytes, max_width: int = 300, max_height: int = 300, quality: int = 80) -> StepOutcome[ImageDerivative]:
    """Aspect-preserving downscale to fit inside max_width x max_height. Never upscales."""
    try:
        with _open(data) as img:
            thumb = ImageOps.exif_transpose(img).convert("RGB")
        thumb.thumbnail((max_width, max_height), Image.Resampling.LANCZOS)
        return StepOutcome.success(ImageDerivative(
            role=DerivativeRole.THUMBNAIL,
            data=_encode(thumb, "JPEG", quality=quality),
            width=thumb.width,
            height=thumb.height,
            format="JPEG",
        ))
    except Exception as exc:
        logger.error("Thumbnail generation failed: %s", exc)
        return StepOutcome.failure(exc)


# ---------------------------------------------------------------------
# Derivatives
# ---------------------------------------------------------------------

def to_original(data: bytes, metadata: ImageMetadata) -> ImageDerivative:
    with _open(data) as img:
        width, height = img.size
    return ImageDerivative(
        role=DerivativeRole.ORIGINAL, data=data, width=width, height=height, format=metadata.format
    )


def to_recognition_optimized(data: bytes, quality: int = 95) -> ImageDerivative:
    """
    Grayscale, sharpened, contrast-normalized JPEG. This derivative feeds recognition.
    """
    try:
        with _open(data) as img:
            enhanced = ImageOps.exif_transpose(img)
            enhanced = ImageOps.grayscale(enhanced)
        enhanced = enhanced.filter(ImageFilter.UnsharpMask(radius=1, percent=150, threshold=2))
        enhanced = ImageOps.autocontrast(enhanced, cutoff=1)
        return ImageDerivative(
            role=DerivativeRole.ENHANCED,
            data=_encode(enhanced, "JPEG", quality=quality),
            width=enhanced.width,
            height=enhanced.height,
            format="JPEG",
        )
    except Exception as exc:
        logger.error("Image enhancement failed: %s", exc)
        raise CustomException(exc, sys)

from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class DerivativeRole(str, Enum):
    ORIGINAL = "original"
    THUMBNAIL = "thumbnail"
    ENHANCED = "enhanced"


class RawImage(BaseModel):
    data: bytes
    content_type: Optional[str] = None


class ImageMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    format: str = Field(..., description="Decoded format, upper case (JPEG, PNG, WEBP)")
    width: int
    height: int
    size_bytes: int
    orientation: Optional[int] = Field(None, description="EXIF orientation tag, when present")


class ImageDerivative(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: DerivativeRole
    data: bytes = Field(..., repr=False)
    width: int
    height: int
    format: str = "JPEG"

    @property
    def content_type(self) -> str:
        return f"image/{self.format.lower()}"

    @property
    def extension(self) -> str:
        return {"JPEG": ".jpg", "PNG": ".png", "WEBP": ".webp"}.get(self.format.upper(), ".bin")


class StoredAsset(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str
    url: str
    size_bytes: int

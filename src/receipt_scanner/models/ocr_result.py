from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field


class BoundingBox(BaseModel):
    model_config = ConfigDict(frozen=True)

    x0: float
    y0: float
    x1: float
    y1: float


class OCRLine(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str
    confidence: float = Field(..., ge=0, le=100)
    bbox: Optional[BoundingBox] = None


class OCRWord(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str
    confidence: float = Field(..., ge=0, le=100)
    bbox: Optional[BoundingBox] = None


class RecognitionResult(BaseModel):
    """
    Standard OCR output used across the system.
    Produced once per successful recognition attempt.
    """
    model_config = ConfigDict(frozen=True)

    text: str = Field(..., description="Whitespace-normalized OCR text")
    overall_confidence: float = Field(..., ge=0, le=100, description="Mean engine confidence, 0-100")
    lines: List[OCRLine] = Field(default_factory=list)
    words: List[OCRWord] = Field(default_factory=list)
    backend: str = Field(..., description="The OCR engine used (e.g., rapidocr, tesseract)")
    languages: List[str] = Field(default_factory=list)

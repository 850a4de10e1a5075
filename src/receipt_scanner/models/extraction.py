from enum import Enum
from typing import Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field

from receipt_scanner.models.ocr_result import OCRLine, OCRWord
from receipt_scanner.models.parsers import CategorizedItem
from receipt_scanner.models.receipt import ImageMetadata, StoredAsset
from receipt_scanner.models.store import ReceiptMetadata, StoreInfo


class PipelineState(str, Enum):
    PENDING = "pending"
    VALIDATING = "validating"
    NORMALIZING = "normalizing"
    STORING = "storing"
    RECOGNIZING = "recognizing"
    EXTRACTING = "extracting"
    COMPLETED = "completed"
    FAILED = "failed"


class PipelineOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    languages: List[str] = Field(default_factory=lambda: ["eng"])
    max_retries: int = Field(3, ge=1)
    retry_base_delay_ms: int = Field(1000, ge=0)


class ReceiptExtractionResult(BaseModel):
    """
    The pipeline's sole output. Constructed once per run and never mutated.
    """
    model_config = ConfigDict(frozen=True)

    ocr_text: str
    ocr_confidence: float
    lines: List[OCRLine] = Field(default_factory=list)
    words: List[OCRWord] = Field(default_factory=list)
    items: List[CategorizedItem] = Field(default_factory=list)
    store_info: StoreInfo = Field(default_factory=StoreInfo)
    receipt_info: ReceiptMetadata = Field(default_factory=ReceiptMetadata)
    calculated_total: float = 0.0
    item_count: int = 0
    assets: Dict[str, StoredAsset] = Field(default_factory=dict, description="Stored derivatives keyed by role")
    image: Optional[ImageMetadata] = None
    fingerprint: Optional[str] = Field(None, description="Perceptual hash of the upload")
    state: PipelineState = PipelineState.COMPLETED

import os
from functools import lru_cache
from typing import Dict, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field

from receipt_scanner.constants import (
    DEFAULT_CATEGORY_KEYWORDS,
    FALLBACK_CATEGORY,
    MAX_IMAGE_BYTES,
    SUPPORTED_FORMATS,
)
from receipt_scanner.models import CategoryTable

DEFAULT_CONFIG_PATH = "config.yaml"


def load_config_file(file_path: Optional[str] = None) -> dict:
    """
    Loads the configuration from the specified YAML file.

    Args:
        file_path (str): Path to the YAML configuration file. Falls back to
            $RECEIPT_SCANNER_CONFIG, then config.yaml in the working directory.

    Returns:
        dict: Parsed configuration as a dictionary (empty for an empty file).
    """
    file_path = file_path or os.getenv("RECEIPT_SCANNER_CONFIG") or DEFAULT_CONFIG_PATH
    with open(file_path, "r", encoding="utf-8") as file:
        return yaml.safe_load(file) or {}


class ThumbnailSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_width: int = 300
    max_height: int = 300
    quality: int = Field(80, ge=1, le=100)


class ImageSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_bytes: int = MAX_IMAGE_BYTES
    supported_formats: List[str] = Field(default_factory=lambda: list(SUPPORTED_FORMATS))
    thumbnail: ThumbnailSettings = Field(default_factory=ThumbnailSettings)
    enhanced_quality: int = Field(95, ge=1, le=100)


class OCRSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    backend: str = "rapidocr"
    languages: List[str] = Field(default_factory=lambda: ["eng"])
    max_retries: int = Field(3, ge=1)
    retry_base_delay_ms: int = Field(1000, ge=0)
    oem: int = 1
    psm: int = 3


class StorageSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    backend: str = "gcs"
    bucket_name: str = "receipt-scanner"
    artifacts_prefix: str = "receipts"
    local_root: str = "artifacts/receipts"
    download_timeout_s: float = 30.0
    presign_ttl_s: int = 3600


class PipelineRunSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_concurrent: int = Field(2, ge=1)


class PipelineSettings(BaseModel):
    """Immutable application settings, built once at startup."""
    model_config = ConfigDict(frozen=True)

    image: ImageSettings = Field(default_factory=ImageSettings)
    ocr: OCRSettings = Field(default_factory=OCRSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    pipeline: PipelineRunSettings = Field(default_factory=PipelineRunSettings)
    categories: Dict[str, dict] = Field(default_factory=lambda: dict(DEFAULT_CATEGORY_KEYWORDS))
    fallback_category: str = FALLBACK_CATEGORY

    def category_table(self) -> CategoryTable:
        return CategoryTable.from_mapping(self.categories, self.fallback_category)


def build_settings(raw: Optional[dict] = None) -> PipelineSettings:
    """Builds settings from a raw config dict, applying environment overrides."""
    raw = dict(raw or {})

    storage_cfg = dict(raw.get("storage", {}) or {})
    storage_cfg["bucket_name"] = (
        os.getenv("GCS_BUCKET_NAME") or storage_cfg.get("bucket_name") or storage_cfg.get("bucket")
        or StorageSettings().bucket_name
    )
    storage_cfg["artifacts_prefix"] = (
        os.getenv("GCS_ARTIFACTS_FOLDER") or storage_cfg.get("artifacts_prefix") or storage_cfg.get("prefix")
        or StorageSettings().artifacts_prefix
    )
    storage_cfg.pop("bucket", None)
    storage_cfg.pop("prefix", None)
    if os.getenv("RECEIPT_SCANNER_STORAGE_BACKEND"):
        storage_cfg["backend"] = os.environ["RECEIPT_SCANNER_STORAGE_BACKEND"]

    ocr_cfg = dict(raw.get("ocr", {}) or {})
    if os.getenv("RECEIPT_SCANNER_OCR_BACKEND"):
        ocr_cfg["backend"] = os.environ["RECEIPT_SCANNER_OCR_BACKEND"]

    categories_cfg = dict(raw.get("categories") or {})
    fallback = categories_cfg.get("fallback_category") or FALLBACK_CATEGORY
    table = categories_cfg.get("table")

    return PipelineSettings(
        image=ImageSettings(**(raw.get("image", {}) or {})),
        ocr=OCRSettings(**ocr_cfg),
        storage=StorageSettings(**storage_cfg),
        pipeline=PipelineRunSettings(**(raw.get("pipeline", {}) or {})),
        categories=table or dict(DEFAULT_CATEGORY_KEYWORDS),
        fallback_category=fallback,
    )


@lru_cache(maxsize=1)
def load_settings(file_path: Optional[str] = None) -> PipelineSettings:
    try:
        raw = load_config_file(file_path)
    except FileNotFoundError:
        raw = {}
    return build_settings(raw)

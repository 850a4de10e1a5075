"""
Receipt extraction pipeline.

validate -> normalize (rotate, strip metadata, thumbnail || enhanced)
-> store derivatives -> recognize (with retry) -> parse items -> classify
-> extract store/metadata -> total -> ReceiptExtractionResult

Nothing is persisted besides the stored image derivatives; the caller
owns the receipt record and its status.
"""

import os
import sys
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Dict, List, Optional

from receipt_scanner.agents.classifier import KeywordClassifier
from receipt_scanner.agents.metadata import extract_receipt_info, extract_store_info
from receipt_scanner.agents.parser import parse_items
from receipt_scanner.components.image_processor import (
    rotate_to_upright,
    strip_privacy_metadata,
    to_original,
    to_recognition_optimized,
    to_thumbnail,
    validate_image,
)
from receipt_scanner.components.ocr_handler import OCRHandler
from receipt_scanner.components.ocr_retry import extract_text_with_retry
from receipt_scanner.exception import CustomException
from receipt_scanner.logger import get_logger
from receipt_scanner.models import (
    CategorizedItem,
    DerivativeRole,
    ImageDerivative,
    ImageMetadata,
    PipelineOptions,
    PipelineState,
    RawImage,
    ReceiptExtractionResult,
    ReceiptMetadata,
    RecognitionResult,
    StoreInfo,
    StoredAsset,
)
from receipt_scanner.utils.artifacts_store import ArtifactStore, build_storage_key, create_artifact_store
from receipt_scanner.utils.image_fingerprint import get_image_fingerprint
from receipt_scanner.utils.load_config import PipelineSettings, load_settings

logger = get_logger(__name__)


class PipelineRun:
    """Tracks the state of one pipeline invocation. Owned by a single run, never shared."""

    def __init__(self, label: str):
        self.label = label
        self.state = PipelineState.PENDING

    def transition(self, state: PipelineState) -> None:
        logger.debug("[%s] %s -> %s", self.label, self.state.value, state.value)
        self.state = state


class ReceiptPipeline:
    def __init__(
        self,
        settings: Optional[PipelineSettings] = None,
        store: Optional[ArtifactStore] = None,
        ocr_handler: Optional[OCRHandler] = None,
        classifier: Optional[KeywordClassifier] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        self.settings = settings or load_settings()
        self.store = store or create_artifact_store(self.settings.storage)
        self.ocr_handler = ocr_handler or OCRHandler(
            backend=self.settings.ocr.backend,
            languages=self.settings.ocr.languages,
            oem=self.settings.ocr.oem,
            psm=self.settings.ocr.psm,
        )
        self.classifier = classifier or KeywordClassifier(self.settings.category_table())
        self._sleep = sleep
        self._executor: Optional[ThreadPoolExecutor] = None

    def default_options(self) -> PipelineOptions:
        return PipelineOptions(
            languages=list(self.settings.ocr.languages),
            max_retries=self.settings.ocr.max_retries,
            retry_base_delay_ms=self.settings.ocr.retry_base_delay_ms,
        )

    # ------------------------------------------------------------------
    def run(
        self,
        buffer: bytes,
        content_type_hint: Optional[str] = None,
        options: Optional[PipelineOptions] = None,
        owner: str = "anonymous",
        filename: str = "receipt",
    ) -> ReceiptExtractionResult:
        """
        Runs the full pipeline on an uploaded image buffer.

        Raises:
            InvalidFormatError, TooLargeError, CorruptedImageError: validation failed.
            StorageError: a derivative could not be stored.
            RecognitionFailedError: recognition failed on every attempt.
        """
        options = options or self.default_options()
        upload = RawImage(data=buffer or b"", content_type=content_type_hint)
        run = PipelineRun(label=f"{owner}/{filename}")
        logger.info("Starting receipt extraction for %s (%d bytes, hint=%s)",
                    run.label, len(upload.data), upload.content_type)

        try:
            run.transition(PipelineState.VALIDATING)
            metadata = validate_image(
                upload.data,
                max_bytes=self.settings.image.max_bytes,
                supported_formats=self.settings.image.supported_formats,
            )
            self._check_content_type(upload.content_type, metadata)
            fingerprint = self._fingerprint(upload.data)

            run.transition(PipelineState.NORMALIZING)
            derivatives = self._normalize(upload.data, metadata)

            run.transition(PipelineState.STORING)
            assets = self._store_derivatives(derivatives, owner, filename)

            run.transition(PipelineState.RECOGNIZING)
            enhanced = next(d for d in derivatives if d.role is DerivativeRole.ENHANCED)
            recognition = self._recognize(enhanced.data, options)

            run.transition(PipelineState.EXTRACTING)
            result = self._build_result(recognition, assets=assets, image=metadata, fingerprint=fingerprint)
        except CustomException as exc:
            run.transition(PipelineState.FAILED)
            logger.error("Receipt extraction failed for %s [%s]: %s", run.label, exc.kind, exc)
            raise
        except Exception as exc:
            run.transition(PipelineState.FAILED)
            logger.error("Receipt extraction failed for %s: %s", run.label, exc, exc_info=True)
            raise CustomException(exc, sys)

        run.transition(PipelineState.COMPLETED)
        logger.info("Receipt extraction completed for %s: %d item(s), total=%.2f",
                    run.label, result.item_count, result.calculated_total)
        return result

    def run_stored(self, key_or_url: str, options: Optional[PipelineOptions] = None) -> ReceiptExtractionResult:
        """
        Re-runs recognition onward for an already stored (enhanced) image.
        """
        options = options or self.default_options()
        run = PipelineRun(label=key_or_url)
        try:
            data = self.store.get(key_or_url, timeout=self.settings.storage.download_timeout_s)

            run.transition(PipelineState.VALIDATING)
            metadata = validate_image(
                data,
                max_bytes=self.settings.image.max_bytes,
                supported_formats=self.settings.image.supported_formats,
            )

            run.transition(PipelineState.RECOGNIZING)
            recognition = self._recognize(data, options)

            run.transition(PipelineState.EXTRACTING)
            result = self._build_result(recognition, image=metadata)
        except CustomException as exc:
            run.transition(PipelineState.FAILED)
            logger.error("Receipt extraction failed for %s [%s]: %s", run.label, exc.kind, exc)
            raise
        except Exception as exc:
            run.transition(PipelineState.FAILED)
            logger.error("Receipt extraction failed for %s: %s", run.label, exc, exc_info=True)
            raise CustomException(exc, sys)

        run.transition(PipelineState.COMPLETED)
        logger.info("Receipt extraction completed for %s: %d item(s)", run.label, result.item_count)
        return result

    def presign(self, asset: StoredAsset) -> str:
        """Time-limited retrieval URL for a stored derivative."""
        return self.store.presign(asset.key, ttl_seconds=self.settings.storage.presign_ttl_s)

    # ------------------------------------------------------------------
    def submit(self, buffer: bytes, content_type_hint: Optional[str] = None,
               options: Optional[PipelineOptions] = None, owner: str = "anonymous",
               filename: str = "receipt") -> "Future[ReceiptExtractionResult]":
        """
        Schedules `run` in the background and returns immediately.
        At most `pipeline.max_concurrent` runs are active at a time; the rest queue.
        """
        future = self._get_executor().submit(self.run, buffer, content_type_hint, options, owner, filename)
        future.add_done_callback(self._log_background_outcome)
        return future

    def shutdown(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None

    def _get_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self.settings.pipeline.max_concurrent,
                thread_name_prefix="receipt-pipeline",
            )
        return self._executor

    @staticmethod
    def _log_background_outcome(future: Future) -> None:
        if future.cancelled():
            logger.warning("Background receipt extraction was cancelled before it started")
            return
        exc = future.exception()
        if exc is not None:
            logger.error("Background receipt extraction failed: %s", exc)

    # ------------------------------------------------------------------
    def _check_content_type(self, hint: Optional[str], metadata: ImageMetadata) -> None:
        if not hint:
            return
        declared = hint.split("/")[-1].lower().replace("jpg", "jpeg")
        if declared != metadata.format.lower():
            logger.warning("Declared content type %s does not match decoded format %s; using decoded format",
                           hint, metadata.format)

    @staticmethod
    def _fingerprint(buffer: bytes) -> Optional[str]:
        try:
            return get_image_fingerprint(buffer)
        except Exception as exc:
            logger.error("Fingerprinting failed: %s", exc)
            return None

    def _normalize(self, buffer: bytes, metadata: ImageMetadata) -> List[ImageDerivative]:
        rotated = rotate_to_upright(buffer).unwrap_or(buffer)
        sanitized = strip_privacy_metadata(rotated).unwrap_or(rotated)

        thumb_cfg = self.settings.image.thumbnail
        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="receipt-derive") as pool:
            thumbnail_future = pool.submit(
                to_thumbnail, sanitized, thumb_cfg.max_width, thumb_cfg.max_height, thumb_cfg.quality
            )
            enhanced_future = pool.submit(to_recognition_optimized, sanitized, self.settings.image.enhanced_quality)
            derivatives = [to_original(sanitized, metadata)]
            thumbnail = thumbnail_future.result()
            enhanced = enhanced_future.result()

        if thumbnail.ok:
            derivatives.append(thumbnail.value)
        else:
            logger.warning("Continuing without thumbnail: %s", thumbnail.error)
        derivatives.append(enhanced)
        return derivatives

    def _store_derivatives(self, derivatives: List[ImageDerivative], owner: str, filename: str) -> Dict[str, StoredAsset]:
        stem = os.path.splitext(os.path.basename(filename or "receipt"))[0] or "receipt"
        assets = {}
        for derivative in derivatives:
            key = build_storage_key(owner, derivative.role.value, f"{stem}{derivative.extension}", derivative.data)
            assets[derivative.role.value] = self.store.put(derivative.data, key, content_type=derivative.content_type)
        return assets

    def _recognize(self, image_bytes: bytes, options: PipelineOptions) -> RecognitionResult:
        return extract_text_with_retry(
            self.ocr_handler.recognize,
            image_bytes,
            languages=options.languages,
            max_retries=options.max_retries,
            base_delay_ms=options.retry_base_delay_ms,
            sleep=self._sleep,
        )

    def _build_result(self, recognition: RecognitionResult, assets: Optional[Dict[str, StoredAsset]] = None,
                      image: Optional[ImageMetadata] = None, fingerprint: Optional[str] = None) -> ReceiptExtractionResult:
        text = recognition.text
        items: List[CategorizedItem] = self.classifier.classify_items(parse_items(text))

        try:
            store_info = extract_store_info(text)
        except Exception as exc:
            logger.error("Store extraction degraded to empty: %s", exc)
            store_info = StoreInfo()
        try:
            receipt_info = extract_receipt_info(text)
        except Exception as exc:
            logger.error("Receipt metadata extraction degraded to empty: %s", exc)
            receipt_info = ReceiptMetadata()

        calculated_total = round(sum(item.total_price for item in items), 2)

        return ReceiptExtractionResult(
            ocr_text=text,
            ocr_confidence=recognition.overall_confidence,
            lines=recognition.lines,
            words=recognition.words,
            items=items,
            store_info=store_info,
            receipt_info=receipt_info,
            calculated_total=calculated_total,
            item_count=len(items),
            assets=assets or {},
            image=image,
            fingerprint=fingerprint,
            state=PipelineState.COMPLETED,
        )


def run_receipt_extraction(buffer: bytes, content_type_hint: Optional[str] = None,
                           options: Optional[PipelineOptions] = None, **kwargs) -> ReceiptExtractionResult:
    """Convenience entry point using settings from config.yaml."""
    return ReceiptPipeline().run(buffer, content_type_hint, options, **kwargs)

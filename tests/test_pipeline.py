import pytest
from unittest.mock import MagicMock, patch

from receipt_scanner.components.image_processor import StepOutcome
from receipt_scanner.exception import (
    CorruptedImageError,
    CustomException,
    RecognitionFailedError,
    StorageError,
    TooLargeError,
    TransientRecognitionError,
)
from receipt_scanner.models import PipelineOptions, PipelineState, RecognitionResult, StoredAsset
from receipt_scanner.pipeline import ReceiptPipeline, run_receipt_extraction
from receipt_scanner.utils.artifacts_store import GCSArtifactStore, LocalArtifactStore
from receipt_scanner.utils.load_config import build_settings


def _recognition(text):
    return RecognitionResult(text=text, overall_confidence=88.5, backend="mock", languages=["eng"])


@pytest.fixture
def mock_ocr():
    ocr = MagicMock()
    ocr.recognize.return_value = _recognition("Apples 2.50\nBread 3.20\nTotal 5.70")
    return ocr


@pytest.fixture
def pipeline(tmp_path, mock_ocr, no_sleep):
    sleep, _ = no_sleep
    settings = build_settings({"storage": {"backend": "local", "local_root": str(tmp_path)}})
    pipe = ReceiptPipeline(
        settings=settings,
        store=LocalArtifactStore(str(tmp_path)),
        ocr_handler=mock_ocr,
        sleep=sleep,
    )
    yield pipe
    pipe.shutdown()


def _stored_files(root):
    return [p for p in root.rglob("*") if p.is_file()]


def test_simple_receipt_end_to_end(pipeline, mock_ocr, jpeg_bytes, tmp_path):
    result = pipeline.run(jpeg_bytes, "image/jpeg", owner="user-1", filename="receipt.jpg")

    assert result.state == PipelineState.COMPLETED
    assert [(i.name, i.total_price) for i in result.items] == [("Apples", 2.50), ("Bread", 3.20)]
    assert result.item_count == 2
    assert result.calculated_total == pytest.approx(5.70)
    assert result.ocr_confidence == 88.5
    assert result.items[1].category == "groceries"

    assert set(result.assets) == {"original", "thumbnail", "enhanced"}
    assert len(_stored_files(tmp_path)) == 3
    for role, asset in result.assets.items():
        assert asset.key.startswith("user-1/")
        assert f"/{role}/" in asset.key

    # Recognition runs on the enhanced derivative, not the upload.
    recognized_bytes = mock_ocr.recognize.call_args.args[0]
    assert recognized_bytes == (tmp_path / result.assets["enhanced"].key).read_bytes()
    assert result.image.format == "JPEG"
    assert result.fingerprint


def test_quantity_line_end_to_end(pipeline, mock_ocr, png_bytes):
    mock_ocr.recognize.return_value = _recognition("Item 2 @ 1.50 3.00")

    result = pipeline.run(png_bytes, "image/png")

    assert len(result.items) == 1
    item = result.items[0]
    assert (item.quantity, item.unit_price, item.total_price) == (2, 1.50, 3.00)
    assert result.assets["original"].key.endswith(".png")


def test_categories_end_to_end(pipeline, mock_ocr, jpeg_bytes):
    mock_ocr.recognize.return_value = _recognition("Apple 1.00\nXyzzy123 4.00")

    items = pipeline.run(jpeg_bytes).items

    assert items[0].category == "groceries"
    assert items[0].category_confidence > 0
    assert items[1].category == "miscellaneous"
    assert items[1].category_confidence == 0


def test_oversized_upload_fails_before_recognition(pipeline, mock_ocr, tmp_path):
    with pytest.raises(TooLargeError):
        pipeline.run(b"\xff" * (11 * 1024 * 1024), "image/jpeg")

    mock_ocr.recognize.assert_not_called()
    assert _stored_files(tmp_path) == []


def test_corrupted_upload(pipeline, mock_ocr):
    with pytest.raises(CorruptedImageError):
        pipeline.run(b"not an image", "image/jpeg")
    mock_ocr.recognize.assert_not_called()


def test_recognition_failure_after_retries(pipeline, mock_ocr, jpeg_bytes, no_sleep):
    mock_ocr.recognize.side_effect = TransientRecognitionError("engine busy")
    options = PipelineOptions(max_retries=3, retry_base_delay_ms=1000)

    with pytest.raises(RecognitionFailedError) as excinfo:
        pipeline.run(jpeg_bytes, options=options)

    assert excinfo.value.attempts == 3
    assert mock_ocr.recognize.call_count == 3


def test_languages_are_passed_to_recognition(pipeline, mock_ocr, jpeg_bytes):
    pipeline.run(jpeg_bytes, options=PipelineOptions(languages=["eng", "chi_sim"]))
    assert mock_ocr.recognize.call_args.args[1] == ["eng", "chi_sim"]


def test_thumbnail_failure_is_not_fatal(pipeline, jpeg_bytes):
    with patch("receipt_scanner.pipeline.to_thumbnail", return_value=StepOutcome.failure(ValueError("boom"))):
        result = pipeline.run(jpeg_bytes)

    assert set(result.assets) == {"original", "enhanced"}
    assert result.item_count == 2


def test_normalization_failures_fall_back_to_input(pipeline, jpeg_bytes):
    failure = StepOutcome.failure(OSError("cannot decode"))
    with patch("receipt_scanner.pipeline.rotate_to_upright", return_value=failure), \
         patch("receipt_scanner.pipeline.strip_privacy_metadata", return_value=failure):
        result = pipeline.run(jpeg_bytes)

    assert result.state == PipelineState.COMPLETED
    assert result.assets["original"].size_bytes == len(jpeg_bytes)


def test_run_stored_reprocesses_enhanced_image(pipeline, mock_ocr, jpeg_bytes):
    first = pipeline.run(jpeg_bytes)
    mock_ocr.recognize.return_value = _recognition("Milk 1.80")

    again = pipeline.run_stored(first.assets["enhanced"].key)

    assert [i.name for i in again.items] == ["Milk"]
    assert again.assets == {}
    assert again.image.format == "JPEG"


def test_submit_runs_in_background(pipeline, jpeg_bytes):
    futures = [pipeline.submit(jpeg_bytes, owner=f"user-{n}") for n in range(3)]
    results = [f.result(timeout=30) for f in futures]

    assert all(r.item_count == 2 for r in results)


def test_submit_surfaces_errors_through_future(pipeline):
    future = pipeline.submit(b"not an image")
    with pytest.raises(CorruptedImageError):
        future.result(timeout=30)


def test_presign_uses_configured_ttl(tmp_path, mock_ocr, jpeg_bytes):
    store = MagicMock()
    store.put.side_effect = lambda data, key, content_type=None: StoredAsset(
        key=key, url=f"gs://bucket/{key}", size_bytes=len(data)
    )
    store.presign.return_value = "https://signed.example/receipt"
    settings = build_settings({"storage": {"presign_ttl_s": 900}})
    pipe = ReceiptPipeline(settings=settings, store=store, ocr_handler=mock_ocr)

    result = pipe.run(jpeg_bytes)
    url = pipe.presign(result.assets["thumbnail"])

    assert url == "https://signed.example/receipt"
    store.presign.assert_called_once_with(result.assets["thumbnail"].key, ttl_seconds=900)


def test_run_receipt_extraction_uses_default_pipeline(jpeg_bytes):
    with patch("receipt_scanner.pipeline.ReceiptPipeline") as MockPipeline:
        run_receipt_extraction(jpeg_bytes, "image/jpeg", owner="user-9")

    MockPipeline.return_value.run.assert_called_once_with(jpeg_bytes, "image/jpeg", None, owner="user-9")


def test_run_stored_malformed_locator_is_typed_storage_error(mock_ocr):
    store = GCSArtifactStore("my-bucket", client=MagicMock())
    pipe = ReceiptPipeline(settings=build_settings({}), store=store, ocr_handler=mock_ocr)

    with pytest.raises(StorageError) as excinfo:
        pipe.run_stored("gs://bucket-only")

    assert excinfo.value.kind == "storage_error"
    mock_ocr.recognize.assert_not_called()


def test_run_stored_wraps_unexpected_errors(mock_ocr):
    store = MagicMock()
    store.get.side_effect = KeyError("cache miss")
    pipe = ReceiptPipeline(settings=build_settings({}), store=store, ocr_handler=mock_ocr)

    with pytest.raises(CustomException) as excinfo:
        pipe.run_stored("user/2024-03-05/enhanced/abc.jpg")

    assert isinstance(excinfo.value.cause, KeyError)
    mock_ocr.recognize.assert_not_called()

import json
from unittest.mock import patch

import main
from receipt_scanner.exception import TransientRecognitionError
from receipt_scanner.models import RecognitionResult


def _write_inputs(tmp_path, image_bytes):
    image = tmp_path / "receipt.jpg"
    image.write_bytes(image_bytes)
    config = tmp_path / "config.yaml"
    config.write_text("ocr:\n  retry_base_delay_ms: 0\n", encoding="utf-8")
    return image, config


def test_cli_prints_json_result(tmp_path, jpeg_bytes, capsys):
    image, config = _write_inputs(tmp_path, jpeg_bytes)
    with patch("receipt_scanner.pipeline.OCRHandler") as MockOCR:
        MockOCR.return_value.recognize.return_value = RecognitionResult(
            text="Apples 2.50\nBread 3.20\nTotal 5.70", overall_confidence=90.0, backend="mock"
        )
        code = main.main([str(image), "--config", str(config), "--store-root", str(tmp_path / "store")])

    assert code == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["item_count"] == 2
    assert payload["calculated_total"] == 5.7
    assert "lines" not in payload


def test_cli_reports_error_kind(tmp_path, jpeg_bytes, capsys):
    image, config = _write_inputs(tmp_path, jpeg_bytes)
    with patch("receipt_scanner.pipeline.OCRHandler") as MockOCR:
        MockOCR.return_value.recognize.side_effect = TransientRecognitionError("engine busy")
        code = main.main([str(image), "--config", str(config), "--store-root", str(tmp_path / "store")])

    assert code == 1
    assert "[recognition_failed]" in capsys.readouterr().err


def test_cli_missing_file(tmp_path, capsys):
    code = main.main([str(tmp_path / "absent.jpg"), "--store-root", str(tmp_path / "store")])
    assert code == 1
    assert "Cannot read" in capsys.readouterr().err

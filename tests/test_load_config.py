import pytest
from pydantic import ValidationError

from receipt_scanner.utils.load_config import build_settings, load_config_file, load_settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("GCS_BUCKET_NAME", "GCS_ARTIFACTS_FOLDER", "RECEIPT_SCANNER_STORAGE_BACKEND",
                 "RECEIPT_SCANNER_OCR_BACKEND", "RECEIPT_SCANNER_CONFIG"):
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    settings = build_settings({})
    assert settings.image.max_bytes == 10 * 1024 * 1024
    assert settings.image.thumbnail.max_width == 300
    assert settings.ocr.max_retries == 3
    assert settings.ocr.retry_base_delay_ms == 1000
    assert settings.storage.download_timeout_s == 30.0
    assert settings.storage.presign_ttl_s == 3600
    assert settings.fallback_category == "miscellaneous"
    assert "groceries" in settings.category_table().categories


def test_load_config_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "ocr:\n"
        "  backend: tesseract\n"
        "  languages: [eng, chi_sim]\n"
        "storage:\n"
        "  backend: local\n"
        "  local_root: /tmp/receipts\n"
        "pipeline:\n"
        "  max_concurrent: 4\n",
        encoding="utf-8",
    )
    settings = build_settings(load_config_file(str(path)))

    assert settings.ocr.backend == "tesseract"
    assert settings.ocr.languages == ["eng", "chi_sim"]
    assert settings.storage.backend == "local"
    assert settings.pipeline.max_concurrent == 4


def test_config_path_from_environment(tmp_path, monkeypatch):
    path = tmp_path / "alt.yaml"
    path.write_text("ocr:\n  max_retries: 5\n", encoding="utf-8")
    monkeypatch.setenv("RECEIPT_SCANNER_CONFIG", str(path))

    assert load_config_file() == {"ocr": {"max_retries": 5}}


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("GCS_BUCKET_NAME", "env-bucket")
    monkeypatch.setenv("RECEIPT_SCANNER_OCR_BACKEND", "tesseract")

    settings = build_settings({"storage": {"bucket_name": "file-bucket"}, "ocr": {"backend": "rapidocr"}})

    assert settings.storage.bucket_name == "env-bucket"
    assert settings.ocr.backend == "tesseract"


def test_category_table_override():
    raw = {
        "categories": {
            "fallback_category": "other",
            "table": {"pets": {"english": ["Kibble"], "localized": ["狗粮"]}},
        }
    }
    table = build_settings(raw).category_table()

    assert list(table.categories) == ["pets"]
    assert table.categories["pets"].english == ("kibble",)
    assert table.fallback_category == "other"


def test_settings_are_immutable():
    settings = build_settings({})
    with pytest.raises(ValidationError):
        settings.ocr.max_retries = 10


def test_invalid_values_are_rejected():
    with pytest.raises(ValidationError):
        build_settings({"ocr": {"max_retries": 0}})


def test_missing_config_file_falls_back_to_defaults(tmp_path):
    settings = load_settings(str(tmp_path / "absent.yaml"))
    assert settings.ocr.backend == "rapidocr"

import io
import re
import sys
import threading
from statistics import mean
from typing import List, Optional, Sequence, Tuple

import numpy as np
from PIL import Image
import pytesseract

from receipt_scanner.logger import get_logger
from receipt_scanner.exception import RecognitionConfigError, TransientRecognitionError
from receipt_scanner.models import BoundingBox, OCRLine, OCRWord, RecognitionResult

logger = get_logger(__name__)

EngineOutput = Tuple[List[OCRLine], List[OCRWord]]

# ---------------------------------------------------------------------
# RapidOCR backend
# ---------------------------------------------------------------------

_RAPIDOCR_ENGINE = None
_RAPIDOCR_LOCK = threading.Lock()

# The bundled RapidOCR detection/recognition models read Latin and Chinese script.
RAPIDOCR_LANGUAGES = {"eng", "chi_sim", "chi_tra"}


def _load_rapidocr_engine():
    try:
        from rapidocr_onnxruntime import RapidOCR
        return RapidOCR()
    except ImportError as e:
        logger.error("RapidOCR is not installed: %s", e)
        raise RecognitionConfigError(e, sys)
    except Exception as e:
        logger.error("Failed to load RapidOCR engine: %s", e)
        raise TransientRecognitionError(e, sys)


def _box_from_points(points) -> Optional[BoundingBox]:
    try:
        xs = [float(p[0]) for p in points]
        ys = [float(p[1]) for p in points]
        return BoundingBox(x0=min(xs), y0=min(ys), x1=max(xs), y1=max(ys))
    except (TypeError, ValueError, IndexError):
        return None


def rapidocr_backend(image: Image.Image, languages: Sequence[str], **_) -> EngineOutput:
    """
    Run RapidOCR on a decoded image.
    Engine output format: [ [box, text, score], ... ] with score in 0-1.
    """
    global _RAPIDOCR_ENGINE

    unsupported = [lang for lang in languages if lang not in RAPIDOCR_LANGUAGES]
    if unsupported:
        raise RecognitionConfigError(f"RapidOCR does not support language profile(s): {unsupported}", sys)

    if _RAPIDOCR_ENGINE is None:
        with _RAPIDOCR_LOCK:
            if _RAPIDOCR_ENGINE is None:
                _RAPIDOCR_ENGINE = _load_rapidocr_engine()

    try:
        # RapidOCR returns (result, elapsed_time)
        result, _ = _RAPIDOCR_ENGINE(np.array(image.convert("RGB")))
    except Exception as e:
        raise TransientRecognitionError(e, sys)

    lines: List[OCRLine] = []
    words: List[OCRWord] = []
    for entry in result or []:
        if not isinstance(entry, (list, tuple)) or len(entry) < 2:
            continue
        text = str(entry[1] or "").strip()
        if not text:
            continue
        score = float(entry[2]) if len(entry) > 2 and entry[2] is not None else 0.0
        confidence = max(0.0, min(score * 100.0, 100.0))
        bbox = _box_from_points(entry[0])
        lines.append(OCRLine(text=text, confidence=confidence, bbox=bbox))
        for token in text.split():
            words.append(OCRWord(text=token, confidence=confidence, bbox=bbox))
    return lines, words


# ---------------------------------------------------------------------
# Tesseract backend
# ---------------------------------------------------------------------

def tesseract_backend(image: Image.Image, languages: Sequence[str], oem: int = 1, psm: int = 3) -> EngineOutput:
    """Run Tesseract and regroup its word table into lines."""
    lang = "+".join(languages) or "eng"
    try:
        data = pytesseract.image_to_data(
            image,
            lang=lang,
            config=f"--oem {oem} --psm {psm}",
            output_type=pytesseract.Output.DICT,
        )
    except pytesseract.TesseractNotFoundError as e:
        raise RecognitionConfigError(e, sys)
    except pytesseract.TesseractError as e:
        if "Failed loading language" in str(e) or "loading language" in str(e).lower():
            raise RecognitionConfigError(e, sys)
        raise TransientRecognitionError(e, sys)
    except (RuntimeError, OSError) as e:
        raise TransientRecognitionError(e, sys)

    grouped = {}
    words: List[OCRWord] = []
    for i, raw_text in enumerate(data.get("text", [])):
        text = (raw_text or "").strip()
        conf = float(data["conf"][i])
        if not text or conf < 0:
            continue
        left, top = float(data["left"][i]), float(data["top"][i])
        bbox = BoundingBox(x0=left, y0=top, x1=left + float(data["width"][i]), y1=top + float(data["height"][i]))
        word = OCRWord(text=text, confidence=min(conf, 100.0), bbox=bbox)
        words.append(word)
        key = (data["block_num"][i], data["par_num"][i], data["line_num"][i])
        grouped.setdefault(key, []).append(word)

    lines: List[OCRLine] = []
    for line_words in grouped.values():
        boxes = [w.bbox for w in line_words if w.bbox]
        bbox = BoundingBox(
            x0=min(b.x0 for b in boxes), y0=min(b.y0 for b in boxes),
            x1=max(b.x1 for b in boxes), y1=max(b.y1 for b in boxes),
        ) if boxes else None
        lines.append(OCRLine(
            text=" ".join(w.text for w in line_words),
            confidence=mean(w.confidence for w in line_words),
            bbox=bbox,
        ))
    return lines, words


# ---------------------------------------------------------------------
# OCR Handler
# ---------------------------------------------------------------------

class OCRHandler:
    """
    Text Recognition Adapter: turns image bytes into a RecognitionResult.

    Usage:
        ocr = OCRHandler(backend="rapidocr", languages=["eng"])
        result = ocr.recognize(image_bytes)

    Errors are raised, not swallowed: retrying is the orchestrator's job.
    """

    def __init__(self, backend: str = "rapidocr", languages: Optional[Sequence[str]] = None,
                 oem: int = 1, psm: int = 3):
        self.backends = {
            "rapidocr": rapidocr_backend,
            "tesseract": tesseract_backend,
        }

        if backend not in self.backends:
            raise RecognitionConfigError(
                f"Unsupported OCR backend '{backend}'. Available: {list(self.backends.keys())}",
                sys
            )

        self.backend_name = backend
        self.ocr_fn = self.backends[backend]
        self.languages = list(languages or ["eng"])
        self.oem = oem
        self.psm = psm
        logger.info("OCRHandler initialized with backend='%s' languages=%s", backend, self.languages)

    def recognize(self, image_bytes: bytes, languages: Optional[Sequence[str]] = None) -> RecognitionResult:
        languages = list(languages or self.languages)
        if not image_bytes:
            raise TransientRecognitionError("Empty image buffer passed to OCR", sys)

        try:
            with Image.open(io.BytesIO(image_bytes)) as img:
                image = img.convert("RGB") if img.mode not in ("RGB", "L") else img.copy()
        except Exception as e:
            raise TransientRecognitionError(e, sys)

        if self.backend_name == "tesseract":
            lines, words = self.ocr_fn(image, languages, oem=self.oem, psm=self.psm)
        else:
            lines, words = self.ocr_fn(image, languages)

        text = self._clean_text("\n".join(line.text for line in lines))
        if not text:
            logger.warning("OCR successful but no text was detected (backend=%s)", self.backend_name)

        scores = [w.confidence for w in words] or [line.confidence for line in lines]
        overall = round(mean(scores), 2) if scores else 0.0

        return RecognitionResult(
            text=text,
            overall_confidence=overall,
            lines=lines,
            words=words,
            backend=self.backend_name,
            languages=languages,
        )

    def _clean_text(self, text: str) -> str:
        """
        Sanitize text: remove excessive whitespace and noise.
        """
        if not text:
            return ""

        # Normalize whitespace (tabs/spaces to single space)
        text = re.sub(r"[ \t]+", " ", text)

        # Normalize newlines (max 2 consecutive)
        text = re.sub(r"\n{3,}", "\n\n", text)

        # Final trim
        return text.strip()

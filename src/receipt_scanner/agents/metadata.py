"""
Store & receipt metadata extraction from raw OCR text.

Every field is best-effort: a missing field is returned as None and
nothing in this module raises on malformed text.
"""

import re
from datetime import date, datetime, time
from typing import Dict, List, Optional, Sequence

from receipt_scanner.constants import STORE_PATTERNS
from receipt_scanner.logger import get_logger
from receipt_scanner.models import ReceiptMetadata, StoreInfo

logger = get_logger(__name__)

NON_LATIN_SCRIPT = re.compile(r"[\u3040-\u30ff\u3400-\u4dbf\u4e00-\u9fff\uac00-\ud7af]")
POSTAL_CODE = re.compile(r"(?<!\d)\d{6}(?!\d)")
FALLBACK_SKIP = [
    re.compile(r"^\d{4}-\d{2}-\d{2}"),
    re.compile(r"^\d{1,2}[/-]\d{1,2}[/-]\d{2,4}"),
    re.compile(r"^\d{1,2}:\d{2}"),
    re.compile(r"receipt|invoice", re.IGNORECASE),
    re.compile(r"^[-=*_]+$"),
]

RECEIPT_NUMBER_PATTERNS = [
    re.compile(r"receipt\s*(?:no\.?|number)?\s*[#:]?\s*([A-Z0-9][A-Z0-9-]*)", re.IGNORECASE),
    re.compile(r"invoice\s*(?:no\.?|number)?\s*[#:]?\s*([A-Z0-9][A-Z0-9-]*)", re.IGNORECASE),
    re.compile(r"bill\s*(?:no\.?|number)?\s*[#:]?\s*([A-Z0-9][A-Z0-9-]*)", re.IGNORECASE),
    re.compile(r"(\d{6,})"),
    re.compile(r"#\s*([A-Z0-9][A-Z0-9-]*)", re.IGNORECASE),
]

# (pattern, field order) in priority order
DATE_PATTERNS = [
    (re.compile(r"(?<!\d)(\d{4}-\d{1,2}-\d{1,2})(?!\d)"), "iso"),
    (re.compile(r"(?<!\d)(\d{4}/\d{1,2}/\d{1,2})(?!\d)"), "iso"),
    (re.compile(r"(?<!\d)(\d{1,2}/\d{1,2}/\d{4})(?!\d)"), "slash"),
    (re.compile(r"(?<!\d)(\d{1,2}-\d{1,2}-\d{4})(?!\d)"), "dash"),
]
TIME_PATTERN = re.compile(r"(?<!\d)(\d{1,2}):(\d{2})(?::(\d{2}))?\s*([AaPp][Mm])?(?![\d])")


def _lines(text: Optional[str]) -> List[str]:
    return [line.strip() for line in (text or "").splitlines() if line.strip()]


def is_localized(line: str) -> bool:
    return bool(NON_LATIN_SCRIPT.search(line))


# -----------------------------------------------------------
# Store
# -----------------------------------------------------------

def _compile_store_patterns(patterns: Dict[str, Sequence[str]]) -> Dict[str, List[re.Pattern]]:
    return {
        lang: [re.compile(p, re.IGNORECASE) for p in pats]
        for lang, pats in patterns.items()
    }


_DEFAULT_STORE_PATTERNS = _compile_store_patterns(STORE_PATTERNS)


def extract_store_info(text: Optional[str], patterns: Optional[Dict[str, Sequence[str]]] = None) -> StoreInfo:
    """
    Merchant name (English and localized), and address.

    Known merchant patterns are tried against every line top to bottom.
    If none matches, the first line that is not a date, time or receipt
    banner becomes the name, filed as localized when it carries CJK script.
    The address is the first line holding a 6-digit postal code.
    """
    compiled = _compile_store_patterns(patterns) if patterns else _DEFAULT_STORE_PATTERNS
    name = name_localized = address = None

    try:
        lines = _lines(text)
        for line in lines:
            if name is None and any(p.search(line) for p in compiled.get("english", [])):
                name = line
            if name_localized is None and any(p.search(line) for p in compiled.get("localized", [])):
                name_localized = line
            if address is None and POSTAL_CODE.search(line):
                address = line
            if name and name_localized and address:
                break

        if name is None and name_localized is None:
            for line in lines:
                if any(p.search(line) for p in FALLBACK_SKIP):
                    continue
                if is_localized(line):
                    name_localized = line
                else:
                    name = line
                break
    except (re.error, TypeError) as exc:
        logger.error("Store extraction failed: %s", exc)

    return StoreInfo(name=name, name_localized=name_localized, address=address)


# -----------------------------------------------------------
# Receipt number, date and time
# -----------------------------------------------------------

def extract_receipt_number(text: Optional[str]) -> Optional[str]:
    for line in _lines(text):
        for pattern in RECEIPT_NUMBER_PATTERNS:
            match = pattern.search(line)
            if match:
                return match.group(1)
    return None


def _to_date(raw: str, style: str) -> Optional[date]:
    parts = [int(p) for p in re.split(r"[-/]", raw)]
    if style == "iso":
        year, month, day = parts
    else:
        # Month first; swap when the first field cannot be a month.
        month, day, year = parts
        if month > 12 and day <= 12:
            month, day = day, month
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _to_time(match) -> Optional[time]:
    hour, minute = int(match.group(1)), int(match.group(2))
    second = int(match.group(3)) if match.group(3) else 0
    meridiem = (match.group(4) or "").lower()
    if meridiem == "pm" and hour < 12:
        hour += 12
    elif meridiem == "am" and hour == 12:
        hour = 0
    try:
        return time(hour, minute, second)
    except ValueError:
        return None


def extract_purchase_datetime(text: Optional[str]):
    """First date found, combined with the first time of day found when there is one."""
    purchase_date: Optional[date] = None
    purchase_time: Optional[time] = None

    for line in _lines(text):
        if purchase_date is None:
            for pattern, style in DATE_PATTERNS:
                match = pattern.search(line)
                if match:
                    purchase_date = _to_date(match.group(1), style)
                    if purchase_date:
                        break
        if purchase_time is None:
            match = TIME_PATTERN.search(line)
            if match:
                purchase_time = _to_time(match)
        if purchase_date and purchase_time:
            break

    if purchase_date and purchase_time:
        return datetime.combine(purchase_date, purchase_time)
    return purchase_date


def extract_receipt_info(text: Optional[str]) -> ReceiptMetadata:
    try:
        return ReceiptMetadata(
            receipt_number=extract_receipt_number(text),
            purchase_datetime=extract_purchase_datetime(text),
        )
    except (ValueError, TypeError) as exc:
        logger.error("Receipt metadata extraction failed: %s", exc)
        return ReceiptMetadata()

import re
from typing import Callable, Iterable, List, Optional

from receipt_scanner.logger import get_logger
from receipt_scanner.models import ParsedItem

logger = get_logger(__name__)

# -----------------------------------------------------------
# Header / footer filter
# -----------------------------------------------------------
HEADER_FOOTER_PATTERNS = [
    re.compile(r"total|subtotal|gst|vat|tax|cash|card|credit", re.IGNORECASE),
    re.compile(r"receipt|invoice|bill", re.IGNORECASE),
    re.compile(r"thank|welcome|visit", re.IGNORECASE),
    re.compile(r"^\s*\d{4}-\d{2}-\d{2}"),           # bare date
    re.compile(r"^\s*\d{1,2}[/-]\d{1,2}[/-]\d{2,4}"),
    re.compile(r"^\s*\d{1,2}:\d{2}"),               # bare time
    re.compile(r"^\s*[A-Z0-9]{10,}\s*$", re.IGNORECASE),  # long codes
    re.compile(r"^\s*[-=*_]+\s*$"),                 # separator rules
]


def is_header_footer_line(line: str) -> bool:
    return any(pattern.search(line) for pattern in HEADER_FOOTER_PATTERNS)


def filter_header_footer(lines: Iterable[str]) -> List[str]:
    """Drops header/footer lines. Idempotent."""
    return [line for line in lines if not is_header_footer_line(line)]


# -----------------------------------------------------------
# Numbers
# -----------------------------------------------------------
_NUMBER = r"[\d][\d.,]*"


def parse_number(token: Optional[str]) -> Optional[float]:
    """
    Parses a receipt number token, stripping thousands separators.
    Returns None for anything that is not a finite number.
    """
    if token is None:
        return None
    cleaned = token.strip().replace(",", "")
    if not cleaned or cleaned.count(".") > 1:
        return None
    try:
        value = float(cleaned)
    except ValueError:
        return None
    if value != value or value in (float("inf"), float("-inf")):
        return None
    return value


# -----------------------------------------------------------
# Line grammars, tried in order; first match wins.
# -----------------------------------------------------------
LineGrammar = Callable[[str], Optional[ParsedItem]]

_QTY_AT_UNIT = re.compile(rf"^(?P<name>.+?)\s+(?P<qty>\d+(?:\.\d+)?)\s*@\s*(?P<unit>{_NUMBER})\s+(?P<total>{_NUMBER})$")
_QTY_PREFIX = re.compile(rf"^(?P<qty>\d+)\s*[xX]\s+(?P<name>.+?)\s+(?P<total>{_NUMBER})$")
_QTY_PCS = re.compile(rf"^(?P<name>.+?)\s+(?P<qty>\d+)\s*pcs?\s+(?P<total>{_NUMBER})$", re.IGNORECASE)
_BARE_PRICE = re.compile(rf"^(?P<name>.+?)\s+(?P<total>{_NUMBER})$")


def _build_item(name: str, quantity: Optional[float], unit_price: Optional[float],
                total_price: Optional[float]) -> Optional[ParsedItem]:
    name = name.strip()
    if not name or total_price is None or total_price <= 0:
        return None
    quantity = quantity if quantity and quantity > 0 else 1.0
    if unit_price is None or unit_price < 0:
        unit_price = total_price / quantity
    return ParsedItem(name=name, quantity=quantity, unit_price=unit_price, total_price=total_price)


def match_quantity_at_unit_price(line: str) -> Optional[ParsedItem]:
    """`Item Name   2 @ 1.50   3.00` -> literal total kept."""
    m = _QTY_AT_UNIT.match(line)
    if not m:
        return None
    quantity = parse_number(m.group("qty"))
    unit_price = parse_number(m.group("unit"))
    total_price = parse_number(m.group("total"))
    if total_price is None and quantity is not None and unit_price is not None:
        total_price = round(quantity * unit_price, 2)
    return _build_item(m.group("name"), quantity, unit_price, total_price)


def match_quantity_prefix(line: str) -> Optional[ParsedItem]:
    """`2x Item Name   5.75` -> the printed amount is the line total."""
    m = _QTY_PREFIX.match(line)
    if not m:
        return None
    quantity = parse_number(m.group("qty"))
    total_price = parse_number(m.group("total"))
    unit_price = total_price / quantity if total_price is not None and quantity else None
    return _build_item(m.group("name"), quantity, unit_price, total_price)


def match_quantity_pieces(line: str) -> Optional[ParsedItem]:
    """`Item Name 3pcs   3.20`"""
    m = _QTY_PCS.match(line)
    if not m:
        return None
    quantity = parse_number(m.group("qty"))
    total_price = parse_number(m.group("total"))
    unit_price = total_price / quantity if total_price is not None and quantity else None
    return _build_item(m.group("name"), quantity, unit_price, total_price)


def match_bare_price(line: str) -> Optional[ParsedItem]:
    """`Item Name   2.50` -> quantity 1, unit price equals total."""
    m = _BARE_PRICE.match(line)
    if not m:
        return None
    total_price = parse_number(m.group("total"))
    return _build_item(m.group("name"), 1.0, total_price, total_price)


LINE_GRAMMARS: List[LineGrammar] = [
    match_quantity_at_unit_price,
    match_quantity_prefix,
    match_quantity_pieces,
    match_bare_price,
]


def parse_line(line: str, grammars: Iterable[LineGrammar] = LINE_GRAMMARS) -> Optional[ParsedItem]:
    line = line.strip()
    for grammar in grammars:
        item = grammar(line)
        if item is not None:
            return item
    return None


def parse_items(text: Optional[str], grammars: Iterable[LineGrammar] = LINE_GRAMMARS) -> List[ParsedItem]:
    """
    Converts raw OCR text into purchase lines, in input order.

    Header/footer lines are filtered before any grammar is tried. Lines
    that match no grammar, or whose total is zero, negative or unparseable,
    are dropped silently (this also drops zero-cost promotional lines).
    Never raises; empty text yields an empty list.
    """
    if not text:
        return []

    grammars = list(grammars)
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    items: List[ParsedItem] = []
    for line in filter_header_footer(lines):
        try:
            item = parse_line(line, grammars)
        except ValueError as exc:
            logger.debug("Skipping unparseable line %r: %s", line, exc)
            continue
        if item is not None:
            items.append(item)

    logger.info("Parsed %d item(s) from %d line(s)", len(items), len(lines))
    return items

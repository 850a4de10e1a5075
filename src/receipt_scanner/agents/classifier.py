import re
from typing import Iterable, List, Optional, Tuple

from rapidfuzz.distance import Levenshtein

from receipt_scanner.constants import DEFAULT_CATEGORY_KEYWORDS, FALLBACK_CATEGORY
from receipt_scanner.logger import get_logger
from receipt_scanner.models import CategorizedItem, CategoryKeywords, CategoryTable, ParsedItem

logger = get_logger(__name__)

EXACT_MATCH_WEIGHT = 2
FUZZY_MATCH_WEIGHT = 1
FUZZY_THRESHOLD = 0.7
MIN_FUZZY_WORD_LENGTH = 4
SCORE_NORMALIZER = 10.0

DEFAULT_CATEGORY_TABLE = CategoryTable.from_mapping(DEFAULT_CATEGORY_KEYWORDS, FALLBACK_CATEGORY)


def similarity(a: str, b: str) -> float:
    """1 - levenshtein(a, b) / max(len(a), len(b)). Symmetric; two empty strings are identical."""
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return 1.0 - Levenshtein.distance(a, b) / longest


def _words(text: str) -> List[str]:
    return [w for w in re.split(r"\s+", text) if w]


class KeywordClassifier:
    """
    Assigns each item a spending category by keyword scoring:

    * +2 for every English keyword contained in the lowercased item name
    * +2 for every localized keyword contained in the localized name, if any
    * +1 for every (item word, keyword word) pair, both longer than 3
      characters, with similarity above 0.7

    The strictly highest score wins; ties keep the category listed first in
    the table. No positive score means the fallback category. Items are
    scored independently.
    """

    def __init__(self, table: CategoryTable = DEFAULT_CATEGORY_TABLE):
        self.table = table
        logger.info("KeywordClassifier initialized with %d categories.", len(table.categories))

    def score(self, keywords: CategoryKeywords, name: str, name_localized: Optional[str] = None) -> int:
        item_name = (name or "").lower()
        total = 0

        for keyword in keywords.english:
            if keyword and keyword in item_name:
                total += EXACT_MATCH_WEIGHT

        if name_localized:
            localized = name_localized.lower()
            for keyword in keywords.localized:
                if keyword and keyword in localized:
                    total += EXACT_MATCH_WEIGHT

        item_words = [w for w in _words(item_name) if len(w) >= MIN_FUZZY_WORD_LENGTH]
        if item_words:
            for keyword in keywords.english:
                for kw_word in _words(keyword):
                    if len(kw_word) < MIN_FUZZY_WORD_LENGTH:
                        continue
                    for item_word in item_words:
                        if similarity(item_word, kw_word) > FUZZY_THRESHOLD:
                            total += FUZZY_MATCH_WEIGHT
        return total

    def classify(self, name: str, name_localized: Optional[str] = None) -> Tuple[str, float]:
        """Returns (category, confidence) for a single item name."""
        best_category = self.table.fallback_category
        best_score = 0

        for category, keywords in self.table.categories.items():
            score = self.score(keywords, name, name_localized)
            if score > best_score:
                best_score = score
                best_category = category

        if best_score <= 0:
            logger.debug("No category matched '%s', using fallback.", name)
            return self.table.fallback_category, 0.0

        confidence = min(best_score / SCORE_NORMALIZER, 1.0)
        logger.debug("Classified '%s' -> %s (score=%d)", name, best_category, best_score)
        return best_category, confidence

    def classify_items(self, items: Iterable[ParsedItem]) -> List[CategorizedItem]:
        categorized = []
        for item in items:
            category, confidence = self.classify(item.name, item.name_localized)
            categorized.append(CategorizedItem(
                **item.model_dump(),
                category=category,
                category_confidence=confidence,
            ))
        return categorized


def suggest_categories(items: Iterable[ParsedItem], table: CategoryTable = DEFAULT_CATEGORY_TABLE) -> List[CategorizedItem]:
    return KeywordClassifier(table).classify_items(items)

from typing import Dict, Tuple
from pydantic import BaseModel, ConfigDict, Field


class CategoryKeywords(BaseModel):
    model_config = ConfigDict(frozen=True)

    english: Tuple[str, ...] = ()
    localized: Tuple[str, ...] = ()


class CategoryTable(BaseModel):
    """
    Immutable category -> keyword table. Built once at startup and shared
    read-only by every classifier instance. Iteration order is the tie-break order.
    """
    model_config = ConfigDict(frozen=True)

    categories: Dict[str, CategoryKeywords]
    fallback_category: str = Field("miscellaneous")

    @classmethod
    def from_mapping(cls, mapping: dict, fallback_category: str = "miscellaneous") -> "CategoryTable":
        categories = {}
        for name, keywords in mapping.items():
            keywords = keywords or {}
            categories[name] = CategoryKeywords(
                english=tuple(k.lower() for k in keywords.get("english", [])),
                localized=tuple(k.lower() for k in keywords.get("localized", keywords.get("chinese", []))),
            )
        return cls(categories=categories, fallback_category=fallback_category)

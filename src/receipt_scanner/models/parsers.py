from typing import Optional
from pydantic import BaseModel, Field


class ParsedItem(BaseModel):
    name: str = Field(..., description="Item name as printed on the receipt")
    name_localized: Optional[str] = Field(None, description="Item name in the localized language, if known")
    quantity: float = Field(1.0, gt=0)
    unit_price: float = Field(..., ge=0)
    total_price: float = Field(..., ge=0, description="Literal line total when printed, otherwise computed")


class CategorizedItem(ParsedItem):
    category: str
    category_confidence: float = Field(..., ge=0.0, le=1.0, description="Normalized keyword score, not a probability")

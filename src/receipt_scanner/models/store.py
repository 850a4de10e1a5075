from datetime import date, datetime
from typing import Optional, Union
from pydantic import BaseModel, Field


class StoreInfo(BaseModel):
    name: Optional[str] = None
    name_localized: Optional[str] = None
    address: Optional[str] = None


class ReceiptMetadata(BaseModel):
    receipt_number: Optional[str] = None
    purchase_datetime: Optional[Union[datetime, date]] = Field(
        None, description="Full timestamp when a time of day was found, otherwise the bare date"
    )

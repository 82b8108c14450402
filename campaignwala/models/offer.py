from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, condecimal

Commission = condecimal(ge=0, decimal_places=2)


class OfferCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    category: str = Field(min_length=1)
    description: Optional[str] = Field(default="", max_length=1000)
    commission1: Commission = Decimal("0")
    commission1Comment: Optional[str] = ""
    commission2: Commission = Decimal("0")
    commission2Comment: Optional[str] = ""
    link: Optional[str] = ""
    termsAndConditions: Optional[str] = Field(default="", max_length=5000)

class OfferUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    category: Optional[str] = None
    description: Optional[str] = Field(default=None, max_length=1000)
    commission1: Optional[Commission] = None
    commission1Comment: Optional[str] = None
    commission2: Optional[Commission] = None
    commission2Comment: Optional[str] = None
    link: Optional[str] = None
    termsAndConditions: Optional[str] = Field(default=None, max_length=5000)

class OfferReject(BaseModel):
    rejectionReason: Optional[str] = ""

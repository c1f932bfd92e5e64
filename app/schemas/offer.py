from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from decimal import Decimal
from typing import Optional


class OfferTemplateCreate(BaseModel):
    """Schema for creating an offer template."""

    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    price: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)


class OfferTemplateResponse(BaseModel):
    """Offer template with the number of segments linking to it."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str] = None
    price: Optional[Decimal] = None
    owner_id: int
    organization_id: Optional[int] = None
    segment_count: int = 0
    created_at: Optional[datetime] = None

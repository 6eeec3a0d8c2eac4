"""Plan schemas"""

from decimal import Decimal
from typing import List, Optional
from uuid import UUID
from pydantic import BaseModel


class PlanResponse(BaseModel):
    """A subscription tier; a null limit means unlimited"""
    id: UUID
    name: str
    display_name: str
    description: Optional[str]
    price_eur: Optional[Decimal]  # None means "Contact Us"
    price_interval: Optional[str]
    location_limit: Optional[int]
    minute_limit: Optional[int]
    features: List[str] = []
    stripe_price_id: Optional[str]
    sort_order: int

    class Config:
        from_attributes = True

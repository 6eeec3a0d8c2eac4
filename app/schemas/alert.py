"""Billing alert schemas"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID
from pydantic import BaseModel, Field


class AlertResponse(BaseModel):
    """Billing alert response"""
    id: UUID
    organization_id: UUID
    alert_type: str
    severity: str
    title: str
    message: str
    stripe_event_id: Optional[str]
    stripe_invoice_id: Optional[str]
    amount_due: Optional[Decimal]
    currency: Optional[str]
    metadata: Optional[dict] = Field(default=None, validation_alias="metadata_json")
    acknowledged_at: Optional[datetime]
    acknowledged_by: Optional[UUID]
    created_at: datetime

    class Config:
        from_attributes = True


class AlertListResponse(BaseModel):
    """Alert list response"""
    alerts: List[AlertResponse]
    total: int

"""Usage and limit schemas"""

from datetime import datetime
from typing import Optional
from uuid import UUID
from pydantic import BaseModel


class LimitCheckResponse(BaseModel):
    """Result of a limit check; null limit/remaining means unlimited"""
    allowed: bool
    status: str  # ok, warning, blocked
    reason: Optional[str] = None
    current: int
    limit: Optional[int]
    remaining: Optional[int]
    percent_used: float


class PlanSummary(BaseModel):
    name: str
    display_name: str
    location_limit: Optional[int]
    minute_limit: Optional[int]


class UsageResponse(BaseModel):
    """Plan, quotas and current usage for an organization"""
    organization_id: UUID
    subscription_status: Optional[str]
    voice_minutes_reset_at: Optional[datetime]
    plan: PlanSummary
    minutes: LimitCheckResponse
    locations: LimitCheckResponse

"""Pydantic schemas for request/response validation"""

from app.schemas.auth import Token, UserResponse
from app.schemas.plan import PlanResponse
from app.schemas.usage import LimitCheckResponse, PlanSummary, UsageResponse
from app.schemas.alert import AlertResponse, AlertListResponse

__all__ = [
    "Token",
    "UserResponse",
    "PlanResponse",
    "LimitCheckResponse",
    "PlanSummary",
    "UsageResponse",
    "AlertResponse",
    "AlertListResponse",
]

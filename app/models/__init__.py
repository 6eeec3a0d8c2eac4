"""Database models"""

from app.models.plan import PlanConfig
from app.models.organization import Organization, OrganizationMember, Restaurant, SubscriptionStatus
from app.models.user import User, UserRole
from app.models.call import CallLog, CallStatus
from app.models.alert import BillingAlert, AlertType, AlertSeverity

__all__ = [
    "PlanConfig",
    "Organization",
    "OrganizationMember",
    "Restaurant",
    "SubscriptionStatus",
    "User",
    "UserRole",
    "CallLog",
    "CallStatus",
    "BillingAlert",
    "AlertType",
    "AlertSeverity",
]

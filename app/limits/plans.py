"""Static plan registry: default tiers, fallback limits and upgrade path"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional

from app.limits.quota import Quota


@dataclass(frozen=True)
class PlanDefinition:
    name: str
    display_name: str
    description: str
    price_eur: Optional[Decimal]  # None means "Contact Us"
    location_limit: Quota
    minute_limit: Quota
    sort_order: int
    features: List[str] = field(default_factory=list)


DEFAULT_PLANS = (
    PlanDefinition(
        name="free",
        display_name="Free",
        description="Perfect for trying out VECTERAI",
        price_eur=Decimal("0"),
        location_limit=1,
        minute_limit=50,
        sort_order=0,
        features=["Chat widget", "Basic reservations", "50 voice minutes/month"],
    ),
    PlanDefinition(
        name="starter",
        display_name="Starter",
        description="For small restaurants getting started",
        price_eur=Decimal("29"),
        location_limit=1,
        minute_limit=200,
        sort_order=1,
        features=["Everything in Free", "200 voice minutes/month", "Email notifications", "Basic analytics"],
    ),
    PlanDefinition(
        name="professional",
        display_name="Professional",
        description="For growing restaurants",
        price_eur=Decimal("79"),
        location_limit=3,
        minute_limit=500,
        sort_order=2,
        features=[
            "Everything in Starter",
            "Up to 3 locations",
            "500 voice minutes/month",
            "SMS notifications",
            "Advanced analytics",
            "Priority support",
        ],
    ),
    PlanDefinition(
        name="enterprise",
        display_name="Enterprise",
        description="For restaurant groups",
        price_eur=None,
        location_limit=10,
        minute_limit=2000,
        sort_order=3,
        features=[
            "Everything in Professional",
            "Up to 10 locations",
            "2000 voice minutes/month",
            "Custom integrations",
            "Dedicated support",
            "SLA guarantee",
        ],
    ),
)

FREE_PLAN_NAME = "free"

# Applied when an organization has no plan row
FALLBACK_PLAN_NAME = "free"
FALLBACK_PLAN_DISPLAY_NAME = "Free"
FALLBACK_LOCATION_LIMIT = 1
FALLBACK_MINUTE_LIMIT = 100

PLAN_UPGRADE_PATH = {
    "free": "Starter",
    "starter": "Professional",
    "professional": "Enterprise",
    "enterprise": "Enterprise",
}


def next_plan_label(plan_name: str) -> str:
    """Display name of the tier to suggest in upgrade messages"""
    return PLAN_UPGRADE_PATH.get(plan_name, "a higher plan")


def get_default_plan(name: str) -> Optional[PlanDefinition]:
    for plan in DEFAULT_PLANS:
        if plan.name == name:
            return plan
    return None

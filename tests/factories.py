"""Row builders shared by the test modules"""

from uuid import uuid4

from app.models.organization import Organization, Restaurant
from app.models.plan import PlanConfig


async def create_plan(db, name="test", display_name="Test", minute_limit=100, location_limit=1, **kwargs):
    plan = PlanConfig(
        id=uuid4(),
        name=name,
        display_name=display_name,
        minute_limit=minute_limit,
        location_limit=location_limit,
        **kwargs,
    )
    db.add(plan)
    await db.commit()
    return plan


async def create_organization(db, plan=None, voice_minutes_used=0, **kwargs):
    organization = Organization(
        id=uuid4(),
        name=kwargs.pop("name", "Test Group"),
        plan_id=plan.id if plan else None,
        voice_minutes_used=voice_minutes_used,
        **kwargs,
    )
    db.add(organization)
    await db.commit()
    return organization


async def create_restaurant(db, organization=None, **kwargs):
    restaurant = Restaurant(
        id=uuid4(),
        organization_id=organization.id if organization else None,
        name=kwargs.pop("name", "Test Restaurant"),
        **kwargs,
    )
    db.add(restaurant)
    await db.commit()
    return restaurant

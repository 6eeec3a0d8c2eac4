#!/usr/bin/env python3
"""
Seed script to create default plans and a demo organization
"""

import asyncio
import uuid

from passlib.context import CryptContext

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


async def seed_demo_data():
    """Seed demo data for development"""
    from sqlalchemy import select

    from app.database import SessionLocal, engine, Base
    from app.limits.plans import DEFAULT_PLANS
    from app.models.organization import Organization, OrganizationMember, Restaurant
    from app.models.plan import PlanConfig
    from app.models.user import User, UserRole

    # Create tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with SessionLocal() as db:
        result = await db.execute(select(PlanConfig))
        existing_plans = {plan.name: plan for plan in result.scalars().all()}

        for definition in DEFAULT_PLANS:
            if definition.name in existing_plans:
                continue
            plan = PlanConfig(
                name=definition.name,
                display_name=definition.display_name,
                description=definition.description,
                price_eur=definition.price_eur,
                location_limit=definition.location_limit,
                minute_limit=definition.minute_limit,
                features=list(definition.features),
                sort_order=definition.sort_order,
            )
            db.add(plan)
            existing_plans[plan.name] = plan
            print(f"Created plan: {plan.display_name}")

        await db.flush()

        # Check if demo organization already exists
        result = await db.execute(
            select(Organization).where(Organization.name == "Mario's Restaurant Group")
        )
        if result.scalar_one_or_none():
            await db.commit()
            print("Demo data already exists. Skipping...")
            return

        print("Creating demo organization...")

        organization = Organization(
            id=uuid.uuid4(),
            name="Mario's Restaurant Group",
            plan_id=existing_plans["starter"].id,
            billing_email="billing@marios-kitchen.com",
            billing_phone="+15559876543",
        )
        db.add(organization)
        await db.flush()

        # Create super admin user
        admin_user = User(
            id=uuid.uuid4(),
            email="admin@vecterai.com",
            hashed_password=pwd_context.hash("admin123"),
            full_name="System Admin",
            role=UserRole.SUPER_ADMIN,
            is_active=True,
        )
        db.add(admin_user)

        # Create organization admin user
        owner = User(
            id=uuid.uuid4(),
            organization_id=organization.id,
            email="mario@marios-kitchen.com",
            hashed_password=pwd_context.hash("mario123"),
            full_name="Mario Rossi",
            role=UserRole.ORGANIZATION_ADMIN,
            is_active=True,
        )
        db.add(owner)
        await db.flush()

        organization.owner_id = owner.id
        db.add(OrganizationMember(organization_id=organization.id, user_id=owner.id, role="owner"))

        restaurant = Restaurant(
            organization_id=organization.id,
            name="Mario's Italian Kitchen",
            phone="+15551234567",
            address_json={"street": "123 Main Street", "city": "New York"},
            vapi_phone_number_id="demo-phone-number-id",  # Replace with the Vapi phone number id
            settings_json={
                "voice": {"primaryLanguage": "en"},
                "ai": {"personality": "friendly"},
                "hours": {
                    "monday": {"open": "11:00", "close": "22:00"},
                    "tuesday": {"open": "11:00", "close": "22:00"},
                    "wednesday": {"open": "11:00", "close": "22:00"},
                    "thursday": {"open": "11:00", "close": "22:00"},
                    "friday": {"open": "11:00", "close": "23:00"},
                    "saturday": {"open": "12:00", "close": "23:00"},
                    "sunday": {"closed": True},
                },
            },
        )
        db.add(restaurant)

        await db.commit()

        print(f"""
Demo data created successfully!

Organization: {organization.name}
  ID: {organization.id}
  Plan: Starter

Restaurant: {restaurant.name}
  ID: {restaurant.id}

Users:
  Super Admin:
    Email: admin@vecterai.com
    Password: admin123

  Organization Admin:
    Email: mario@marios-kitchen.com
    Password: mario123

Set vapi_phone_number_id on the restaurant to your actual Vapi number.
""")


if __name__ == "__main__":
    asyncio.run(seed_demo_data())

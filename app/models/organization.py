"""Organization-related models"""

import enum
import uuid
from datetime import datetime
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, JSON, Text, Uuid, UniqueConstraint
from sqlalchemy.orm import relationship

from app.database import Base


class SubscriptionStatus(str, enum.Enum):
    """Internal subscription states, driven by billing webhooks"""
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    TRIALING = "trialing"
    INCOMPLETE = "incomplete"


class Organization(Base):
    """Billing tenant owning one or more restaurants"""
    __tablename__ = "organizations"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_id = Column(Uuid, ForeignKey("users.id", use_alter=True, name="fk_organizations_owner_id"), nullable=True)
    name = Column(String(255), nullable=False)

    # Plan (NULL falls back to free-tier defaults)
    plan_id = Column(Uuid, ForeignKey("plan_configs.id"), nullable=True)

    # Stripe references
    stripe_customer_id = Column(String(100), unique=True)
    stripe_subscription_id = Column(String(100), unique=True)
    subscription_status = Column(String(20), default=SubscriptionStatus.ACTIVE.value)

    # Usage counter, reset to 0 at each billing-cycle boundary
    voice_minutes_used = Column(Integer, nullable=False, default=0)
    voice_minutes_reset_at = Column(DateTime, default=datetime.utcnow)

    # Billing contact
    billing_email = Column(String(255))
    billing_phone = Column(String(20))

    metadata_json = Column(JSON, default=dict)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    plan = relationship("PlanConfig", lazy="joined")
    owner = relationship("User", foreign_keys=[owner_id])
    restaurants = relationship("Restaurant", back_populates="organization")
    members = relationship("OrganizationMember", back_populates="organization")
    alerts = relationship("BillingAlert", back_populates="organization")


class OrganizationMember(Base):
    """Users who belong to an organization without owning it"""
    __tablename__ = "organization_members"
    __table_args__ = (UniqueConstraint("organization_id", "user_id"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id = Column(Uuid, ForeignKey("organizations.id"), nullable=False)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False)
    role = Column(String(20), default="viewer")  # owner, admin, manager, viewer
    joined_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)

    organization = relationship("Organization", back_populates="members")


class Restaurant(Base):
    """A location; counts against the plan's location limit"""
    __tablename__ = "restaurants"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id = Column(Uuid, ForeignKey("organizations.id"), nullable=True)
    name = Column(String(255), nullable=False)
    phone = Column(String(20))
    description = Column(Text)
    address_json = Column(JSON, default=dict)  # {"street": "...", "city": "..."}

    # Vapi phone number routed to this restaurant
    vapi_phone_number_id = Column(String(100), unique=True)

    # {"voice": {"primaryLanguage": "en"}, "ai": {"greeting": "..."}, "hours": {"monday": {...}}}
    settings_json = Column(JSON, default=dict)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    organization = relationship("Organization", back_populates="restaurants")
    calls = relationship("CallLog", back_populates="restaurant")

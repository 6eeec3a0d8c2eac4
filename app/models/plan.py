"""Plan configuration model"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, Integer, Boolean, DateTime, JSON, Numeric, Text, Uuid

from app.database import Base
from app.limits.quota import UNLIMITED, Quota


class PlanConfig(Base):
    """Subscription tier with voice-minute and location quotas.

    A NULL limit column means the plan has no cap for that resource.
    Rows are maintained by operators; the runtime only reads them.
    """
    __tablename__ = "plan_configs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(50), unique=True, nullable=False)  # free, starter, professional, enterprise
    display_name = Column(String(100), nullable=False)
    description = Column(Text)

    # Pricing (NULL price means "Contact Us")
    price_eur = Column(Numeric(10, 2))
    price_interval = Column(String(10), default="month")  # month, year

    # Quotas
    location_limit = Column(Integer, default=1)
    minute_limit = Column(Integer, default=100)  # Voice minutes per billing cycle

    features = Column(JSON, default=list)

    # Stripe references
    stripe_price_id = Column(String(100), unique=True)
    stripe_product_id = Column(String(100))

    is_active = Column(Boolean, default=True)
    sort_order = Column(Integer, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def minute_quota(self) -> Quota:
        return UNLIMITED if self.minute_limit is None else self.minute_limit

    @property
    def location_quota(self) -> Quota:
        return UNLIMITED if self.location_limit is None else self.location_limit

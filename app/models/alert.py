"""Usage and billing alert audit model"""

import enum
import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, ForeignKey, JSON, Text, Numeric, Uuid
from sqlalchemy.orm import relationship

from app.database import Base


class AlertType(str, enum.Enum):
    USAGE_WARNING = "usage_warning"
    USAGE_OVERAGE = "usage_overage"
    PAYMENT_FAILED = "payment_failed"
    SUBSCRIPTION_CANCELED = "subscription_canceled"
    SUBSCRIPTION_RENEWED = "subscription_renewed"
    VOICE_TRACKING_FAILED = "voice_tracking_failed"


class AlertSeverity(str, enum.Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class BillingAlert(Base):
    """Immutable record of a threshold crossing or billing event.

    Only the acknowledgment columns change after insert.
    """
    __tablename__ = "billing_alerts"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id = Column(Uuid, ForeignKey("organizations.id"), nullable=False)

    alert_type = Column(String(50), nullable=False)
    severity = Column(String(20), nullable=False, default=AlertSeverity.WARNING.value)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)

    # One row per logical event
    dedupe_key = Column(String(255), unique=True)

    # Stripe references
    stripe_event_id = Column(String(100))
    stripe_invoice_id = Column(String(100))
    amount_due = Column(Numeric(10, 2))
    currency = Column(String(10), default="eur")

    # {"resource": "voice_minutes", "current": 81, "limit": 100, "percent_used": 81.0, ...}
    metadata_json = Column(JSON, default=dict)

    acknowledged_at = Column(DateTime)
    acknowledged_by = Column(Uuid, ForeignKey("users.id"))

    created_at = Column(DateTime, default=datetime.utcnow)

    organization = relationship("Organization", back_populates="alerts")

"""Call log model"""

import enum
import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, ForeignKey, JSON, Text, Integer, Uuid
from sqlalchemy.orm import relationship

from app.database import Base


class CallStatus(str, enum.Enum):
    """Lifecycle of a voice-agent call"""
    ACTIVE = "active"
    RINGING = "ringing"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    FAILED = "failed"
    NO_ANSWER = "no-answer"


TERMINAL_CALL_STATUSES = frozenset(
    {CallStatus.COMPLETED.value, CallStatus.FAILED.value, CallStatus.NO_ANSWER.value}
)


class CallLog(Base):
    """One row per phone call handled by the voice agent"""
    __tablename__ = "call_logs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    call_id = Column(String(100), unique=True, nullable=False)  # Vapi call id
    assistant_id = Column(String(100))
    restaurant_id = Column(Uuid, ForeignKey("restaurants.id"), nullable=False)

    # Caller
    phone_number = Column(String(30))
    customer_name = Column(String(255))
    customer_phone = Column(String(30))
    direction = Column(String(20), default="inbound")  # inbound/outbound

    # Lifecycle
    status = Column(String(20), default=CallStatus.IN_PROGRESS.value)
    started_at = Column(DateTime, default=datetime.utcnow)
    ended_at = Column(DateTime)
    duration_seconds = Column(Integer)

    # Minutes charged to the organization; set once, guards against replayed reports
    billed_minutes = Column(Integer)

    # [{"role": "assistant|user", "content": "...", "timestamp": "..."}, ...]
    transcript_json = Column(JSON, default=list)
    summary = Column(Text)
    language_detected = Column(String(10))
    sentiment = Column(String(20))  # positive, neutral, negative
    intent = Column(String(100))
    recording_url = Column(String(500))

    # Outcome links
    reservation_id = Column(Uuid)
    order_id = Column(Uuid)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    restaurant = relationship("Restaurant", back_populates="calls")

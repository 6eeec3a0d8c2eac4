"""Call log persistence for voice-agent webhooks"""

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.call import TERMINAL_CALL_STATUSES, CallLog, CallStatus

logger = structlog.get_logger()

VAPI_STATUS_MAP = {
    "ringing": CallStatus.RINGING,
    "in-progress": CallStatus.ACTIVE,
    "active": CallStatus.ACTIVE,
    "ended": CallStatus.COMPLETED,
    "completed": CallStatus.COMPLETED,
    "failed": CallStatus.FAILED,
    "no-answer": CallStatus.NO_ANSWER,
}


@dataclass
class CallLogData:
    call_id: str
    restaurant_id: UUID
    assistant_id: Optional[str] = None
    phone_number: Optional[str] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    direction: str = "inbound"
    status: str = CallStatus.IN_PROGRESS.value
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    duration_seconds: Optional[int] = None
    transcript: Optional[List[Dict[str, Any]]] = None
    summary: Optional[str] = None
    sentiment: Optional[str] = None
    intent: Optional[str] = None
    recording_url: Optional[str] = None
    language_detected: Optional[str] = None


def map_vapi_status(vapi_status: Optional[str]) -> CallStatus:
    """Provider call status to ours; anything unrecognized is in-progress"""
    return VAPI_STATUS_MAP.get(vapi_status or "", CallStatus.IN_PROGRESS)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """ISO-8601 timestamp as naive UTC, matching how rows are stored"""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.warning("Unparseable call timestamp", value=value)
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def call_duration_seconds(started_at: Optional[datetime], ended_at: Optional[datetime]) -> Optional[int]:
    if not started_at or not ended_at:
        return None
    return max(0, math.floor((ended_at - started_at).total_seconds()))


def billable_minutes(duration_seconds: Optional[int]) -> int:
    """Partial minutes bill as whole minutes"""
    if not duration_seconds:
        return 0
    return math.ceil(duration_seconds / 60)


def _apply(call_log: CallLog, data: CallLogData) -> None:
    # A finished call never moves back to a live status
    if call_log.status in TERMINAL_CALL_STATUSES and data.status not in TERMINAL_CALL_STATUSES:
        logger.info(
            "Ignoring status regression for finished call",
            call_id=data.call_id,
            current=call_log.status,
            received=data.status,
        )
    else:
        call_log.status = data.status

    call_log.restaurant_id = data.restaurant_id
    call_log.direction = data.direction or call_log.direction

    for attr in (
        "assistant_id",
        "phone_number",
        "customer_name",
        "customer_phone",
        "started_at",
        "ended_at",
        "duration_seconds",
        "summary",
        "sentiment",
        "intent",
        "recording_url",
        "language_detected",
    ):
        value = getattr(data, attr)
        if value is not None:
            setattr(call_log, attr, value)

    if data.transcript is not None:
        call_log.transcript_json = data.transcript


async def save_call_log(db: AsyncSession, data: CallLogData) -> CallLog:
    """Insert or update the call log for ``data.call_id``"""
    result = await db.execute(select(CallLog).where(CallLog.call_id == data.call_id))
    call_log = result.scalar_one_or_none()

    if call_log is None:
        call_log = CallLog(
            call_id=data.call_id,
            restaurant_id=data.restaurant_id,
            started_at=data.started_at or datetime.utcnow(),
            transcript_json=[],
        )
        _apply(call_log, data)
        db.add(call_log)
        try:
            await db.commit()
        except IntegrityError:
            # Another delivery for the same call inserted first
            await db.rollback()
            result = await db.execute(select(CallLog).where(CallLog.call_id == data.call_id))
            call_log = result.scalar_one()
            _apply(call_log, data)
            await db.commit()
    else:
        _apply(call_log, data)
        await db.commit()

    await db.refresh(call_log)
    logger.debug("Call log saved", call_id=data.call_id, status=call_log.status)
    return call_log

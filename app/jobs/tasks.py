"""Background job tasks"""

import asyncio
import calendar
from datetime import datetime
from uuid import UUID
import structlog

from app.jobs.celery_app import celery_app
from app.logging_config import configure_logging

configure_logging()
logger = structlog.get_logger()

_loop = None


def run_async(coro):
    """Helper to run async functions in sync context.

    One loop per worker process, so pooled database connections stay on
    the loop that opened them.
    """
    global _loop
    if _loop is None or _loop.is_closed():
        _loop = asyncio.new_event_loop()
        asyncio.set_event_loop(_loop)
    return _loop.run_until_complete(coro)


def one_month_before(moment: datetime) -> datetime:
    """Same day and time one calendar month earlier, clamped to the month's end"""
    year, month = (moment.year, moment.month - 1) if moment.month > 1 else (moment.year - 1, 12)
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


@celery_app.task(
    name="deliver_alert_notifications",
    autoretry_for=(ConnectionError,),
    retry_backoff=True,
    max_retries=3,
)
def deliver_alert_notifications(alert_id: str):
    """Send email, Slack and SMS notifications for a recorded alert"""
    logger.info("Delivering alert notifications", alert_id=alert_id)

    async def _deliver():
        from app.database import SessionLocal
        from app.alerts.dispatcher import deliver_alert_notifications as deliver

        async with SessionLocal() as db:
            return await deliver(db, UUID(alert_id))

    return run_async(_deliver())


async def reset_voice_minutes(db, now: datetime) -> int:
    """Zero the minute counter of every organization whose cycle started a month or more before ``now``"""
    from app.models.organization import Organization
    from sqlalchemy import or_, update

    cutoff = one_month_before(now)
    result = await db.execute(
        update(Organization)
        .where(
            or_(
                Organization.voice_minutes_reset_at.is_(None),
                Organization.voice_minutes_reset_at <= cutoff,
            )
        )
        .values(voice_minutes_used=0, voice_minutes_reset_at=now)
        .execution_options(synchronize_session=False)
    )
    await db.commit()

    logger.info("Voice minutes reset", organizations=result.rowcount, cutoff=cutoff.isoformat())
    return result.rowcount


@celery_app.task(name="reset_monthly_voice_minutes")
def reset_monthly_voice_minutes():
    """Start a new billing cycle for organizations whose last reset is a month old"""
    logger.info("Resetting monthly voice minutes")

    async def _reset():
        from app.database import SessionLocal

        async with SessionLocal() as db:
            return await reset_voice_minutes(db, datetime.utcnow())

    return run_async(_reset())

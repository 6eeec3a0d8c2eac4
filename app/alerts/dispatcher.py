"""
Alert dispatch.

An alert is recorded in ``billing_alerts`` inside the request, then its
notifications (email, Slack, SMS) are handed to a Celery worker so the
webhook acknowledgment never waits on an outside provider. Nothing in
here raises to the caller: a usage increment or billing update that has
already been committed stays committed whatever happens to its alert.
"""

from datetime import datetime
from typing import Dict, Optional
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.alerts import notifiers, templates
from app.alerts.descriptors import AlertDescriptor
from app.config import settings
from app.models.alert import AlertSeverity, BillingAlert
from app.models.organization import Organization

logger = structlog.get_logger()


async def record_alert(db: AsyncSession, descriptor: AlertDescriptor) -> Optional[BillingAlert]:
    """Insert the audit row; returns None if the dedupe key was already used"""
    if descriptor.dedupe_key:
        existing = await db.execute(
            select(BillingAlert.id).where(BillingAlert.dedupe_key == descriptor.dedupe_key)
        )
        if existing.scalar_one_or_none() is not None:
            logger.info(
                "Duplicate alert skipped",
                organization_id=str(descriptor.organization_id),
                dedupe_key=descriptor.dedupe_key,
            )
            return None

    alert = BillingAlert(
        organization_id=descriptor.organization_id,
        alert_type=descriptor.alert_type.value,
        severity=descriptor.severity.value,
        title=descriptor.title,
        message=descriptor.message,
        dedupe_key=descriptor.dedupe_key,
        stripe_event_id=descriptor.stripe_event_id,
        stripe_invoice_id=descriptor.stripe_invoice_id,
        amount_due=descriptor.amount_due,
        currency=descriptor.currency or "eur",
        metadata_json=descriptor.metadata,
    )
    db.add(alert)

    try:
        await db.commit()
    except IntegrityError:
        # Lost a race against a concurrent delivery of the same event
        await db.rollback()
        logger.info(
            "Duplicate alert skipped",
            organization_id=str(descriptor.organization_id),
            dedupe_key=descriptor.dedupe_key,
        )
        return None

    await db.refresh(alert)
    return alert


def enqueue_alert_delivery(alert_id: UUID) -> None:
    """Queue the notification fan-out for a recorded alert"""
    try:
        from app.jobs.celery_app import celery_app

        celery_app.send_task("deliver_alert_notifications", args=[str(alert_id)])
    except Exception as e:
        logger.error("Failed to enqueue alert delivery", alert_id=str(alert_id), error=str(e))


async def dispatch_alert(db: AsyncSession, descriptor: AlertDescriptor) -> Optional[BillingAlert]:
    """Record an alert and schedule its notifications. Never raises."""
    logger.info(
        "Alert triggered",
        organization_id=str(descriptor.organization_id),
        alert_type=descriptor.alert_type.value,
        severity=descriptor.severity.value,
    )

    try:
        alert = await record_alert(db, descriptor)
    except Exception as e:
        logger.error(
            "Failed to store alert",
            organization_id=str(descriptor.organization_id),
            alert_type=descriptor.alert_type.value,
            error=str(e),
        )
        try:
            await db.rollback()
        except Exception:
            logger.exception("Rollback after failed alert insert also failed")
        return None

    if alert is None:
        return None

    enqueue_alert_delivery(alert.id)
    return alert


def _contact_email(organization: Organization) -> Optional[str]:
    if organization.billing_email:
        return organization.billing_email
    if organization.owner is not None:
        return organization.owner.email
    return None


async def deliver_alert_notifications(db: AsyncSession, alert_id: UUID) -> Dict[str, bool]:
    """Send email, Slack and SMS for one alert, each independently.

    Returns which transports were attempted and whether they succeeded.
    """
    result = await db.execute(
        select(BillingAlert)
        .where(BillingAlert.id == alert_id)
        .options(selectinload(BillingAlert.organization).selectinload(Organization.owner))
    )
    alert = result.scalar_one_or_none()

    if not alert:
        logger.warning("Alert not found for delivery", alert_id=str(alert_id))
        return {}

    organization = alert.organization
    organization_name = organization.name if organization else "Unknown Organization"
    outcomes: Dict[str, bool] = {}

    email = _contact_email(organization) if organization else None
    if email and settings.email_configured:
        subject, html = templates.render_email(alert, organization_name)
        try:
            outcomes["email"] = await notifiers.send_email(email, subject, html)
        except Exception as e:
            logger.error("Alert email transport crashed", alert_id=str(alert.id), error=str(e))
            outcomes["email"] = False

    if settings.slack_alerts_webhook:
        try:
            outcomes["slack"] = await notifiers.post_slack(
                templates.slack_payload(alert, organization_name)
            )
        except Exception as e:
            logger.error("Alert Slack transport crashed", alert_id=str(alert.id), error=str(e))
            outcomes["slack"] = False

    phone = organization.billing_phone if organization else None
    if alert.severity == AlertSeverity.ERROR.value and phone and settings.sms_configured:
        try:
            outcomes["sms"] = notifiers.send_sms(phone, templates.sms_body(alert, organization_name))
        except Exception as e:
            logger.error("Alert SMS transport crashed", alert_id=str(alert.id), error=str(e))
            outcomes["sms"] = False

    logger.info(
        "Alert notifications delivered",
        alert_id=str(alert.id),
        organization_id=str(alert.organization_id),
        outcomes=outcomes,
        delivered_at=datetime.utcnow().isoformat(),
    )
    return outcomes

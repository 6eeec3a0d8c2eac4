"""Organization usage, limit and alert endpoints"""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.limits import gatekeeper
from app.limits.plans import FALLBACK_PLAN_DISPLAY_NAME, FALLBACK_PLAN_NAME
from app.limits.quota import quota_to_int
from app.models.alert import BillingAlert
from app.models.organization import Organization
from app.models.user import User, UserRole
from app.schemas.alert import AlertResponse, AlertListResponse
from app.schemas.usage import LimitCheckResponse, PlanSummary, UsageResponse
from app.api.auth import get_current_active_user, require_role, verify_organization_access

router = APIRouter()


async def _get_organization(db: AsyncSession, organization_id: UUID) -> Organization:
    result = await db.execute(
        select(Organization)
        .where(Organization.id == organization_id)
        .execution_options(populate_existing=True)
    )
    organization = result.unique().scalar_one_or_none()
    if not organization:
        raise HTTPException(status_code=404, detail="Organization not found")
    return organization


@router.get("/usage", response_model=UsageResponse)
async def get_usage(
    organization_id: UUID,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    """Current plan, quotas and usage"""
    await verify_organization_access(organization_id, current_user, db)
    organization = await _get_organization(db, organization_id)

    limits = await gatekeeper.get_organization_limits(db, organization_id)
    minutes = await gatekeeper.check_minute_limit(db, organization_id)
    locations = await gatekeeper.check_location_limit(db, organization_id)

    return UsageResponse(
        organization_id=organization.id,
        subscription_status=organization.subscription_status,
        voice_minutes_reset_at=organization.voice_minutes_reset_at,
        plan=PlanSummary(
            name=limits.plan_name if limits else FALLBACK_PLAN_NAME,
            display_name=limits.plan_display_name if limits else FALLBACK_PLAN_DISPLAY_NAME,
            location_limit=quota_to_int(limits.location_limit) if limits else None,
            minute_limit=quota_to_int(limits.minute_limit) if limits else None,
        ),
        minutes=LimitCheckResponse(**minutes.to_dict()),
        locations=LimitCheckResponse(**locations.to_dict()),
    )


@router.get("/usage/minutes/check", response_model=LimitCheckResponse)
async def check_minutes(
    organization_id: UUID,
    minutes: int = Query(1, ge=0),
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    """Pre-flight check: can the organization use ``minutes`` more voice minutes?"""
    await verify_organization_access(organization_id, current_user, db)
    check = await gatekeeper.can_use_minutes(db, organization_id, minutes)
    return LimitCheckResponse(**check.to_dict())


@router.get("/usage/locations/check", response_model=LimitCheckResponse)
async def check_locations(
    organization_id: UUID,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    """Can the organization add another location?"""
    await verify_organization_access(organization_id, current_user, db)
    check = await gatekeeper.check_location_limit(db, organization_id)
    return LimitCheckResponse(**check.to_dict())


@router.get("/alerts", response_model=AlertListResponse)
async def list_alerts(
    organization_id: UUID,
    unacknowledged_only: bool = False,
    limit: int = Query(50, ge=1, le=200),
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    """Billing and usage alerts, newest first"""
    await verify_organization_access(organization_id, current_user, db)

    query = select(BillingAlert).where(BillingAlert.organization_id == organization_id)
    count_query = select(func.count(BillingAlert.id)).where(BillingAlert.organization_id == organization_id)

    if unacknowledged_only:
        query = query.where(BillingAlert.acknowledged_at.is_(None))
        count_query = count_query.where(BillingAlert.acknowledged_at.is_(None))

    total_result = await db.execute(count_query)
    total = total_result.scalar()

    result = await db.execute(query.order_by(BillingAlert.created_at.desc()).limit(limit))
    alerts = result.scalars().all()

    return AlertListResponse(alerts=alerts, total=total)


@router.post("/alerts/{alert_id}/acknowledge", response_model=AlertResponse)
async def acknowledge_alert(
    organization_id: UUID,
    alert_id: UUID,
    current_user: User = Depends(require_role(UserRole.ORGANIZATION_ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    """Mark an alert as seen; acknowledging twice keeps the first acknowledgment"""
    await verify_organization_access(organization_id, current_user, db)

    result = await db.execute(
        select(BillingAlert).where(
            BillingAlert.id == alert_id,
            BillingAlert.organization_id == organization_id,
        )
    )
    alert = result.scalar_one_or_none()

    if not alert:
        raise HTTPException(status_code=404, detail="Alert not found")

    if alert.acknowledged_at is None:
        alert.acknowledged_at = datetime.utcnow()
        alert.acknowledged_by = current_user.id
        await db.commit()
        await db.refresh(alert)

    return alert

"""
Plan limit gatekeeper.

Reads an organization's quotas and usage, answers "may this organization
do X" questions, and records consumed voice minutes.

Voice minutes are added with a single ``UPDATE ... RETURNING`` so
concurrent call reports for one organization never lose an increment.
The increment is never refused: blocking only affects whether new calls
are accepted, so already consumed minutes are always recorded.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional
from uuid import UUID

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.alerts.descriptors import UsageAlert, UsageAlertKind, UsageResource
from app.alerts.dispatcher import dispatch_alert
from app.limits.evaluator import (
    BLOCKED_THRESHOLD_PERCENT,
    WARNING_THRESHOLD_PERCENT,
    LimitStatus,
    classify,
    percent_of,
    round_percent,
    status_for_percent,
)
from app.limits.plans import (
    FALLBACK_LOCATION_LIMIT,
    FALLBACK_MINUTE_LIMIT,
    FALLBACK_PLAN_DISPLAY_NAME,
    FALLBACK_PLAN_NAME,
    next_plan_label,
)
from app.limits.quota import UNLIMITED, Quota, quota_to_int
from app.models.call import CallLog
from app.models.organization import Organization, OrganizationMember, Restaurant
from app.models.plan import PlanConfig
from app.models.user import User

logger = structlog.get_logger()

UNVERIFIABLE_REASON = "Unable to verify organization limits"


@dataclass(frozen=True)
class OrganizationLimits:
    plan_name: str
    plan_display_name: str
    location_limit: Quota
    minute_limit: Quota
    current_locations: int
    current_minutes: int


@dataclass(frozen=True)
class LimitCheck:
    """Answer to a limit question, shaped for API responses"""
    allowed: bool
    status: LimitStatus
    current: int
    limit: Quota
    remaining: Quota
    percent_used: float
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "allowed": self.allowed,
            "status": self.status.value,
            "reason": self.reason,
            "current": self.current,
            "limit": quota_to_int(self.limit),
            "remaining": quota_to_int(self.remaining),
            "percent_used": self.percent_used,
        }


@dataclass(frozen=True)
class UsageIncrementResult:
    success: bool
    status: Optional[LimitStatus] = None
    alert: Optional[UsageAlert] = None
    duplicate: bool = False
    new_total: Optional[int] = None


def _unverifiable() -> LimitCheck:
    return LimitCheck(
        allowed=False,
        status=LimitStatus.BLOCKED,
        current=0,
        limit=0,
        remaining=0,
        percent_used=0.0,
        reason=UNVERIFIABLE_REASON,
    )


def _plan_minute_quota(plan: Optional[PlanConfig]) -> Quota:
    if plan is None:
        return FALLBACK_MINUTE_LIMIT
    return plan.minute_quota


async def get_organization_limits(db: AsyncSession, organization_id: UUID) -> Optional[OrganizationLimits]:
    """Plan quotas plus current usage; None if the organization does not exist"""
    # Usage is changed with bulk UPDATEs, so never trust an already loaded instance
    result = await db.execute(
        select(Organization)
        .where(Organization.id == organization_id)
        .execution_options(populate_existing=True)
    )
    organization = result.unique().scalar_one_or_none()

    if not organization:
        logger.warning("Organization not found for limit check", organization_id=str(organization_id))
        return None

    location_count = await db.execute(
        select(func.count(Restaurant.id)).where(Restaurant.organization_id == organization_id)
    )

    plan = organization.plan
    return OrganizationLimits(
        plan_name=plan.name if plan else FALLBACK_PLAN_NAME,
        plan_display_name=plan.display_name if plan else FALLBACK_PLAN_DISPLAY_NAME,
        location_limit=plan.location_quota if plan else FALLBACK_LOCATION_LIMIT,
        minute_limit=_plan_minute_quota(plan),
        current_locations=location_count.scalar() or 0,
        current_minutes=organization.voice_minutes_used or 0,
    )


async def check_location_limit(db: AsyncSession, organization_id: UUID) -> LimitCheck:
    """Can the organization add another location?"""
    limits = await get_organization_limits(db, organization_id)
    if not limits:
        return _unverifiable()

    current, limit = limits.current_locations, limits.location_limit
    classification = classify(current, limit)
    next_plan = next_plan_label(limits.plan_name)

    reason = None
    if classification.status == LimitStatus.BLOCKED:
        reason = (
            f"You've reached the location limit for your {limits.plan_display_name} plan. "
            f"Upgrade to {next_plan} for more locations."
        )
    elif classification.status == LimitStatus.WARNING:
        reason = (
            f"You're approaching your location limit ({current}/{limit}). "
            f"Consider upgrading to {next_plan}."
        )

    return LimitCheck(
        allowed=classification.status != LimitStatus.BLOCKED,
        status=classification.status,
        current=current,
        limit=limit,
        remaining=classification.remaining,
        percent_used=round_percent(classification.percent_used),
        reason=reason,
    )


async def check_minute_limit(db: AsyncSession, organization_id: UUID) -> LimitCheck:
    """Does the organization have voice minutes left this cycle?"""
    limits = await get_organization_limits(db, organization_id)
    if not limits:
        return _unverifiable()

    current, limit = limits.current_minutes, limits.minute_limit
    classification = classify(current, limit)
    next_plan = next_plan_label(limits.plan_name)

    reason = None
    if classification.status == LimitStatus.BLOCKED:
        reason = (
            f"You've used all {limit} voice minutes included in your {limits.plan_display_name} plan. "
            f"Upgrade to {next_plan} or buy more minutes."
        )
    elif classification.status == LimitStatus.WARNING:
        reason = (
            f"You've used {round(classification.percent_used)}% of your voice minutes "
            f"({current}/{limit}). Consider upgrading to {next_plan}."
        )

    return LimitCheck(
        allowed=classification.status != LimitStatus.BLOCKED,
        status=classification.status,
        current=current,
        limit=limit,
        remaining=classification.remaining,
        percent_used=round_percent(classification.percent_used),
        reason=reason,
    )


async def can_use_minutes(db: AsyncSession, organization_id: UUID, minutes: int) -> LimitCheck:
    """Pre-flight check: would ``minutes`` more fit in the remaining quota?"""
    limits = await get_organization_limits(db, organization_id)
    if not limits:
        return _unverifiable()

    current, limit = limits.current_minutes, limits.minute_limit

    if limit is UNLIMITED:
        return LimitCheck(
            allowed=True,
            status=LimitStatus.OK,
            current=current,
            limit=UNLIMITED,
            remaining=UNLIMITED,
            percent_used=0.0,
        )

    remaining = limit - current
    would_use = current + minutes
    percent_used = percent_of(would_use, limit)
    allowed = remaining >= minutes

    reason = None
    if not allowed:
        left = max(0, remaining)
        reason = (
            f"Not enough voice minutes remaining on your {limits.plan_display_name} plan. "
            f"You have {left} minute{'' if left == 1 else 's'} left. "
            f"Upgrade to {next_plan_label(limits.plan_name)} for more."
        )

    return LimitCheck(
        allowed=allowed,
        status=status_for_percent(percent_used),
        current=current,
        limit=limit,
        remaining=max(0, remaining),
        percent_used=round_percent(percent_used),
        reason=reason,
    )


async def check_all_limits(db: AsyncSession, organization_id: UUID) -> Dict[str, LimitCheck]:
    return {
        "locations": await check_location_limit(db, organization_id),
        "minutes": await check_minute_limit(db, organization_id),
    }


def detect_crossing(previous: int, current: int, limit: Quota) -> Optional[UsageAlertKind]:
    """Which threshold, if any, an increment from ``previous`` to ``current`` crossed.

    At most one kind is returned: jumping straight past 100% is an overage
    only, never a warning as well.
    """
    if limit is UNLIMITED:
        return None

    previous_percent = percent_of(previous, limit)
    new_percent = percent_of(current, limit)

    if previous_percent < WARNING_THRESHOLD_PERCENT <= new_percent < BLOCKED_THRESHOLD_PERCENT:
        return UsageAlertKind.WARNING
    if previous_percent < BLOCKED_THRESHOLD_PERCENT <= new_percent:
        return UsageAlertKind.OVERAGE
    return None


async def _claim_call(db: AsyncSession, call_id: str, minutes: int) -> bool:
    """Mark a call as billed. False means it was billed before."""
    result = await db.execute(
        update(CallLog)
        .where(CallLog.call_id == call_id, CallLog.billed_minutes.is_(None))
        .values(billed_minutes=minutes)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount:
        return True

    existing = await db.execute(select(CallLog.id).where(CallLog.call_id == call_id))
    if existing.scalar_one_or_none() is None:
        # No call log to guard with; bill without a claim
        logger.warning("Billing call without a call log", call_id=call_id)
        return True
    return False


async def increment_voice_minutes(
    db: AsyncSession,
    organization_id: UUID,
    minutes: int,
    call_id: Optional[str] = None,
) -> UsageIncrementResult:
    """Add consumed minutes to an organization's running total.

    When ``call_id`` is given the call is billed at most once; a replayed
    report returns ``duplicate=True`` without touching the counter. A
    crossed threshold is recorded and announced through the alert
    dispatcher after the increment has been committed.
    """
    if minutes < 0:
        raise ValueError("minutes must be non-negative")

    try:
        if call_id and not await _claim_call(db, call_id, minutes):
            await db.rollback()
            logger.info(
                "Call already billed, skipping increment",
                organization_id=str(organization_id),
                call_id=call_id,
            )
            check = await check_minute_limit(db, organization_id)
            return UsageIncrementResult(success=True, status=check.status, duplicate=True, new_total=check.current)

        result = await db.execute(
            update(Organization)
            .where(Organization.id == organization_id)
            .values(voice_minutes_used=Organization.voice_minutes_used + minutes)
            .returning(
                Organization.voice_minutes_used,
                Organization.plan_id,
                Organization.voice_minutes_reset_at,
                Organization.name,
            )
            .execution_options(synchronize_session=False)
        )
        row = result.first()

        if row is None:
            await db.rollback()
            logger.error("Organization not found for usage increment", organization_id=str(organization_id))
            return UsageIncrementResult(success=False)

        new_total = row.voice_minutes_used
        previous_total = new_total - minutes

        # Same transaction as the increment, so the limit matches the counter
        minute_limit: Quota = FALLBACK_MINUTE_LIMIT
        if row.plan_id is not None:
            plan_row = (
                await db.execute(select(PlanConfig.minute_limit).where(PlanConfig.id == row.plan_id))
            ).first()
            if plan_row is not None:
                minute_limit = UNLIMITED if plan_row.minute_limit is None else plan_row.minute_limit

        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(
            "Failed to increment voice minutes",
            organization_id=str(organization_id),
            minutes=minutes,
            call_id=call_id,
            error=str(e),
        )
        return UsageIncrementResult(success=False)

    classification = classify(new_total, minute_limit)
    logger.info(
        "Voice minutes incremented",
        organization_id=str(organization_id),
        minutes=minutes,
        previous=previous_total,
        current=new_total,
        limit=quota_to_int(minute_limit),
        status=classification.status.value,
    )

    alert = None
    kind = detect_crossing(previous_total, new_total, minute_limit)
    if kind is not None:
        alert = UsageAlert(
            kind=kind,
            resource=UsageResource.VOICE_MINUTES,
            organization_id=organization_id,
            current=new_total,
            limit=minute_limit,
            percent_used=classification.percent_used,
            cycle_started_at=row.voice_minutes_reset_at,
            organization_name=row.name,
        )
        await dispatch_alert(db, alert.to_descriptor())

    return UsageIncrementResult(
        success=True,
        status=classification.status,
        alert=alert,
        new_total=new_total,
    )


async def get_restaurant_organization_id(db: AsyncSession, restaurant_id: UUID) -> Optional[UUID]:
    result = await db.execute(select(Restaurant.organization_id).where(Restaurant.id == restaurant_id))
    return result.scalar_one_or_none()


async def get_user_organization_id(db: AsyncSession, user_id: UUID) -> Optional[UUID]:
    """Owned organization first, then membership"""
    owned = await db.execute(select(Organization.id).where(Organization.owner_id == user_id).limit(1))
    organization_id = owned.scalar_one_or_none()
    if organization_id:
        return organization_id

    membership = await db.execute(
        select(OrganizationMember.organization_id).where(OrganizationMember.user_id == user_id).limit(1)
    )
    organization_id = membership.scalar_one_or_none()
    if organization_id:
        return organization_id

    user = await db.execute(select(User.organization_id).where(User.id == user_id))
    return user.scalar_one_or_none()

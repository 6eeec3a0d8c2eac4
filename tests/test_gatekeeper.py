"""Tests for plan limit checks and voice minute increments"""

import asyncio
from datetime import datetime, timedelta
from uuid import uuid4

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.alerts.descriptors import UsageAlertKind
from app.database import Base
from app.limits import gatekeeper
from app.limits.evaluator import LimitStatus
from app.limits.quota import UNLIMITED
from app.models.alert import AlertType, BillingAlert
from app.models.call import CallLog
from app.models.organization import Organization, OrganizationMember
from app.models.user import User, UserRole
from app.calls.service import billable_minutes, call_duration_seconds

from factories import create_organization, create_plan, create_restaurant


async def _alerts(db, organization_id):
    result = await db.execute(
        select(BillingAlert)
        .where(BillingAlert.organization_id == organization_id)
        .order_by(BillingAlert.created_at)
    )
    return result.scalars().all()


async def _used(db, organization_id):
    result = await db.execute(
        select(Organization.voice_minutes_used).where(Organization.id == organization_id)
    )
    return result.scalar_one()


@pytest.mark.asyncio
async def test_end_to_end_threshold_scenario(test_db, test_organization, enqueued_alerts):
    org_id = test_organization.id

    first = await gatekeeper.increment_voice_minutes(test_db, org_id, 79)
    assert first.success
    assert first.status == LimitStatus.OK
    assert first.alert is None
    assert await _alerts(test_db, org_id) == []

    second = await gatekeeper.increment_voice_minutes(test_db, org_id, 2)
    assert second.new_total == 81
    assert second.status == LimitStatus.WARNING
    assert second.alert.kind == UsageAlertKind.WARNING

    third = await gatekeeper.increment_voice_minutes(test_db, org_id, 25)
    assert third.new_total == 106
    assert third.status == LimitStatus.BLOCKED
    assert third.alert.kind == UsageAlertKind.OVERAGE

    alerts = {a.alert_type: a for a in await _alerts(test_db, org_id)}
    assert set(alerts) == {AlertType.USAGE_WARNING.value, AlertType.USAGE_OVERAGE.value}
    assert alerts[AlertType.USAGE_WARNING.value].severity == "warning"
    assert alerts[AlertType.USAGE_OVERAGE.value].severity == "error"
    assert alerts[AlertType.USAGE_OVERAGE.value].metadata_json["current"] == 106
    assert len(enqueued_alerts) == 2


@pytest.mark.asyncio
async def test_single_jump_past_limit_emits_only_overage(test_db, test_plan):
    organization = await create_organization(test_db, plan=test_plan, voice_minutes_used=70)
    org_id = organization.id

    result = await gatekeeper.increment_voice_minutes(test_db, org_id, 80)

    assert result.new_total == 150
    assert result.alert.kind == UsageAlertKind.OVERAGE
    alerts = await _alerts(test_db, org_id)
    assert [a.alert_type for a in alerts] == [AlertType.USAGE_OVERAGE.value]


@pytest.mark.asyncio
async def test_no_double_fire_within_band(test_db, test_plan):
    organization = await create_organization(test_db, plan=test_plan, voice_minutes_used=84)
    org_id = organization.id

    await gatekeeper.increment_voice_minutes(test_db, org_id, 1)
    result = await gatekeeper.increment_voice_minutes(test_db, org_id, 2)

    assert result.new_total == 87
    assert result.status == LimitStatus.WARNING
    assert result.alert is None
    assert await _alerts(test_db, org_id) == []


@pytest.mark.asyncio
async def test_warning_alert_once_per_cycle(test_db, test_plan):
    """Dropping back under the threshold and crossing again in one cycle stays quiet"""
    organization = await create_organization(test_db, plan=test_plan, voice_minutes_used=79)
    org_id = organization.id

    await gatekeeper.increment_voice_minutes(test_db, org_id, 1)
    await test_db.execute(
        Organization.__table__.update().where(Organization.id == org_id).values(voice_minutes_used=79)
    )
    await test_db.commit()
    result = await gatekeeper.increment_voice_minutes(test_db, org_id, 1)

    assert result.alert is not None
    assert len(await _alerts(test_db, org_id)) == 1


@pytest.mark.asyncio
async def test_new_cycle_alerts_again(test_db, test_plan):
    organization = await create_organization(
        test_db, plan=test_plan, voice_minutes_used=79, voice_minutes_reset_at=datetime(2026, 1, 1)
    )
    org_id = organization.id
    await gatekeeper.increment_voice_minutes(test_db, org_id, 1)

    await test_db.execute(
        Organization.__table__.update()
        .where(Organization.id == org_id)
        .values(voice_minutes_used=79, voice_minutes_reset_at=datetime(2026, 2, 1))
    )
    await test_db.commit()
    await gatekeeper.increment_voice_minutes(test_db, org_id, 1)

    assert len(await _alerts(test_db, org_id)) == 2


@pytest.mark.asyncio
async def test_unlimited_plan_never_alerts(test_db):
    plan = await create_plan(test_db, name="unlimited", display_name="Unlimited", minute_limit=None)
    organization = await create_organization(test_db, plan=plan, voice_minutes_used=10_000)
    org_id = organization.id

    result = await gatekeeper.increment_voice_minutes(test_db, org_id, 5_000)

    assert result.status == LimitStatus.OK
    assert result.alert is None
    check = await gatekeeper.check_minute_limit(test_db, org_id)
    assert check.allowed
    assert check.limit is UNLIMITED
    assert check.to_dict()["limit"] is None


@pytest.mark.asyncio
async def test_zero_limit_blocks_but_still_counts(test_db):
    plan = await create_plan(test_db, name="zero", display_name="Zero", minute_limit=0)
    organization = await create_organization(test_db, plan=plan)
    org_id = organization.id

    result = await gatekeeper.increment_voice_minutes(test_db, org_id, 3)

    assert result.success
    assert result.new_total == 3
    assert result.status == LimitStatus.BLOCKED
    assert result.alert is None
    assert not (await gatekeeper.check_minute_limit(test_db, org_id)).allowed


@pytest.mark.asyncio
async def test_organization_without_plan_uses_fallback(test_db):
    organization = await create_organization(test_db, voice_minutes_used=80)
    org_id = organization.id

    limits = await gatekeeper.get_organization_limits(test_db, org_id)
    assert limits.plan_name == "free"
    assert limits.minute_limit == 100
    assert limits.location_limit == 1

    result = await gatekeeper.increment_voice_minutes(test_db, org_id, 20)
    assert result.alert.kind == UsageAlertKind.OVERAGE


@pytest.mark.asyncio
async def test_increment_missing_organization_fails(test_db):
    result = await gatekeeper.increment_voice_minutes(test_db, uuid4(), 5)
    assert not result.success


@pytest.mark.asyncio
async def test_negative_increment_rejected(test_db, test_organization):
    with pytest.raises(ValueError):
        await gatekeeper.increment_voice_minutes(test_db, test_organization.id, -1)


@pytest.mark.asyncio
async def test_call_is_billed_once(test_db, test_organization, test_restaurant):
    org_id = test_organization.id
    test_db.add(CallLog(call_id="call-1", restaurant_id=test_restaurant.id, status="completed"))
    await test_db.commit()

    first = await gatekeeper.increment_voice_minutes(test_db, org_id, 4, call_id="call-1")
    replay = await gatekeeper.increment_voice_minutes(test_db, org_id, 4, call_id="call-1")

    assert not first.duplicate
    assert replay.duplicate
    assert replay.new_total == 4
    assert await _used(test_db, org_id) == 4

    billed = await test_db.execute(select(CallLog.billed_minutes).where(CallLog.call_id == "call-1"))
    assert billed.scalar_one() == 4


@pytest.mark.asyncio
async def test_concurrent_increments_lose_nothing(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'usage.db'}",
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with session_factory() as db:
        plan = await create_plan(db, minute_limit=1000)
        organization = await create_organization(db, plan=plan)
        org_id = organization.id

    async def increment():
        async with session_factory() as db:
            return await gatekeeper.increment_voice_minutes(db, org_id, 1)

    results = await asyncio.gather(*(increment() for _ in range(20)))

    assert all(r.success for r in results)
    assert sorted(r.new_total for r in results) == list(range(1, 21))
    async with session_factory() as db:
        assert await _used(db, org_id) == 20

    await engine.dispose()


@pytest.mark.asyncio
async def test_concurrent_increments_alert_once_per_threshold(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'alerts.db'}",
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with session_factory() as db:
        plan = await create_plan(db, minute_limit=100)
        organization = await create_organization(db, plan=plan)
        org_id = organization.id

    async def increment():
        async with session_factory() as db:
            return await gatekeeper.increment_voice_minutes(db, org_id, 5)

    await asyncio.gather(*(increment() for _ in range(20)))

    async with session_factory() as db:
        assert await _used(db, org_id) == 100
        alerts = await _alerts(db, org_id)
        assert sorted(a.alert_type for a in alerts) == [
            AlertType.USAGE_OVERAGE.value,
            AlertType.USAGE_WARNING.value,
        ]

    await engine.dispose()


def test_sixty_one_seconds_bills_two_minutes():
    started = datetime(2026, 3, 1, 12, 0, 0)
    seconds = call_duration_seconds(started, started + timedelta(seconds=61))
    assert seconds == 61
    assert billable_minutes(seconds) == 2
    assert billable_minutes(60) == 1
    assert billable_minutes(0) == 0
    assert billable_minutes(None) == 0


@pytest.mark.asyncio
async def test_check_minute_limit_reasons(test_db, test_plan):
    warning_org = await create_organization(test_db, plan=test_plan, voice_minutes_used=85)
    blocked_org = await create_organization(test_db, plan=test_plan, voice_minutes_used=100)

    warning = await gatekeeper.check_minute_limit(test_db, warning_org.id)
    assert warning.allowed
    assert warning.status == LimitStatus.WARNING
    assert warning.remaining == 15
    assert warning.percent_used == 85.0
    assert "85%" in warning.reason

    blocked = await gatekeeper.check_minute_limit(test_db, blocked_org.id)
    assert not blocked.allowed
    assert blocked.remaining == 0
    assert "used all 100 voice minutes" in blocked.reason


@pytest.mark.asyncio
async def test_check_location_limit(test_db):
    plan = await create_plan(test_db, name="multi", display_name="Multi", location_limit=3)
    organization = await create_organization(test_db, plan=plan)
    org_id = organization.id

    check = await gatekeeper.check_location_limit(test_db, org_id)
    assert check.allowed
    assert check.current == 0

    for i in range(3):
        await create_restaurant(test_db, organization, name=f"Location {i}")

    check = await gatekeeper.check_location_limit(test_db, org_id)
    assert not check.allowed
    assert check.current == 3
    assert "location limit for your Multi plan" in check.reason


@pytest.mark.asyncio
async def test_can_use_minutes(test_db, test_plan):
    organization = await create_organization(test_db, plan=test_plan, voice_minutes_used=95)
    org_id = organization.id

    fits = await gatekeeper.can_use_minutes(test_db, org_id, 5)
    assert fits.allowed
    assert fits.status == LimitStatus.BLOCKED

    too_many = await gatekeeper.can_use_minutes(test_db, org_id, 6)
    assert not too_many.allowed
    assert "You have 5 minutes left" in too_many.reason


@pytest.mark.asyncio
async def test_missing_organization_is_unverifiable(test_db):
    missing = uuid4()

    for check in (
        await gatekeeper.check_minute_limit(test_db, missing),
        await gatekeeper.check_location_limit(test_db, missing),
        await gatekeeper.can_use_minutes(test_db, missing, 1),
    ):
        assert not check.allowed
        assert check.status == LimitStatus.BLOCKED
        assert check.reason == gatekeeper.UNVERIFIABLE_REASON
        assert check.current == 0

    limits = await gatekeeper.check_all_limits(test_db, missing)
    assert set(limits) == {"locations", "minutes"}


@pytest.mark.asyncio
async def test_user_organization_lookup(test_db, test_organization):
    org_id = test_organization.id
    member = User(
        id=uuid4(),
        email="member@example.com",
        hashed_password="x",
        role=UserRole.STAFF_VIEWER,
    )
    test_db.add(member)
    await test_db.commit()
    assert await gatekeeper.get_user_organization_id(test_db, member.id) is None

    test_db.add(OrganizationMember(organization_id=org_id, user_id=member.id))
    await test_db.commit()
    assert await gatekeeper.get_user_organization_id(test_db, member.id) == org_id

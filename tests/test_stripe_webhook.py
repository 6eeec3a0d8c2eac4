"""Tests for the Stripe billing webhook"""

import hashlib
import hmac
import json
import time
from decimal import Decimal

import pytest
from sqlalchemy import select

from app.billing import stripe_events
from app.billing.stripe_events import StripeEventType, map_subscription_status
from app.config import settings
from app.models.alert import BillingAlert
from app.models.organization import Organization, SubscriptionStatus

from factories import create_organization, create_plan


def sign(payload: str, secret: str = "whsec_test_secret", timestamp: int = None) -> str:
    timestamp = timestamp or int(time.time())
    signature = hmac.new(
        secret.encode(), f"{timestamp}.{payload}".encode(), hashlib.sha256
    ).hexdigest()
    return f"t={timestamp},v1={signature}"


async def post_event(client, event: dict, signature: str = None):
    payload = json.dumps(event)
    return await client.post(
        "/webhooks/stripe",
        content=payload,
        headers={
            "Content-Type": "application/json",
            "Stripe-Signature": signature or sign(payload),
        },
    )


def event(event_id: str, event_type: str, obj: dict) -> dict:
    return {"id": event_id, "type": event_type, "data": {"object": obj}}


async def _organization(db, organization_id):
    result = await db.execute(
        select(Organization)
        .where(Organization.id == organization_id)
        .execution_options(populate_existing=True)
    )
    return result.unique().scalar_one()


async def _alerts(db, organization_id):
    result = await db.execute(select(BillingAlert).where(BillingAlert.organization_id == organization_id))
    return result.scalars().all()


@pytest.fixture
async def free_plan(test_db):
    return await create_plan(test_db, name="free", display_name="Free", minute_limit=50)


@pytest.fixture
async def pro_plan(test_db):
    return await create_plan(
        test_db,
        name="professional",
        display_name="Professional",
        minute_limit=500,
        location_limit=3,
        stripe_price_id="price_pro",
    )


@pytest.fixture
async def customer_org(test_db, free_plan):
    return await create_organization(
        test_db,
        plan=free_plan,
        stripe_customer_id="cus_123",
        stripe_subscription_id="sub_123",
        billing_email="billing@example.com",
    )


@pytest.mark.asyncio
async def test_missing_signature_rejected(client):
    response = await client.post("/webhooks/stripe", content="{}")
    assert response.status_code == 400
    assert response.json()["detail"] == "Missing signature"


@pytest.mark.asyncio
async def test_invalid_signature_rejected(client, test_db, customer_org):
    org_id = customer_org.id
    payload = json.dumps(event("evt_bad", "invoice.payment_failed", {"customer": "cus_123"}))

    response = await client.post(
        "/webhooks/stripe",
        content=payload,
        headers={"Stripe-Signature": sign(payload, secret="whsec_wrong")},
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid signature"
    assert await _alerts(test_db, org_id) == []
    assert (await _organization(test_db, org_id)).subscription_status == "active"


@pytest.mark.asyncio
async def test_stale_signature_rejected(client):
    payload = json.dumps(event("evt_old", "invoice.paid", {}))
    response = await client.post(
        "/webhooks/stripe",
        content=payload,
        headers={"Stripe-Signature": sign(payload, timestamp=int(time.time()) - 3600)},
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_unconfigured_secret_is_server_error(client, monkeypatch):
    monkeypatch.setattr(settings, "stripe_webhook_secret", "")
    payload = json.dumps(event("evt_1", "invoice.paid", {}))

    response = await client.post("/webhooks/stripe", content=payload, headers={"Stripe-Signature": sign(payload)})

    assert response.status_code == 500


@pytest.mark.asyncio
async def test_unknown_event_type_acknowledged(client):
    response = await post_event(client, event("evt_2", "customer.created", {"id": "cus_999"}))
    assert response.status_code == 200
    assert response.json() == {"received": True}


@pytest.mark.asyncio
async def test_subscription_updated_changes_plan(client, test_db, customer_org, pro_plan):
    org_id, pro_plan_id = customer_org.id, pro_plan.id

    response = await post_event(
        client,
        event(
            "evt_sub_upd",
            "customer.subscription.updated",
            {
                "id": "sub_456",
                "customer": "cus_123",
                "status": "past_due",
                "items": {"data": [{"price": {"id": "price_pro"}}]},
            },
        ),
    )

    assert response.status_code == 200
    organization = await _organization(test_db, org_id)
    assert organization.plan_id == pro_plan_id
    assert organization.stripe_subscription_id == "sub_456"
    assert organization.subscription_status == "past_due"


@pytest.mark.asyncio
async def test_subscription_with_unknown_price_is_acknowledged(client, test_db, customer_org, free_plan):
    org_id, free_plan_id = customer_org.id, free_plan.id

    response = await post_event(
        client,
        event(
            "evt_sub_unknown",
            "customer.subscription.updated",
            {"id": "sub_1", "customer": "cus_123", "status": "active", "items": {"data": [{"price": {"id": "price_x"}}]}},
        ),
    )

    assert response.status_code == 200
    assert (await _organization(test_db, org_id)).plan_id == free_plan_id


@pytest.mark.asyncio
async def test_subscription_deleted_downgrades_once(client, test_db, free_plan, pro_plan):
    organization = await create_organization(
        test_db, plan=pro_plan, stripe_customer_id="cus_pro", stripe_subscription_id="sub_pro"
    )
    org_id, free_plan_id = organization.id, free_plan.id
    deleted = event("evt_del", "customer.subscription.deleted", {"id": "sub_pro", "customer": "cus_pro"})

    first = await post_event(client, deleted)
    after_first = await _organization(test_db, org_id)
    snapshot = (after_first.plan_id, after_first.stripe_subscription_id, after_first.subscription_status)

    second = await post_event(client, deleted)
    after_second = await _organization(test_db, org_id)

    assert first.status_code == second.status_code == 200
    assert snapshot == (free_plan_id, None, "canceled")
    assert (after_second.plan_id, after_second.stripe_subscription_id, after_second.subscription_status) == snapshot

    alerts = await _alerts(test_db, org_id)
    assert len(alerts) == 1
    assert alerts[0].title == "Subscription Canceled"
    assert alerts[0].dedupe_key == "stripe:evt_del"


@pytest.mark.asyncio
async def test_downgrade_without_free_plan_clears_plan(test_db, pro_plan):
    organization = await create_organization(test_db, plan=pro_plan, stripe_customer_id="cus_x")

    await stripe_events.downgrade_to_free(test_db, organization)

    assert organization.plan_id is None
    assert organization.subscription_status == SubscriptionStatus.CANCELED.value


@pytest.mark.asyncio
async def test_invoice_payment_failed_marks_past_due(client, test_db, customer_org, enqueued_alerts):
    org_id = customer_org.id

    response = await post_event(
        client,
        event(
            "evt_fail",
            "invoice.payment_failed",
            {
                "id": "in_1",
                "customer": "cus_123",
                "amount_due": 2900,
                "currency": "eur",
                "attempt_count": 2,
                "next_payment_attempt": 1767225600,
            },
        ),
    )

    assert response.status_code == 200
    assert (await _organization(test_db, org_id)).subscription_status == "past_due"

    alerts = await _alerts(test_db, org_id)
    assert len(alerts) == 1
    alert = alerts[0]
    assert alert.severity == "error"
    assert alert.amount_due == Decimal("29.00")
    assert alert.stripe_invoice_id == "in_1"
    assert "29,00 €" in alert.message
    assert alert.metadata_json["attempt_count"] == 2
    assert enqueued_alerts == [alert.id]


@pytest.mark.asyncio
async def test_renewal_clears_past_due(client, test_db, customer_org):
    org_id = customer_org.id
    customer_org.subscription_status = "past_due"
    await test_db.commit()

    response = await post_event(
        client,
        event(
            "evt_paid",
            "invoice.paid",
            {
                "id": "in_2",
                "customer": "cus_123",
                "billing_reason": "subscription_cycle",
                "amount_paid": 7900,
                "currency": "usd",
            },
        ),
    )

    assert response.status_code == 200
    assert (await _organization(test_db, org_id)).subscription_status == "active"
    alerts = await _alerts(test_db, org_id)
    assert [a.title for a in alerts] == ["Subscription Renewed"]
    assert "USD 79.00" in alerts[0].message


@pytest.mark.asyncio
async def test_first_invoice_is_not_announced(client, test_db, customer_org):
    org_id = customer_org.id

    await post_event(
        client,
        event("evt_first", "invoice.paid", {"id": "in_3", "customer": "cus_123", "billing_reason": "subscription_create"}),
    )

    assert await _alerts(test_db, org_id) == []


@pytest.mark.asyncio
async def test_checkout_links_customer(client, test_db, test_organization):
    org_id = test_organization.id

    response = await post_event(
        client,
        event(
            "evt_checkout",
            "checkout.session.completed",
            {
                "id": "cs_1",
                "mode": "subscription",
                "customer": "cus_new",
                "subscription": "sub_new",
                "metadata": {"organization_id": str(org_id)},
            },
        ),
    )

    assert response.status_code == 200
    organization = await _organization(test_db, org_id)
    assert organization.stripe_customer_id == "cus_new"
    assert organization.stripe_subscription_id == "sub_new"
    assert organization.subscription_status == "active"


@pytest.mark.asyncio
async def test_handler_failure_returns_500(client, monkeypatch):
    async def broken(db, event):
        raise RuntimeError("boom")

    monkeypatch.setitem(stripe_events.EVENT_HANDLERS, StripeEventType.INVOICE_PAID, broken)

    response = await post_event(client, event("evt_boom", "invoice.paid", {}))

    assert response.status_code == 500
    assert response.json() == {"error": "Webhook handler failed"}


def test_every_event_type_has_a_handler():
    assert set(stripe_events.EVENT_HANDLERS) == set(StripeEventType)


@pytest.mark.parametrize(
    "stripe_status, expected",
    [
        ("active", SubscriptionStatus.ACTIVE),
        ("past_due", SubscriptionStatus.PAST_DUE),
        ("canceled", SubscriptionStatus.CANCELED),
        ("unpaid", SubscriptionStatus.CANCELED),
        ("trialing", SubscriptionStatus.TRIALING),
        ("incomplete_expired", SubscriptionStatus.INCOMPLETE),
        ("paused", SubscriptionStatus.ACTIVE),
        (None, SubscriptionStatus.ACTIVE),
    ],
)
def test_subscription_status_mapping(stripe_status, expected):
    assert map_subscription_status(stripe_status) == expected


@pytest.mark.asyncio
async def test_undecodable_body_with_signature_rejected(client):
    response = await client.post(
        "/webhooks/stripe",
        content=b"\xff\xfe{not json",
        headers={"Stripe-Signature": "t=1,v1=deadbeef"},
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid signature"


@pytest.mark.asyncio
async def test_undecodable_body_without_signature_rejected(client):
    response = await client.post("/webhooks/stripe", content=b"\xff\xfe{not json")
    assert response.status_code == 400
    assert response.json()["detail"] == "Missing signature"


@pytest.mark.asyncio
async def test_signed_non_object_payload_rejected(client):
    payload = json.dumps(["invoice.paid"])
    response = await client.post("/webhooks/stripe", content=payload, headers={"Stripe-Signature": sign(payload)})
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid payload"


@pytest.mark.asyncio
async def test_events_without_id_are_not_deduplicated(client, test_db, customer_org):
    org_id = customer_org.id
    failed = {"type": "invoice.payment_failed", "data": {"object": {"customer": "cus_123", "amount_due": 2900}}}

    first = await post_event(client, failed)
    second = await post_event(client, failed)

    assert first.status_code == second.status_code == 200
    alerts = await _alerts(test_db, org_id)
    assert len(alerts) == 2
    assert all(alert.dedupe_key is None for alert in alerts)

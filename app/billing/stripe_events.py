"""
Stripe event handlers.

Each handler receives the verified event as a plain dict and applies it
to the organization it references. Re-applying an event leaves the same
end state, and alerts raised by an event are keyed on the event id, so a
redelivered event is harmless.
"""

import enum
from typing import Any, Awaitable, Callable, Dict, Optional
from uuid import UUID

import stripe
import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.alerts.descriptors import AlertDescriptor
from app.alerts.dispatcher import dispatch_alert
from app.billing.currency import cents_to_major, format_billing_amount
from app.config import settings
from app.limits.plans import FREE_PLAN_NAME
from app.models.alert import AlertSeverity, AlertType
from app.models.organization import Organization, SubscriptionStatus
from app.models.plan import PlanConfig

logger = structlog.get_logger()

Event = Dict[str, Any]
Handler = Callable[[AsyncSession, Event], Awaitable[None]]


class StripeEventType(str, enum.Enum):
    CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"
    CHECKOUT_SESSION_EXPIRED = "checkout.session.expired"
    PAYMENT_INTENT_PAYMENT_FAILED = "payment_intent.payment_failed"
    CHARGE_REFUNDED = "charge.refunded"
    SUBSCRIPTION_CREATED = "customer.subscription.created"
    SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"
    INVOICE_PAID = "invoice.paid"
    INVOICE_PAYMENT_FAILED = "invoice.payment_failed"


STRIPE_STATUS_MAP = {
    "active": SubscriptionStatus.ACTIVE,
    "past_due": SubscriptionStatus.PAST_DUE,
    "canceled": SubscriptionStatus.CANCELED,
    "unpaid": SubscriptionStatus.CANCELED,
    "trialing": SubscriptionStatus.TRIALING,
    "incomplete": SubscriptionStatus.INCOMPLETE,
    "incomplete_expired": SubscriptionStatus.INCOMPLETE,
}


class InvalidSignature(Exception):
    """Raised when a payload does not carry a valid Stripe signature"""


def verify_signature(raw_body: bytes, signature: str, secret: str) -> str:
    """Check the ``Stripe-Signature`` header against the endpoint secret.

    Returns the body as text. A body that is not UTF-8 cannot have been
    signed by Stripe and is rejected like any other bad signature.
    """
    try:
        payload = raw_body.decode("utf-8")
        stripe.WebhookSignature.verify_header(
            payload,
            signature,
            secret,
            tolerance=settings.stripe_webhook_tolerance_seconds,
        )
    except (stripe.SignatureVerificationError, ValueError) as e:
        raise InvalidSignature(str(e)) from e
    return payload


def map_subscription_status(stripe_status: Optional[str]) -> SubscriptionStatus:
    """Map a Stripe subscription status onto ours; unknown values read as active"""
    status = STRIPE_STATUS_MAP.get(stripe_status or "")
    if status is None:
        logger.warning("Unmapped Stripe subscription status, treating as active", stripe_status=stripe_status)
        return SubscriptionStatus.ACTIVE
    return status


def _object(event: Event) -> Dict[str, Any]:
    return (event.get("data") or {}).get("object") or {}


def _event_dedupe_key(event: Event) -> Optional[str]:
    # Id-less events are never deduplicated against each other
    event_id = event.get("id")
    return f"stripe:{event_id}" if event_id else None


def _id_of(value: Any) -> Optional[str]:
    # Stripe references are ids unless the event was expanded
    if isinstance(value, dict):
        return value.get("id")
    return value


def _as_uuid(value: Any) -> Optional[UUID]:
    try:
        return UUID(str(value))
    except ValueError:
        logger.warning("Malformed id in Stripe metadata", value=value)
        return None


async def _organization_by_customer(db: AsyncSession, customer_id: Optional[str]) -> Optional[Organization]:
    if not customer_id:
        return None
    result = await db.execute(select(Organization).where(Organization.stripe_customer_id == customer_id))
    return result.unique().scalar_one_or_none()


async def handle_checkout_session_completed(db: AsyncSession, event: Event) -> None:
    session = _object(event)

    if session.get("mode") != "subscription":
        logger.info(
            "One-time checkout completed",
            session_id=session.get("id"),
            mode=session.get("mode"),
        )
        return

    customer_id = _id_of(session.get("customer"))
    subscription_id = _id_of(session.get("subscription"))
    metadata = session.get("metadata") or {}
    user_id = metadata.get("user_id")
    organization_id = metadata.get("organization_id")

    if not user_id and not organization_id:
        logger.error("No user_id or organization_id in checkout metadata", session_id=session.get("id"))
        return

    logger.info(
        "Checkout completed",
        customer_id=customer_id,
        subscription_id=subscription_id,
        user_id=user_id,
        organization_id=organization_id,
    )

    organization = None
    if organization_id:
        org_uuid = _as_uuid(organization_id)
        if org_uuid:
            result = await db.execute(select(Organization).where(Organization.id == org_uuid))
            organization = result.unique().scalar_one_or_none()
    else:
        owner_uuid = _as_uuid(user_id)
        if owner_uuid:
            result = await db.execute(select(Organization).where(Organization.owner_id == owner_uuid))
            organization = result.unique().scalars().first()

    if not organization:
        logger.warning(
            "No organization to link to Stripe customer",
            customer_id=customer_id,
            user_id=user_id,
            organization_id=organization_id,
        )
        return

    organization.stripe_customer_id = customer_id
    organization.stripe_subscription_id = subscription_id
    organization.subscription_status = SubscriptionStatus.ACTIVE.value
    await db.commit()

    logger.info("Linked organization to Stripe", organization_id=str(organization.id))


async def handle_checkout_session_expired(db: AsyncSession, event: Event) -> None:
    session = _object(event)
    logger.info("Checkout session expired", session_id=session.get("id"))


async def handle_payment_intent_failed(db: AsyncSession, event: Event) -> None:
    payment_intent = _object(event)
    logger.warning("Payment failed", payment_intent_id=payment_intent.get("id"))


async def handle_charge_refunded(db: AsyncSession, event: Event) -> None:
    charge = _object(event)
    logger.info("Charge refunded", payment_intent_id=_id_of(charge.get("payment_intent")))


async def handle_subscription_change(db: AsyncSession, event: Event) -> None:
    """Apply the subscription's plan and status to its organization"""
    subscription = _object(event)
    customer_id = _id_of(subscription.get("customer"))
    items = (subscription.get("items") or {}).get("data") or []
    price_id = ((items[0].get("price") or {}).get("id")) if items else None
    stripe_status = subscription.get("status")

    logger.info("Subscription change", customer_id=customer_id, price_id=price_id, status=stripe_status)

    plan = None
    if price_id:
        result = await db.execute(select(PlanConfig).where(PlanConfig.stripe_price_id == price_id))
        plan = result.scalar_one_or_none()

    if not plan:
        logger.error("No plan found for price ID", price_id=price_id)
        return

    organization = await _organization_by_customer(db, customer_id)
    if not organization:
        logger.warning("No organization found for customer", customer_id=customer_id)
        return

    organization.plan_id = plan.id
    organization.stripe_subscription_id = subscription.get("id")
    organization.subscription_status = map_subscription_status(stripe_status).value
    await db.commit()

    logger.info("Updated organization plan", organization_id=str(organization.id), plan_name=plan.name)


async def downgrade_to_free(db: AsyncSession, organization: Organization) -> None:
    """Move an organization to the free plan after its subscription ends.

    A missing free plan row leaves the organization without a plan, which
    falls back to the built-in free limits.
    """
    result = await db.execute(select(PlanConfig.id).where(PlanConfig.name == FREE_PLAN_NAME))
    free_plan_id = result.scalar_one_or_none()

    if free_plan_id is None:
        logger.warning("Free plan not configured, clearing plan", organization_id=str(organization.id))

    organization.plan_id = free_plan_id
    organization.stripe_subscription_id = None
    organization.subscription_status = SubscriptionStatus.CANCELED.value
    await db.commit()


async def handle_subscription_deleted(db: AsyncSession, event: Event) -> None:
    subscription = _object(event)
    customer_id = _id_of(subscription.get("customer"))

    organization = await _organization_by_customer(db, customer_id)
    if not organization:
        logger.warning("No organization found for canceled subscription", customer_id=customer_id)
        return

    await downgrade_to_free(db, organization)
    logger.info("Organization downgraded to free", organization_id=str(organization.id))

    await dispatch_alert(
        db,
        AlertDescriptor(
            organization_id=organization.id,
            alert_type=AlertType.SUBSCRIPTION_CANCELED,
            severity=AlertSeverity.WARNING,
            title="Subscription Canceled",
            message=(
                "Your subscription has been canceled. You have been downgraded to the "
                "Free plan with limited features."
            ),
            dedupe_key=_event_dedupe_key(event),
            stripe_event_id=event.get("id"),
            metadata={
                "subscription_id": subscription.get("id"),
                "canceled_at": subscription.get("canceled_at"),
            },
        ),
    )


async def handle_invoice_paid(db: AsyncSession, event: Event) -> None:
    invoice = _object(event)
    customer_id = _id_of(invoice.get("customer"))
    logger.info(
        "Invoice paid",
        invoice_id=invoice.get("id"),
        subscription_id=_id_of(invoice.get("subscription")),
        billing_reason=invoice.get("billing_reason"),
    )

    # Only renewals are announced, not the first payment
    if invoice.get("billing_reason") != "subscription_cycle":
        return

    organization = await _organization_by_customer(db, customer_id)
    if not organization:
        logger.warning("No organization found for paid invoice", customer_id=customer_id)
        return

    if organization.subscription_status == SubscriptionStatus.PAST_DUE.value:
        organization.subscription_status = SubscriptionStatus.ACTIVE.value
        await db.commit()
        logger.info("Cleared past_due after renewal", organization_id=str(organization.id))

    currency = invoice.get("currency") or "eur"
    amount_paid = cents_to_major(invoice.get("amount_paid"))

    await dispatch_alert(
        db,
        AlertDescriptor(
            organization_id=organization.id,
            alert_type=AlertType.SUBSCRIPTION_RENEWED,
            severity=AlertSeverity.INFO,
            title="Subscription Renewed",
            message=(
                "Your subscription has been successfully renewed. "
                f"Amount charged: {format_billing_amount(amount_paid, currency)}."
            ),
            dedupe_key=_event_dedupe_key(event),
            stripe_event_id=event.get("id"),
            stripe_invoice_id=invoice.get("id"),
            amount_due=amount_paid,
            currency=currency,
        ),
    )


async def handle_invoice_payment_failed(db: AsyncSession, event: Event) -> None:
    invoice = _object(event)
    customer_id = _id_of(invoice.get("customer"))
    logger.warning("Invoice payment failed", customer_id=customer_id, invoice_id=invoice.get("id"))

    organization = await _organization_by_customer(db, customer_id)
    if not organization:
        logger.warning("No organization found for failed invoice", customer_id=customer_id)
        return

    organization.subscription_status = SubscriptionStatus.PAST_DUE.value
    await db.commit()

    currency = invoice.get("currency") or "eur"
    amount_due = cents_to_major(invoice.get("amount_due"))

    await dispatch_alert(
        db,
        AlertDescriptor(
            organization_id=organization.id,
            alert_type=AlertType.PAYMENT_FAILED,
            severity=AlertSeverity.ERROR,
            title="Payment Failed",
            message=(
                f"Your payment of {format_billing_amount(amount_due, currency)} could not be processed. "
                "Please update your payment method to continue using VECTERAI."
            ),
            dedupe_key=_event_dedupe_key(event),
            stripe_event_id=event.get("id"),
            stripe_invoice_id=invoice.get("id"),
            amount_due=amount_due,
            currency=currency,
            metadata={
                "attempt_count": invoice.get("attempt_count"),
                "next_payment_attempt": invoice.get("next_payment_attempt"),
            },
        ),
    )
    logger.info("Billing alert created for failed payment", organization_id=str(organization.id))


EVENT_HANDLERS: Dict[StripeEventType, Handler] = {
    StripeEventType.CHECKOUT_SESSION_COMPLETED: handle_checkout_session_completed,
    StripeEventType.CHECKOUT_SESSION_EXPIRED: handle_checkout_session_expired,
    StripeEventType.PAYMENT_INTENT_PAYMENT_FAILED: handle_payment_intent_failed,
    StripeEventType.CHARGE_REFUNDED: handle_charge_refunded,
    StripeEventType.SUBSCRIPTION_CREATED: handle_subscription_change,
    StripeEventType.SUBSCRIPTION_UPDATED: handle_subscription_change,
    StripeEventType.SUBSCRIPTION_DELETED: handle_subscription_deleted,
    StripeEventType.INVOICE_PAID: handle_invoice_paid,
    StripeEventType.INVOICE_PAYMENT_FAILED: handle_invoice_payment_failed,
}

_unhandled = set(StripeEventType) - set(EVENT_HANDLERS)
if _unhandled:
    raise RuntimeError(f"Stripe event types without a handler: {sorted(t.value for t in _unhandled)}")


async def handle_event(db: AsyncSession, event: Event) -> bool:
    """Route an event to its handler. False means the type is not handled."""
    try:
        event_type = StripeEventType(event.get("type"))
    except ValueError:
        logger.debug("Unhandled Stripe event type", event_type=event.get("type"))
        return False

    await EVENT_HANDLERS[event_type](db, event)
    return True

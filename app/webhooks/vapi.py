"""Vapi voice-agent webhook handlers"""

import hmac
import json
from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from app.alerts.descriptors import AlertDescriptor
from app.alerts.dispatcher import dispatch_alert
from app.calls.language import detect_language
from app.calls.service import (
    CallLogData,
    billable_minutes,
    call_duration_seconds,
    map_vapi_status,
    parse_timestamp,
    save_call_log,
)
from app.config import settings
from app.database import get_db
from app.limits.evaluator import LimitStatus
from app.limits.gatekeeper import (
    check_minute_limit,
    get_restaurant_organization_id,
    increment_voice_minutes,
)
from app.models.alert import AlertSeverity, AlertType
from app.models.call import CallStatus
from app.models.organization import Restaurant
from app.voice.assistant import (
    build_fallback_assistant,
    build_limit_reached_assistant,
    build_restaurant_assistant,
)
from app.voice.tools import run_tool

router = APIRouter()
logger = structlog.get_logger()


def verify_vapi_request(request: Request) -> bool:
    """Check the shared secret Vapi sends in ``x-vapi-secret``"""
    expected = settings.vapi_webhook_secret
    if not expected:
        if settings.is_development:
            return True
        logger.error("VAPI_WEBHOOK_SECRET not configured")
        return False

    provided = request.headers.get("x-vapi-secret") or ""
    return hmac.compare_digest(provided.encode(), expected.encode())


def _as_uuid(value: Any) -> Optional[UUID]:
    if not value:
        return None
    try:
        return UUID(str(value))
    except ValueError:
        logger.warning("Malformed restaurant id", value=value)
        return None


async def find_restaurant_by_phone_number_id(db: AsyncSession, phone_number_id: str) -> Optional[Restaurant]:
    result = await db.execute(
        select(Restaurant).where(Restaurant.vapi_phone_number_id == phone_number_id)
    )
    restaurant = result.scalar_one_or_none()
    if not restaurant:
        logger.warning("No restaurant found for phone number", phone_number_id=phone_number_id)
    return restaurant


async def resolve_restaurant_id(db: AsyncSession, request: Request, message: Dict[str, Any]) -> Optional[UUID]:
    """Assistant metadata, then the query string, then the called number"""
    metadata = (message.get("assistant") or {}).get("metadata") or {}
    restaurant_id = _as_uuid(metadata.get("restaurantId")) or _as_uuid(
        request.query_params.get("restaurantId")
    )
    if restaurant_id:
        return restaurant_id

    phone_number_id = ((message.get("call") or {}).get("phoneNumber") or {}).get("id")
    if phone_number_id:
        restaurant = await find_restaurant_by_phone_number_id(db, phone_number_id)
        if restaurant:
            return restaurant.id
    return None


def _tool_name_and_args(tool_call: Dict[str, Any]):
    # Accepts both {name, parameters} and {function: {name, arguments}}
    function = tool_call.get("function") or {}
    name = tool_call.get("name") or function.get("name")
    args = tool_call.get("parameters") or function.get("arguments") or {}
    if isinstance(args, str):
        try:
            args = json.loads(args)
        except json.JSONDecodeError:
            args = {}
    return name, args


async def handle_tool_call(db: AsyncSession, restaurant_id: UUID, message: Dict[str, Any]):
    tool_call = message.get("toolCall")
    if not tool_call:
        raise HTTPException(status_code=400, detail="No tool call data")

    name, args = _tool_name_and_args(tool_call)
    result = await run_tool(db, restaurant_id, name, args)
    return {"results": [{"result": result}]}


async def handle_tool_calls(db: AsyncSession, restaurant_id: UUID, message: Dict[str, Any]):
    results = []
    for tool_call in message.get("toolCallList") or []:
        name, args = _tool_name_and_args(tool_call)
        entry = {"result": await run_tool(db, restaurant_id, name, args)}
        if tool_call.get("id"):
            entry["toolCallId"] = tool_call["id"]
        results.append(entry)
    return {"results": results}


async def handle_call_start(db: AsyncSession, restaurant_id: UUID, message: Dict[str, Any]):
    call = message.get("call") or {}
    customer = call.get("customer") or {}

    logger.info("Call started", call_id=call.get("id"), restaurant_id=str(restaurant_id))
    await save_call_log(
        db,
        CallLogData(
            call_id=call["id"],
            restaurant_id=restaurant_id,
            assistant_id=call.get("assistantId"),
            phone_number=customer.get("number"),
            customer_phone=customer.get("number"),
            status=CallStatus.ACTIVE.value,
            started_at=parse_timestamp(call.get("startedAt")),
        ),
    )


async def handle_status_update(db: AsyncSession, restaurant_id: UUID, message: Dict[str, Any]):
    call = message.get("call") or {}
    customer = call.get("customer") or {}
    vapi_status = message.get("status") or call.get("status")

    await save_call_log(
        db,
        CallLogData(
            call_id=call["id"],
            restaurant_id=restaurant_id,
            assistant_id=call.get("assistantId"),
            phone_number=customer.get("number"),
            customer_phone=customer.get("number"),
            status=map_vapi_status(vapi_status).value,
            started_at=parse_timestamp(call.get("startedAt")),
            ended_at=parse_timestamp(call.get("endedAt")),
        ),
    )


async def track_voice_minutes(db: AsyncSession, restaurant_id: UUID, call_id: str, minutes: int) -> None:
    """Bill a finished call. Failures become an alert, never an error response."""
    organization_id = None
    error = None
    result = None

    try:
        organization_id = await get_restaurant_organization_id(db, restaurant_id)
        if not organization_id:
            logger.warning("Restaurant has no organization, usage not tracked", restaurant_id=str(restaurant_id))
            return
        result = await increment_voice_minutes(db, organization_id, minutes, call_id=call_id)
    except SQLAlchemyError as e:
        await db.rollback()
        error = str(e)

    if result is None or not result.success:
        logger.error(
            "Failed to track voice minutes",
            restaurant_id=str(restaurant_id),
            call_id=call_id,
            minutes=minutes,
            error=error,
        )
        if organization_id:
            await dispatch_alert(
                db,
                AlertDescriptor(
                    organization_id=organization_id,
                    alert_type=AlertType.VOICE_TRACKING_FAILED,
                    severity=AlertSeverity.WARNING,
                    title="Voice Minute Tracking Failed",
                    message=(
                        f"Failed to track {minutes} voice minutes for a call. "
                        "This may affect your billing accuracy."
                    ),
                    dedupe_key=f"tracking_failed:{call_id}",
                    metadata={
                        "error": error,
                        "minutes": minutes,
                        "call_id": call_id,
                        "restaurant_id": str(restaurant_id),
                    },
                ),
            )
        return

    logger.info(
        "Voice minutes tracked",
        organization_id=str(organization_id),
        call_id=call_id,
        minutes=minutes,
        status=result.status.value if result.status else None,
        alert=result.alert.kind.value if result.alert else None,
        duplicate=result.duplicate,
    )
    if result.status == LimitStatus.BLOCKED:
        logger.warning("Organization voice minutes exceeded", organization_id=str(organization_id))


async def handle_end_of_call_report(db: AsyncSession, restaurant_id: UUID, message: Dict[str, Any]):
    call = message.get("call") or {}
    customer = call.get("customer") or {}
    analysis = message.get("analysis") or {}
    artifact = message.get("artifact") or {}
    call_id = call["id"]

    transcript = message.get("transcript")
    if not isinstance(transcript, list):
        transcript = None

    started_at = parse_timestamp(call.get("startedAt") or message.get("startedAt"))
    ended_at = parse_timestamp(call.get("endedAt") or message.get("endedAt"))
    duration_seconds = call_duration_seconds(started_at, ended_at)
    minutes = billable_minutes(duration_seconds)
    language = detect_language(transcript)

    logger.info(
        "Call ended",
        call_id=call_id,
        restaurant_id=str(restaurant_id),
        duration_seconds=duration_seconds,
        duration_minutes=minutes,
        language_detected=language,
    )

    # The call record is saved before billing so it survives a billing failure
    try:
        await save_call_log(
            db,
            CallLogData(
                call_id=call_id,
                restaurant_id=restaurant_id,
                assistant_id=call.get("assistantId"),
                phone_number=customer.get("number"),
                customer_name=customer.get("name"),
                customer_phone=customer.get("number"),
                status=CallStatus.COMPLETED.value,
                started_at=started_at,
                ended_at=ended_at,
                duration_seconds=duration_seconds,
                transcript=transcript,
                summary=message.get("summary") or analysis.get("summary"),
                sentiment=analysis.get("sentiment"),
                intent=analysis.get("intent"),
                recording_url=message.get("recordingUrl") or artifact.get("recordingUrl"),
                language_detected=language,
            ),
        )
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("Failed to save call log", call_id=call_id, restaurant_id=str(restaurant_id), error=str(e))

    if minutes > 0:
        await track_voice_minutes(db, restaurant_id, call_id, minutes)


async def handle_assistant_request(db: AsyncSession, request: Request, message: Dict[str, Any]):
    phone_number_id = ((message.get("call") or {}).get("phoneNumber") or {}).get("id")
    metadata = (message.get("assistant") or {}).get("metadata") or {}
    restaurant_id = _as_uuid(metadata.get("restaurantId")) or _as_uuid(
        request.query_params.get("restaurantId")
    )

    restaurant = None
    if phone_number_id:
        restaurant = await find_restaurant_by_phone_number_id(db, phone_number_id)

    if not restaurant and restaurant_id:
        result = await db.execute(select(Restaurant).where(Restaurant.id == restaurant_id))
        restaurant = result.scalar_one_or_none()

    if not restaurant:
        logger.warning(
            "Assistant request: no restaurant found, returning fallback",
            phone_number_id=phone_number_id,
            restaurant_id=str(restaurant_id) if restaurant_id else None,
        )
        return build_fallback_assistant()

    if restaurant.organization_id:
        check = await check_minute_limit(db, restaurant.organization_id)
        if check.status == LimitStatus.BLOCKED:
            logger.warning(
                "Assistant request: voice minutes exhausted",
                restaurant_id=str(restaurant.id),
                organization_id=str(restaurant.organization_id),
                current=check.current,
            )
            return build_limit_reached_assistant(restaurant)

    logger.info(
        "Assistant request: restaurant identified",
        restaurant_id=str(restaurant.id),
        restaurant_name=restaurant.name,
        phone_number_id=phone_number_id,
    )
    return build_restaurant_assistant(restaurant)


CALL_HANDLERS = {
    "call-start": handle_call_start,
    "call.started": handle_call_start,
    "status-update": handle_status_update,
    "end-of-call-report": handle_end_of_call_report,
}

TOOL_HANDLERS = {
    "tool-call": handle_tool_call,
    "tool-calls": handle_tool_calls,
}


@router.post("")
async def handle_vapi_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """
    Receive a Vapi server message.
    Dispatches on ``message.type``; unknown types are acknowledged.
    """
    if not verify_vapi_request(request):
        logger.warning("Unauthorized Vapi webhook request")
        raise HTTPException(status_code=401, detail="Unauthorized")

    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid payload")

    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid payload")

    message = payload.get("message") or {}
    if not isinstance(message, dict):
        raise HTTPException(status_code=400, detail="Invalid payload")
    message_type = message.get("type")
    logger.debug("Vapi webhook received", message_type=message_type)

    try:
        if message_type == "assistant-request":
            return await handle_assistant_request(db, request, message)

        if message_type in TOOL_HANDLERS:
            restaurant_id = await resolve_restaurant_id(db, request, message)
            if not restaurant_id:
                raise HTTPException(status_code=400, detail="Restaurant ID not found in assistant metadata")
            return await TOOL_HANDLERS[message_type](db, restaurant_id, message)

        if message_type in CALL_HANDLERS:
            call = message.get("call") or {}
            restaurant_id = await resolve_restaurant_id(db, request, message)
            if call.get("id") and restaurant_id:
                await CALL_HANDLERS[message_type](db, restaurant_id, message)
            else:
                logger.warning(
                    "Call event without call or restaurant",
                    message_type=message_type,
                    call_id=call.get("id"),
                )
            return {"received": True}
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("Vapi webhook handler failed", message_type=message_type, error=str(e))
        await db.rollback()
        return JSONResponse(status_code=500, content={"error": "Webhook handler failed"})

    logger.debug("Unhandled Vapi event type", message_type=message_type)
    return {"received": True}


@router.get("")
async def vapi_webhook_status():
    """Endpoint check used when configuring the Vapi dashboard"""
    return {"status": "Vapi webhook endpoint active"}

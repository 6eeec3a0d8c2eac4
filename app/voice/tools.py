"""Tool handlers the voice assistant can call mid-conversation"""

from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.organization import Restaurant

logger = structlog.get_logger()

ToolResult = Dict[str, Any]
ToolHandler = Callable[[AsyncSession, UUID, Dict[str, Any]], Awaitable[ToolResult]]

DAYS_OF_WEEK = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]


async def _get_restaurant(db: AsyncSession, restaurant_id: UUID) -> Optional[Restaurant]:
    result = await db.execute(select(Restaurant).where(Restaurant.id == restaurant_id))
    return result.scalar_one_or_none()


def format_voice_time(value: str) -> str:
    """``17:30`` -> ``5:30 PM``, ``09:00`` -> ``9 AM``"""
    hours, minutes = (int(part) for part in value.split(":")[:2])
    period = "PM" if hours >= 12 else "AM"
    hours_12 = hours % 12 or 12
    if minutes == 0:
        return f"{hours_12} {period}"
    return f"{hours_12}:{minutes:02d} {period}"


async def get_restaurant_info(db: AsyncSession, restaurant_id: UUID, args: Dict[str, Any]) -> ToolResult:
    """Name, phone and address, phrased for speech"""
    restaurant = await _get_restaurant(db, restaurant_id)
    if not restaurant:
        return {"message": "I apologize, but I am having trouble accessing that information right now."}

    address = restaurant.address_json or {}
    response = f"You have reached {restaurant.name}."
    if restaurant.phone:
        response += f" Our phone number is {restaurant.phone}."
    if address.get("street"):
        response += f" We are located at {address['street']}"
        if address.get("city"):
            response += f" in {address['city']}"
        response += "."

    return {"message": response}


async def check_opening_hours(db: AsyncSession, restaurant_id: UUID, args: Dict[str, Any]) -> ToolResult:
    """Opening hours for a weekday, or whether the restaurant is open now"""
    restaurant = await _get_restaurant(db, restaurant_id)
    settings_json = (restaurant.settings_json if restaurant else None) or {}
    operating_hours = settings_json.get("hours")

    if not operating_hours:
        return {"message": "I do not have the hours information available. Please call us directly for our hours."}

    day_input = str(args.get("day") or "today").lower()
    now = datetime.now()
    day = DAYS_OF_WEEK[now.weekday()] if day_input == "today" else day_input

    hours = operating_hours.get(day)
    if not hours:
        return {"message": f"I do not have hours information for {day}."}

    if hours.get("closed"):
        return {"message": f"We are closed on {day.capitalize()}s."}

    open_time = format_voice_time(hours["open"])
    close_time = format_voice_time(hours["close"])

    if day_input == "today":
        current = now.strftime("%H:%M")
        is_open = hours["open"] <= current <= hours["close"]
        return {
            "message": (
                f"We are currently {'open' if is_open else 'closed'}. "
                f"Today our hours are {open_time} to {close_time}."
            )
        }

    return {"message": f"On {day.capitalize()}s we are open from {open_time} to {close_time}."}


TOOL_HANDLERS: Dict[str, ToolHandler] = {
    "get_restaurant_info": get_restaurant_info,
    "check_opening_hours": check_opening_hours,
}


async def run_tool(db: AsyncSession, restaurant_id: UUID, name: str, args: Optional[Dict[str, Any]]) -> ToolResult:
    logger.info("Tool call", tool=name, restaurant_id=str(restaurant_id))

    handler = TOOL_HANDLERS.get(name)
    if handler is None:
        logger.warning("Unknown tool requested", tool=name)
        return {"error": True, "message": f"Unknown tool: {name}"}

    return await handler(db, restaurant_id, args or {})

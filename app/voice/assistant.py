"""
Assistant configurations returned to Vapi on ``assistant-request``.

Three shapes exist: the restaurant's own assistant, an apology assistant
when the number cannot be matched to a restaurant, and a limit-reached
assistant when the owning organization has no voice minutes left.
"""

import re
from typing import Any, Dict, List, Optional

from app.models.organization import Restaurant

MODEL_PROVIDER = "anthropic"
MODEL_NAME = "claude-sonnet-4-20250514"
DEFAULT_VOICE_ID = "EXAVITQu4vr4xnSDxMaL"

GREETINGS = {
    "en": "Hi! Thanks for calling {name}. How can I help you today?",
    "es": "¡Hola! Gracias por llamar a {name}. ¿En qué puedo ayudarle hoy?",
    "fr": "Bonjour! Merci d'avoir appelé {name}. Comment puis-je vous aider?",
    "de": "Guten Tag! Vielen Dank für Ihren Anruf bei {name}. Wie kann ich Ihnen helfen?",
    "it": "Buongiorno! Grazie per aver chiamato {name}. Come posso aiutarla oggi?",
    "pt": "Olá! Obrigado por ligar para {name}. Como posso ajudá-lo hoje?",
    "zh": "您好！感谢您致电{name}。今天我能为您做些什么？",
    "ja": "お電話ありがとうございます。{name}でございます。本日はどのようなご用件でしょうか？",
    "ko": "안녕하세요! {name}에 전화해 주셔서 감사합니다. 무엇을 도와드릴까요?",
    "ar": "مرحباً! شكراً لاتصالك بـ {name}. كيف يمكنني مساعدتك اليوم؟",
    "hi": "नमस्ते! {name} को कॉल करने के लिए धन्यवाद। मैं आज आपकी कैसे मदद कर सकता हूं?",
    "ru": "Здравствуйте! Спасибо, что позвонили в {name}. Чем могу помочь?",
}

PERSONALITY_TRAITS = {
    "friendly": "warm, conversational, and genuinely helpful, like a friendly restaurant host",
    "formal": "professional, courteous, and polished, like a maître d' at a fine dining establishment",
    "efficient": "helpful, clear, and respectful of the caller's time",
}

VOICE_TOOLS: List[Dict[str, Any]] = [
    {
        "type": "function",
        "function": {
            "name": "get_restaurant_info",
            "description": "Get restaurant contact information including address and phone number.",
            "parameters": {"type": "object", "properties": {}, "required": []},
        },
        "async": True,
    },
    {
        "type": "function",
        "function": {
            "name": "check_opening_hours",
            "description": "Check if the restaurant is currently open or get hours for a specific day.",
            "parameters": {
                "type": "object",
                "properties": {
                    "day": {
                        "type": "string",
                        "description": 'The day to check. Use "today" for current day.',
                        "enum": [
                            "monday", "tuesday", "wednesday", "thursday",
                            "friday", "saturday", "sunday", "today",
                        ],
                    },
                },
                "required": [],
            },
        },
        "async": True,
    },
]


def _voice(model: str = "eleven_turbo_v2_5", voice_id: str = DEFAULT_VOICE_ID) -> Dict[str, Any]:
    return {
        "provider": "elevenlabs",
        "voiceId": voice_id,
        "model": model,
        "stability": 0.5,
        "similarityBoost": 0.75,
        "style": 0,
        "useSpeakerBoost": True,
        "optimizeStreamingLatency": 4,
        "fillerInjectionEnabled": True,
    }


def _transcriber(language: str = "en") -> Dict[str, Any]:
    return {"provider": "deepgram", "model": "nova-2", "language": language}


def build_first_message(restaurant_name: str, language: str, custom_greeting: Optional[str] = None) -> str:
    """Owner's greeting if set (``[restaurant]`` is replaced), else a localized default"""
    if custom_greeting and custom_greeting.strip():
        return _replace_placeholder(custom_greeting, restaurant_name)
    template = GREETINGS.get(language, GREETINGS["en"])
    return template.format(name=restaurant_name)


def _replace_placeholder(text: str, restaurant_name: str) -> str:
    return re.sub(r"\[restaurant\]", lambda _: restaurant_name, text, flags=re.IGNORECASE)


def build_system_prompt(restaurant: Restaurant) -> str:
    settings_json = restaurant.settings_json or {}
    ai_settings = settings_json.get("ai") or {}
    city = (restaurant.address_json or {}).get("city")
    personality = PERSONALITY_TRAITS.get(ai_settings.get("personality") or "friendly", PERSONALITY_TRAITS["friendly"])

    location = f" in {city}" if city else ""
    sections = [
        f"You are the voice assistant for {restaurant.name}{location}.",
        f"Be {personality}.",
        "## VOICE STYLE\n"
        "- Maximum 2 sentences per response\n"
        "- One question at a time, then wait for the answer\n"
        "- Use natural phrases such as \"Let me check that for you...\"",
        "## YOUR CAPABILITIES\n"
        f"- Provide information: hours, location, and general questions about {restaurant.name}\n"
        f"- For reservations and orders: politely give the restaurant phone number "
        f"({restaurant.phone or 'the restaurant'})",
    ]
    if restaurant.description:
        sections.append(f"## ABOUT {restaurant.name.upper()}\n{restaurant.description}")
    if ai_settings.get("customInstructions"):
        sections.append(f"## OWNER'S SPECIAL INSTRUCTIONS\n{ai_settings['customInstructions']}")
    return "\n\n".join(sections)


def build_restaurant_assistant(restaurant: Restaurant) -> Dict[str, Any]:
    settings_json = restaurant.settings_json or {}
    voice_settings = settings_json.get("voice") or {}
    ai_settings = settings_json.get("ai") or {}
    language = voice_settings.get("primaryLanguage") or "en"

    return {
        "assistant": {
            "name": f"{restaurant.name} Assistant",
            "model": {
                "provider": MODEL_PROVIDER,
                "model": MODEL_NAME,
                "systemPrompt": build_system_prompt(restaurant),
                "temperature": 0.7,
            },
            "voice": _voice(
                model="eleven_turbo_v2_5" if language == "en" else "eleven_multilingual_v2",
                voice_id=voice_settings.get("elevenLabsVoiceId") or DEFAULT_VOICE_ID,
            ),
            "firstMessage": build_first_message(restaurant.name, language, ai_settings.get("greeting")),
            "transcriber": _transcriber(language),
            "tools": VOICE_TOOLS,
            "metadata": {"restaurantId": str(restaurant.id)},
        }
    }


def build_fallback_assistant() -> Dict[str, Any]:
    """Polite apology for calls we cannot match to a restaurant"""
    return {
        "assistant": {
            "name": "Restaurant Assistant",
            "model": {
                "provider": MODEL_PROVIDER,
                "model": MODEL_NAME,
                "systemPrompt": (
                    "You are a helpful restaurant assistant. Unfortunately, we're having trouble "
                    "identifying which restaurant this call is for. Apologize politely, ask the caller "
                    "to try calling back in a moment, and offer to take a message if it is urgent. "
                    "Keep your responses brief and natural."
                ),
                "temperature": 0.7,
            },
            "voice": _voice(),
            "firstMessage": (
                "Hi there! I apologize, but I'm experiencing a small technical issue. "
                "Could you try calling back in just a moment? Thank you so much for your patience!"
            ),
            "transcriber": _transcriber(),
        }
    }


def build_limit_reached_assistant(restaurant: Restaurant) -> Dict[str, Any]:
    """Short call for organizations out of voice minutes: no tools, just the phone number"""
    phone_hint = f" You can reach the team directly at {restaurant.phone}." if restaurant.phone else ""
    return {
        "assistant": {
            "name": f"{restaurant.name} Assistant",
            "model": {
                "provider": MODEL_PROVIDER,
                "model": MODEL_NAME,
                "systemPrompt": (
                    f"You answer calls for {restaurant.name}. The voice assistant is temporarily "
                    "unavailable. Apologize briefly, share the restaurant phone number if the caller "
                    "asks, and end the call politely."
                ),
                "temperature": 0.3,
            },
            "voice": _voice(),
            "firstMessage": (
                f"Thanks for calling {restaurant.name}. Our voice assistant is not available right now."
                f"{phone_hint} Goodbye!"
            ),
            "transcriber": _transcriber(),
            "metadata": {"restaurantId": str(restaurant.id), "limitReached": True},
        }
    }

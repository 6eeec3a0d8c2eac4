"""Caller language detection from transcripts"""

import re
from typing import Any, Dict, List, Optional

import structlog

logger = structlog.get_logger()

DEFAULT_LANGUAGE = "en"
MIN_DETECTION_CHARS = 10

# Checked in order; the first language with a matching pattern wins
LANGUAGE_PATTERNS = [
    ("es", [r"hola", r"gracias", r"buenos", r"por favor", r"reservaci[oó]n", r"¿"]),
    ("fr", [r"bonjour", r"merci", r"s'il vous", r"réservation", r"ç"]),
    ("de", [r"guten", r"danke", r"bitte", r"reservierung", r"ß", r"ü"]),
    ("it", [r"ciao", r"grazie", r"per favore", r"prenotazione", r"buon"]),
    ("pt", [r"olá", r"obrigado", r"por favor", r"reserva", r"ã", r"ç"]),
    ("zh", [r"[一-鿿]"]),
    ("ja", [r"[぀-ゟ]", r"[゠-ヿ]"]),
    ("ko", [r"[가-힯]"]),
    ("ar", [r"[؀-ۿ]"]),
    ("ru", [r"[Ѐ-ӿ]"]),
    ("hi", [r"[ऀ-ॿ]"]),
]

_COMPILED = [
    (code, [re.compile(pattern, re.IGNORECASE) for pattern in patterns])
    for code, patterns in LANGUAGE_PATTERNS
]


def detect_language_by_patterns(text: str) -> str:
    lowered = text.lower()
    for code, patterns in _COMPILED:
        if any(pattern.search(lowered) for pattern in patterns):
            return code
    return DEFAULT_LANGUAGE


def detect_language(transcript: Optional[List[Dict[str, Any]]]) -> str:
    """Language spoken by the caller, judged from user turns only"""
    if not transcript:
        return DEFAULT_LANGUAGE

    customer_text = " ".join(
        str(turn.get("content") or "")
        for turn in transcript
        if isinstance(turn, dict) and turn.get("role") in ("user", "customer")
    ).strip()

    if len(customer_text) < MIN_DETECTION_CHARS:
        return DEFAULT_LANGUAGE

    detected = detect_language_by_patterns(customer_text)
    logger.debug("Language detected from transcript", detected=detected, text_length=len(customer_text))
    return detected

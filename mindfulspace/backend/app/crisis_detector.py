from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

CRISIS_KEYWORDS = [
    "suicide",
    "kill myself",
    "end my life",
    "want to die",
    "better off dead",
    "suicidal",
    "self harm",
    "hurt myself",
    "cut myself",
    "overdose",
    "not worth living",
    "no point in living",
    "can't go on",
    "give up",
    "hopeless",
    "worthless",
    "burden",
    "ending it all",
]

CRISIS_FALLBACK_MESSAGE = (
    "I understand you're going through a difficult time. While I'm having technical "
    "difficulties, please know that help is available:\n\n"
    "Crisis Resources:\n"
    "• National Suicide Prevention Lifeline: 988\n"
    "• Crisis Text Line: Text HOME to 741741\n"
    "• Emergency Services: 911\n\n"
    "You are not alone, and your life has value. Please reach out to one of these "
    "resources right away."
)

GENERIC_FALLBACK_MESSAGE = (
    "I apologize, but I'm experiencing technical difficulties right now. "
    "Please try again in a moment."
)


@dataclass
class ScreeningResult:
    is_crisis: bool
    matched_keywords: List[str] = field(default_factory=list)


def find_keywords(text: str, keywords: List[str] = CRISIS_KEYWORDS) -> List[str]:
    folded = text.casefold()
    return [keyword for keyword in keywords if keyword.casefold() in folded]


def screen(message: str) -> ScreeningResult:
    # Plain substring containment: over-detection is preferred to misses.
    matches = find_keywords(message or "")
    return ScreeningResult(is_crisis=bool(matches), matched_keywords=matches)


def build_user_prompt(message: str, screening: ScreeningResult) -> str:
    if not screening.is_crisis:
        return message
    return (
        "CRISIS ALERT: The user's message contains potential crisis indicators. "
        "Please provide immediate supportive response with crisis resources. "
        f'User message: "{message}"'
    )


def fallback_message(screening: ScreeningResult) -> str:
    return CRISIS_FALLBACK_MESSAGE if screening.is_crisis else GENERIC_FALLBACK_MESSAGE

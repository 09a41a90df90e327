from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from .ai_provider import MENTAL_HEALTH_SYSTEM_PROMPT, BaseProvider, ProviderError, TokenUsage
from .crisis_detector import ScreeningResult, build_user_prompt, fallback_message, screen

logger = logging.getLogger(__name__)

FALLBACK_MODEL = "fallback"


@dataclass
class ChatOutcome:
    content: str
    crisis_detected: bool
    matched_keywords: List[str] = field(default_factory=list)
    fallback: bool = False
    model: str = FALLBACK_MODEL
    token_usage: Optional[TokenUsage] = None
    error: Optional[str] = None

    def metadata(self) -> dict:
        payload = {"model": self.model, "crisis_detected": self.crisis_detected}
        if self.token_usage is not None:
            payload["token_usage"] = {
                "input_tokens": self.token_usage.input_tokens,
                "output_tokens": self.token_usage.output_tokens,
                "total_tokens": self.token_usage.total_tokens,
            }
        if self.error:
            payload["error"] = self.error
        return payload


async def respond_to_message(
    message: str,
    history: List[dict],
    provider: BaseProvider,
    record_crisis: Optional[Callable[[ScreeningResult], None]] = None,
    system_prompt: str = MENTAL_HEALTH_SYSTEM_PROMPT,
) -> ChatOutcome:
    """
    Screen one inbound chat message and produce the assistant reply.

    A crisis match is recorded through `record_crisis` before the provider
    is called; a failing recorder is logged and skipped. Provider failures
    never escape: the caller always receives
    text, and on the crisis path that text carries the hotline resources.
    """
    screening = screen(message)
    if screening.is_crisis:
        logger.warning("Crisis keywords detected: %s", ", ".join(screening.matched_keywords))
        if record_crisis is not None:
            try:
                record_crisis(screening)
            except Exception:
                # The hotline reply goes out even when the audit write fails.
                logger.exception("Failed to record crisis event")

    prompt = build_user_prompt(message, screening)
    try:
        reply = await provider.generate(system_prompt, history, prompt)
    except Exception as exc:
        if isinstance(exc, ProviderError):
            logger.error("Provider %s failed: %s", provider.name, exc)
        else:
            logger.exception("Unexpected provider failure from %s", provider.name)
        return ChatOutcome(
            content=fallback_message(screening),
            crisis_detected=screening.is_crisis,
            matched_keywords=screening.matched_keywords,
            fallback=True,
            error="ai_generation_failed",
        )

    return ChatOutcome(
        content=reply.text,
        crisis_detected=screening.is_crisis,
        matched_keywords=screening.matched_keywords,
        model=reply.model,
        token_usage=reply.token_usage,
    )

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

import httpx

logger = logging.getLogger(__name__)

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_CHAT_MODEL = "meta-llama/llama-3.1-8b-instruct:free"

MENTAL_HEALTH_SYSTEM_PROMPT = """You are a compassionate mental health support assistant trained in Cognitive Behavioral Therapy (CBT) principles. Your role is to:

1. Listen actively and validate emotions without judgment
2. Apply CBT techniques such as identifying thought patterns and cognitive distortions
3. Maintain boundaries - you are supportive but not a replacement for professional therapy
4. Recognize crisis situations and provide appropriate resources
5. Encourage self-reflection and emotional awareness
6. Promote healthy coping strategies and self-care practices

Guidelines:
- Use warm, empathetic language
- Ask open-ended questions to encourage exploration
- Always validate feelings while gently challenging negative thought patterns
- If someone expresses suicidal thoughts or crisis, immediately provide crisis resources
- Keep responses conversational and supportive, not clinical

Crisis Resources:
- National Suicide Prevention Lifeline: 988 or 1-800-273-8255
- Crisis Text Line: Text HOME to 741741
- International Association for Suicide Prevention: https://www.iasp.info/resources/Crisis_Centres/"""


class ProviderError(Exception):
    """Raised when the generative-text provider cannot produce a reply."""


@dataclass
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0


@dataclass
class ProviderReply:
    text: str
    model: str
    token_usage: TokenUsage


def build_messages(system_prompt: str, history: List[dict], prompt: str) -> List[dict]:
    messages = [{"role": "system", "content": system_prompt}]
    for item in history:
        role = "user" if item.get("role") == "user" else "assistant"
        messages.append({"role": role, "content": item.get("content", "")})
    messages.append({"role": "user", "content": prompt})
    return messages


class BaseProvider(ABC):
    """Abstract base class for generative-text providers."""

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @abstractmethod
    async def generate(self, system_prompt: str, history: List[dict], prompt: str) -> ProviderReply:
        """
        Produce the assistant reply for `prompt`.

        Args:
            system_prompt: Instruction prepended as the system message.
            history: Earlier turns as dicts with 'role' and 'content'.
            prompt: The (possibly crisis-prefixed) user prompt.

        Raises:
            ProviderError: on any transport, status or payload failure.
        """
        ...


class OpenRouterProvider(BaseProvider):
    """Provider for OpenRouter chat completions over httpx."""

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_CHAT_MODEL,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.transport = transport

    @property
    def name(self) -> str:
        return "openrouter"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=OPENROUTER_BASE_URL,
            timeout=self.timeout,
            transport=self.transport,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
                "X-Title": "MindfulSpace - Mental Wellness App",
            },
        )

    async def generate(self, system_prompt: str, history: List[dict], prompt: str) -> ProviderReply:
        if not self.api_key:
            raise ProviderError("OpenRouter API key is not configured")
        body = {
            "model": self.model,
            "messages": build_messages(system_prompt, history, prompt),
            "temperature": 0.7,
            "max_tokens": 500,
            "top_p": 0.9,
        }
        try:
            async with self._client() as client:
                response = await client.post("/chat/completions", json=body)
                response.raise_for_status()
                data = response.json()
        except httpx.TimeoutException as exc:
            raise ProviderError("Timeout") from exc
        except httpx.HTTPStatusError as exc:
            raise ProviderError(f"OpenRouter returned {exc.response.status_code}") from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise ProviderError(str(exc)) from exc

        choices = data.get("choices") or []
        text = choices[0].get("message", {}).get("content") if choices else None
        if not text:
            raise ProviderError("Invalid response from OpenRouter API")
        usage = data.get("usage") or {}
        return ProviderReply(
            text=text,
            model=data.get("model") or self.model,
            token_usage=TokenUsage(
                input_tokens=usage.get("prompt_tokens", 0),
                output_tokens=usage.get("completion_tokens", 0),
                total_tokens=usage.get("total_tokens", 0),
            ),
        )

    async def list_models(self) -> List[dict]:
        try:
            async with self._client() as client:
                response = await client.get("/models")
                response.raise_for_status()
                return response.json().get("data") or []
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Failed to fetch OpenRouter models: %s", exc)
            raise ProviderError("Failed to fetch models") from exc

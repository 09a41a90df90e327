"""
Model catalog for the chat assistant.

The catalog keeps its model list in an ExpiringCache it owns, so nothing
is cached at module level and tests can drive expiry with a fake clock.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, List, Optional

from .ai_provider import OpenRouterProvider

logger = logging.getLogger(__name__)

DEFAULT_CACHE_SECONDS = 10 * 60
MODEL_CATEGORIES = ("free", "premium", "all")
MENTAL_HEALTH_FAMILIES = ("llama", "mistral", "qwen", "gemma", "phi", "claude")

DEFAULT_MODELS = [
    {
        "id": "meta-llama/llama-3.1-8b-instruct:free",
        "name": "Llama 3.1 8B Instruct",
        "description": "Fast general-purpose model for daily check-ins and supportive conversation",
        "context_length": 131072,
        "category": "free",
        "supported_features": ["chat"],
        "mental_health_optimized": True,
    },
    {
        "id": "mistralai/mistral-7b-instruct:free",
        "name": "Mistral 7B Instruct",
        "description": "Lightweight model with balanced, concise responses",
        "context_length": 32768,
        "category": "free",
        "supported_features": ["chat"],
        "mental_health_optimized": True,
    },
    {
        "id": "google/gemini-pro-1.5",
        "name": "Gemini 1.5 Pro",
        "description": "Most capable model for complex therapeutic conversations and nuanced emotional support",
        "context_length": 2097152,
        "category": "premium",
        "supported_features": ["chat", "vision", "reasoning"],
        "mental_health_optimized": True,
    },
    {
        "id": "google/gemini-flash-1.5",
        "name": "Gemini 1.5 Flash",
        "description": "Fast and versatile performance across diverse tasks with high volume and efficiency",
        "context_length": 1048576,
        "category": "premium",
        "supported_features": ["chat", "vision"],
        "mental_health_optimized": True,
    },
]


class ExpiringCache:
    """Single cached value with an absolute expiry time."""

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.time):
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self.value: Any = None
        self.expires_at: float = 0.0

    def get(self) -> Any:
        if self.value is None or self.clock() >= self.expires_at:
            return None
        return self.value

    def set(self, value: Any) -> None:
        self.value = value
        self.expires_at = self.clock() + self.ttl_seconds

    def clear(self) -> None:
        self.value = None
        self.expires_at = 0.0


def is_free_model(model: dict) -> bool:
    pricing = model.get("pricing") or {}
    return pricing.get("prompt") == "0" or "free" in model.get("id", "")


def filter_mental_health_models(models: List[dict]) -> List[dict]:
    selected = []
    for model in models:
        name = model.get("id", "").lower()
        if not any(family in name for family in MENTAL_HEALTH_FAMILIES):
            continue
        if "code" in name or "vision" in name:
            continue
        if (model.get("context_length") or 0) < 4000:
            continue
        selected.append(model)
    return sorted(selected, key=lambda m: (not is_free_model(m), -(m.get("context_length") or 0)))


async def load_default_models() -> List[dict]:
    return list(DEFAULT_MODELS)


def remote_models_loader(provider: OpenRouterProvider) -> Callable[[], Awaitable[List[dict]]]:
    async def load() -> List[dict]:
        models = filter_mental_health_models(await provider.list_models())
        return [
            {
                "id": model.get("id"),
                "name": model.get("name") or model.get("id"),
                "description": model.get("description", ""),
                "context_length": model.get("context_length") or 0,
                "category": "free" if is_free_model(model) else "premium",
                "supported_features": ["chat"],
                "mental_health_optimized": True,
            }
            for model in models
        ]

    return load


class ModelCatalog:
    def __init__(
        self,
        loader: Optional[Callable[[], Awaitable[List[dict]]]] = None,
        cache: Optional[ExpiringCache] = None,
    ):
        self.loader = loader or load_default_models
        self.cache = cache or ExpiringCache(DEFAULT_CACHE_SECONDS)
        self._refresh_lock: Optional[asyncio.Lock] = None
        self._lock_loop: Optional[asyncio.AbstractEventLoop] = None

    def refresh_lock(self) -> asyncio.Lock:
        # One lock per event loop; asyncio locks cannot be shared across loops.
        loop = asyncio.get_running_loop()
        if self._refresh_lock is None or self._lock_loop is not loop:
            self._refresh_lock = asyncio.Lock()
            self._lock_loop = loop
        return self._refresh_lock

    async def all_models(self) -> List[dict]:
        models = self.cache.get()
        if models is not None:
            return models
        async with self.refresh_lock():
            # Another request may have refreshed while this one waited.
            models = self.cache.get()
            if models is None:
                models = await self.loader()
                self.cache.set(models)
                logger.debug("Model catalog refreshed with %d models", len(models))
        return models

    async def list_models(self, category: str = "all", limit: int = 20) -> List[dict]:
        if category not in MODEL_CATEGORIES:
            raise ValueError(f"Unknown model category: {category}")
        models = await self.all_models()
        if category != "all":
            models = [model for model in models if model.get("category") == category]
        return models[:limit]

    async def get_model(self, model_id: str) -> Optional[dict]:
        for model in await self.all_models():
            if model.get("id") == model_id:
                return model
        return None

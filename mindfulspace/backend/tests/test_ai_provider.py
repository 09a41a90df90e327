import asyncio
import json

import httpx
import pytest

from mindfulspace.backend.app.ai_provider import OpenRouterProvider, ProviderError, build_messages


def make_provider(handler, api_key="test-key"):
    return OpenRouterProvider(api_key, model="test/model", transport=httpx.MockTransport(handler))


def test_build_messages_normalises_roles():
    messages = build_messages("sys", [{"role": "user", "content": "a"}, {"role": "model", "content": "b"}], "c")
    assert [m["role"] for m in messages] == ["system", "user", "assistant", "user"]
    assert messages[-1]["content"] == "c"


def test_generate_parses_text_and_usage():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("Authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={
            "model": "test/model",
            "choices": [{"message": {"role": "assistant", "content": "Take a slow breath."}}],
            "usage": {"prompt_tokens": 12, "completion_tokens": 6, "total_tokens": 18},
        })

    reply = asyncio.run(make_provider(handler).generate("sys", [], "hello"))
    assert reply.text == "Take a slow breath."
    assert reply.token_usage.total_tokens == 18
    assert seen["url"].endswith("/chat/completions")
    assert seen["auth"] == "Bearer test-key"
    assert seen["body"]["messages"][0] == {"role": "system", "content": "sys"}


def test_http_error_raises_provider_error():
    def handler(request):
        return httpx.Response(503, json={"error": "unavailable"})

    with pytest.raises(ProviderError):
        asyncio.run(make_provider(handler).generate("sys", [], "hello"))


def test_empty_choices_raise_provider_error():
    def handler(request):
        return httpx.Response(200, json={"choices": []})

    with pytest.raises(ProviderError):
        asyncio.run(make_provider(handler).generate("sys", [], "hello"))


def test_timeout_raises_provider_error():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(ProviderError, match="Timeout"):
        asyncio.run(make_provider(handler).generate("sys", [], "hello"))


def test_missing_api_key_raises_provider_error():
    def handler(request):
        raise AssertionError("no request expected")

    with pytest.raises(ProviderError):
        asyncio.run(make_provider(handler, api_key="").generate("sys", [], "hello"))


def test_list_models():
    def handler(request):
        assert request.url.path.endswith("/models")
        return httpx.Response(200, json={"data": [{"id": "a"}, {"id": "b"}]})

    models = asyncio.run(make_provider(handler).list_models())
    assert [m["id"] for m in models] == ["a", "b"]

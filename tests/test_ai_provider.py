# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Tests for provider selection and single-shot completions."""
import json

import httpx
import pytest

from copilot_hub.errors import (
    ProviderNotConfiguredError,
    SessionValidationError,
    UnsupportedProviderError,
    UpstreamProviderError,
)
from copilot_hub.models.api.socket_schema import ChatMessage
from copilot_hub.services.ai_provider import (
    AIProvider,
    CompletionClient,
    as_message_dicts,
    flatten_content,
    normalize_provider,
    to_gemini_contents,
)
from tests.test_stream_relay import StaticConfigCache


def gemini_transport(status_code=200, body=None, seen=None):
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        payload = body if body is not None else {"candidates": [{"content": {"parts": [{"text": "Answer"}]}}]}
        return httpx.Response(status_code, json=payload)

    return httpx.MockTransport(handler)


class TestProviderNames:
    def test_case_insensitive_and_aliases(self):
        assert normalize_provider("OpenAI") is AIProvider.OPENAI
        assert normalize_provider(" gemini ") is AIProvider.GEMINI
        assert normalize_provider("chatgpt") is AIProvider.OPENAI
        assert normalize_provider(None) is AIProvider.OPENAI

    def test_unknown(self):
        assert normalize_provider("claude") is None


class TestMessageShapes:
    def test_flatten_multipart(self):
        content = [
            {"type": "text", "text": "Look at this"},
            {"type": "image_url", "image_url": {"url": "data:image/png;base64,AAA"}},
        ]
        assert flatten_content(content) == "Look at this\n[Image: data:image/png;base64,AAA]"

    def test_flatten_other_shapes(self):
        assert flatten_content(None) == ""
        assert flatten_content({"text": "hi"}) == "hi"
        assert flatten_content(42) == "42"

    def test_gemini_roles(self):
        contents = to_gemini_contents(
            [
                {"role": "system", "content": "Be brief"},
                {"role": "user", "content": "Hi"},
                {"role": "assistant", "content": "Hello"},
            ]
        )
        assert [c["role"] for c in contents] == ["user", "user", "model"]
        assert contents[0]["parts"][0]["text"] == "System: Be brief"

    def test_pydantic_messages_are_accepted(self):
        messages = as_message_dicts([ChatMessage(role="user", content="Hi"), {"role": "system", "content": "x"}])
        assert messages == [{"role": "user", "content": "Hi"}, {"role": "system", "content": "x"}]


class TestResolve:
    async def test_default_provider(self):
        name, credentials = await CompletionClient(StaticConfigCache(default_provider="gemini")).resolve(None)
        assert name is AIProvider.GEMINI
        assert credentials.api_key == "g-test"

    async def test_unsupported(self):
        with pytest.raises(UnsupportedProviderError):
            await CompletionClient(StaticConfigCache()).resolve("claude")

    async def test_missing_key(self):
        with pytest.raises(ProviderNotConfiguredError):
            await CompletionClient(StaticConfigCache()).resolve("deepseek")


class TestGeminiCompletion:
    async def test_answer_text(self):
        seen = []
        client = CompletionClient(
            StaticConfigCache(), http_client=httpx.AsyncClient(transport=gemini_transport(seen=seen))
        )

        answer = await client.complete("gemini", [{"role": "user", "content": "Hi"}])

        assert answer == "Answer"
        request = seen[0]
        assert request.url.path.endswith("/models/gemini-2.0-flash:generateContent")
        assert request.url.params["key"] == "g-test"
        assert json.loads(request.content)["contents"][0]["parts"][0]["text"] == "Hi"

    async def test_upstream_error(self):
        client = CompletionClient(
            StaticConfigCache(), http_client=httpx.AsyncClient(transport=gemini_transport(status_code=500, body={}))
        )
        with pytest.raises(UpstreamProviderError) as excinfo:
            await client.complete("gemini", [{"role": "user", "content": "Hi"}])
        assert excinfo.value.upstream_status == 500

    async def test_empty_candidates(self):
        client = CompletionClient(
            StaticConfigCache(), http_client=httpx.AsyncClient(transport=gemini_transport(body={"candidates": []}))
        )
        assert await client.complete("gemini", [{"role": "user", "content": "Hi"}]) == ""

    async def test_messages_required(self):
        with pytest.raises(SessionValidationError):
            await CompletionClient(StaticConfigCache()).complete("gemini", [])

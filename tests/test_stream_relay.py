# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Tests for the AI stream relay."""
import asyncio
import json

import httpx
import pytest

from copilot_hub.errors import (
    ProviderNotConfiguredError,
    SessionValidationError,
    UnsupportedProviderError,
    UpstreamProviderError,
)
from copilot_hub.services.ai_provider import CompletionClient
from copilot_hub.services.billing import BillingConfig
from copilot_hub.services.config_cache import AdminConfig, ProviderCredentials
from copilot_hub.services.stream_relay import SSELineDecoder, StreamRelay, parse_data_line

MESSAGES = [{"role": "user", "content": "What is a closure?"}]


class StaticConfigCache:
    def __init__(self, default_provider="openai", openai_key="sk-test", gemini_key="g-test"):
        self.config = AdminConfig(
            default_ai_provider=default_provider,
            openai=ProviderCredentials(openai_key, "gpt-test", "https://openai.test/v1"),
            deepseek=ProviderCredentials("", "deepseek-chat", "https://deepseek.test/v1"),
            gemini=ProviderCredentials(gemini_key, "gemini-test", "https://gemini.test/v1beta"),
            billing=BillingConfig(),
        )

    async def get(self):
        return self.config


class FakeCompletionClient:
    def __init__(self, answer="single answer"):
        self.answer = answer
        self.calls = []

    async def complete(self, provider, messages, model=None):
        self.calls.append((provider, messages, model))
        return self.answer


def chat_frame(token):
    return "data: " + json.dumps({"choices": [{"delta": {"content": token}}]}) + "\n\n"


def gemini_frame(token):
    return "data: " + json.dumps({"candidates": [{"content": {"parts": [{"text": token}]}}]}) + "\n\n"


def sse_transport(body: str, status_code: int = 200, seen=None):
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(status_code, content=body.encode("utf-8"))

    return httpx.MockTransport(handler)


def make_relay(transport, config_cache=None, completion_client=None):
    return StreamRelay(
        config_cache or StaticConfigCache(),
        completion_client or FakeCompletionClient(),
        http_client=httpx.AsyncClient(transport=transport),
    )


class TestSSEParsing:
    def test_data_lines_only(self):
        assert parse_data_line("data: {\"a\": 1}") == '{"a": 1}'
        assert parse_data_line(": keep-alive") is None
        assert parse_data_line("event: message") is None

    def test_lines_split_across_chunks(self):
        decoder = SSELineDecoder()
        assert decoder.feed(b"data: hel") == []
        assert decoder.feed(b"lo\ndata: wor") == ["data: hello"]
        assert decoder.flush() == ["data: wor"]

    def test_multibyte_character_split_across_chunks(self):
        decoder = SSELineDecoder()
        encoded = "data: café\n".encode("utf-8")
        split = encoded.index(b"\xa9")
        assert decoder.feed(encoded[:split]) == []
        assert decoder.feed(encoded[split:]) == ["data: café"]


class TestStreamCompletion:
    async def test_tokens_are_relayed_in_order(self):
        body = chat_frame("Hel") + chat_frame("lo") + "data: [DONE]\n\n"
        tokens = []
        relay = make_relay(sse_transport(body))

        answer = await relay.stream_completion("openai", MESSAGES, on_token=tokens.append)

        assert tokens == ["Hel", "lo"]
        assert answer == "Hello"

    async def test_malformed_frame_does_not_interrupt_stream(self):
        body = chat_frame("A") + "data: {not json\n\n" + 'data: {"choices": []}\n\n' + chat_frame("B")
        tokens = []
        relay = make_relay(sse_transport(body))

        answer = await relay.stream_completion("openai", MESSAGES, on_token=tokens.append)

        assert tokens == ["A", "B"]
        assert answer == "AB"

    async def test_nothing_after_done_sentinel(self):
        body = chat_frame("A") + "data: [DONE]\n\n" + chat_frame("B")
        relay = make_relay(sse_transport(body))
        assert await relay.stream_completion("openai", MESSAGES) == "A"

    async def test_async_token_callback(self):
        received = []

        async def on_token(token):
            received.append(token)

        relay = make_relay(sse_transport(chat_frame("x") + chat_frame("y")))
        await relay.stream_completion("openai", MESSAGES, on_token=on_token)
        assert received == ["x", "y"]

    async def test_openai_request_shape(self):
        seen = []
        relay = make_relay(sse_transport(chat_frame("ok"), seen=seen))

        await relay.stream_completion("GPT", MESSAGES)

        request = seen[0]
        assert str(request.url) == "https://openai.test/v1/chat/completions"
        assert request.headers["Authorization"] == "Bearer sk-test"
        payload = json.loads(request.content)
        assert payload["stream"] is True
        assert payload["model"] == "gpt-test"

    async def test_gemini_stream(self):
        seen = []
        relay = make_relay(sse_transport(gemini_frame("Hi") + gemini_frame("!"), seen=seen))
        messages = [
            {"role": "system", "content": "Be brief"},
            {"role": "assistant", "content": "Earlier answer"},
            {"role": "user", "content": "Hello"},
        ]

        answer = await relay.stream_completion("gemini", messages)

        assert answer == "Hi!"
        request = seen[0]
        assert request.url.params["alt"] == "sse"
        contents = json.loads(request.content)["contents"]
        assert [c["role"] for c in contents] == ["user", "model", "user"]

    async def test_default_provider_used_when_none_given(self):
        seen = []
        relay = make_relay(
            sse_transport(gemini_frame("g"), seen=seen),
            config_cache=StaticConfigCache(default_provider="gemini"),
        )
        assert await relay.stream_completion(None, MESSAGES) == "g"
        assert "streamGenerateContent" in str(seen[0].url)


class TestStreamErrors:
    async def test_non_2xx_is_upstream_error(self):
        relay = make_relay(sse_transport('{"error": "rate limited"}', status_code=429))
        with pytest.raises(UpstreamProviderError) as excinfo:
            await relay.stream_completion("openai", MESSAGES)
        assert excinfo.value.upstream_status == 429

    async def test_transport_failure_is_upstream_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        relay = make_relay(httpx.MockTransport(handler))
        with pytest.raises(UpstreamProviderError):
            await relay.stream_completion("openai", MESSAGES)

    async def test_missing_api_key(self):
        relay = make_relay(sse_transport(""), config_cache=StaticConfigCache(openai_key=""))
        with pytest.raises(ProviderNotConfiguredError):
            await relay.stream_completion("openai", MESSAGES)

    async def test_deepseek_without_key(self):
        relay = make_relay(sse_transport(""))
        with pytest.raises(ProviderNotConfiguredError):
            await relay.stream_completion("deepseek", MESSAGES)

    async def test_empty_messages_rejected(self):
        relay = make_relay(sse_transport(""))
        with pytest.raises(SessionValidationError):
            await relay.stream_completion("openai", [])


class TestUnknownProvider:
    async def test_falls_back_to_single_completion(self):
        completion = FakeCompletionClient(answer="whole answer")
        tokens = []
        relay = make_relay(sse_transport(""), completion_client=completion)

        answer = await relay.stream_completion("claude", MESSAGES, on_token=tokens.append)

        assert answer == "whole answer"
        assert tokens == ["whole answer"]
        assert completion.calls[0][0] is None

    async def test_single_completion_comes_from_the_default_provider(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": "from gemini"}]}}]})

        config_cache = StaticConfigCache(default_provider="gemini")
        completion = CompletionClient(config_cache, http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
        relay = make_relay(sse_transport(""), config_cache=config_cache, completion_client=completion)
        tokens = []

        answer = await relay.stream_completion("claude", MESSAGES, on_token=tokens.append)

        assert answer == "from gemini"
        assert tokens == ["from gemini"]
        assert seen[0].url.path.endswith(":generateContent")

    async def test_unknown_default_is_still_rejected(self):
        config_cache = StaticConfigCache(default_provider="claude")
        relay = make_relay(
            sse_transport(""), config_cache=config_cache, completion_client=CompletionClient(config_cache)
        )
        with pytest.raises(UnsupportedProviderError):
            await relay.stream_completion("claude", MESSAGES)


class TestCancellation:
    async def test_cancel_stops_token_delivery(self):
        release = asyncio.Event()

        class SlowStream(httpx.AsyncByteStream):
            async def __aiter__(self):
                yield chat_frame("first").encode()
                await release.wait()
                yield chat_frame("second").encode()

        def handler(request):
            return httpx.Response(200, stream=SlowStream())

        relay = make_relay(httpx.MockTransport(handler))
        cancel_event = asyncio.Event()
        tokens = []

        def on_token(token):
            tokens.append(token)
            cancel_event.set()

        answer = await asyncio.wait_for(
            relay.stream_completion("openai", MESSAGES, on_token=on_token, cancel_event=cancel_event),
            timeout=2,
        )
        release.set()

        assert tokens == ["first"]
        assert answer == "first"

    async def test_already_cancelled_single_completion_delivers_nothing(self):
        cancel_event = asyncio.Event()
        cancel_event.set()
        tokens = []
        relay = make_relay(sse_transport(""), completion_client=FakeCompletionClient("late"))

        await relay.stream_completion("mystery", MESSAGES, on_token=tokens.append, cancel_event=cancel_event)

        assert tokens == []

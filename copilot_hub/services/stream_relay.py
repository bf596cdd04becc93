# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""AI stream relay.

Opens a streaming completion against the selected provider, decodes its server-sent event frames
into a uniform token sequence and forwards each token to a callback while accumulating the final
answer.
"""
import asyncio
import codecs
import inspect
import json
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Union

import httpx

from copilot_hub.errors import ProviderNotConfiguredError, SessionValidationError, UpstreamProviderError
from copilot_hub.services.ai_provider import (
    AIProvider,
    CompletionClient,
    as_message_dicts,
    normalize_provider,
    to_gemini_contents,
)
from copilot_hub.services.config_cache import AdminConfigCache, ProviderCredentials

logger = logging.getLogger(__name__)

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"

TokenCallback = Callable[[str], Union[None, Awaitable[None]]]


class SSELineDecoder:
    """Incremental byte-to-line decoder.

    Bytes are decoded with an incremental UTF-8 decoder so multi-byte characters split across
    chunks survive; the trailing partial line is carried over to the next chunk.
    """

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._carry = ""

    def feed(self, chunk: bytes) -> List[str]:
        text = self._carry + self._decoder.decode(chunk)
        lines = text.split("\n")
        self._carry = lines.pop()
        return [line.rstrip("\r") for line in lines]

    def flush(self) -> List[str]:
        text = self._carry + self._decoder.decode(b"", final=True)
        self._carry = ""
        return [text.rstrip("\r")] if text.strip() else []


def parse_data_line(line: str) -> Optional[str]:
    """Payload of a ``data:`` line, or None for comments, blank lines and other fields."""
    stripped = line.strip()
    if not stripped.startswith(DATA_PREFIX):
        return None
    return stripped[len(DATA_PREFIX):].strip()


class StreamFormat:
    """Request shape and token location for one provider family."""

    def build_request(
        self, credentials: ProviderCredentials, model: str, messages: List[Dict[str, Any]]
    ) -> Dict[str, Any]:
        raise NotImplementedError

    def extract_token(self, frame: Dict[str, Any]) -> Optional[str]:
        raise NotImplementedError


class ChatCompletionsFormat(StreamFormat):
    """OpenAI-compatible ``/chat/completions`` streaming (OpenAI, DeepSeek)."""

    def build_request(self, credentials, model, messages):
        return {
            "url": f"{credentials.base_url}/chat/completions",
            "headers": {
                "Authorization": f"Bearer {credentials.api_key}",
                "Content-Type": "application/json",
            },
            "params": None,
            "json": {"model": model, "messages": messages, "stream": True, "temperature": 0.7},
        }

    def extract_token(self, frame):
        return frame["choices"][0]["delta"].get("content")


class GeminiFormat(StreamFormat):
    """Gemini ``streamGenerateContent`` in SSE mode."""

    def build_request(self, credentials, model, messages):
        return {
            "url": f"{credentials.base_url}/models/{model}:streamGenerateContent",
            "headers": {"Content-Type": "application/json"},
            "params": {"alt": "sse", "key": credentials.api_key},
            "json": {"contents": to_gemini_contents(messages)},
        }

    def extract_token(self, frame):
        return frame["candidates"][0]["content"]["parts"][0].get("text")


STREAM_FORMATS: Dict[AIProvider, StreamFormat] = {
    AIProvider.OPENAI: ChatCompletionsFormat(),
    AIProvider.DEEPSEEK: ChatCompletionsFormat(),
    AIProvider.GEMINI: GeminiFormat(),
}


@dataclass
class _RelayState:
    text: str = ""
    tokens: int = 0
    dropped_frames: int = 0


async def _deliver(on_token: Optional[TokenCallback], token: str) -> None:
    if on_token is None:
        return
    result = on_token(token)
    if inspect.isawaitable(result):
        await result


class StreamRelay:
    """Streams completions and relays tokens, with cancellation."""

    def __init__(
        self,
        config_cache: AdminConfigCache,
        completion_client: CompletionClient,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 120.0,
    ):
        self.config_cache = config_cache
        self.completion_client = completion_client
        self.timeout = timeout
        self._http_client = http_client

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._http_client is not None:
            yield self._http_client
            return
        async with httpx.AsyncClient(timeout=httpx.Timeout(self.timeout, connect=10.0)) as client:
            yield client

    async def stream_completion(
        self,
        provider: Optional[str],
        messages: List[Any],
        on_token: Optional[TokenCallback] = None,
        cancel_event: Optional[asyncio.Event] = None,
        model: Optional[str] = None,
    ) -> str:
        """
        Stream a completion and return the accumulated answer.

        Args:
            provider: Provider name or alias; None uses the configured default
            messages: Chat messages
            on_token: Called once per token, sync or async
            cancel_event: When set, the connection is dropped and no more tokens are delivered
            model: Model override

        Returns:
            Concatenated tokens (partial if cancelled)

        Raises:
            ProviderNotConfiguredError: provider has no API key
            UpstreamProviderError: non-2xx response or transport failure
        """
        if not messages:
            raise SessionValidationError("messages array required")
        messages = as_message_dicts(messages)
        config = await self.config_cache.get()
        requested = provider if provider and str(provider).strip() else config.default_ai_provider
        name = normalize_provider(requested)

        if name is None:
            return await self._complete_once(requested, messages, on_token, cancel_event)

        credentials = config.provider(name.value)
        if credentials is None or not credentials.api_key:
            raise ProviderNotConfiguredError(name.value)

        stream_format = STREAM_FORMATS[name]
        request = stream_format.build_request(credentials, model or credentials.model, messages)
        state = _RelayState()
        relay = asyncio.ensure_future(
            self._relay(name, stream_format, request, on_token, cancel_event, state)
        )
        if cancel_event is None:
            return await relay

        waiter = asyncio.ensure_future(cancel_event.wait())
        try:
            done, _ = await asyncio.wait({relay, waiter}, return_when=asyncio.FIRST_COMPLETED)
            if relay in done:
                return relay.result()
        finally:
            waiter.cancel()
            if not relay.done():
                relay.cancel()
                try:
                    await relay
                except asyncio.CancelledError:
                    pass

        logger.info(f"{name.value} stream cancelled after {state.tokens} tokens")
        return state.text

    async def _complete_once(
        self,
        provider: Optional[str],
        messages: List[Dict[str, Any]],
        on_token: Optional[TokenCallback],
        cancel_event: Optional[asyncio.Event],
    ) -> str:
        """Unknown provider: one completion from the configured default, delivered as a single token."""
        logger.info(f"Unknown provider {provider!r}; using a single completion from the default provider")
        answer = await self.completion_client.complete(None, messages)
        cancelled = cancel_event is not None and cancel_event.is_set()
        if answer and not cancelled:
            await _deliver(on_token, answer)
        return answer

    async def _relay(
        self,
        name: AIProvider,
        stream_format: StreamFormat,
        request: Dict[str, Any],
        on_token: Optional[TokenCallback],
        cancel_event: Optional[asyncio.Event],
        state: _RelayState,
    ) -> str:
        decoder = SSELineDecoder()
        try:
            async with self._client() as client:
                async with client.stream(
                    "POST",
                    request["url"],
                    headers=request["headers"],
                    params=request["params"],
                    json=request["json"],
                ) as response:
                    if not response.is_success:
                        body = (await response.aread()).decode("utf-8", errors="replace")
                        raise UpstreamProviderError(
                            name.value,
                            f"HTTP {response.status_code}: {body[:300]}",
                            response.status_code,
                        )
                    async for chunk in response.aiter_bytes():
                        for line in decoder.feed(chunk):
                            if await self._handle_line(line, stream_format, on_token, cancel_event, state):
                                return state.text
                    for line in decoder.flush():
                        if await self._handle_line(line, stream_format, on_token, cancel_event, state):
                            return state.text
        except httpx.HTTPError as e:
            raise UpstreamProviderError(name.value, str(e) or e.__class__.__name__) from e

        if state.dropped_frames:
            logger.debug(f"{name.value} stream dropped {state.dropped_frames} malformed frames")
        return state.text

    async def _handle_line(
        self,
        line: str,
        stream_format: StreamFormat,
        on_token: Optional[TokenCallback],
        cancel_event: Optional[asyncio.Event],
        state: _RelayState,
    ) -> bool:
        """Process one line; True means stop reading."""
        payload = parse_data_line(line)
        if payload is None or payload == "":
            return False
        if payload == DONE_SENTINEL:
            return True
        try:
            frame = json.loads(payload)
            token = stream_format.extract_token(frame)
        except (ValueError, KeyError, IndexError, TypeError, AttributeError):
            state.dropped_frames += 1
            return False
        if not token:
            return False
        if cancel_event is not None and cancel_event.is_set():
            return True
        state.text += token
        state.tokens += 1
        await _deliver(on_token, token)
        return False

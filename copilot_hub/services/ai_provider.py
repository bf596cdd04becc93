# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""AI provider selection and non-streaming completions."""
import json
import logging
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import httpx
from openai import APIConnectionError, APIStatusError, AsyncOpenAI

from copilot_hub.errors import (
    ProviderNotConfiguredError,
    SessionValidationError,
    UnsupportedProviderError,
    UpstreamProviderError,
)
from copilot_hub.services.config_cache import AdminConfigCache, ProviderCredentials

logger = logging.getLogger(__name__)


class AIProvider(str, Enum):
    OPENAI = "openai"
    DEEPSEEK = "deepseek"
    GEMINI = "gemini"


_PROVIDER_ALIASES = {
    "": AIProvider.OPENAI,
    "openai": AIProvider.OPENAI,
    "gpt": AIProvider.OPENAI,
    "chatgpt": AIProvider.OPENAI,
    "deepseek": AIProvider.DEEPSEEK,
    "gemini": AIProvider.GEMINI,
}

GEMINI_COMPLETION_MODEL = "gemini-2.0-flash"


def normalize_provider(value: Optional[str]) -> Optional[AIProvider]:
    """Case-insensitive provider lookup; None for names we do not know."""
    return _PROVIDER_ALIASES.get(str(value or "").strip().lower())


def flatten_content(content: Any) -> str:
    """Collapse multi-part message content into plain text for text-only models."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for part in content:
            if not isinstance(part, dict):
                continue
            if part.get("type") == "text":
                parts.append(str(part.get("text") or ""))
            elif part.get("type") == "image_url":
                url = (part.get("image_url") or {}).get("url", "")
                parts.append(f"[Image: {url}]")
        return "\n".join(p for p in parts if p)
    if isinstance(content, dict) and "text" in content:
        return str(content.get("text") or "")
    if content is None:
        return ""
    try:
        return json.dumps(content)
    except (TypeError, ValueError):
        return str(content)


def normalize_for_text_model(messages: List[Dict[str, Any]]) -> List[Dict[str, str]]:
    return [{"role": m.get("role", "user"), "content": flatten_content(m.get("content"))} for m in messages]


def to_gemini_contents(messages: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Map chat messages onto Gemini turns (assistant becomes model, system becomes user)."""
    contents = []
    for message in normalize_for_text_model(messages):
        role = message["role"]
        text = message["content"]
        if role == "system":
            text = f"System: {text}"
        contents.append(
            {"role": "model" if role == "assistant" else "user", "parts": [{"text": text}]}
        )
    return contents


def as_message_dicts(messages: List[Any]) -> List[Dict[str, Any]]:
    """Accept pydantic chat messages or plain dicts."""
    result = []
    for message in messages:
        if hasattr(message, "model_dump"):
            message = message.model_dump(include={"role", "content"})
        result.append(dict(message))
    return result


class CompletionClient:
    """Single-shot (non-streaming) completions across providers."""

    def __init__(
        self,
        config_cache: AdminConfigCache,
        timeout: float = 120.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.config_cache = config_cache
        self.timeout = timeout
        self._http_client = http_client

    async def resolve(self, provider: Optional[str]) -> Tuple[AIProvider, ProviderCredentials]:
        """
        Pick the provider and its credentials.

        Raises:
            UnsupportedProviderError: unknown provider name
            ProviderNotConfiguredError: provider has no API key
        """
        config = await self.config_cache.get()
        requested = provider if provider and str(provider).strip() else config.default_ai_provider
        name = normalize_provider(requested)
        if name is None:
            raise UnsupportedProviderError(str(requested))
        credentials = config.provider(name.value)
        if credentials is None or not credentials.api_key:
            raise ProviderNotConfiguredError(name.value)
        return name, credentials

    async def complete(
        self, provider: Optional[str], messages: List[Any], model: Optional[str] = None
    ) -> str:
        """Return the full answer text for ``messages``."""
        if not messages:
            raise SessionValidationError("messages array required")
        messages = as_message_dicts(messages)
        name, credentials = await self.resolve(provider)

        if name == AIProvider.GEMINI:
            return await self._complete_gemini(credentials, messages, model)

        payload = messages if name == AIProvider.OPENAI else normalize_for_text_model(messages)
        try:
            async with AsyncOpenAI(
                api_key=credentials.api_key,
                base_url=credentials.base_url,
                timeout=self.timeout,
            ) as client:
                response = await client.chat.completions.create(
                    model=model or credentials.model,
                    messages=payload,
                )
        except APIStatusError as e:
            raise UpstreamProviderError(name.value, e.message, e.status_code) from e
        except APIConnectionError as e:
            raise UpstreamProviderError(name.value, str(e)) from e

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    async def _complete_gemini(
        self, credentials: ProviderCredentials, messages: List[Dict[str, Any]], model: Optional[str]
    ) -> str:
        model_name = model or GEMINI_COMPLETION_MODEL
        url = f"{credentials.base_url}/models/{model_name}:generateContent"
        body = {"contents": to_gemini_contents(messages)}
        try:
            if self._http_client is not None:
                response = await self._http_client.post(
                    url, params={"key": credentials.api_key}, json=body
                )
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(url, params={"key": credentials.api_key}, json=body)
        except httpx.HTTPError as e:
            raise UpstreamProviderError(AIProvider.GEMINI.value, str(e) or e.__class__.__name__) from e

        if not response.is_success:
            raise UpstreamProviderError(
                AIProvider.GEMINI.value, f"HTTP {response.status_code}", response.status_code
            )
        data = response.json()
        try:
            return data["candidates"][0]["content"]["parts"][0]["text"] or ""
        except (KeyError, IndexError, TypeError):
            logger.warning(f"Gemini returned no text: {str(data)[:200]}")
            return ""

# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""AI answers for live copilot sessions."""
import asyncio
import logging
from typing import Any, Dict, List, Optional
from uuid import UUID

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from copilot_hub.errors import UpstreamProviderError
from copilot_hub.models import database as db_models
from copilot_hub.repositories import CopilotSessionRepository
from copilot_hub.services.ai_provider import AIProvider, CompletionClient, flatten_content, normalize_provider
from copilot_hub.services.stream_relay import StreamRelay, TokenCallback

logger = logging.getLogger(__name__)

CODE_REQUEST = "CODE"
MAX_KEYWORDS = 50

SCREENSHOT_PROMPT = (
    "Screenshots of a coding interview problem. Perform OCR on these images to extract the problem "
    "statement and any starter code. Identify the intended programming language from the screenshot "
    "(editor or code block) and produce a complete, working solution in that language. Return **Code** "
    "(one fenced code block) and then **Explanation** (a concise commentary: approach, key decisions, and "
    "time/space complexity). Use ONLY these images; ignore any stale or unrelated context."
)

SCREENSHOT_TEXT_PROMPT = (
    "Latest screenshots of the coding problem (data URLs). Use OCR to extract the problem statement and "
    "any code snippets, detect the language shown, and return a complete solution in that language. "
    "Format your response as **Code** (one fenced code block) then **Explanation** (approach + "
    "complexity). Use only these images:\n"
)


def clamp(value: Any, limit: int) -> str:
    text = str(value or "")
    if len(text) <= limit:
        return text
    return f"{text[:limit]}\n...[truncated]"


def build_context_message(metadata: Optional[Dict[str, Any]]) -> Optional[Dict[str, str]]:
    """System message carrying the session's job/resume context, or None if there is none."""
    metadata = metadata or {}
    blocks = []
    keywords = [str(k) for k in metadata.get("keywords") or [] if k]
    if keywords:
        blocks.append(f"Keywords: {', '.join(keywords[:MAX_KEYWORDS])}")
    if metadata.get("job_description"):
        blocks.append(f"Job Description:\n{clamp(metadata['job_description'], 6000)}")
    if metadata.get("resume_text"):
        blocks.append(f"Candidate Resume:\n{clamp(metadata['resume_text'], 6000)}")
    if metadata.get("additional_info"):
        blocks.append(f"Additional Context:\n{clamp(metadata['additional_info'], 2000)}")
    if not blocks:
        return None
    return {
        "role": "system",
        "content": "Session context (use this to tailor answers):\n\n" + "\n\n".join(blocks),
    }


def build_screenshot_message(provider: Optional[str], images: List[str]) -> Dict[str, Any]:
    """User message asking for a solution from screenshots.

    OpenAI gets the images as image parts; text-only providers get them inlined as data URLs.
    """
    if normalize_provider(provider) == AIProvider.OPENAI:
        return {
            "role": "user",
            "content": [{"type": "text", "text": SCREENSHOT_PROMPT}]
            + [{"type": "image_url", "image_url": {"url": url}} for url in images],
        }
    listing = "\n".join(f"[{i + 1}] {url}" for i, url in enumerate(images))
    return {"role": "user", "content": SCREENSHOT_TEXT_PROMPT + listing}


def last_question(messages: List[Dict[str, Any]]) -> str:
    for message in reversed(messages):
        if message.get("role") == "user":
            return flatten_content(message.get("content"))
    return ""


class CopilotAssistant:
    """Builds prompts for a copilot session, runs them and records the answers."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        stream_relay: StreamRelay,
        completion_client: CompletionClient,
    ):
        self.session_factory = session_factory
        self.stream_relay = stream_relay
        self.completion_client = completion_client

    async def prepare_messages(self, session_id: UUID, messages: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Prefix the session context, if any. Lookup failures leave the messages untouched."""
        try:
            async with self.session_factory() as db:
                session = await CopilotSessionRepository(db).get_by_id(session_id)
        except Exception as e:
            logger.warning(f"Could not load context for copilot session {session_id}: {e}")
            return list(messages)
        context = build_context_message(session.session_metadata if session else None)
        return ([context] if context else []) + list(messages)

    async def answer(
        self,
        session_id: UUID,
        request_type: str,
        provider: Optional[str],
        messages: List[Dict[str, Any]],
        on_token: Optional[TokenCallback] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> db_models.CopilotAiMessage:
        """
        Stream an answer and store it.

        A transport or upstream failure while streaming gets one non-streaming retry.

        Raises:
            ProviderNotConfiguredError: provider has no API key
            UpstreamProviderError: both attempts failed
        """
        try:
            text = await self.stream_relay.stream_completion(
                provider, messages, on_token=on_token, cancel_event=cancel_event
            )
        except (UpstreamProviderError, httpx.HTTPError) as e:
            logger.error(f"Streaming failed for copilot session {session_id}; falling back: {e}")
            text = await self.completion_client.complete(provider, messages)
        return await self.record_answer(session_id, request_type, provider, last_question(messages), text)

    async def solve_from_screenshots(
        self,
        session_id: UUID,
        provider: Optional[str],
        messages: List[Dict[str, Any]],
        images: List[str],
    ) -> db_models.CopilotAiMessage:
        """Ask for a code solution from the buffered screenshots and store it."""
        provider = provider or AIProvider.OPENAI.value
        prompt = messages + [build_screenshot_message(provider, images)]
        text = await self.completion_client.complete(provider, prompt)
        return await self.record_answer(session_id, CODE_REQUEST, provider, last_question(messages), text)

    async def record_answer(
        self, session_id: UUID, request_type: str, provider: Optional[str], question: str, answer: str
    ) -> db_models.CopilotAiMessage:
        async with self.session_factory() as db:
            message = await CopilotSessionRepository(db).append_ai_message(
                session_id, request_type, str(provider or ""), question, str(answer or "")
            )
            await db.commit()
            return message

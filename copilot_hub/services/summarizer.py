# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Structured recap of a finished session."""
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession

from copilot_hub.models import database as db_models
from copilot_hub.repositories import CopilotSessionRepository
from copilot_hub.services.ai_provider import CompletionClient

logger = logging.getLogger(__name__)

MAX_SUMMARY_ITEMS = 20
_FENCE = re.compile(r"```json|```", re.IGNORECASE)

SUMMARY_SYSTEM_PROMPT = (
    "You are a session summarizer. Return JSON only with keys: summary (string), "
    "topics (array), strengths (array), gaps (array), next_steps (array)."
)


@dataclass
class SessionSummary:
    summary_text: str
    summary_data: Dict[str, Any] = field(default_factory=dict)
    topics: List[str] = field(default_factory=list)


def extract_json_block(text: str) -> str:
    """Outermost ``{...}`` of a model answer, ignoring markdown fences."""
    raw = _FENCE.sub("", str(text or "")).strip()
    start = raw.find("{")
    end = raw.rfind("}")
    if start >= 0 and end > start:
        return raw[start : end + 1]
    return ""


def parse_summary_json(text: str) -> Optional[Dict[str, Any]]:
    block = extract_json_block(text)
    if not block:
        return None
    try:
        data = json.loads(block)
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def normalize_summary_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    items = [str(v).strip() for v in value if v is not None]
    return [item for item in items if item][:MAX_SUMMARY_ITEMS]


class SessionSummarizer:
    """Asks the AI provider for a JSON recap of a transcript."""

    def __init__(self, completion_client: CompletionClient):
        self.completion_client = completion_client

    async def summarize(
        self, transcript_text: str, topics_text: str = "", provider: Optional[str] = None
    ) -> Optional[SessionSummary]:
        """Summarize a transcript; None when there is nothing to summarize."""
        if not transcript_text.strip():
            return None
        messages = [
            {"role": "system", "content": SUMMARY_SYSTEM_PROMPT},
            {
                "role": "user",
                "content": f"Summarize this session.\nTopics:\n{topics_text}\n\nTranscript:\n{transcript_text}",
            },
        ]
        output = await self.completion_client.complete(provider, messages)
        data = parse_summary_json(output) or {}
        for key in ("topics", "strengths", "gaps", "next_steps"):
            if key in data:
                data[key] = normalize_summary_list(data[key])
        summary_text = str(data["summary"]) if data.get("summary") else str(output or "")
        return SessionSummary(
            summary_text=summary_text,
            summary_data=data,
            topics=normalize_summary_list(data.get("topics") or data.get("topic") or []),
        )

    async def summarize_session(
        self, db: AsyncSession, session: Union[db_models.CopilotSession, db_models.Meeting, db_models.Interview]
    ) -> Optional[SessionSummary]:
        """Collect the transcript recorded for a session and summarize it."""
        if isinstance(session, db_models.CopilotSession):
            repo = CopilotSessionRepository(db)
            entries = await repo.list_transcript(session.id)
            topics = await repo.list_topics(session.id)
            transcript_text = "\n".join(e.text for e in entries if e.text)
            topics_text = "\n".join(t.text for t in topics if t.text)
        elif isinstance(session, db_models.Meeting):
            transcript_text = session.transcript or ""
            topics_text = ""
        else:
            return None
        return await self.summarize(transcript_text, topics_text)

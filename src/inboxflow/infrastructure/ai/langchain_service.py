"""AiService backed by a LangChain chat model."""

from __future__ import annotations

import json
import re
from typing import Any

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage
from loguru import logger

from inboxflow.domain.entities.email_message import ThreadContext, ThreadMessage
from inboxflow.domain.errors import NonRetryableError
from inboxflow.domain.models import AiClassification, GeneratedDraft, Priority, Tone, WritingStyle

SYSTEM_PROMPT = (
    "You are an email assistant for a trading platform. "
    "You always answer with raw JSON and nothing else."
)

CLASSIFY_PROMPT = """Analyze this email and provide triage information.

Subject: {subject}
From: {sender}
Body: {body}

Respond ONLY with a valid JSON object (no markdown, no explanation) with these exact fields:
{{
  "priority": "urgent" | "important" | "normal" | "low",
  "category": string (e.g. "financial", "personal", "work", "newsletter", "promotion", "support", "legal"),
  "summary": string (2-3 sentence summary),
  "suggestedAction": string (what action to take),
  "relatedTickers": string[] (stock/crypto tickers mentioned like AAPL, BTC),
  "requiresResponse": boolean,
  "estimatedResponseTime": number (minutes needed to respond, 0 if no response needed)
}}"""

GENERATE_PROMPT = """Generate 3 reply options for this email.

Thread Subject: {subject}

Latest Message:
From: {sender}
{body}

User's Writing Style:
- Tone: {tone}
- Formality: {formality}/10
- Average Length: {length} words
- Common phrases: {phrases}

User's Signature:
{signature}

Generate 3 reply options with different tones. Include the signature in each reply.
Respond ONLY with a valid JSON array (no markdown, no explanation) in this format:
[
  {{"tone": "professional", "content": "reply text with signature", "confidence": 0.85}},
  {{"tone": "friendly", "content": "reply text with signature", "confidence": 0.80}},
  {{"tone": "concise", "content": "reply text with signature", "confidence": 0.75}}
]"""

CLASSIFY_BODY_LIMIT = 3000
GENERATE_BODY_LIMIT = 2000

_OBJECT_RE = re.compile(r"\{[\s\S]*\}")
_ARRAY_RE = re.compile(r"\[[\s\S]*\]")


def _extract_json(text: str, pattern: re.Pattern[str]) -> Any:
    match = pattern.search(text)
    if not match:
        return None
    try:
        return json.loads(match.group(0))
    except json.JSONDecodeError:
        return None


def parse_classification(text: str, subject: str) -> AiClassification:
    """Parse the model's JSON answer. Unparseable output is a fatal error."""
    data = _extract_json(text, _OBJECT_RE)
    if not isinstance(data, dict):
        raise NonRetryableError("No JSON object in classification response")

    try:
        priority = Priority(str(data.get("priority", "normal")).lower())
    except ValueError:
        priority = Priority.NORMAL

    tickers = data.get("relatedTickers")
    minutes = data.get("estimatedResponseTime")
    return AiClassification(
        priority=priority,
        category=data.get("category") or "uncategorized",
        summary=data.get("summary") or subject,
        suggested_action=data.get("suggestedAction") or "Review email",
        tickers=[str(t).upper() for t in tickers] if isinstance(tickers, list) else [],
        requires_response=bool(data.get("requiresResponse", False)),
        estimated_response_time=int(minutes) if isinstance(minutes, (int, float)) else 5,
    )


def parse_drafts(text: str) -> list[GeneratedDraft]:
    """Parse generated reply variants. Anything unusable becomes an empty list."""
    data = _extract_json(text, _ARRAY_RE)
    if not isinstance(data, list):
        logger.warning("No JSON array found in reply generation response")
        return []

    drafts = []
    for entry in data:
        if not isinstance(entry, dict):
            continue
        try:
            tone = Tone(entry.get("tone", "professional"))
        except ValueError:
            tone = Tone.PROFESSIONAL
        confidence = entry.get("confidence")
        drafts.append(
            GeneratedDraft(
                tone=tone,
                content=str(entry.get("content") or ""),
                subject=entry.get("subject"),
                confidence=float(confidence) if isinstance(confidence, (int, float)) else 0.5,
            )
        )
    return drafts


class LangChainAiService:
    """Classify emails and draft replies with any LangChain chat model."""

    def __init__(self, llm: BaseChatModel):
        self.llm = llm

    async def _complete(self, prompt: str) -> str:
        response = await self.llm.ainvoke([SystemMessage(content=SYSTEM_PROMPT), HumanMessage(content=prompt)])
        content = response.content
        if isinstance(content, list):
            # Anthropic may return content blocks
            content = "".join(block.get("text", "") if isinstance(block, dict) else str(block) for block in content)
        return content

    async def classify(self, subject: str, body: str, sender: str) -> AiClassification:
        prompt = CLASSIFY_PROMPT.format(subject=subject, sender=sender, body=body[:CLASSIFY_BODY_LIMIT])
        text = await self._complete(prompt)
        classification = parse_classification(text, subject)
        logger.debug(f"Classified '{subject}' as {classification.priority.value}/{classification.category}")
        return classification

    async def generate(
        self,
        thread: ThreadContext,
        latest: ThreadMessage,
        style: WritingStyle,
        signature: str,
    ) -> list[GeneratedDraft]:
        prompt = GENERATE_PROMPT.format(
            subject=thread.subject,
            sender=latest.sender,
            body=latest.body[:GENERATE_BODY_LIMIT],
            tone=style.preferred_tone,
            formality=style.formality_level,
            length=style.average_reply_length,
            phrases=", ".join(style.common_phrases[:5]),
            signature=signature,
        )
        text = await self._complete(prompt)
        drafts = parse_drafts(text)
        logger.info(f"Generated {len(drafts)} drafts for thread {thread.thread_id}")
        return drafts

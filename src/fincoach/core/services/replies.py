"""
Conversational replies in a persona's voice.

The model is asked for a short reply and an optional private note for
the notebook. Callers fall back to ``FALLBACK_REPLY`` when the call
fails; this module lets provider errors propagate.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, Field, ValidationError

from ..config import Settings
from ..schemas import FinancialReport
from .llm_utils import acompletion_with_retry, completion_kwargs, extract_completion_text, extract_json_object
from .personas import REPORT_DISCUSSION_PROMPT, PersonaConfig

logger = logging.getLogger(__name__)

FALLBACK_REPLY = "Thank you for sharing that. Could you tell me more about that?"
HISTORY_WINDOW = 12

REPLY_SYSTEM_PROMPT = """You are {name}, a financial coach. {tagline}.
Tone: {tone}. Approach: {approach}.
Phrases you like to use: {phrases}.

You are guiding a client through a short lifestyle conversation, one topic at a time.
Current topic: {topic}.
What to do now: {guidance}

Rules:
- Reply in two or three sentences, spoken aloud, no lists or markdown.
- Ask exactly one question unless the topic is the summary.
- Never invent numbers about the client.
- Output JSON only: {{"response": "...", "note": "one short private observation for the session notes, or null"}}.
"""


class TherapistReply(BaseModel):
    response: str = Field(..., min_length=1)
    note: Optional[str] = None


def build_reply_messages(
    persona: PersonaConfig,
    topic: str,
    user_input: str,
    history: Sequence[Dict[str, str]],
    *,
    report: Optional[FinancialReport] = None,
) -> List[Dict[str, str]]:
    guidance = persona.prompt_for(topic)
    if report is not None:
        guidance = f"{REPORT_DISCUSSION_PROMPT}\n{json.dumps(report.model_dump(mode='json'), default=str)}"
    system = REPLY_SYSTEM_PROMPT.format(
        name=persona.name,
        tagline=persona.tagline,
        tone=persona.tone,
        approach=persona.approach,
        phrases=", ".join(persona.key_phrases) or "none in particular",
        topic=topic,
        guidance=guidance,
    )
    messages: List[Dict[str, str]] = [{"role": "system", "content": system}]
    for item in list(history)[-HISTORY_WINDOW:]:
        role = "assistant" if item.get("role") in {"assistant", "agent"} else "user"
        content = item.get("content") or ""
        if content:
            messages.append({"role": role, "content": content})
    if messages[-1]["content"] != user_input:
        messages.append({"role": "user", "content": user_input})
    return messages


def _parse_reply(content: str) -> TherapistReply:
    try:
        return TherapistReply.model_validate_json(content)
    except ValidationError:
        extracted: Optional[Dict[str, Any]] = extract_json_object(content)
        if extracted is not None:
            try:
                return TherapistReply.model_validate(extracted)
            except ValidationError:
                pass
    # Plain text is still a usable reply.
    return TherapistReply(response=content.strip())


async def generate_reply(
    persona: PersonaConfig,
    topic: str,
    user_input: str,
    history: Sequence[Dict[str, str]],
    settings: Settings,
    *,
    report: Optional[FinancialReport] = None,
) -> TherapistReply:
    """Ask the model for the persona's next line at ``topic``."""
    messages = build_reply_messages(persona, topic, user_input, history, report=report)
    response = await acompletion_with_retry(**completion_kwargs(settings, messages, temperature=0.7, max_tokens=400))
    content = extract_completion_text(response)
    if not content or not content.strip():
        logger.warning("Empty reply from model for persona %s at %s", persona.id, topic)
        return TherapistReply(response=FALLBACK_REPLY)
    return _parse_reply(content)

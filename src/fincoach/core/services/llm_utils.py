"""
Shared helpers for LiteLLM calls and response parsing.
"""
from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

from litellm import acompletion
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..config import Settings

LLM_RETRY_ATTEMPTS = 3


@retry(
    stop=stop_after_attempt(LLM_RETRY_ATTEMPTS),
    wait=wait_exponential(min=1, max=8),
    retry=retry_if_exception_type(Exception),
    reraise=True,
)
async def acompletion_with_retry(**kwargs: Any) -> Any:
    return await acompletion(**kwargs)


def completion_kwargs(
    settings: Settings,
    messages: List[Dict[str, str]],
    *,
    temperature: float = 0.7,
    max_tokens: Optional[int] = None,
) -> Dict[str, Any]:
    """Build LiteLLM keyword arguments from the configured provider settings."""
    kwargs: Dict[str, Any] = {
        "model": settings.litellm_model,
        "messages": messages,
        "temperature": temperature,
    }
    if max_tokens:
        kwargs["max_tokens"] = max_tokens
    if settings.litellm_api_key:
        kwargs["api_key"] = settings.litellm_api_key
    if settings.litellm_base_url:
        kwargs["base_url"] = settings.litellm_base_url
    return kwargs


def extract_completion_text(response: Any) -> Optional[str]:
    """Extract the text content from a LiteLLM completion response."""
    try:
        return response["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        pass
    try:
        return response.choices[0].message.content
    except (AttributeError, IndexError, TypeError):
        return None


def extract_json_object(content: str) -> Optional[dict]:
    """Best-effort extraction of a JSON object from model output.

    Models often wrap JSON in prose or code fences; fall back to the
    outermost ``{...}`` span when the whole text does not parse.
    """
    try:
        parsed = json.loads(content)
        if isinstance(parsed, dict):
            return parsed
    except ValueError:
        pass
    start = content.find("{")
    end = content.rfind("}")
    if start == -1 or end == -1 or end <= start:
        return None
    try:
        parsed = json.loads(content[start : end + 1])
    except ValueError:
        return None
    return parsed if isinstance(parsed, dict) else None

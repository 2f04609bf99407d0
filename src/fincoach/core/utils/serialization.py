"""
JSON helpers shared by storage backends, exports and event streams.
"""
from __future__ import annotations

import enum
import json
from datetime import date, datetime
from typing import Any

import orjson
from pydantic import BaseModel


def _json_default(value: object) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    return str(value)


def json_dumps(payload: object, *, pretty: bool = False) -> str:
    """Serialise ``payload`` with orjson, falling back to the stdlib encoder."""
    option = orjson.OPT_NON_STR_KEYS
    if pretty:
        option |= orjson.OPT_INDENT_2 | orjson.OPT_SORT_KEYS
    try:
        return orjson.dumps(payload, default=_json_default, option=option).decode("utf-8")
    except (orjson.JSONEncodeError, TypeError):
        return json.dumps(payload, default=_json_default, indent=2 if pretty else None, sort_keys=pretty)


def json_loads(content: str | bytes) -> Any:
    return orjson.loads(content)


def sse_event(event: str, data: str) -> str:
    return f"event: {event}\ndata: {data}\n\n"


def sse_json(event: str, payload: object) -> str:
    return sse_event(event, json_dumps(payload))

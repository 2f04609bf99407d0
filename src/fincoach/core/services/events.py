"""
Server-sent events for a watching client.

The stream polls the session's notebook and pushes each new user message
as it lands, then the report exactly once when it is attached.
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import AsyncIterator, Awaitable, Callable

from ..storage.base import StorageBackend
from ..utils.serialization import sse_json
from .notebook_manager import NotebookManager

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 1.0
DEFAULT_MAX_DURATION = 600.0


async def stream_session_events(
    storage: StorageBackend,
    session_id: str,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
    max_duration: float = DEFAULT_MAX_DURATION,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> AsyncIterator[str]:
    yield sse_json("connected", {"type": "connected", "session_id": session_id})
    manager = NotebookManager(storage=storage, autosave_interval=None)
    sent_messages = 0
    report_sent = False
    deadline = clock() + max_duration
    while clock() < deadline:
        notebook = await manager.load(session_id)
        if notebook is not None:
            user_messages = [m for m in notebook.messages if m.speaker.value == "user"]
            for message in user_messages[sent_messages:]:
                yield sse_json(
                    "user_message",
                    {"type": "user_message", "message": message.text, "timestamp": message.timestamp},
                )
            sent_messages = max(sent_messages, len(user_messages))
            if not report_sent and notebook.has_reports():
                logger.info("Sending report for session %s", session_id)
                yield sse_json(
                    "show_report",
                    {
                        "type": "show_report",
                        "report": {
                            "id": notebook.report_id,
                            "qualitative": notebook.qualitative_report,
                            "quantitative": notebook.quantitative_report,
                        },
                    },
                )
                report_sent = True
        await sleep(poll_interval)

"""
Tests for the session event stream.
"""
import json

import pytest

from fincoach.core.schemas import FinancialReport, QualitativeReport
from fincoach.core.services.events import stream_session_events
from fincoach.core.services.notebook_manager import NotebookManager
from fincoach.core.services.reports import build_quantitative


class StepClock:
    """Advances one second every time it is read."""

    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        value = self.now
        self.now += 1.0
        return value


def _parse(events):
    parsed = []
    for raw in events:
        header, data = raw.strip().split("\n")
        parsed.append((header.removeprefix("event: "), json.loads(data.removeprefix("data: "))))
    return parsed


@pytest.mark.asyncio
async def test_stream_pushes_new_user_messages_and_report_once(storage) -> None:
    manager = NotebookManager(storage=storage, autosave_interval=None)
    notebook = await manager.create_or_restore("ramit-sethi", notebook_id="conv_1")
    notebook.add_message("user", "first answer")
    notebook.add_message("agent", "thanks")
    await manager.save()

    polls = []

    async def sleep(delay: float) -> None:
        polls.append(delay)
        if len(polls) == 1:
            notebook.add_message("user", "second answer")
            notebook.attach_report(
                FinancialReport(
                    id="report_1",
                    therapist_id="ramit-sethi",
                    qualitative=QualitativeReport(summary="Balanced"),
                    quantitative=build_quantitative(3000, {"housing": 1000}),
                )
            )
            await manager.save()

    stream = stream_session_events(
        storage, "conv_1", poll_interval=0.5, max_duration=3.5, sleep=sleep, clock=StepClock()
    )
    events = _parse([event async for event in stream])

    assert [name for name, _ in events] == ["connected", "user_message", "user_message", "show_report"]
    assert events[0][1] == {"type": "connected", "session_id": "conv_1"}
    assert [payload["message"] for name, payload in events if name == "user_message"] == [
        "first answer",
        "second answer",
    ]
    report = events[-1][1]["report"]
    assert report["id"] == "report_1"
    assert report["quantitative"]["surplus"] == 2000
    assert polls == [0.5, 0.5, 0.5]


@pytest.mark.asyncio
async def test_stream_waits_for_a_notebook_that_does_not_exist_yet(storage) -> None:
    async def sleep(delay: float) -> None:
        return None

    stream = stream_session_events(storage, "missing", max_duration=2.5, sleep=sleep, clock=StepClock())
    events = _parse([event async for event in stream])
    assert [name for name, _ in events] == ["connected"]

"""
Tests for the conversational turn pipeline.

Report and reply generation are replaced with fakes; the pipeline itself
runs against in-memory storage exactly as it does in production.
"""
import asyncio

import pytest

from fincoach.core.config import get_settings
from fincoach.core.errors import ConfigurationError
from fincoach.core.schemas import FinancialReport, QualitativeReport, TurnRequest
from fincoach.core.services import turns
from fincoach.core.services.failures import FailureLog
from fincoach.core.services.notebook_manager import notebook_key
from fincoach.core.services.registry import SessionRegistry
from fincoach.core.services.replies import FALLBACK_REPLY, TherapistReply
from fincoach.core.services.reports import build_quantitative
from fincoach.core.storage.memory import MemoryStorage

LONG_ANSWER = "I travel twice a year, usually somewhere warm"


class FakeGenerators:
    def __init__(self) -> None:
        self.report_calls = 0
        self.extracted_data = None
        self.reply_calls = []

    async def report(self, persona, messages, settings, profile=None, *, extracted_data=None):
        self.report_calls += 1
        self.extracted_data = extracted_data
        return FinancialReport(
            id="report_test",
            therapist_id=persona.id,
            qualitative=QualitativeReport(
                summary="A balanced, social lifestyle.",
                strengths_summary="You cook most meals at home.",
                opportunities_summary="Dining out is creeping up",
            ),
            quantitative=build_quantitative(5000, {"housing": 1500, "food": 500, "transportation": 250}),
        )

    async def reply(self, persona, topic, user_input, history, settings, *, report=None):
        self.reply_calls.append({"topic": topic, "report": report})
        return TherapistReply(response=f"[{topic}] reply", note=f"note on {topic}")


async def _no_sleep(delay: float) -> None:
    return None


def _request(content: str, topic=None, role: str = "user", **variables) -> TurnRequest:
    if topic is not None:
        variables["current_topic"] = topic
    return TurnRequest(
        messages=[
            {"role": "assistant", "content": "Tell me more."},
            {"role": role, "content": content},
        ],
        variables=variables,
    )


@pytest.fixture
def fakes() -> FakeGenerators:
    return FakeGenerators()


@pytest.fixture
async def registered(storage: MemoryStorage) -> MemoryStorage:
    await SessionRegistry(storage).register("conv_1", "ramit-sethi")
    return storage


async def _turn(storage, fakes, request, settings=None):
    return await turns.process_turn(
        request,
        storage,
        settings or get_settings(),
        report_generator=fakes.report,
        reply_generator=fakes.reply,
        sleep=_no_sleep,
    )


@pytest.mark.asyncio
async def test_unresolved_session_apologises(storage, fakes) -> None:
    response = await _turn(storage, fakes, _request("Hello, my name is Sam", topic="name"))
    assert response.content == turns.CONNECTION_TROUBLE_REPLY
    assert response.variables == {"current_topic": "name"}
    assert fakes.reply_calls == []


@pytest.mark.asyncio
async def test_last_message_not_from_user(registered, fakes) -> None:
    response = await _turn(registered, fakes, _request("Anything else?", role="assistant"))
    assert response.content == turns.NO_INPUT_REPLY


@pytest.mark.asyncio
async def test_unknown_therapist_reports_configuration_trouble(storage, fakes) -> None:
    await SessionRegistry(storage).register("conv_x", "nobody-at-all")
    response = await _turn(storage, fakes, _request("Hello, my name is Sam"))
    assert response.content == turns.CONFIGURATION_TROUBLE_REPLY


@pytest.mark.asyncio
async def test_missing_credentials_raise_configuration_error(registered, fakes, monkeypatch) -> None:
    monkeypatch.delenv("LITELLM_API_KEY")
    get_settings.cache_clear()
    with pytest.raises(ConfigurationError) as excinfo:
        await _turn(registered, fakes, _request("Hello, my name is Sam"))
    assert excinfo.value.missing == ["LITELLM_API_KEY"]


@pytest.mark.asyncio
async def test_turn_advances_topic_and_persists_notebook(registered, fakes) -> None:
    response = await _turn(registered, fakes, _request("My name is Sam Jones", topic="name"))

    assert response.variables["current_topic"] == "age"
    assert response.content == "[age] reply"
    stored = await registered.load(notebook_key("conv_1"))
    assert [m["speaker"] for m in stored["messages"]] == ["user", "agent"]
    assert stored["messages"][0]["topic"] == "name"
    assert stored["current_topic"] == "age"
    assert stored["user_profile"]["name"] == "My name is Sam Jones"
    assert stored["notes"][0]["note"] == "note on age"


@pytest.mark.asyncio
async def test_short_input_keeps_topic(registered, fakes) -> None:
    response = await _turn(registered, fakes, _request("Sam", topic="name"))
    assert response.variables["current_topic"] == "name"
    assert fakes.reply_calls[0]["topic"] == "name"


@pytest.mark.asyncio
async def test_turns_accumulate_in_one_notebook(registered, fakes) -> None:
    await _turn(registered, fakes, _request("My name is Sam Jones", topic="name"))
    await _turn(registered, fakes, _request("I am thirty one years old", topic="age"))
    stored = await registered.load(notebook_key("conv_1"))
    assert len(stored["messages"]) == 4
    assert stored["user_profile"]["age"] == "I am thirty one years old"


@pytest.mark.asyncio
async def test_transition_into_summary_generates_report_once(registered, fakes) -> None:
    response = await _turn(registered, fakes, _request(LONG_ANSWER, topic="travel_preference"))

    assert fakes.report_calls == 1
    assert response.variables["current_topic"] == "summary"
    assert response.variables["report_generated"] is True
    assert response.variables["report_id"] == "report_test"
    assert "30% to housing" in response.content
    assert "10% to food" in response.content
    assert "5% to transportation" in response.content
    assert "you're saving 55% of your income" in response.content
    assert "You cook most meals at home." in response.content
    stored = await registered.load(notebook_key("conv_1"))
    assert stored["report_id"] == "report_test"
    assert stored["quantitative_report"]["total_expenses"] == 2250
    assert fakes.extracted_data["goals"]["short_term"] == ["Save for vacation"]
    assert stored["extracted_data"] == fakes.extracted_data

    follow_up = await _turn(
        registered, fakes, _request("What does my housing number mean?", **response.variables)
    )
    assert fakes.report_calls == 1
    assert follow_up.content == "[summary] reply"
    assert fakes.reply_calls[-1]["report"].id == "report_test"
    assert follow_up.variables["report_generated"] is True


@pytest.mark.asyncio
async def test_report_not_regenerated_when_variables_say_generated(registered, fakes) -> None:
    response = await _turn(
        registered,
        fakes,
        _request(LONG_ANSWER, topic="travel_preference", report_generated=True, report_id="old"),
    )
    assert fakes.report_calls == 0
    assert response.variables["current_topic"] == "summary"
    assert response.variables["report_id"] == "old"


@pytest.mark.asyncio
async def test_report_failure_routes_back_and_logs(registered, fakes) -> None:
    async def failing_report(*args, **kwargs):
        raise RuntimeError("429 Too Many Requests")

    response = await turns.process_turn(
        _request(LONG_ANSWER, topic="travel_preference"),
        registered,
        get_settings(),
        report_generator=failing_report,
        reply_generator=fakes.reply,
        sleep=_no_sleep,
    )
    assert response.content == turns.REPORT_FALLBACK_REPLY
    assert response.variables["current_topic"] == "housing_preference"
    assert "report_generated" not in response.variables

    stats = await FailureLog(registered).stats()
    assert stats.by_type == {"report_generation": 1}
    assert stats.recent[0].category == "rate_limit"
    stored = await registered.load(notebook_key("conv_1"))
    assert stored["qualitative_report"] is None
    assert stored["extracted_data"] is None


@pytest.mark.asyncio
async def test_report_timeout_is_a_failure(registered, fakes, monkeypatch) -> None:
    monkeypatch.setenv("FINCOACH_REPORT_TIMEOUT_SECONDS", "0.05")
    get_settings.cache_clear()

    async def slow_report(*args, **kwargs):
        await asyncio.sleep(5)

    response = await turns.process_turn(
        _request(LONG_ANSWER, topic="travel_preference"),
        registered,
        get_settings(),
        report_generator=slow_report,
        reply_generator=fakes.reply,
        sleep=_no_sleep,
    )
    assert response.content == turns.REPORT_FALLBACK_REPLY
    stats = await FailureLog(registered).stats()
    assert stats.recent[0].category == "timeout"


@pytest.mark.asyncio
async def test_reply_failure_falls_back_and_logs(registered, fakes) -> None:
    async def failing_reply(*args, **kwargs):
        raise ConnectionError("connection reset by peer")

    response = await turns.process_turn(
        _request("My name is Sam Jones", topic="name"),
        registered,
        get_settings(),
        report_generator=fakes.report,
        reply_generator=failing_reply,
        sleep=_no_sleep,
    )
    assert response.content == FALLBACK_REPLY
    assert response.variables["current_topic"] == "age"
    stats = await FailureLog(registered).stats()
    assert stats.by_type == {"therapist_response": 1}
    assert stats.by_topic == {"age": 1}
    assert stats.recent[0].category == "network"


@pytest.mark.asyncio
async def test_unknown_topic_restarts_at_intro(registered, fakes) -> None:
    response = await _turn(registered, fakes, _request("Hello there, I'm ready to go", topic="retirement"))
    assert response.variables["current_topic"] == "name"

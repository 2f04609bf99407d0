"""
Conversational turn processing.

One inbound turn from the voice platform runs this pipeline:

1. resolve which registered session (and therapist) the turn belongs to,
2. restore or create that session's notebook and append the user message,
3. advance the topic state machine,
4. on the transition into ``summary``, extract the figures the client
   stated and generate the report exactly once,
5. otherwise reply in the persona's voice,
6. persist the notebook and return ``{content, variables}``.

Handlers are stateless; storage is the only thing shared between turns.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Sequence

from ..config import Settings, require_turn_settings
from ..errors import NotebookStateError
from ..schemas import FinancialReport, Speaker, TurnRequest, TurnResponse
from ..storage.base import StorageBackend
from .extraction import extract_financial_data
from .failures import FailureLog
from .notebook import Notebook
from .notebook_manager import NotebookManager
from .personas import PersonaConfig, find_persona
from .profile import capture_answer
from .registry import SessionRegistry
from .replies import FALLBACK_REPLY, TherapistReply, generate_reply
from .reports import build_verbal_summary, generate_financial_report
from .topics import REPORT_DISCUSSION_MODE, Topic, coerce_topic, crosses_into_summary, next_topic

logger = logging.getLogger(__name__)

CONNECTION_TROUBLE_REPLY = (
    "I'm having trouble connecting to our session. Could you please restart the conversation?"
)
NO_INPUT_REPLY = "I'm sorry, I didn't catch that. Could you say that again?"
CONFIGURATION_TROUBLE_REPLY = (
    "I'm having trouble accessing my configuration right now. Please try again in a moment."
)
TECHNICAL_DIFFICULTY_REPLY = (
    "I'm experiencing a technical difficulty right now. Could you please repeat what you just said?"
)
REPORT_FALLBACK_REPLY = (
    "I'd like to create a comprehensive financial analysis for you, but I need a bit more "
    "information about your lifestyle and spending preferences first. Let's continue our "
    "conversation - could you tell me more about your housing situation and daily spending habits?"
)
SESSION_FINISHED_REPLY = (
    "This coaching session has already wrapped up. Please start a new session if you would like to keep talking."
)

ReportGenerator = Callable[..., Awaitable[FinancialReport]]
ReplyGenerator = Callable[..., Awaitable[TherapistReply]]


class TurnContext:
    """Everything a single turn needs after the session is resolved."""

    def __init__(
        self,
        notebook: Notebook,
        persona: PersonaConfig,
        settings: Settings,
        failures: FailureLog,
        history: Sequence[Dict[str, str]],
        variables: Dict[str, Any],
    ) -> None:
        self.notebook = notebook
        self.persona = persona
        self.settings = settings
        self.failures = failures
        self.history = history
        self.variables = variables


async def _reply(
    ctx: TurnContext,
    topic: Topic,
    user_input: str,
    reply_generator: ReplyGenerator,
    report: Optional[FinancialReport] = None,
) -> str:
    try:
        reply = await reply_generator(
            ctx.persona, topic.value, user_input, ctx.history, ctx.settings, report=report
        )
    except Exception as exc:  # noqa: BLE001
        await ctx.failures.record_exception(
            "therapist_response", exc, therapist_id=ctx.persona.id, topic=topic.value
        )
        return FALLBACK_REPLY
    if reply.note:
        ctx.notebook.add_note(topic.value, reply.note)
    return reply.response


async def _trigger_report(ctx: TurnContext, current: Topic, report_generator: ReportGenerator) -> str:
    notebook = ctx.notebook
    extracted = extract_financial_data(notebook.messages).model_dump(mode="json")
    try:
        report = await asyncio.wait_for(
            report_generator(
                ctx.persona, notebook.messages, ctx.settings, notebook.user_profile, extracted_data=extracted
            ),
            timeout=ctx.settings.report_timeout_seconds,
        )
    except Exception as exc:  # noqa: BLE001
        await ctx.failures.record_exception(
            "report_generation", exc, therapist_id=ctx.persona.id, topic=current.value
        )
        notebook.update_topic(Topic.housing_preference.value)
        ctx.variables["current_topic"] = Topic.housing_preference.value
        return REPORT_FALLBACK_REPLY
    notebook.attach_report(report)
    if notebook.extracted_data is None:
        notebook.set_extracted_data(extracted)
    notebook.update_topic(Topic.summary.value)
    ctx.variables.update(current_topic=Topic.summary.value, report_generated=True, report_id=report.id)
    logger.info("Report %s attached to notebook %s", report.id, notebook.id)
    return build_verbal_summary(report)


async def process_turn(
    request: TurnRequest,
    storage: StorageBackend,
    settings: Settings,
    *,
    report_generator: Optional[ReportGenerator] = None,
    reply_generator: Optional[ReplyGenerator] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> TurnResponse:
    """Handle one conversational turn.

    Raises ``ConfigurationError`` when provider credentials or the
    callback URL are missing. Every other anticipated problem produces a
    conversational reply instead of an error.
    """
    require_turn_settings(settings)
    report_generator = report_generator or generate_financial_report
    reply_generator = reply_generator or generate_reply
    variables: Dict[str, Any] = dict(request.variables)

    registry = SessionRegistry(storage, sleep=sleep)
    record = await registry.resolve(settings.session_resolve_retries, settings.session_resolve_delay)
    if record is None:
        return TurnResponse(content=CONNECTION_TROUBLE_REPLY, variables=variables)

    last = request.messages[-1] if request.messages else None
    if last is None or last.role != "user" or not last.content.strip():
        return TurnResponse(content=NO_INPUT_REPLY, variables=variables)
    user_input = last.content.strip()

    persona = find_persona(record.therapist_id)
    if persona is None:
        logger.error("Session %s refers to unknown therapist %s", record.session_id, record.therapist_id)
        return TurnResponse(content=CONFIGURATION_TROUBLE_REPLY, variables=variables)

    current = coerce_topic(variables.get("current_topic"))
    variables["current_topic"] = current.value

    manager = NotebookManager(
        storage=storage,
        autosave_interval=None,
        optimistic_locking=settings.notebook_optimistic_locking,
    )
    try:
        notebook = await manager.create_or_restore(record.therapist_id, notebook_id=record.session_id)
    except NotebookStateError as exc:
        logger.info("Turn for finished session %s: %s", record.session_id, exc)
        await manager.close()
        return TurnResponse(content=SESSION_FINISHED_REPLY, variables=variables)
    try:
        ctx = TurnContext(
            notebook=notebook,
            persona=persona,
            settings=settings,
            failures=FailureLog(storage, limit=settings.failure_log_limit),
            history=[{"role": m.role, "content": m.content} for m in request.messages],
            variables=variables,
        )
        notebook.update_topic(current.value)
        notebook.add_message(Speaker.user, user_input)
        capture_answer(notebook, current, user_input)

        upcoming = next_topic(current, user_input, ctx.history)
        report_exists = bool(variables.get("report_generated")) or notebook.has_reports()

        if crosses_into_summary(current, upcoming) and not report_exists:
            content = await _trigger_report(ctx, current, report_generator)
        elif current is Topic.summary and report_exists:
            logger.debug("Session %s in %s mode", record.session_id, REPORT_DISCUSSION_MODE)
            content = await _reply(ctx, current, user_input, reply_generator, report=notebook.report())
        else:
            notebook.update_topic(upcoming.value)
            variables["current_topic"] = upcoming.value
            content = await _reply(ctx, upcoming, user_input, reply_generator)

        notebook.add_message(Speaker.agent, content)
        if not await manager.save():
            logger.warning("Turn for session %s was answered but not persisted", record.session_id)
    finally:
        await manager.close()
    return TurnResponse(content=content, variables=variables)

"""
Financial report generation.

The model writes the qualitative analysis and estimates monthly income
and expenses per category from the client's lifestyle answers. Totals,
surplus and savings rate are computed here from those estimates, never
taken from the model.
"""
from __future__ import annotations

import json
import logging
import secrets
import time
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, Field, ValidationError, field_validator

from ..config import Settings
from ..errors import ReportGenerationError
from ..schemas import FinancialReport, Message, QualitativeReport, QuantitativeReport, utc_now
from .llm_utils import acompletion_with_retry, completion_kwargs, extract_completion_text, extract_json_object
from .personas import PersonaConfig

logger = logging.getLogger(__name__)

EXPENSE_CATEGORIES = (
    "housing",
    "food",
    "transportation",
    "fitness",
    "entertainment",
    "subscriptions",
    "travel",
    "healthcare",
    "debt",
    "miscellaneous",
)

REPORT_SYSTEM_PROMPT = """You are the Financial Report agent working for {name}.
From the lifestyle conversation and profile, write a report with two parts.

Part 1, qualitative: a summary of the client's lifestyle, key insights,
recommendations, concrete action items, one sentence on their strengths
and one sentence on their opportunities.

Part 2, quantitative: estimate typical monthly costs for their lifestyle
and location from public cost-of-living data. Do not reuse figures the
client stated; "stated_figures" lists them for context only.
Use only these expense categories: {categories}.
Estimate monthly_income as 0 if nothing indicates it.

Output JSON only:
{{"summary": "...", "key_insights": ["..."], "recommendations": ["..."],
  "action_items": ["..."], "strengths_summary": "...", "opportunities_summary": "...",
  "monthly_income": 0, "expenses": {{"housing": 0, "food": 0}}}}
"""


class ReportDraft(BaseModel):
    """Structured model output for a financial report."""

    summary: str = Field(..., min_length=1)
    key_insights: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    action_items: List[str] = Field(default_factory=list)
    strengths_summary: str = ""
    opportunities_summary: str = ""
    monthly_income: float = Field(0.0, ge=0)
    expenses: Dict[str, float] = Field(default_factory=dict)

    @field_validator("expenses")
    @classmethod
    def drop_unknown_categories(cls, value: Dict[str, float]) -> Dict[str, float]:
        return {key: round(float(amount), 2) for key, amount in value.items() if key in EXPENSE_CATEGORIES and amount >= 0}


def new_report_id() -> str:
    return f"report_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


def build_quantitative(monthly_income: float, expenses: Dict[str, float]) -> QuantitativeReport:
    total = round(sum(expenses.values()), 2)
    surplus = round(monthly_income - total, 2)
    savings_rate = round(surplus / monthly_income * 100, 1) if monthly_income > 0 else 0.0
    return QuantitativeReport(
        monthly_income=monthly_income,
        expenses=dict(expenses),
        total_expenses=total,
        surplus=surplus,
        savings_rate=savings_rate,
    )


def _report_messages(
    persona: PersonaConfig,
    messages: Sequence[Message],
    profile: Optional[Dict[str, Any]],
    extracted_data: Optional[Dict[str, Any]] = None,
) -> List[Dict[str, str]]:
    transcript = [{"speaker": m.speaker.value, "text": m.text, "topic": m.topic} for m in messages]
    payload = {"profile": profile or {}, "stated_figures": extracted_data or {}, "transcript": transcript}
    return [
        {
            "role": "system",
            "content": REPORT_SYSTEM_PROMPT.format(name=persona.name, categories=", ".join(EXPENSE_CATEGORIES)),
        },
        {"role": "user", "content": json.dumps(payload, default=str)},
    ]


async def _draft_report(kwargs: Dict[str, Any]) -> ReportDraft:
    try:
        from instructor import from_litellm

        client = from_litellm(acompletion_with_retry)
        return await client(response_model=ReportDraft, **kwargs)
    except Exception as exc:  # noqa: BLE001
        logger.warning("Instructor report drafting failed; falling back. Error: %s", exc)
    response = await acompletion_with_retry(**kwargs)
    content = extract_completion_text(response)
    if not content:
        raise ReportGenerationError("LiteLLM returned an empty report.")
    try:
        return ReportDraft.model_validate_json(content)
    except ValidationError as exc:
        logger.warning("Failed to parse report draft. Error: %s", exc)
        extracted = extract_json_object(content)
        if extracted is None:
            raise ReportGenerationError("Report output was not valid JSON.") from exc
        try:
            return ReportDraft.model_validate(extracted)
        except ValidationError as inner:
            raise ReportGenerationError(f"Report output did not match the expected shape: {inner}") from inner


async def generate_financial_report(
    persona: PersonaConfig,
    messages: Sequence[Message],
    settings: Settings,
    profile: Optional[Dict[str, Any]] = None,
    *,
    extracted_data: Optional[Dict[str, Any]] = None,
) -> FinancialReport:
    """Produce a complete report or raise; never returns partial data.

    ``extracted_data`` holds figures pattern-matched from the client's own
    messages. The model sees them as context only.
    """
    prompt = _report_messages(persona, messages, profile, extracted_data)
    kwargs = completion_kwargs(settings, prompt, temperature=0.2)
    draft = await _draft_report(kwargs)
    if not draft.expenses:
        raise ReportGenerationError("Report draft contained no expense estimates.")
    report = FinancialReport(
        id=new_report_id(),
        therapist_id=persona.id,
        generated_at=utc_now(),
        qualitative=QualitativeReport(
            summary=draft.summary,
            key_insights=draft.key_insights,
            recommendations=draft.recommendations,
            action_items=draft.action_items,
            strengths_summary=draft.strengths_summary,
            opportunities_summary=draft.opportunities_summary,
        ),
        quantitative=build_quantitative(draft.monthly_income, draft.expenses),
    )
    logger.info("Generated report %s for persona %s", report.id, persona.id)
    return report


def _sentence(text: str, default: str) -> str:
    text = (text or "").strip().rstrip(".")
    return text or default


def _percent(value: float) -> str:
    return f"{value:g}"


def build_verbal_summary(report: FinancialReport) -> str:
    """Spoken summary read to the client when the report is first shown."""
    quantitative = report.quantitative
    if quantitative.savings_rate > 0:
        savings = f"Great news - you're saving {_percent(quantitative.savings_rate)}% of your income!"
    else:
        savings = "We should work on building your savings buffer."
    strengths = _sentence(report.qualitative.strengths_summary, "you have a clear sense of how you like to live")
    opportunities = _sentence(report.qualitative.opportunities_summary, "There is room to fine-tune a few categories")
    return (
        "I've completed your comprehensive financial analysis, which is now being displayed on your screen.\n\n"
        "On the quantitative side, here are your key metrics: "
        f"You're allocating {_percent(quantitative.share_of_income('housing'))}% to housing, "
        f"{_percent(quantitative.share_of_income('food'))}% to food, and "
        f"{_percent(quantitative.share_of_income('transportation'))}% to transportation. {savings}\n\n"
        f"From a qualitative perspective, {strengths}. {opportunities}.\n\n"
        "Your complete report is now ready for review on screen. Would you like to discuss any specific "
        "aspects of your financial picture, or shall we wrap up so you can download your detailed report?"
    )

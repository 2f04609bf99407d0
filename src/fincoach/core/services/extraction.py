"""
Pattern-based extraction of stated financial figures.

Runs over the client's own messages just before a report is generated.
The result is stored on the notebook and handed to the report model as
context; it never replaces the model's cost-of-living estimates.

Patterns are matched against the user messages joined by newlines, and
``.`` does not cross a newline, so a keyword and an amount are only
paired when they appear in the same message.
"""
from __future__ import annotations

import logging
import re
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from ..schemas import (
    DebtItem,
    ExtractedDebts,
    ExtractedFinancialData,
    ExtractedGoals,
    ExtractedIncome,
    Message,
    Speaker,
)

logger = logging.getLogger(__name__)

AMOUNT = r"\$?(\d[\d,]*(?:\.\d+)?[km]?)\b"

Patterns = Tuple[re.Pattern, ...]


def _compile(*patterns: str) -> Patterns:
    return tuple(re.compile(pattern, re.IGNORECASE) for pattern in patterns)


# Months per stated period, checked in this order.
INCOME_PATTERNS: Tuple[Tuple[str, float, Patterns], ...] = (
    (
        "annual",
        1 / 12,
        _compile(
            rf"{AMOUNT}\s*(?:per|/|a|an)?\s*(?:year|yr|annual|annually)\b",
            rf"(?:yearly|annual)\s*(?:income|salary|pay|earnings?).*?{AMOUNT}",
            rf"(?:make|earn|get|receive).*?{AMOUNT}\s*(?:a|per)\s*year",
        ),
    ),
    (
        "monthly",
        1.0,
        _compile(
            rf"{AMOUNT}\s*(?:per|/|a)?\s*(?:month|mo|monthly)\b",
            rf"(?:monthly|month)\s*(?:income|salary|pay|earnings?).*?{AMOUNT}",
            rf"(?:make|earn|get|receive).*?{AMOUNT}\s*(?:a|per|each)\s*month",
        ),
    ),
    (
        "biweekly",
        26 / 12,
        _compile(
            rf"{AMOUNT}\s*(?:bi-?weekly|every\s*(?:two|2)\s*weeks)",
            rf"(?:paid|pay).*?(?:bi-?weekly|every\s*(?:two|2)\s*weeks).*?{AMOUNT}",
        ),
    ),
    (
        "weekly",
        52 / 12,
        _compile(
            rf"{AMOUNT}\s*(?:per|/|a)?\s*(?:week|wk|weekly)\b",
            rf"(?:weekly|week)\s*(?:income|salary|pay|earnings?).*?{AMOUNT}",
        ),
    ),
    (
        "hourly",
        160.0,
        _compile(
            rf"{AMOUNT}\s*(?:per|/|an|a)?\s*(?:hour|hr|hourly)\b",
            rf"(?:hourly|hour)\s*(?:rate|wage|pay).*?{AMOUNT}",
        ),
    ),
)

# An amount and its keyword must not have another amount between them.
GAP = r"[^\d$\n]{0,40}?"


def _keyword_amount(keywords: str) -> Patterns:
    """Amount stated before the keyword ("$400 on groceries"), then after it ("rent is $1,800")."""
    return _compile(rf"{AMOUNT}{GAP}\b(?:{keywords})\b", rf"\b(?:{keywords})\b{GAP}{AMOUNT}")


# (report category, patterns); several entries may add to one category.
EXPENSE_PATTERNS: Tuple[Tuple[str, Patterns], ...] = (
    ("housing", _keyword_amount(r"rent|rental|renting")),
    ("housing", _keyword_amount(r"mortgage")),
    ("food", _keyword_amount(r"groceries|grocery|food\s*shop(?:ping)?")),
    ("food", _keyword_amount(r"dining|restaurants?|eat(?:ing)?\s*out|takeout|delivery")),
    ("transportation", _keyword_amount(r"car|vehicle|auto|transport(?:ation)?|commute|gas|fuel|uber|lyft|taxi")),
    ("miscellaneous", _keyword_amount(r"utilities|utility|electric(?:ity)?|water|power|internet|phone")),
    ("miscellaneous", _keyword_amount(r"insurance")),
    ("subscriptions", _keyword_amount(r"subscriptions?|netflix|spotify|gym|memberships?")),
    ("entertainment", _keyword_amount(r"entertainment|fun|hobby|hobbies|movies?|concerts?|games?")),
)

DEBT_PATTERNS: Tuple[Tuple[str, Patterns], ...] = (
    ("credit card", _keyword_amount(r"credit\s*cards?")),
    ("student loan", _keyword_amount(r"student\s*(?:loans?|debt)|college\s*loans?")),
    ("car loan", _keyword_amount(r"(?:car|auto|vehicle)\s*loans?")),
    ("personal loan", _keyword_amount(r"personal\s*loans?")),
)

TOTAL_DEBT_PATTERNS = _compile(
    rf"(?:total\s*debt|all\s*debt|debt\s*total|altogether\s*owe).*?{AMOUNT}",
    rf"{AMOUNT}.*?(?:total\s*debt|in\s*debt)",
)

SHORT_TERM_GOALS: Tuple[Tuple[str, Patterns], ...] = (
    ("Build emergency fund", _compile(r"emergency\s*fund|rainy\s*day|safety\s*net", r"(?:save|need).*?(?:emergency|unexpected)")),
    ("Save for vacation", _compile(r"\b(?:vacations?|travel(?:ling)?|trips?|holidays?)\b")),
    ("Education/Training", _compile(r"\b(?:education|college|university|degree|courses?|certification)\b")),
)

LONG_TERM_GOALS: Tuple[Tuple[str, Patterns], ...] = (
    ("Retirement planning", _compile(r"\b(?:retire|retirement|401k|ira|pension)\b")),
    ("Buy a house", _compile(r"(?:buy|purchase|save\s*for).*?(?:house|home|property|condo)", r"down\s*payment")),
    ("Start a business", _compile(r"(?:start|launch|open).*?(?:business|company|startup)", r"entrepreneur|self-employed")),
    ("Build investment portfolio", _compile(r"\b(?:invest(?:ing|ment)?|stocks?|bonds?|real\s*estate|crypto)\b", r"(?:grow|build).*?(?:wealth|portfolio)")),
)

SAVINGS_PATTERN = re.compile(
    rf"(?:save|saving|put\s*away|set\s*aside).*?{AMOUNT}\s*(?:per|/|a|each)?\s*month", re.IGNORECASE
)


def normalize_amount(raw: str) -> float:
    """Parse ``"$1,800"``, ``"100k"`` or ``"1.5m"`` into a number."""
    cleaned = raw.replace("$", "").replace(",", "").strip().lower()
    multiplier = 1.0
    if cleaned.endswith("k"):
        cleaned, multiplier = cleaned[:-1], 1_000.0
    elif cleaned.endswith("m"):
        cleaned, multiplier = cleaned[:-1], 1_000_000.0
    try:
        return float(cleaned) * multiplier
    except ValueError:
        return 0.0


def _first_amount(text: str, patterns: Iterable[re.Pattern]) -> Optional[float]:
    for pattern in patterns:
        match = pattern.search(text)
        if match:
            return normalize_amount(match.group(1))
    return None


def _any_match(text: str, patterns: Iterable[re.Pattern]) -> bool:
    return any(pattern.search(text) for pattern in patterns)


def extract_income(text: str) -> ExtractedIncome:
    for frequency, months, patterns in INCOME_PATTERNS:
        amount = _first_amount(text, patterns)
        if amount:
            monthly = round(amount * months, 2)
            return ExtractedIncome(
                monthly=monthly,
                annual=round(amount * months * 12, 2),
                source=None if frequency in {"annual", "monthly"} else f"{frequency} income",
            )
    return ExtractedIncome()


def extract_expenses(text: str) -> Dict[str, float]:
    expenses: Dict[str, float] = {}
    for category, patterns in EXPENSE_PATTERNS:
        amount = _first_amount(text, patterns)
        if amount:
            expenses[category] = expenses.get(category, 0.0) + amount
    if expenses:
        expenses["total"] = round(sum(expenses.values()), 2)
    return expenses


def extract_goals(text: str) -> ExtractedGoals:
    savings_match = SAVINGS_PATTERN.search(text)
    return ExtractedGoals(
        short_term=[goal for goal, patterns in SHORT_TERM_GOALS if _any_match(text, patterns)],
        long_term=[goal for goal, patterns in LONG_TERM_GOALS if _any_match(text, patterns)],
        savings=normalize_amount(savings_match.group(1)) if savings_match else None,
    )


def extract_debts(text: str) -> ExtractedDebts:
    items: List[DebtItem] = []
    for debt_type, patterns in DEBT_PATTERNS:
        amount = _first_amount(text, patterns)
        if amount:
            items.append(DebtItem(type=debt_type, amount=amount))
    total = _first_amount(text, TOTAL_DEBT_PATTERNS)
    if not total and items:
        total = sum(item.amount for item in items)
    return ExtractedDebts(items=items, total=total or None)


def extract_financial_data(messages: Sequence[Message]) -> ExtractedFinancialData:
    """Collect income, expenses, goals and debts stated in the user's messages."""
    text = "\n".join(m.text for m in messages if m.speaker is Speaker.user)
    data = ExtractedFinancialData(
        income=extract_income(text),
        expenses=extract_expenses(text),
        goals=extract_goals(text),
        debts=extract_debts(text),
    )
    monthly = data.income.monthly
    if monthly and data.expenses.get("total", 0) > monthly:
        logger.info("Stated expenses exceed stated monthly income")
    return data

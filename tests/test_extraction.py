"""
Tests for pattern-based extraction of stated financial figures.
"""
import pytest

from fincoach.core.schemas import Message, Speaker
from fincoach.core.services.extraction import (
    extract_expenses,
    extract_financial_data,
    extract_income,
    normalize_amount,
)


def _user(*texts: str):
    return [Message(speaker=Speaker.user, text=text) for text in texts]


@pytest.mark.parametrize(
    "raw, expected",
    [("$1,800", 1800.0), ("100k", 100_000.0), ("1.5m", 1_500_000.0), ("250.50", 250.5), ("abc", 0.0)],
)
def test_normalize_amount(raw: str, expected: float) -> None:
    assert normalize_amount(raw) == expected


def test_extracts_figures_from_user_messages_only() -> None:
    messages = _user(
        "I make $85,000 a year as a nurse",
        "Rent is $1,800 a month for a one bedroom",
        "I spend about $400 on groceries and $150 eating out",
        "I have $5,000 in credit card debt and want an emergency fund",
        "I try to save $300 a month for retirement",
    )
    messages.append(Message(speaker=Speaker.agent, text="That's $9,999 rent?"))

    data = extract_financial_data(messages)

    assert data.income.monthly == 7083.33
    assert data.income.annual == 85000.0
    assert data.income.source is None
    assert data.expenses == {"housing": 1800.0, "food": 550.0, "total": 2350.0}
    assert data.goals.short_term == ["Build emergency fund"]
    assert data.goals.long_term == ["Retirement planning"]
    assert data.goals.savings == 300.0
    assert [(item.type, item.amount) for item in data.debts.items] == [("credit card", 5000.0)]
    assert data.debts.total == 5000.0


def test_hourly_income_is_converted_to_monthly() -> None:
    income = extract_income("I earn $25 an hour at the warehouse")
    assert income.monthly == 4000.0
    assert income.annual == 48000.0
    assert income.source == "hourly income"


def test_amounts_are_not_paired_across_messages() -> None:
    text = "\n".join(["I pay $900", "rent is shared with roommates"])
    assert extract_expenses(text) == {}


def test_nothing_stated_gives_empty_data() -> None:
    data = extract_financial_data(_user("I like hiking and cooking with friends"))
    assert data.income.monthly is None
    assert data.expenses == {}
    assert data.debts.items == []
    assert data.debts.total is None
    assert data.model_dump(mode="json")["goals"] == {"short_term": [], "long_term": [], "savings": None}

"""
Tests for the topic state machine.
"""
import pytest

from fincoach.core.services.topics import (
    LIFESTYLE_TOPICS,
    TOPIC_SEQUENCE,
    Topic,
    coerce_topic,
    crosses_into_summary,
    lifestyle_readiness,
    next_topic,
)

LONG_ANSWER = "I live downtown with two roommates"


def test_vocabulary_order() -> None:
    assert TOPIC_SEQUENCE[0] is Topic.intro
    assert TOPIC_SEQUENCE[-1] is Topic.summary
    assert len(TOPIC_SEQUENCE) == 13
    assert len(LIFESTYLE_TOPICS) == 7


@pytest.mark.parametrize("user_input", ["", "yes", "   ok   ", "0123456789", "  0123456789  "])
def test_short_input_stays_on_topic(user_input: str) -> None:
    assert next_topic(Topic.age, user_input, []) is Topic.age


def test_eleven_characters_advances() -> None:
    assert next_topic(Topic.age, "01234567890", []) is Topic.interests


@pytest.mark.parametrize("index", range(len(TOPIC_SEQUENCE) - 2))
def test_each_topic_advances_to_the_next(index: int) -> None:
    assert next_topic(TOPIC_SEQUENCE[index], LONG_ANSWER, []) is TOPIC_SEQUENCE[index + 1]


def test_travel_moves_to_summary_once_history_is_substantial() -> None:
    history = [{"role": "user", "content": LONG_ANSWER}]
    assert lifestyle_readiness(history) == 7
    assert next_topic(Topic.travel_preference, LONG_ANSWER, history) is Topic.summary


def test_travel_stays_without_substantial_history() -> None:
    history = [{"role": "user", "content": "short"}, {"role": "assistant", "content": "twenty chars exactly"}]
    assert lifestyle_readiness(history) == 0
    assert next_topic(Topic.travel_preference, LONG_ANSWER, history) is Topic.travel_preference


def test_readiness_accepts_text_field() -> None:
    assert lifestyle_readiness([{"text": LONG_ANSWER}]) == 7


def test_summary_is_terminal() -> None:
    assert next_topic(Topic.summary, LONG_ANSWER, [{"content": LONG_ANSWER}]) is Topic.summary


def test_coerce_topic() -> None:
    assert coerce_topic(None) is Topic.intro
    assert coerce_topic("") is Topic.intro
    assert coerce_topic("food_preference") is Topic.food_preference
    assert coerce_topic("retirement_plans") is Topic.intro


def test_crosses_into_summary_only_on_the_edge() -> None:
    assert crosses_into_summary(Topic.travel_preference, Topic.summary)
    assert not crosses_into_summary(Topic.summary, Topic.summary)
    assert not crosses_into_summary(Topic.travel_preference, Topic.travel_preference)

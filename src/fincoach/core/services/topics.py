"""
Topic progression for the coaching script.

The script walks a fixed list of topics from ``intro`` to ``summary``.
``next_topic`` is a pure function of the current topic, the latest user
input and the message history, so it can be tested on its own.
"""
from __future__ import annotations

import enum
import logging
from typing import Any, Mapping, Optional, Sequence

logger = logging.getLogger(__name__)

MIN_PROGRESS_LENGTH = 10
SUBSTANTIAL_MESSAGE_LENGTH = 20
SUMMARY_READINESS_THRESHOLD = 6


class Topic(str, enum.Enum):
    """Stages of the coaching script, in order."""

    intro = "intro"
    name = "name"
    age = "age"
    interests = "interests"
    housing_location = "housing_location"
    housing_preference = "housing_preference"
    food_preference = "food_preference"
    transport_preference = "transport_preference"
    fitness_preference = "fitness_preference"
    entertainment_preference = "entertainment_preference"
    subscriptions_preference = "subscriptions_preference"
    travel_preference = "travel_preference"
    summary = "summary"


TOPIC_SEQUENCE = tuple(Topic)

LIFESTYLE_TOPICS = (
    Topic.housing_preference,
    Topic.food_preference,
    Topic.transport_preference,
    Topic.fitness_preference,
    Topic.entertainment_preference,
    Topic.subscriptions_preference,
    Topic.travel_preference,
)

REPORT_DISCUSSION_MODE = "report_discussion"


def coerce_topic(value: Optional[str]) -> Topic:
    """Map a client-supplied topic string to a ``Topic``.

    Missing values start the script; unknown values are logged and also
    restart at ``intro`` rather than failing the turn.
    """
    if not value:
        return Topic.intro
    try:
        return Topic(value)
    except ValueError:
        logger.warning("Unknown topic %r; restarting at intro", value)
        return Topic.intro


def _message_text(message: Any) -> str:
    if isinstance(message, Mapping):
        text = message.get("content")
        if text is None:
            text = message.get("text")
    else:
        text = getattr(message, "content", None) or getattr(message, "text", None)
    return text if isinstance(text, str) else ""


def lifestyle_readiness(history: Sequence[Any]) -> int:
    """Count lifestyle topics considered answered before the summary.

    A topic counts when any message in the whole history is longer than
    ``SUBSTANTIAL_MESSAGE_LENGTH``. Messages are not attributed to the
    topic they answer, so one long message satisfies every topic.
    """
    has_substantial = any(len(_message_text(msg)) > SUBSTANTIAL_MESSAGE_LENGTH for msg in history)
    return sum(1 for _ in LIFESTYLE_TOPICS if has_substantial)


def next_topic(current: Topic, user_input: str, history: Sequence[Any]) -> Topic:
    """Return the topic the conversation moves to after ``user_input``."""
    current = Topic(current)
    if len((user_input or "").strip()) <= MIN_PROGRESS_LENGTH:
        logger.debug("Staying at %s: input too short", current.value)
        return current
    if current is Topic.travel_preference:
        readiness = lifestyle_readiness(history)
        if readiness >= SUMMARY_READINESS_THRESHOLD:
            return Topic.summary
        logger.info(
            "Staying at travel_preference: lifestyle readiness %d/%d",
            readiness,
            SUMMARY_READINESS_THRESHOLD,
        )
        return current
    index = TOPIC_SEQUENCE.index(current)
    if index >= len(TOPIC_SEQUENCE) - 1:
        return current
    return TOPIC_SEQUENCE[index + 1]


def crosses_into_summary(current: Topic, upcoming: Topic) -> bool:
    """True only on the transition edge into the terminal topic."""
    return upcoming is Topic.summary and current is not Topic.summary

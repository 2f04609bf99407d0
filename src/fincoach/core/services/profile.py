"""
Incremental user-profile capture.

Each user answer is stored under the profile field that belongs to the
topic being asked about when the answer arrived.
"""
from __future__ import annotations

from typing import Any, Dict

from .notebook import Notebook
from .topics import Topic

SCALAR_FIELDS: Dict[Topic, str] = {
    Topic.name: "name",
    Topic.age: "age",
    Topic.interests: "interests",
    Topic.housing_location: "location",
}

LIFESTYLE_FIELDS: Dict[Topic, str] = {
    Topic.housing_preference: "housing",
    Topic.food_preference: "food",
    Topic.transport_preference: "transport",
    Topic.fitness_preference: "fitness",
    Topic.entertainment_preference: "entertainment",
    Topic.subscriptions_preference: "subscriptions",
    Topic.travel_preference: "travel",
}


def profile_update(profile: Dict[str, Any], topic: Topic, answer: str) -> Dict[str, Any]:
    """Return the top-level profile keys to merge for ``answer`` given at ``topic``."""
    answer = answer.strip()
    if not answer:
        return {}
    if topic in SCALAR_FIELDS:
        return {SCALAR_FIELDS[topic]: answer}
    if topic in LIFESTYLE_FIELDS:
        lifestyle = dict(profile.get("lifestyle") or {})
        entry = dict(lifestyle.get(LIFESTYLE_FIELDS[topic]) or {})
        entry["preference"] = answer
        # details accumulate every answer given while on this topic
        entry["details"] = f"{entry['details']} {answer}" if entry.get("details") else answer
        lifestyle[LIFESTYLE_FIELDS[topic]] = entry
        return {"lifestyle": lifestyle}
    return {}


def capture_answer(notebook: Notebook, topic: Topic, answer: str) -> None:
    updates = profile_update(notebook.user_profile, topic, answer)
    if updates:
        notebook.update_profile(updates)

"""
Notebook export renderers.

Each renderer is deterministic for a given notebook: output depends only
on stored fields, never on the current clock or locale.
"""
from __future__ import annotations

import csv
import io
from typing import Callable, Dict, List, Tuple

from ..utils.serialization import json_dumps
from .notebook import Notebook

CSV_HEADER = ("Type", "Timestamp", "Speaker", "Content", "Topic")
RULE = "=" * 50
SUBRULE = "-" * 20


def to_json(notebook: Notebook) -> str:
    return json_dumps(notebook.to_dict(), pretty=True)


def to_csv(notebook: Notebook) -> str:
    """One row per message, then one per therapist note.

    The csv module quotes fields containing commas, quotes or newlines.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for message in notebook.messages:
        writer.writerow(["Message", message.timestamp.isoformat(), message.speaker.value, message.text, message.topic or ""])
    for note in notebook.notes:
        writer.writerow(["Note", note.time.isoformat(), "therapist", note.note, note.topic])
    return buffer.getvalue()


def _bullets(title: str, items: List[str]) -> List[str]:
    if not items:
        return []
    return [f"{title}:", *(f"  - {item}" for item in items), ""]


def to_text(notebook: Notebook) -> str:
    lines: List[str] = [
        RULE,
        f"SESSION NOTEBOOK: {notebook.id}",
        f"Therapist: {notebook.therapist_id}",
        f"Client: {notebook.client_name}",
        f"Date: {notebook.session_date.date().isoformat()}",
        f"Duration: {notebook.duration} minutes",
        f"Status: {notebook.status.value}",
        f"Last updated: {notebook.updated_at.isoformat()}",
        RULE,
        "",
    ]

    profile = notebook.user_profile
    if profile:
        lines += ["USER PROFILE:", SUBRULE]
        for key in sorted(profile):
            value = profile[key]
            rendered = json_dumps(value, pretty=True) if isinstance(value, (dict, list)) else str(value)
            lines.append(f"{key}: {rendered}")
        lines.append("")

    if notebook.messages:
        lines += ["CONVERSATION:", SUBRULE]
        for message in notebook.messages:
            stamp = message.timestamp.strftime("%H:%M:%S")
            lines.append(f"[{stamp}] {message.speaker.value.upper()}: {message.text}")
        lines.append("")

    if notebook.notes:
        lines += ["THERAPIST NOTES:", SUBRULE]
        for note in notebook.notes:
            lines.append(f"[{note.time.isoformat()}] {note.topic}: {note.note}")
        lines.append("")

    qualitative = notebook.qualitative_report
    if qualitative is not None:
        lines += ["QUALITATIVE REPORT:", SUBRULE, f"Summary: {qualitative.summary}", ""]
        lines += _bullets("Key Insights", qualitative.key_insights)
        lines += _bullets("Recommendations", qualitative.recommendations)
        lines += _bullets("Action Items", qualitative.action_items)

    quantitative = notebook.quantitative_report
    if quantitative is not None:
        lines += [
            "QUANTITATIVE REPORT:",
            SUBRULE,
            f"Monthly Income: ${quantitative.monthly_income:,.2f}",
            f"Monthly Expenses: ${quantitative.total_expenses:,.2f}",
            f"Monthly Surplus: ${quantitative.surplus:,.2f}",
            f"Savings Rate: {quantitative.savings_rate:g}%",
            "",
        ]
        if quantitative.expenses:
            lines.append("Expense Breakdown:")
            for category in sorted(quantitative.expenses):
                lines.append(f"  {category}: ${quantitative.expenses[category]:,.2f}")
            lines.append("")

    if notebook.extracted_data:
        lines += ["EXTRACTED FINANCIAL DATA:", SUBRULE, json_dumps(notebook.extracted_data, pretty=True), ""]

    return "\n".join(lines)


EXPORT_FORMATS: Dict[str, Tuple[Callable[[Notebook], str], str]] = {
    "json": (to_json, "application/json"),
    "csv": (to_csv, "text/csv"),
    "txt": (to_text, "text/plain"),
}


def export_notebook(notebook: Notebook, fmt: str) -> Tuple[str, str]:
    """Render ``notebook`` as ``fmt``; returns ``(body, media_type)``.

    Raises ``ValueError`` for an unsupported format.
    """
    try:
        render, media_type = EXPORT_FORMATS[fmt.lower()]
    except KeyError:
        raise ValueError(f"Unsupported format {fmt!r}. Use json, csv or txt.") from None
    return render(notebook), media_type

"""
Notebook aggregate.

A ``Notebook`` owns one coaching session's transcript, therapist notes,
topic, user profile and report. It tracks whether it has changes that
have not reached durable storage; persisting it is the job of
``NotebookManager``.

Lifecycle is monotonic: ``active`` may become ``completed`` or
``abandoned`` and never goes back. A finished notebook is read-only.
Reports and extracted data are attached at most once.
"""
from __future__ import annotations

import secrets
import time
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from ..errors import NotebookStateError
from ..schemas import (
    FinancialReport,
    Message,
    NotebookData,
    NotebookStatus,
    NotebookSummary,
    QualitativeReport,
    QuantitativeReport,
    Speaker,
    TherapistNote,
    utc_now,
)


def new_notebook_id() -> str:
    return f"notebook_{int(time.time() * 1000)}_{secrets.token_hex(5)[:9]}"


class Notebook:
    def __init__(self, data: NotebookData, *, dirty: bool = False) -> None:
        self._data = data
        self._dirty = dirty

    @classmethod
    def create(
        cls,
        therapist_id: str,
        client_name: Optional[str] = None,
        notebook_id: Optional[str] = None,
    ) -> "Notebook":
        now = utc_now()
        data = NotebookData(
            id=notebook_id or new_notebook_id(),
            therapist_id=therapist_id,
            client_name=client_name or "Anonymous",
            session_date=now,
            created_at=now,
            updated_at=now,
        )
        return cls(data, dirty=True)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Notebook":
        """Rebuild a notebook from its stored form. The result has no pending changes."""
        return cls(NotebookData.model_validate(payload), dirty=False)

    def to_dict(self) -> Dict[str, Any]:
        return self._data.model_dump(mode="json")

    # Read access

    @property
    def id(self) -> str:
        return self._data.id

    @property
    def therapist_id(self) -> str:
        return self._data.therapist_id

    @property
    def client_name(self) -> str:
        return self._data.client_name

    @property
    def session_date(self) -> datetime:
        return self._data.session_date

    @property
    def status(self) -> NotebookStatus:
        return self._data.status

    @property
    def is_active(self) -> bool:
        return self._data.status is NotebookStatus.active

    @property
    def messages(self) -> List[Message]:
        return list(self._data.messages)

    @property
    def notes(self) -> List[TherapistNote]:
        return list(self._data.notes)

    @property
    def current_topic(self) -> str:
        return self._data.current_topic

    @property
    def user_profile(self) -> Dict[str, Any]:
        return dict(self._data.user_profile)

    @property
    def extracted_data(self) -> Optional[Dict[str, Any]]:
        return self._data.extracted_data

    @property
    def qualitative_report(self) -> Optional[QualitativeReport]:
        return self._data.qualitative_report

    @property
    def quantitative_report(self) -> Optional[QuantitativeReport]:
        return self._data.quantitative_report

    @property
    def report_id(self) -> Optional[str]:
        return self._data.report_id

    @property
    def duration(self) -> int:
        return self._data.duration

    @property
    def created_at(self) -> datetime:
        return self._data.created_at

    @property
    def updated_at(self) -> datetime:
        return self._data.updated_at

    @property
    def revision(self) -> int:
        return self._data.revision

    def has_changes(self) -> bool:
        return self._dirty

    def has_reports(self) -> bool:
        return self._data.qualitative_report is not None or self._data.quantitative_report is not None

    def report(self) -> Optional[FinancialReport]:
        """The attached report, or ``None`` unless both halves are present."""
        if self._data.qualitative_report is None or self._data.quantitative_report is None:
            return None
        return FinancialReport(
            id=self._data.report_id or "",
            therapist_id=self.therapist_id,
            generated_at=self.updated_at,
            qualitative=self._data.qualitative_report,
            quantitative=self._data.quantitative_report,
        )

    # Mutations

    def _ensure_active(self, action: str) -> None:
        if not self.is_active:
            raise NotebookStateError(f"Cannot {action} notebook {self.id}: it is {self.status.value}")

    def _touch(self) -> None:
        self._data.updated_at = utc_now()
        self._dirty = True

    def add_message(self, speaker: Speaker | str, text: str, message_id: Optional[str] = None) -> Message:
        self._ensure_active("add a message to")
        message = Message(
            id=message_id or f"msg_{int(time.time() * 1000)}_{secrets.token_hex(3)}",
            timestamp=utc_now(),
            speaker=Speaker(speaker),
            text=text,
            topic=self._data.current_topic,
        )
        self._data.messages.append(message)
        first = self._data.messages[0].timestamp
        self._data.duration = int((message.timestamp - first).total_seconds() // 60)
        self._touch()
        return message

    def add_note(self, topic: str, note: str) -> TherapistNote:
        self._ensure_active("add a note to")
        entry = TherapistNote(time=utc_now(), topic=topic, note=note)
        self._data.notes.append(entry)
        self._touch()
        return entry

    def update_topic(self, topic: str) -> None:
        self._ensure_active("change the topic of")
        if topic == self._data.current_topic:
            return
        self._data.current_topic = topic
        self._touch()

    def update_profile(self, updates: Mapping[str, Any]) -> None:
        """Merge ``updates`` into the profile. ``None`` values are skipped, keys are never removed."""
        self._ensure_active("update the profile of")
        changed = {key: value for key, value in updates.items() if value is not None}
        if not changed:
            return
        self._data.user_profile.update(changed)
        self._touch()

    def set_extracted_data(self, data: Mapping[str, Any]) -> None:
        self._ensure_active("attach extracted data to")
        if self._data.extracted_data is not None:
            raise NotebookStateError(f"Extracted data is already attached to notebook {self.id}")
        self._data.extracted_data = dict(data)
        self._touch()

    def attach_qualitative_report(self, report: QualitativeReport) -> None:
        self._ensure_active("attach a report to")
        if self._data.qualitative_report is not None:
            raise NotebookStateError(f"Notebook {self.id} already has a qualitative report")
        self._data.qualitative_report = report
        self._touch()

    def attach_quantitative_report(self, report: QuantitativeReport) -> None:
        self._ensure_active("attach a report to")
        if self._data.quantitative_report is not None:
            raise NotebookStateError(f"Notebook {self.id} already has a quantitative report")
        self._data.quantitative_report = report
        self._touch()

    def attach_report(self, report: FinancialReport) -> None:
        """Attach both halves of ``report`` and remember its id."""
        self._ensure_active("attach a report to")
        if self.has_reports() or self._data.report_id is not None:
            raise NotebookStateError(f"Notebook {self.id} already has a report")
        self._data.qualitative_report = report.qualitative
        self._data.quantitative_report = report.quantitative
        self._data.report_id = report.id
        self._touch()

    def mark_completed(self) -> None:
        self._ensure_active("complete")
        self._data.status = NotebookStatus.completed
        self._touch()

    def mark_abandoned(self) -> None:
        self._ensure_active("abandon")
        self._data.status = NotebookStatus.abandoned
        self._touch()

    def mark_saved(self, revision: Optional[int] = None) -> None:
        if revision is not None:
            self._data.revision = revision
        self._dirty = False

    def summary(self) -> NotebookSummary:
        return NotebookSummary(
            id=self.id,
            therapist_id=self.therapist_id,
            client_name=self.client_name,
            session_date=self.session_date,
            status=self.status,
            current_topic=self.current_topic,
            message_count=len(self._data.messages),
            duration=self.duration,
            has_reports=self.has_reports(),
        )

    def __repr__(self) -> str:
        return f"Notebook(id={self.id!r}, status={self.status.value!r}, topic={self.current_topic!r})"

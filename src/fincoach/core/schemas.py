"""
Pydantic models shared by the service layer and the HTTP API.

Notebook state, reports and session records are stored as the
``model_dump(mode="json")`` form of these models, so every storage
backend holds plain JSON-compatible dicts.
"""
from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Speaker(str, enum.Enum):
    user = "user"
    agent = "agent"


class NotebookStatus(str, enum.Enum):
    active = "active"
    completed = "completed"
    abandoned = "abandoned"


class Message(BaseModel):
    """One transcript entry. Immutable once appended to a notebook."""

    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    timestamp: datetime = Field(default_factory=utc_now)
    speaker: Speaker
    text: str
    topic: Optional[str] = Field(None, description="Topic active when the message was recorded.")


class TherapistNote(BaseModel):
    model_config = ConfigDict(frozen=True)

    time: datetime = Field(default_factory=utc_now)
    topic: str
    note: str


class QualitativeReport(BaseModel):
    """Narrative half of a financial report."""

    summary: str = ""
    key_insights: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    action_items: List[str] = Field(default_factory=list)
    strengths_summary: str = ""
    opportunities_summary: str = ""


class QuantitativeReport(BaseModel):
    """Numeric half of a financial report. Amounts are monthly."""

    monthly_income: float = 0.0
    expenses: Dict[str, float] = Field(default_factory=dict, description="Monthly amount per expense category.")
    total_expenses: float = 0.0
    surplus: float = 0.0
    savings_rate: float = Field(0.0, description="Surplus as a percentage of income.")

    def share_of_income(self, category: str) -> float:
        """Percentage of income (or of expenses when income is unknown) spent on ``category``."""
        amount = self.expenses.get(category, 0.0)
        base = self.monthly_income or self.total_expenses
        if not base:
            return 0.0
        return round(amount / base * 100, 1)


class FinancialReport(BaseModel):
    id: str
    therapist_id: str
    generated_at: datetime = Field(default_factory=utc_now)
    qualitative: QualitativeReport
    quantitative: QuantitativeReport


class ExtractedIncome(BaseModel):
    monthly: Optional[float] = None
    annual: Optional[float] = None
    source: Optional[str] = Field(None, description="Pay frequency the figure was stated in.")


class ExtractedGoals(BaseModel):
    short_term: List[str] = Field(default_factory=list)
    long_term: List[str] = Field(default_factory=list)
    savings: Optional[float] = Field(None, description="Monthly amount the client says they set aside.")


class DebtItem(BaseModel):
    type: str
    amount: float


class ExtractedDebts(BaseModel):
    items: List[DebtItem] = Field(default_factory=list)
    total: Optional[float] = None


class ExtractedFinancialData(BaseModel):
    """Figures stated by the client, found by pattern matching their messages."""

    income: ExtractedIncome = Field(default_factory=ExtractedIncome)
    expenses: Dict[str, float] = Field(default_factory=dict, description="Monthly amount per category, plus 'total'.")
    goals: ExtractedGoals = Field(default_factory=ExtractedGoals)
    debts: ExtractedDebts = Field(default_factory=ExtractedDebts)


class NotebookData(BaseModel):
    """Serialized notebook state as written to storage."""

    id: str
    therapist_id: str
    client_name: str = "Anonymous"
    session_date: datetime = Field(default_factory=utc_now)
    status: NotebookStatus = NotebookStatus.active
    messages: List[Message] = Field(default_factory=list)
    notes: List[TherapistNote] = Field(default_factory=list)
    current_topic: str = "intro"
    user_profile: Dict[str, Any] = Field(default_factory=dict)
    extracted_data: Optional[Dict[str, Any]] = None
    qualitative_report: Optional[QualitativeReport] = None
    quantitative_report: Optional[QuantitativeReport] = None
    report_id: Optional[str] = None
    duration: int = Field(0, description="Minutes since the first message.")
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    revision: int = 0


class NotebookSummary(BaseModel):
    """Listing view of a notebook."""

    id: str
    therapist_id: str
    client_name: str
    session_date: datetime
    status: NotebookStatus
    current_topic: str
    message_count: int
    duration: int
    has_reports: bool


class SessionRecord(BaseModel):
    """Registry entry mapping a conversation handle to a therapist."""

    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(..., alias="frontendSessionId")
    therapist_id: str = Field(..., alias="therapistId")
    registered_at: datetime = Field(default_factory=utc_now, alias="registeredAt")


class RegisterSessionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    conversation_id: str = Field(..., alias="conversationId", min_length=1)
    therapist_id: str = Field(..., alias="therapistId", min_length=1)

    @field_validator("conversation_id", "therapist_id")
    @classmethod
    def not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value


class RegisterSessionResponse(BaseModel):
    success: bool
    session: Optional[SessionRecord] = None


class TurnMessage(BaseModel):
    role: str
    content: str = ""


class TurnRequest(BaseModel):
    """Inbound conversational turn from the voice/chat platform."""

    messages: List[TurnMessage] = Field(default_factory=list)
    variables: Dict[str, Any] = Field(default_factory=dict)


class TurnResponse(BaseModel):
    content: str
    variables: Dict[str, Any] = Field(default_factory=dict)


class CreateNotebookRequest(BaseModel):
    therapist_id: str = Field(..., min_length=1)
    client_name: Optional[str] = None
    notebook_id: Optional[str] = None
    new_session: bool = Field(False, description="Complete any active notebook and start a fresh one.")


class StorageWriteRequest(BaseModel):
    key: str = Field(..., min_length=1)
    value: Any


class FailureRecord(BaseModel):
    """A logged external-call failure."""

    type: str
    therapist_id: Optional[str] = None
    topic: Optional[str] = None
    error: str = ""
    category: Optional[str] = None
    timestamp: datetime = Field(default_factory=utc_now)


class FailureStats(BaseModel):
    total: int
    last_24_hours: int
    by_type: Dict[str, int]
    by_therapist: Dict[str, int]
    by_topic: Dict[str, int]
    recent: List[FailureRecord]


class PersonaOut(BaseModel):
    id: str
    name: str
    tagline: str

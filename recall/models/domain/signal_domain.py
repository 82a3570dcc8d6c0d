# recall/models/domain/signal_domain.py
"""
Memory Signal Domain Models
Typed extractive summaries produced by the signal scanner.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

TITLE_MAX_CHARS = 60
SUMMARY_MAX_CHARS = 150
QUOTE_MAX_CHARS = 100
MAX_QUOTES = 2


class SignalType(str, Enum):
    DECISION = "Decision"
    RISK = "Risk"
    OPEN_QUESTION = "Open Question"
    COMMITMENT = "Commitment"
    INSIGHT = "Insight"

    @classmethod
    def parse(cls, value) -> "SignalType | None":
        """Accept the canonical label, the no-space variant and any casing."""
        if not isinstance(value, str):
            return None
        compact = value.replace(" ", "").replace("_", "").lower()
        for member in cls:
            if member.value.replace(" ", "").lower() == compact:
                return member
        return None


class SignalDocument(BaseModel):
    """One source document handed to the signal extractor."""

    model_config = ConfigDict(frozen=True)

    id: str
    subject: str = ""
    body: str = ""
    sender_label: str = ""
    timestamp: str = ""
    url: str = ""


class MemorySignal(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    type: SignalType
    title: str = Field(max_length=TITLE_MAX_CHARS)
    summary: str = Field(max_length=SUMMARY_MAX_CHARS)
    importance: int = Field(ge=1, le=10)
    unresolved: bool = False
    source_sender_label: str = ""
    source_timestamp: str = ""
    quotes: list[str] = Field(default_factory=list, max_length=MAX_QUOTES)
    source_url: str = ""

    def dedup_key(self) -> tuple[str, str]:
        return (self.type.value, self.title.strip().lower())


class SignalReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    signals: list[MemorySignal] = Field(default_factory=list)
    total_considered: int = 0

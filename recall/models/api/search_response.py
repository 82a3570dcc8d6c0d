"""
Search, chat, memory and sync API response models.
Used by routes for output formatting.
"""

from typing import Any

from pydantic import BaseModel, Field

from recall.models.domain.search_domain import NormalizedMessage, SearchIntent, SearchResult
from recall.models.domain.signal_domain import MemorySignal


class MessageResponse(BaseModel):
    """One retrieved message, platform-agnostic."""

    id: str = Field(..., description="Platform-scoped message ID")
    platform: str = Field(..., description="gmail, discord or slack")
    account_label: str = Field(..., description="Account the message was found in")
    title: str = Field(..., description="Subject or channel title")
    sender: str = Field(..., description="Sender display label")
    timestamp: str = Field(..., description="Message timestamp as reported by the platform")
    body_preview: str = Field(default="", description="Decoded, truncated body")
    url: str = Field(default="", description="Deep link into the platform's web client")
    raw: dict[str, Any] = Field(
        default_factory=dict, description="Platform-specific fields passed through for display"
    )

    @classmethod
    def from_domain(cls, message: NormalizedMessage) -> "MessageResponse":
        return cls(
            id=message.id,
            platform=message.platform.value,
            account_label=message.account_label,
            title=message.title,
            sender=message.sender_label,
            timestamp=message.timestamp,
            body_preview=message.body_preview,
            url=message.external_url,
            raw=dict(message.raw),
        )


def group_messages(groups: dict) -> dict[str, list[MessageResponse]]:
    return {
        platform.value: [MessageResponse.from_domain(message) for message in messages]
        for platform, messages in groups.items()
    }


class SearchResponse(BaseModel):
    """Per-platform search results."""

    intent: SearchIntent = Field(..., description="Structured interpretation of the query")
    results: dict[str, list[MessageResponse]] = Field(
        ..., description="Ranked results per platform, capped for display"
    )
    totals: dict[str, int] = Field(..., description="Uncapped result count per platform")
    all_ids: dict[str, list[str]] = Field(..., description="Every result ID per platform")
    services_with_results: list[str] = Field(..., description="Platforms with at least one result")
    needs_authentication: bool = Field(
        default=False, description="No accounts connected for any requested platform"
    )
    failed_accounts: list[str] = Field(default_factory=list, description="Accounts that failed")

    @classmethod
    def from_domain(cls, result: SearchResult, cap: int) -> "SearchResponse":
        return cls(
            intent=result.intent,
            results=group_messages(result.sources(cap)),
            totals={platform.value: count for platform, count in result.totals().items()},
            all_ids={platform.value: ids for platform, ids in result.all_ids().items()},
            services_with_results=[platform.value for platform in result.services_with_results],
            needs_authentication=result.needs_authentication,
            failed_accounts=result.failed_accounts,
        )


class ChatResponse(BaseModel):
    """Synthesized answer plus the sources it was built from."""

    response: str = Field(..., description="Answer text")
    sources: dict[str, list[MessageResponse]] = Field(..., description="Capped sources per platform")
    search: SearchResponse = Field(..., description="Underlying search result")
    has_relevant_sources: bool = Field(..., description="Whether any platform returned results")


class RecentMessagesResponse(BaseModel):
    messages: list[MessageResponse] = Field(..., description="Newest mail first")
    total: int = Field(..., description="Messages retrieved before truncation")


class SignalResponse(BaseModel):
    id: str
    type: str
    title: str
    summary: str
    importance: int
    unresolved: bool
    sender: str = ""
    timestamp: str = ""
    quotes: list[str] = Field(default_factory=list)
    url: str = ""

    @classmethod
    def from_domain(cls, signal: MemorySignal) -> "SignalResponse":
        return cls(
            id=signal.id,
            type=signal.type.value,
            title=signal.title,
            summary=signal.summary,
            importance=signal.importance,
            unresolved=signal.unresolved,
            sender=signal.source_sender_label,
            timestamp=signal.source_timestamp,
            quotes=signal.quotes,
            url=signal.source_url,
        )


class SignalsResponse(BaseModel):
    signals: list[SignalResponse] = Field(..., description="Most important signals first")
    total_considered: int = Field(..., description="Distinct signals before the importance filter")


class SyncResponse(BaseModel):
    platform: str
    synced: int = Field(..., description="Messages fetched in this sync")
    total: int = Field(..., description="Messages buffered after merge, across accounts")
    accounts: int = Field(..., description="Accounts synced successfully")

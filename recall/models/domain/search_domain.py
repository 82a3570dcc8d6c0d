# recall/models/domain/search_domain.py
"""
Search Domain Models
Platform-agnostic types that flow through the query pipeline:
intent -> platform query -> fan-out -> ranked results.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Platform(str, Enum):
    """Connected platforms. Member names are roles, values are wire names."""

    MAIL = "gmail"
    CHAT = "discord"
    WORKSPACE = "slack"

    @classmethod
    def parse(cls, value: str) -> "Platform | None":
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


class SearchIntent(BaseModel):
    """Structured interpretation of one free-text query."""

    model_config = ConfigDict(frozen=True)

    names: list[str] = Field(default_factory=list)
    email_addresses: list[str] = Field(default_factory=list)
    topics: list[str] = Field(default_factory=list)
    date_hints: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    partial_names: list[str] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not any(
            (
                self.names,
                self.email_addresses,
                self.topics,
                self.date_hints,
                self.keywords,
                self.partial_names,
            )
        )

    def keyword_terms(self) -> list[str]:
        """Names, topics, keywords and partial names, in that order."""
        return [*self.names, *self.topics, *self.keywords, *self.partial_names]


class AccountHandle(BaseModel):
    """One authenticated account the pipeline may search."""

    model_config = ConfigDict(frozen=True)

    platform: Platform
    account_id: str
    display_label: str
    auth_context: dict[str, Any] = Field(default_factory=dict, repr=False)
    # Position of the account in the web client's multi-login list.
    # Only used to build deep links.
    account_index: int = 0

    @property
    def access_token(self) -> str | None:
        return self.auth_context.get("access_token")


class PlatformQuery(BaseModel):
    """Query in a platform's own dialect.

    Mail uses ``text`` (server-side search syntax). Chat and workspace use
    ``terms`` for a client-side OR substring filter.
    """

    model_config = ConfigDict(frozen=True)

    platform: Platform
    text: str = ""
    terms: list[str] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.text and not self.terms

    def unfiltered(self) -> "PlatformQuery":
        return PlatformQuery(platform=self.platform)


class NormalizedMessage(BaseModel):
    """Platform-agnostic representation of one retrieved document."""

    model_config = ConfigDict(frozen=True)

    id: str
    platform: Platform
    account_label: str
    title: str
    sender_label: str
    timestamp: str
    body_preview: str = ""
    external_url: str = ""
    raw: dict[str, Any] = Field(default_factory=dict)


class SearchResult(BaseModel):
    """Outcome of one search request, grouped by platform."""

    model_config = ConfigDict(frozen=True)

    intent: SearchIntent
    results_by_platform: dict[Platform, list[NormalizedMessage]] = Field(default_factory=dict)
    needs_authentication: bool = False
    failed_accounts: list[str] = Field(default_factory=list)

    @property
    def services_with_results(self) -> list[Platform]:
        return [platform for platform, messages in self.results_by_platform.items() if messages]

    def is_empty(self) -> bool:
        return not self.services_with_results

    def sources(self, cap: int) -> dict[Platform, list[NormalizedMessage]]:
        """Each platform's contribution truncated independently, grouping preserved."""
        return {platform: messages[:cap] for platform, messages in self.results_by_platform.items()}

    def totals(self) -> dict[Platform, int]:
        return {platform: len(messages) for platform, messages in self.results_by_platform.items()}

    def all_ids(self) -> dict[Platform, list[str]]:
        return {
            platform: [message.id for message in messages]
            for platform, messages in self.results_by_platform.items()
        }

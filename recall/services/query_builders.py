"""
Platform query builders.
Translate one SearchIntent into each platform's query dialect.
"""

from datetime import datetime

from recall.models.domain.search_domain import Platform, PlatformQuery, SearchIntent
from recall.utils.date_hints import resolve_date_hint

# Words users type to describe the search itself rather than its subject
MAIL_STOP_WORDS = frozenset(
    {
        "email",
        "emails",
        "find",
        "search",
        "show",
        "get",
        "conversation",
        "conversations",
        "message",
        "messages",
    }
)


def filter_stop_words(keywords: list[str]) -> list[str]:
    return [keyword for keyword in keywords if keyword.strip().lower() not in MAIL_STOP_WORDS]


def build_mail_query(intent: SearchIntent, now: datetime | None = None) -> str:
    """
    Build a Gmail search string.

    Fuzzy matching is left to Gmail's own full-text search: a bare name
    matches sender, recipients, subject and body. An all-empty intent
    yields "" which retrievers treat as "most recent".
    """
    parts: list[str] = []

    for address in intent.email_addresses:
        parts.append(f"(from:{address} OR to:{address})")

    parts.extend(intent.names)
    parts.extend(intent.partial_names)
    parts.extend(intent.topics)
    parts.extend(filter_stop_words(intent.keywords))

    for hint in intent.date_hints:
        parts.extend(resolve_date_hint(hint, now).to_gmail_clauses())

    return " ".join(part.strip() for part in parts if part and part.strip())


def build_keyword_terms(intent: SearchIntent) -> list[str]:
    """Lowercased single-word terms for the client-side substring filter."""
    terms: list[str] = []
    seen: set[str] = set()
    for phrase in intent.keyword_terms():
        for term in phrase.lower().split():
            if term not in seen:
                seen.add(term)
                terms.append(term)
    return terms


def build_platform_query(
    platform: Platform, intent: SearchIntent, now: datetime | None = None
) -> PlatformQuery:
    if platform is Platform.MAIL:
        return PlatformQuery(platform=platform, text=build_mail_query(intent, now))
    return PlatformQuery(platform=platform, terms=build_keyword_terms(intent))

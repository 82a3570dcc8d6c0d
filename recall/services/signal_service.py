# recall/services/signal_service.py
"""
Memory signal scanner.

Walks a user's recent documents account by account, in small sequential
batches, asks the language backend for up to two typed signals per document,
and returns the most important ones.
"""

import asyncio
import json
import re
import time
from datetime import UTC, datetime, timedelta
from typing import Any, Protocol

from recall.config import settings
from recall.infrastructure.observability.logging import get_logger, log_pipeline_stage
from recall.models.domain.chat_domain import buffered_message
from recall.models.domain.search_domain import AccountHandle, Platform
from recall.models.domain.signal_domain import (
    MAX_QUOTES,
    QUOTE_MAX_CHARS,
    SUMMARY_MAX_CHARS,
    TITLE_MAX_CHARS,
    MemorySignal,
    SignalDocument,
    SignalReport,
    SignalType,
)
from recall.repositories.message_cache import MessageCache
from recall.services.account_service import AccountService
from recall.services.google_gmail_service import GoogleGmailError, GoogleGmailService
from recall.services.openai_service import ConfigurationError, LanguageBackendError, OpenAIService
from recall.services.retrieval.searchers import AccountError
from recall.utils.text import parse_timestamp, truncate

logger = get_logger(__name__)

MIN_BODY_CHARS = 50
SNIPPET_SUFFICIENT_CHARS = 100
PROMPT_BODY_CHARS = 2000
SKIP_MARKERS = ("notification", "automated", "no-reply")
DEFAULT_IMPORTANCE = 5
MAX_SIGNALS_PER_DOCUMENT = 2

_FENCE_RE = re.compile(r"```(?:json)?\s*|\s*```")

SIGNAL_SYSTEM_PROMPT = """You analyze a single message and extract memories that actually matter. Focus on:
- Decisions made or pending
- Risks identified or potential issues
- Open questions that need answers
- Commitments made (by sender or requested)
- Insights or important learnings

Only extract memories that are truly significant. Skip routine notifications, automated messages or trivial content.

Return up to 2 memories as a JSON array (prefer quality over quantity). Each memory has:
- type: one of "Decision", "Risk", "Open Question", "Commitment", "Insight"
- title: concise idea-level title (max 60 chars, no sender name)
- summary: why this matters (max 150 chars)
- importance: 1-10 (be conservative, high values only for truly critical items)
- unresolved: boolean (true if action is needed or a question is unanswered)
- highlightedQuotes: 1-2 key quotes from the message (max 100 chars each)

If nothing meaningful is found, return []

Format: [{"type": "...", "title": "...", "summary": "...", "importance": 8, "unresolved": true, "highlightedQuotes": ["..."]}]"""


def is_analyzable(document: SignalDocument) -> bool:
    """Cheap pre-filter: body too short, or a subject that looks machine-generated."""
    if len(document.body) < MIN_BODY_CHARS:
        return False
    subject = document.subject.lower()
    return not any(marker in subject for marker in SKIP_MARKERS)


def _clamp_importance(value: Any) -> int:
    if isinstance(value, bool):
        return DEFAULT_IMPORTANCE
    try:
        importance = int(value)
    except (TypeError, ValueError, OverflowError):
        return DEFAULT_IMPORTANCE
    return max(1, min(10, importance))


def _quotes(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    quotes = [item.strip() for item in value if isinstance(item, str) and item.strip()]
    return [truncate(quote, QUOTE_MAX_CHARS) for quote in quotes[:MAX_QUOTES]]


def parse_signals(raw: str, document: SignalDocument) -> list[MemorySignal]:
    """Parse a JSON array of signals. Anything unparsable yields []."""
    cleaned = _FENCE_RE.sub("", raw or "").strip()
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as e:
        logger.warning("Signal response is not valid JSON", document_id=document.id, error=str(e))
        return []

    if not isinstance(parsed, list):
        return []

    signals: list[MemorySignal] = []
    for item in parsed:
        if len(signals) >= MAX_SIGNALS_PER_DOCUMENT:
            break
        if not isinstance(item, dict):
            continue

        signal_type = SignalType.parse(item.get("type"))
        title = item.get("title")
        summary = item.get("summary")
        if signal_type is None or not isinstance(title, str) or not isinstance(summary, str):
            continue
        if not title.strip() or not summary.strip():
            continue

        signals.append(
            MemorySignal(
                id=f"{document.id}-signal-{len(signals)}",
                type=signal_type,
                title=truncate(title.strip(), TITLE_MAX_CHARS),
                summary=truncate(summary.strip(), SUMMARY_MAX_CHARS),
                importance=_clamp_importance(item.get("importance", DEFAULT_IMPORTANCE)),
                unresolved=item.get("unresolved") is True,
                source_sender_label=document.sender_label,
                source_timestamp=document.timestamp,
                quotes=_quotes(item.get("highlightedQuotes", item.get("quotes"))),
                source_url=document.url,
            )
        )
    return signals


class SignalExtractor:
    """One language backend call per document."""

    def __init__(self, backend: OpenAIService):
        self.backend = backend

    def _build_prompt(self, document: SignalDocument) -> str:
        return (
            f"Subject: {document.subject}\n"
            f"From: {document.sender_label}\n"
            f"Date: {document.timestamp}\n"
            f"Body: {document.body[:PROMPT_BODY_CHARS]}"
        )

    async def extract(self, document: SignalDocument) -> list[MemorySignal]:
        try:
            raw = await self.backend.complete(
                SIGNAL_SYSTEM_PROMPT,
                self._build_prompt(document),
                temperature=0.7,
                max_tokens=600,
            )
        except LanguageBackendError as e:
            logger.warning("Signal analysis failed", document_id=document.id, error=str(e))
            return []
        return parse_signals(raw, document)


class SignalDocumentSource(Protocol):
    async def list_recent(self, account: AccountHandle) -> list[Any]: ...

    async def load(self, account: AccountHandle, ref: Any) -> SignalDocument | None: ...


class GmailSignalSource:
    """Recent inbox mail. Metadata first; the full body only when the snippet is thin."""

    def __init__(
        self,
        gmail_service: GoogleGmailService,
        lookback_days: int | None = None,
        max_documents: int | None = None,
    ):
        self.gmail_service = gmail_service
        self.lookback_days = lookback_days or settings.SIGNAL_LOOKBACK_DAYS
        self.max_documents = max_documents or settings.SIGNAL_MAX_DOCUMENTS_PER_ACCOUNT

    def _token(self, account: AccountHandle) -> str:
        if not account.access_token:
            raise AccountError(
                "Account has no access token",
                platform=Platform.MAIL,
                account_id=account.account_id,
                auth_expired=True,
            )
        return account.access_token

    async def list_recent(self, account: AccountHandle) -> list[str]:
        query = f"newer_than:{self.lookback_days}d -is:spam -is:trash"
        return await self.gmail_service.list_message_ids(
            self._token(account), query, max_results=self.max_documents
        )

    async def load(self, account: AccountHandle, ref: str) -> SignalDocument | None:
        token = self._token(account)
        try:
            message = await self.gmail_service.get_message(token, ref, format="metadata")
            body = message.snippet
            if len(body) < SNIPPET_SUFFICIENT_CHARS:
                full = await self.gmail_service.get_message(token, ref, format="full")
                body = full.body or body
        except GoogleGmailError as e:
            logger.warning(
                "Failed to load message for signals",
                account=account.display_label,
                message_id=ref,
                error=str(e),
            )
            return None

        url = settings.gmail_message_url(account.account_index, message.id)
        return message.to_signal_document(url, body)


class BufferedSignalSource:
    """Synced chat or workspace messages newer than the lookback window."""

    def __init__(
        self,
        message_cache: MessageCache,
        lookback_days: int | None = None,
        max_documents: int | None = None,
    ):
        self.message_cache = message_cache
        self.lookback_days = lookback_days or settings.SIGNAL_LOOKBACK_DAYS
        self.max_documents = max_documents or settings.SIGNAL_MAX_DOCUMENTS_PER_ACCOUNT

    async def list_recent(
        self, account: AccountHandle, now: datetime | None = None
    ) -> list[dict[str, Any]]:
        cutoff = (now or datetime.now(UTC)) - timedelta(days=self.lookback_days)
        buffer = await self.message_cache.get_buffer(account.platform, account.account_id)

        recent = []
        for item in buffer:
            sent_at = parse_timestamp(item.get("timestamp"))
            if sent_at is None or sent_at < cutoff:
                continue
            recent.append(item)
            if len(recent) >= self.max_documents:
                break
        return recent

    async def load(self, account: AccountHandle, ref: dict[str, Any]) -> SignalDocument | None:
        return buffered_message(account.platform, ref).to_signal_document()


def rank_signals(signals: list[MemorySignal], limit: int, min_importance: int) -> SignalReport:
    """
    Unresolved first, then by importance; first occurrence of each
    (type, title) kept; low-importance signals dropped; truncated to ``limit``.
    """
    ordered = sorted(signals, key=lambda signal: (not signal.unresolved, -signal.importance))

    seen: set[tuple[str, str]] = set()
    unique: list[MemorySignal] = []
    for signal in ordered:
        key = signal.dedup_key()
        if key in seen:
            continue
        seen.add(key)
        unique.append(signal)

    important = [signal for signal in unique if signal.importance >= min_importance]
    return SignalReport(signals=important[:limit], total_considered=len(unique))


class SignalService:
    def __init__(
        self,
        backend: OpenAIService,
        account_service: AccountService,
        sources: dict[Platform, SignalDocumentSource],
        extractor: SignalExtractor | None = None,
        batch_size: int | None = None,
        batch_delay: float | None = None,
        analysis_timeout: float | None = None,
        min_importance: int | None = None,
        extra_target: int | None = None,
    ):
        self.backend = backend
        self.account_service = account_service
        self.sources = sources
        self.extractor = extractor or SignalExtractor(backend)
        self.batch_size = batch_size or settings.SIGNAL_BATCH_SIZE
        self.batch_delay = (
            batch_delay if batch_delay is not None else settings.SIGNAL_BATCH_DELAY_SECONDS
        )
        self.analysis_timeout = analysis_timeout or settings.SIGNAL_ANALYSIS_TIMEOUT_SECONDS
        self.min_importance = min_importance or settings.SIGNAL_MIN_IMPORTANCE
        self.extra_target = extra_target if extra_target is not None else settings.SIGNAL_EXTRA_TARGET

    async def get_signals(
        self, user_id: str, platform: Platform = Platform.MAIL, limit: int = 5
    ) -> SignalReport:
        """
        Scan recent documents of every account on ``platform``.

        Raises:
            ConfigurationError: If the language backend is not configured
        """
        self.backend.ensure_configured()
        started = time.perf_counter()

        source = self.sources.get(platform)
        if source is None:
            logger.warning("No signal source for platform", platform=platform.value)
            return SignalReport()

        accounts = await self.account_service.list_accounts(user_id, platform)
        target = limit + self.extra_target
        collected: list[MemorySignal] = []
        failures = 0

        for account in accounts:
            if len(collected) >= target:
                logger.info("Signal target reached, skipping remaining accounts", target=target)
                break

            try:
                refs = await source.list_recent(account)
            except Exception as e:
                failures += 1
                logger.error(
                    "Failed to list documents for signals",
                    platform=platform.value,
                    account=account.display_label,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                continue

            collected.extend(await self._scan_account(source, account, refs, target, collected))

        report = rank_signals(collected, limit, self.min_importance)

        log_pipeline_stage(
            "signals",
            user_id=user_id,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
            result_count=len(report.signals),
            failures=failures,
        )
        return report

    async def _scan_account(
        self,
        source: SignalDocumentSource,
        account: AccountHandle,
        refs: list[Any],
        target: int,
        collected: list[MemorySignal],
    ) -> list[MemorySignal]:
        found: list[MemorySignal] = []

        for start in range(0, len(refs), self.batch_size):
            batch = refs[start : start + self.batch_size]
            results = await asyncio.gather(*(self._analyze(source, account, ref) for ref in batch))
            for signals in results:
                found.extend(signals)

            if len(collected) + len(found) >= target:
                break
            if start + self.batch_size < len(refs):
                await asyncio.sleep(self.batch_delay)

        logger.info(
            "Account scanned for signals",
            account=account.display_label,
            documents=len(refs),
            signals=len(found),
        )
        return found

    async def _analyze(
        self, source: SignalDocumentSource, account: AccountHandle, ref: Any
    ) -> list[MemorySignal]:
        try:
            document = await source.load(account, ref)
        except Exception as e:
            logger.warning(
                "Failed to load document for signals",
                account=account.display_label,
                error=str(e),
                error_type=type(e).__name__,
            )
            return []

        if document is None or not is_analyzable(document):
            return []

        try:
            return await asyncio.wait_for(
                self.extractor.extract(document), timeout=self.analysis_timeout
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Signal analysis timed out",
                document_id=document.id,
                timeout=self.analysis_timeout,
            )
            return []
        except ConfigurationError:
            raise
        except Exception as e:
            logger.warning(
                "Signal analysis failed",
                account=account.display_label,
                document_id=document.id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return []

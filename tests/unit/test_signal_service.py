import asyncio
import json
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, patch

import pytest

from recall.models.domain.search_domain import Platform
from recall.models.domain.signal_domain import SignalDocument, SignalType
from recall.repositories.account_repository import InMemoryAccountRepository
from recall.repositories.message_cache import InMemoryMessageCache
from recall.services.account_service import AccountService
from recall.services.google_gmail_service import GoogleGmailError
from recall.services.openai_service import ConfigurationError, LanguageBackendError
from recall.services.signal_service import (
    BufferedSignalSource,
    GmailSignalSource,
    SignalExtractor,
    SignalService,
    is_analyzable,
    parse_signals,
    rank_signals,
)
from tests.conftest import FakeBackend, FakeGmailService, gmail_payload, make_account

LONG_SNIPPET = "We need to decide on the vendor contract before the end of the quarter, please review. " * 2


def _doc(message_id: str, subject: str, snippet: str = LONG_SNIPPET, body: str = "") -> dict:
    return gmail_payload(message_id, subject=subject, snippet=snippet, body=body)


def _signal(type_="Risk", title="Vendor delay", importance=8, unresolved=False, **extra):
    return {
        "type": type_,
        "title": title,
        "summary": f"{title} matters",
        "importance": importance,
        "unresolved": unresolved,
        **extra,
    }


def _by_subject(responses: dict[str, list[dict]]):
    def respond(system_prompt, user_text):
        subject = user_text.split("\n", 1)[0].removeprefix("Subject: ")
        return json.dumps(responses.get(subject, []))

    return respond


def _service(backend, gmail, accounts, **kwargs):
    repository = InMemoryAccountRepository({"user-1": accounts})
    kwargs.setdefault("batch_delay", 0)
    return SignalService(
        backend,
        AccountService(repository),
        {Platform.MAIL: GmailSignalSource(gmail)},
        **kwargs,
    )


DOCUMENT = SignalDocument(id="m1", subject="Contract", body="x" * 60, sender_label="bob")


# ============================================================================
# EXTRACTION
# ============================================================================


def test_parse_signals_applies_field_rules():
    raw = "```json\n" + json.dumps(
        [
            {
                "type": "open question",
                "title": "T" * 80,
                "summary": "Who signs?",
                "importance": 15,
                "highlightedQuotes": ["  first  ", "", "q" * 150, "third"],
            },
            {"type": "Decision", "title": "Plan B", "summary": "Chosen", "importance": "high"},
        ]
    ) + "\n```"

    signals = parse_signals(raw, DOCUMENT)

    assert [signal.id for signal in signals] == ["m1-signal-0", "m1-signal-1"]
    question, decision = signals
    assert question.type is SignalType.OPEN_QUESTION
    assert len(question.title) == 60
    assert question.importance == 10
    assert question.unresolved is False
    assert question.quotes == ["first", "q" * 100]
    assert question.source_sender_label == "bob"
    assert decision.importance == 5


def test_parse_signals_drops_invalid_elements_and_keeps_two():
    raw = json.dumps(
        [
            {"type": "Rumor", "title": "x", "summary": "y"},
            {"type": "Risk", "title": "No summary"},
            _signal(title="one"),
            _signal(title="two", importance=0),
            _signal(title="three"),
        ]
    )

    signals = parse_signals(raw, DOCUMENT)

    assert [signal.title for signal in signals] == ["one", "two"]
    assert signals[1].importance == 1


@pytest.mark.parametrize("raw", ["", "not json", '{"type": "Risk"}', "[1, 2"])
def test_parse_signals_failures_yield_nothing(raw):
    assert parse_signals(raw, DOCUMENT) == []


def test_pre_filter():
    assert is_analyzable(DOCUMENT)
    assert not is_analyzable(DOCUMENT.model_copy(update={"body": "too short"}))
    assert not is_analyzable(DOCUMENT.model_copy(update={"subject": "No-Reply: receipt"}))
    assert not is_analyzable(DOCUMENT.model_copy(update={"subject": "Automated build report"}))


def test_pre_filter_ignores_markers_in_body():
    document = DOCUMENT.model_copy(
        update={
            "subject": "Wire transfer failed",
            "body": "The bank sent a notification that our vendor wire failed; we must resend it by Friday.",
        }
    )

    assert is_analyzable(document)


def test_parse_signals_infinite_importance_falls_back_to_default():
    signals = parse_signals('[{"type": "Risk", "title": "Big", "summary": "s", "importance": 1e999}]', DOCUMENT)

    assert [signal.importance for signal in signals] == [5]


def test_rank_signals_sorts_dedups_filters_and_truncates():
    signals = parse_signals(
        json.dumps([_signal(title="Vendor delay", importance=7), _signal("Insight", "Minor", 4)]),
        DOCUMENT,
    ) + parse_signals(
        json.dumps([_signal(title="vendor DELAY", importance=9, unresolved=True)]),
        DOCUMENT.model_copy(update={"id": "m2"}),
    ) + parse_signals(
        json.dumps([_signal("Decision", "Plan B", 8)]),
        DOCUMENT.model_copy(update={"id": "m3"}),
    )

    report = rank_signals(signals, limit=5, min_importance=6)

    assert [(signal.id, signal.importance) for signal in report.signals] == [
        ("m2-signal-0", 9),
        ("m3-signal-0", 8),
    ]
    assert report.total_considered == 3
    assert len(rank_signals(signals, limit=1, min_importance=6).signals) == 1


@pytest.mark.asyncio
async def test_extractor_backend_failure_yields_nothing():
    extractor = SignalExtractor(FakeBackend(lambda s, u: LanguageBackendError("down")))

    assert await extractor.extract(DOCUMENT) == []


# ============================================================================
# SCANNING
# ============================================================================


@pytest.mark.asyncio
async def test_get_signals_end_to_end():
    gmail = FakeGmailService(
        {
            "token": [
                _doc("m1", "Vendor"),
                _doc("m2", "Vendor again"),
                _doc("m3", "Plan"),
            ]
        }
    )
    backend = FakeBackend(
        _by_subject(
            {
                "Vendor": [_signal(title="Vendor delay", importance=7), _signal("Insight", "Minor", 4)],
                "Vendor again": [_signal(title="vendor delay", importance=9, unresolved=True)],
                "Plan": [_signal("Decision", "Plan B", 8)],
            }
        )
    )
    service = _service(backend, gmail, [make_account("a")])

    report = await service.get_signals("user-1", Platform.MAIL, limit=5)

    assert [signal.title for signal in report.signals] == ["vendor delay", "Plan B"]
    assert all(signal.importance >= 6 for signal in report.signals)
    assert report.total_considered == 3
    assert report.signals[0].source_url.endswith("/0/#inbox/m2")
    assert gmail.list_calls == [("token", "newer_than:3d -is:spam -is:trash")]


@pytest.mark.asyncio
async def test_unconfigured_backend_raises_before_scanning():
    gmail = FakeGmailService({"token": [_doc("m1", "Vendor")]})
    service = _service(FakeBackend(configured=False), gmail, [make_account("a")])

    with pytest.raises(ConfigurationError):
        await service.get_signals("user-1", Platform.MAIL, limit=5)

    assert gmail.list_calls == []


@pytest.mark.asyncio
async def test_early_stop_skips_remaining_batches_and_accounts():
    gmail = FakeGmailService(
        {
            "token-a": [_doc(f"a{i}", f"Topic {i}") for i in range(6)],
            "token-b": [_doc(f"b{i}", f"Other {i}") for i in range(3)],
        }
    )
    backend = FakeBackend(lambda s, u: json.dumps([_signal(title=u.split("\n", 1)[0])]))
    accounts = [make_account("a", token="token-a"), make_account("b", token="token-b", index=1)]
    service = _service(backend, gmail, accounts)

    report = await service.get_signals("user-1", Platform.MAIL, limit=1)

    assert len(report.signals) == 1
    assert len(backend.calls) == 3
    assert [call[0] for call in gmail.list_calls] == ["token-a"]


@pytest.mark.asyncio
async def test_batches_are_separated_by_delay():
    gmail = FakeGmailService({"token": [_doc(f"m{i}", f"Topic {i}") for i in range(7)]})
    service = _service(FakeBackend(lambda s, u: "[]"), gmail, [make_account("a")], batch_delay=0.2)

    with patch("recall.services.signal_service.asyncio.sleep", new=AsyncMock()) as sleep:
        await service.get_signals("user-1", Platform.MAIL, limit=5)

    assert sleep.await_count == 2
    sleep.assert_awaited_with(0.2)


class _SlowExtractor:
    def __init__(self):
        self.cancelled = False

    async def extract(self, document):
        try:
            await asyncio.sleep(5)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        return []


@pytest.mark.asyncio
async def test_analysis_timeout_yields_zero_signals():
    gmail = FakeGmailService({"token": [_doc("m1", "Vendor")]})
    extractor = _SlowExtractor()
    service = _service(
        FakeBackend(), gmail, [make_account("a")], extractor=extractor, analysis_timeout=0.05
    )

    report = await service.get_signals("user-1", Platform.MAIL, limit=5)

    assert report.signals == []
    assert extractor.cancelled


@pytest.mark.asyncio
async def test_pre_filtered_documents_are_not_analyzed():
    gmail = FakeGmailService(
        {
            "token": [
                _doc("m1", "Weekly notification digest"),
                _doc("m2", "Hi", snippet="short", body="also short"),
            ]
        }
    )
    backend = FakeBackend(lambda s, u: "[]")
    service = _service(backend, gmail, [make_account("a")])

    await service.get_signals("user-1", Platform.MAIL, limit=5)

    assert backend.calls == []


@pytest.mark.asyncio
async def test_full_body_fetched_only_for_thin_snippets():
    gmail = FakeGmailService(
        {
            "token": [
                _doc("rich", "Rich"),
                _doc("thin", "Thin", snippet="Quick note", body="The full body explains " * 5),
            ]
        }
    )
    backend = FakeBackend(lambda s, u: "[]")
    service = _service(backend, gmail, [make_account("a")])

    await service.get_signals("user-1", Platform.MAIL, limit=5)

    formats = {(message_id, fmt) for _, message_id, fmt in gmail.get_calls}
    assert formats == {("rich", "metadata"), ("thin", "metadata"), ("thin", "full")}
    thin_prompt = next(call["user_text"] for call in backend.calls if "Subject: Thin" in call["user_text"])
    assert "The full body explains" in thin_prompt


@pytest.mark.asyncio
async def test_failing_account_is_skipped():
    gmail = FakeGmailService({"token-b": [_doc("b1", "Plan")]})
    gmail.list_errors["token-a"] = GoogleGmailError("Server error", "server_error", 500)
    backend = FakeBackend(_by_subject({"Plan": [_signal("Decision", "Plan B", 8)]}))
    accounts = [make_account("a", token="token-a"), make_account("b", token="token-b", index=1)]
    service = _service(backend, gmail, accounts)

    report = await service.get_signals("user-1", Platform.MAIL, limit=5)

    assert [signal.title for signal in report.signals] == ["Plan B"]


@pytest.mark.asyncio
async def test_buffered_source_respects_lookback_window():
    now = datetime(2025, 6, 15, 12, 0, tzinfo=UTC)
    cache = InMemoryMessageCache()
    await cache.set_buffer(
        Platform.WORKSPACE,
        "s1",
        [
            {"id": "slack-new", "text": "fresh", "timestamp": (now - timedelta(days=1)).isoformat()},
            {"id": "slack-old", "text": "stale", "timestamp": (now - timedelta(days=5)).isoformat()},
            {"id": "slack-bad", "text": "no time", "timestamp": ""},
        ],
    )
    source = BufferedSignalSource(cache)
    account = make_account("s1", Platform.WORKSPACE)

    refs = await source.list_recent(account, now=now)
    document = await source.load(account, refs[0])

    assert [ref["id"] for ref in refs] == ["slack-new"]
    assert document.body == "fresh"


class _ExplodingExtractor:
    """Fails for one document, answers for the rest."""

    async def extract(self, document):
        if document.id == "bad":
            raise RuntimeError("unexpected reply shape")
        return parse_signals(json.dumps([_signal("Decision", "Good", 9)]), document)


@pytest.mark.asyncio
async def test_malformed_importance_does_not_fail_the_scan():
    gmail = FakeGmailService({"token": [_doc("m1", "Broken"), _doc("m2", "Fine")]})
    backend = FakeBackend(
        lambda s, u: '[{"type": "Risk", "title": "Huge", "summary": "s", "importance": 1e999}]'
        if "Subject: Broken" in u
        else json.dumps([_signal("Decision", "Good", 9)])
    )
    service = _service(backend, gmail, [make_account("a")])

    report = await service.get_signals("user-1", Platform.MAIL, limit=5)

    assert [signal.title for signal in report.signals] == ["Good"]


@pytest.mark.asyncio
async def test_unexpected_extraction_error_yields_zero_signals_for_that_document():
    gmail = FakeGmailService({"token": [_doc("bad", "Broken"), _doc("ok", "Fine")]})
    service = _service(FakeBackend(), gmail, [make_account("a")], extractor=_ExplodingExtractor())

    report = await service.get_signals("user-1", Platform.MAIL, limit=5)

    assert [signal.id for signal in report.signals] == ["ok-signal-0"]

import asyncio

import pytest

from recall.models.domain.search_domain import Platform, PlatformQuery
from recall.repositories.account_repository import InMemoryAccountRepository
from recall.repositories.message_cache import InMemoryMessageCache
from recall.services.google_gmail_service import GoogleGmailError
from recall.services.retrieval.fan_out import FanOutRetriever
from recall.services.retrieval.searchers import (
    AccountError,
    BufferedChatSearcher,
    GmailSearcher,
)
from tests.conftest import FakeGmailService, gmail_payload, make_account

MAIL_QUERY = PlatformQuery(platform=Platform.MAIL, text="budget")


def _mailboxes():
    return {
        "token-a": [
            gmail_payload("a1", date="Mon, 06 Jan 2025 10:00:00 +0000", body="budget a1"),
            gmail_payload("a2", date="Wed, 01 Jan 2025 10:00:00 +0000", body="budget a2"),
        ],
        "token-b": [
            gmail_payload("b1", date="Sat, 04 Jan 2025 10:00:00 +0000", body="budget b1"),
        ],
    }


def _retriever(gmail, repository=None, cache=None, max_concurrency=None):
    buffered = BufferedChatSearcher(cache or InMemoryMessageCache())
    return FanOutRetriever(
        searchers={
            Platform.MAIL: GmailSearcher(gmail),
            Platform.CHAT: buffered,
            Platform.WORKSPACE: buffered,
        },
        account_repository=repository,
        max_concurrency=max_concurrency,
    )


@pytest.mark.asyncio
async def test_results_from_all_accounts_ranked_newest_first():
    gmail = FakeGmailService(_mailboxes())
    accounts = [make_account("a", token="token-a"), make_account("b", token="token-b", index=1)]

    result = await _retriever(gmail).retrieve(accounts, MAIL_QUERY, 20)

    assert [message.id for message in result.messages] == ["a1", "b1", "a2"]
    assert result.failed_accounts == []
    assert len(result.succeeded_accounts) == 2
    assert result.messages[1].external_url.endswith("/1/#inbox/b1")


@pytest.mark.asyncio
async def test_one_failing_account_is_isolated():
    gmail = FakeGmailService(_mailboxes())
    gmail.list_errors["token-b"] = GoogleGmailError("Server error", "server_error", 500)
    accounts = [make_account("a", token="token-a"), make_account("b", token="token-b")]

    result = await _retriever(gmail).retrieve(accounts, MAIL_QUERY, 20)

    assert [message.id for message in result.messages] == ["a1", "a2"]
    assert [outcome.account.account_id for outcome in result.failed_accounts] == ["b"]
    assert not result.failed_accounts[0].error.auth_expired


@pytest.mark.asyncio
async def test_expired_mail_credential_is_invalidated():
    gmail = FakeGmailService(_mailboxes())
    gmail.list_errors["token-b"] = GoogleGmailError("Unauthorized", "unauthorized", 401)
    account_a = make_account("a", token="token-a")
    account_b = make_account("b", token="token-b")
    repository = InMemoryAccountRepository({"user-1": [account_a, account_b]})

    result = await _retriever(gmail, repository).retrieve(
        [account_a, account_b], MAIL_QUERY, 20, user_id="user-1"
    )

    assert result.failed_accounts[0].error.auth_expired
    assert [account.account_id for account in await repository.list_accounts("user-1")] == ["a"]


@pytest.mark.asyncio
async def test_account_without_token_fails_as_expired():
    gmail = FakeGmailService(_mailboxes())

    result = await _retriever(gmail).retrieve([make_account("x", token=None)], MAIL_QUERY, 20)

    assert result.messages == []
    assert result.failed_accounts[0].error.auth_expired
    assert gmail.list_calls == []


@pytest.mark.asyncio
async def test_empty_mail_query_fetches_most_recent():
    gmail = FakeGmailService(_mailboxes())

    result = await _retriever(gmail).retrieve(
        [make_account("a", token="token-a")], PlatformQuery(platform=Platform.MAIL), 20
    )

    assert gmail.list_calls == [("token-a", None)]
    assert len(result.messages) == 2


@pytest.mark.asyncio
async def test_per_account_limit_bounds_detail_fetches():
    gmail = FakeGmailService(_mailboxes())

    result = await _retriever(gmail).retrieve([make_account("a", token="token-a")], MAIL_QUERY, 1)

    assert [message.id for message in result.messages] == ["a1"]
    assert len(gmail.get_calls) == 1


@pytest.mark.asyncio
async def test_unreadable_message_is_skipped():
    gmail = FakeGmailService(_mailboxes())
    gmail.get_errors["a1"] = GoogleGmailError("Not found", "not_found", 404)

    result = await _retriever(gmail).retrieve([make_account("a", token="token-a")], MAIL_QUERY, 20)

    assert [message.id for message in result.messages] == ["a2"]
    assert result.failed_accounts == []


@pytest.mark.asyncio
async def test_buffered_search_filters_synced_messages():
    cache = InMemoryMessageCache()
    await cache.set_buffer(
        Platform.CHAT,
        "d1",
        [
            {"id": "discord-1", "content": "Budget review", "timestamp": "2025-01-02T00:00:00Z"},
            {"id": "discord-2", "content": "Lunch?", "timestamp": "2025-01-03T00:00:00Z"},
        ],
    )
    query = PlatformQuery(platform=Platform.CHAT, terms=["budget"])

    result = await _retriever(FakeGmailService(), cache=cache).retrieve(
        [make_account("d1", Platform.CHAT)], query, 20
    )

    assert [message.id for message in result.messages] == ["discord-1"]


class _SlowSearcher:
    def __init__(self):
        self.in_flight = 0
        self.peak = 0

    async def search(self, account, query, limit):
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        await asyncio.sleep(0.01)
        self.in_flight -= 1
        return []


@pytest.mark.asyncio
async def test_concurrency_is_capped():
    searcher = _SlowSearcher()
    retriever = FanOutRetriever({Platform.MAIL: searcher}, max_concurrency=2)
    accounts = [make_account(f"acct-{i}") for i in range(6)]

    await retriever.retrieve(accounts, MAIL_QUERY, 5)

    assert searcher.peak == 2


@pytest.mark.asyncio
async def test_concurrency_cap_is_shared_across_platforms():
    searcher = _SlowSearcher()
    retriever = FanOutRetriever(
        {Platform.MAIL: searcher, Platform.CHAT: searcher, Platform.WORKSPACE: searcher},
        max_concurrency=2,
    )
    queries = [PlatformQuery(platform=platform) for platform in Platform]

    await asyncio.gather(
        *(
            retriever.retrieve(
                [make_account(f"{query.platform.value}-{i}", platform=query.platform) for i in range(3)],
                query,
                5,
            )
            for query in queries
        )
    )

    assert searcher.peak == 2


class _BrokenSearcher:
    async def search(self, account, query, limit):
        if account.account_id == "bad":
            raise RuntimeError("unexpected")
        raise AccountError("nope", platform=Platform.MAIL, account_id=account.account_id)


@pytest.mark.asyncio
async def test_unexpected_errors_are_wrapped_per_account():
    retriever = FanOutRetriever({Platform.MAIL: _BrokenSearcher()})

    result = await retriever.retrieve([make_account("bad"), make_account("other")], MAIL_QUERY, 5)

    assert len(result.failed_accounts) == 2
    assert all(isinstance(outcome.error, AccountError) for outcome in result.failed_accounts)

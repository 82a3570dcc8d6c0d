import pytest

from recall.models.domain.search_domain import Platform
from recall.repositories.account_repository import (
    InMemoryAccountRepository,
    RedisAccountRepository,
)
from recall.repositories.message_cache import RedisMessageCache
from recall.services.account_service import AccountService
from tests.conftest import make_account


@pytest.mark.asyncio
async def test_redis_account_repository_round_trip(fake_redis):
    repository = RedisAccountRepository(fake_redis)
    await repository.save_account("user-1", make_account("work", index=1))
    await repository.save_account("user-1", make_account("home", index=0))

    accounts = await repository.list_accounts("user-1")

    assert [account.account_id for account in accounts] == ["home", "work"]
    assert accounts[1].access_token == "token"
    assert "recall:accounts:user-1" in fake_redis.hashes


@pytest.mark.asyncio
async def test_redis_account_repository_skips_unreadable_records(fake_redis):
    repository = RedisAccountRepository(fake_redis)
    await repository.save_account("user-1", make_account("ok"))
    fake_redis.hashes["recall:accounts:user-1"]["broken"] = "{not json"

    accounts = await repository.list_accounts("user-1")

    assert [account.account_id for account in accounts] == ["ok"]


@pytest.mark.asyncio
async def test_redis_invalidate(fake_redis):
    repository = RedisAccountRepository(fake_redis)
    await repository.save_account("user-1", make_account("work"))

    assert await repository.invalidate("user-1", "work") is True
    assert await repository.invalidate("user-1", "work") is False
    assert await repository.list_accounts("user-1") == []


@pytest.mark.asyncio
async def test_redis_message_cache(fake_redis):
    cache = RedisMessageCache(fake_redis)
    await cache.set_buffer(Platform.CHAT, "d1", [{"id": "discord-1"}])
    fake_redis.store["recall:buffer:slack:s1"] = "garbage"

    assert await cache.get_buffer(Platform.CHAT, "d1") == [{"id": "discord-1"}]
    assert await cache.get_buffer(Platform.WORKSPACE, "s1") == []
    assert await cache.get_buffer(Platform.WORKSPACE, "missing") == []


@pytest.mark.asyncio
async def test_accounts_grouped_by_requested_platform():
    repository = InMemoryAccountRepository(
        {
            "user-1": [
                make_account("mail-2", index=1),
                make_account("mail-1", index=0),
                make_account("chat-1", Platform.CHAT),
            ]
        }
    )
    service = AccountService(repository)

    grouped = await service.accounts_by_platform("user-1", [Platform.MAIL, Platform.WORKSPACE])

    assert [account.account_id for account in grouped[Platform.MAIL]] == ["mail-1", "mail-2"]
    assert grouped[Platform.WORKSPACE] == []
    assert Platform.CHAT not in grouped
    assert await service.list_accounts("nobody") == []

"""
Account repositories.
Source of the authenticated accounts a user has connected. Read-only during a
pipeline run except for invalidating a single account whose credential expired.
"""

import asyncio
import json
from typing import Protocol

from recall.infrastructure.observability.logging import get_logger
from recall.models.domain.search_domain import AccountHandle
from recall.services.infrastructure.redis_client import RedisClient

logger = get_logger(__name__)


class AccountRepository(Protocol):
    async def list_accounts(self, user_id: str) -> list[AccountHandle]: ...

    async def save_account(self, user_id: str, account: AccountHandle) -> None: ...

    async def invalidate(self, user_id: str, account_id: str) -> bool: ...


class InMemoryAccountRepository:
    """Process-local account store (local development and tests)."""

    def __init__(self, accounts: dict[str, list[AccountHandle]] | None = None):
        self._accounts: dict[str, dict[str, AccountHandle]] = {}
        self._lock = asyncio.Lock()
        for user_id, handles in (accounts or {}).items():
            self._accounts[user_id] = {handle.account_id: handle for handle in handles}

    async def list_accounts(self, user_id: str) -> list[AccountHandle]:
        return list(self._accounts.get(user_id, {}).values())

    async def save_account(self, user_id: str, account: AccountHandle) -> None:
        async with self._lock:
            self._accounts.setdefault(user_id, {})[account.account_id] = account

    async def invalidate(self, user_id: str, account_id: str) -> bool:
        async with self._lock:
            user_accounts = self._accounts.get(user_id, {})
            removed = user_accounts.pop(account_id, None) is not None
            if not user_accounts:
                self._accounts.pop(user_id, None)

        if removed:
            logger.info("Account invalidated", user_id=user_id, account_id=account_id)
        return removed


class RedisAccountRepository:
    """One Redis hash per user: field = account id, value = AccountHandle JSON."""

    KEY_PREFIX = "recall:accounts"

    def __init__(self, client: RedisClient):
        self.client = client

    def _key(self, user_id: str) -> str:
        return f"{self.KEY_PREFIX}:{user_id}"

    async def list_accounts(self, user_id: str) -> list[AccountHandle]:
        entries = await self.client.hgetall(self._key(user_id))
        accounts = []
        for account_id, payload in entries.items():
            try:
                accounts.append(AccountHandle.model_validate(json.loads(payload)))
            except ValueError as e:
                logger.warning(
                    "Skipping unreadable account record",
                    user_id=user_id,
                    account_id=account_id,
                    error=str(e),
                )
        return sorted(accounts, key=lambda account: (account.platform.value, account.account_index))

    async def save_account(self, user_id: str, account: AccountHandle) -> None:
        await self.client.hset(self._key(user_id), account.account_id, account.model_dump_json())

    async def invalidate(self, user_id: str, account_id: str) -> bool:
        removed = await self.client.hdel(self._key(user_id), account_id)
        if removed:
            logger.info("Account invalidated", user_id=user_id, account_id=account_id)
        return removed

"""
Account enumeration for a user, grouped by platform.
"""

from recall.infrastructure.observability.logging import get_logger
from recall.models.domain.search_domain import AccountHandle, Platform
from recall.repositories.account_repository import AccountRepository

logger = get_logger(__name__)


class AccountService:
    def __init__(self, repository: AccountRepository):
        self.repository = repository

    async def list_accounts(
        self, user_id: str, platform: Platform | None = None
    ) -> list[AccountHandle]:
        """
        Accounts to search for ``user_id``, optionally restricted to one platform.

        Zero accounts is a normal answer, not an error.
        """
        accounts = await self.repository.list_accounts(user_id)
        if platform is not None:
            accounts = [account for account in accounts if account.platform is platform]
        return sorted(accounts, key=lambda account: account.account_index)

    async def accounts_by_platform(
        self, user_id: str, platforms: list[Platform]
    ) -> dict[Platform, list[AccountHandle]]:
        accounts = await self.list_accounts(user_id)
        grouped: dict[Platform, list[AccountHandle]] = {platform: [] for platform in platforms}
        for account in accounts:
            if account.platform in grouped:
                grouped[account.platform].append(account)

        logger.debug(
            "Accounts enumerated",
            user_id=user_id,
            counts={platform.value: len(handles) for platform, handles in grouped.items()},
        )
        return grouped

    async def invalidate(self, user_id: str, account_id: str) -> bool:
        return await self.repository.invalidate(user_id, account_id)

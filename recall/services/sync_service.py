# recall/services/sync_service.py
"""
Buffer sync for platforms searched client-side (chat and workspace).
"""

from dataclasses import dataclass

from recall.config import settings
from recall.infrastructure.observability.logging import get_logger
from recall.models.domain.chat_domain import BufferedMessage
from recall.models.domain.search_domain import AccountHandle, Platform
from recall.repositories.message_cache import MessageCache, merge_message_buffers
from recall.services.account_service import AccountService
from recall.services.chat_clients import DiscordClient, PlatformClientError, SlackClient
from recall.utils.text import parse_timestamp

logger = get_logger(__name__)

SYNCABLE_PLATFORMS = (Platform.CHAT, Platform.WORKSPACE)


class SyncError(Exception):
    """Raised when a platform cannot be synced at all."""

    def __init__(self, message: str, platform: Platform | None = None):
        super().__init__(message)
        self.platform = platform


@dataclass(frozen=True)
class SyncReport:
    synced: int
    total: int
    accounts: int


def _newest_first(messages: list[BufferedMessage]) -> list[BufferedMessage]:
    def key(message: BufferedMessage) -> tuple[int, float]:
        parsed = parse_timestamp(message.timestamp)
        return (1, 0.0) if parsed is None else (0, -parsed.timestamp())

    return sorted(messages, key=key)


class SyncService:
    def __init__(
        self,
        account_service: AccountService,
        message_cache: MessageCache,
        slack_client: SlackClient,
        discord_client: DiscordClient,
        buffer_cap: int | None = None,
    ):
        self.account_service = account_service
        self.message_cache = message_cache
        self.slack_client = slack_client
        self.discord_client = discord_client
        self.buffer_cap = buffer_cap or settings.MESSAGE_BUFFER_CAP

    async def sync(self, user_id: str, platform: Platform) -> SyncReport:
        """
        Fetch recent messages for every account on ``platform`` and merge them
        into each account's buffer.

        Raises:
            SyncError: If the platform has no buffer to sync
        """
        if platform not in SYNCABLE_PLATFORMS:
            raise SyncError(f"{platform.value} is searched server-side", platform=platform)

        accounts = await self.account_service.list_accounts(user_id, platform)
        synced = 0
        total = 0
        succeeded = 0

        for account in accounts:
            try:
                fetched = await self._fetch(account)
            except PlatformClientError as e:
                logger.error(
                    "Sync failed for account",
                    platform=platform.value,
                    account=account.display_label,
                    auth_expired=e.auth_expired,
                    error=str(e),
                )
                continue

            new_items = [message.to_dict() for message in _newest_first(fetched)]
            existing = await self.message_cache.get_buffer(platform, account.account_id)
            merged = merge_message_buffers(new_items, existing, self.buffer_cap)
            await self.message_cache.set_buffer(platform, account.account_id, merged)

            synced += len(new_items)
            total += len(merged)
            succeeded += 1

            logger.info(
                "Account buffer synced",
                platform=platform.value,
                account=account.display_label,
                fetched=len(new_items),
                buffered=len(merged),
            )

        return SyncReport(synced=synced, total=total, accounts=succeeded)

    async def _fetch(self, account: AccountHandle) -> list[BufferedMessage]:
        if account.platform is Platform.WORKSPACE:
            if not account.access_token:
                raise PlatformClientError(
                    "Account has no access token", platform=Platform.WORKSPACE, auth_expired=True
                )
            return await self.slack_client.fetch_recent_messages(account.access_token)

        guild_ids = account.auth_context.get("guild_ids") or []
        return await self.discord_client.fetch_recent_messages(list(guild_ids))

"""
Per-platform account searchers.
Each searcher runs one logical search against one account and returns
NormalizedMessages in the platform's own listing order.
"""

from typing import Protocol

from recall.config import settings
from recall.infrastructure.observability.logging import get_logger
from recall.models.domain.chat_domain import buffered_message
from recall.models.domain.search_domain import (
    AccountHandle,
    NormalizedMessage,
    Platform,
    PlatformQuery,
)
from recall.repositories.message_cache import MessageCache
from recall.services.google_gmail_service import GoogleGmailError, GoogleGmailService

logger = get_logger(__name__)


class AccountError(Exception):
    """One account could not be searched. Isolated to that account."""

    def __init__(
        self,
        message: str,
        platform: Platform,
        account_id: str,
        auth_expired: bool = False,
    ):
        super().__init__(message)
        self.platform = platform
        self.account_id = account_id
        self.auth_expired = auth_expired


class PlatformSearcher(Protocol):
    async def search(
        self, account: AccountHandle, query: PlatformQuery, limit: int
    ) -> list[NormalizedMessage]: ...


class GmailSearcher:
    """Server-side Gmail search, then per-message detail fetch."""

    def __init__(
        self,
        gmail_service: GoogleGmailService,
        list_limit: int | None = None,
        preview_chars: int | None = None,
    ):
        self.gmail_service = gmail_service
        self.list_limit = list_limit or settings.SEARCH_LIST_LIMIT
        self.preview_chars = preview_chars or settings.BODY_PREVIEW_CHARS

    def _account_error(self, account: AccountHandle, error: GoogleGmailError) -> AccountError:
        return AccountError(
            str(error),
            platform=Platform.MAIL,
            account_id=account.account_id,
            auth_expired=error.is_auth_error(),
        )

    async def search(
        self, account: AccountHandle, query: PlatformQuery, limit: int
    ) -> list[NormalizedMessage]:
        token = account.access_token
        if not token:
            raise AccountError(
                "Account has no access token",
                platform=Platform.MAIL,
                account_id=account.account_id,
                auth_expired=True,
            )

        logger.info(
            "Searching Gmail account",
            account=account.display_label,
            query=query.text or "(recent emails)",
        )

        try:
            message_ids = await self.gmail_service.list_message_ids(
                token, query.text or None, max_results=self.list_limit
            )
        except GoogleGmailError as e:
            raise self._account_error(account, e) from e

        messages: list[NormalizedMessage] = []
        for message_id in message_ids[:limit]:
            try:
                message = await self.gmail_service.get_message(token, message_id, format="full")
            except GoogleGmailError as e:
                if e.is_auth_error():
                    raise self._account_error(account, e) from e
                logger.warning(
                    "Skipping message that failed to load",
                    account=account.display_label,
                    message_id=message_id,
                    error=str(e),
                )
                continue

            url = settings.gmail_message_url(account.account_index, message.id)
            messages.append(message.normalize(account, url, self.preview_chars))

        logger.info(
            "Gmail account searched",
            account=account.display_label,
            listed=len(message_ids),
            fetched=len(messages),
        )
        return messages


class BufferedChatSearcher:
    """Client-side OR substring filter over an account's synced buffer."""

    def __init__(self, message_cache: MessageCache, preview_chars: int | None = None):
        self.message_cache = message_cache
        self.preview_chars = preview_chars or settings.BODY_PREVIEW_CHARS

    async def search(
        self, account: AccountHandle, query: PlatformQuery, limit: int
    ) -> list[NormalizedMessage]:
        buffer = await self.message_cache.get_buffer(account.platform, account.account_id)

        results: list[NormalizedMessage] = []
        for item in buffer:
            message = buffered_message(account.platform, item)
            if not message.matches(query.terms):
                continue
            results.append(message.normalize(account, self.preview_chars))
            if len(results) >= limit:
                break

        logger.info(
            "Buffered account searched",
            platform=account.platform.value,
            account=account.display_label,
            buffered=len(buffer),
            matched=len(results),
            terms=query.terms,
        )
        return results

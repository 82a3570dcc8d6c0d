"""
Fan-out retrieval: one concurrent search per account, failures isolated per
account, results merged and ranked by the coordinating coroutine only after
every task has finished.
"""

import asyncio
from dataclasses import dataclass, field

from recall.config import settings
from recall.infrastructure.observability.logging import get_logger
from recall.models.domain.search_domain import (
    AccountHandle,
    NormalizedMessage,
    Platform,
    PlatformQuery,
)
from recall.repositories.account_repository import AccountRepository
from recall.services.retrieval.ranking import rank_by_recency
from recall.services.retrieval.searchers import AccountError, PlatformSearcher

logger = get_logger(__name__)


@dataclass(frozen=True)
class AccountOutcome:
    """Result of searching one account: messages, or the error that stopped it."""

    account: AccountHandle
    messages: list[NormalizedMessage] = field(default_factory=list)
    error: AccountError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class FanOutResult:
    messages: list[NormalizedMessage]
    outcomes: list[AccountOutcome]

    @property
    def failed_accounts(self) -> list[AccountOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.ok]

    @property
    def succeeded_accounts(self) -> list[AccountOutcome]:
        return [outcome for outcome in self.outcomes if outcome.ok]


class FanOutRetriever:
    """
    Runs a platform query against every account of that platform concurrently.

    In-flight account searches are capped by a semaphore. An account that
    fails contributes zero messages; a mail account whose credential expired
    is invalidated in the account repository.
    """

    def __init__(
        self,
        searchers: dict[Platform, PlatformSearcher],
        account_repository: AccountRepository | None = None,
        max_concurrency: int | None = None,
    ):
        self.searchers = searchers
        self.account_repository = account_repository
        self.max_concurrency = max_concurrency or settings.MAX_CONCURRENT_PLATFORM_CALLS
        # shared by every retrieve call so concurrent platforms count against one cap
        self._semaphore = asyncio.Semaphore(self.max_concurrency)

    async def retrieve(
        self,
        accounts: list[AccountHandle],
        query: PlatformQuery,
        per_account_limit: int,
        user_id: str | None = None,
    ) -> FanOutResult:
        if not accounts:
            return FanOutResult(messages=[], outcomes=[])

        outcomes = await asyncio.gather(
            *(
                self._search_account(account, query, per_account_limit, user_id)
                for account in accounts
            )
        )

        flattened = [message for outcome in outcomes for message in outcome.messages]
        ranked = rank_by_recency(flattened)
        failures = sum(1 for outcome in outcomes if not outcome.ok)

        logger.info(
            "Fan-out complete",
            platform=query.platform.value,
            accounts=len(accounts),
            failed_accounts=failures,
            message_count=len(ranked),
        )
        return FanOutResult(messages=ranked, outcomes=list(outcomes))

    async def _search_account(
        self,
        account: AccountHandle,
        query: PlatformQuery,
        limit: int,
        user_id: str | None,
    ) -> AccountOutcome:
        searcher = self.searchers.get(account.platform)
        if searcher is None:
            error = AccountError(
                f"No searcher registered for {account.platform.value}",
                platform=account.platform,
                account_id=account.account_id,
            )
            return AccountOutcome(account=account, error=error)

        async with self._semaphore:
            try:
                messages = await searcher.search(account, query, limit)
                return AccountOutcome(account=account, messages=messages)

            except AccountError as e:
                logger.warning(
                    "Account search failed",
                    platform=account.platform.value,
                    account=account.display_label,
                    auth_expired=e.auth_expired,
                    error=str(e),
                )
                if e.auth_expired:
                    await self._invalidate(account, user_id)
                return AccountOutcome(account=account, error=e)

            except Exception as e:
                logger.error(
                    "Unexpected error searching account",
                    platform=account.platform.value,
                    account=account.display_label,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                error = AccountError(
                    str(e), platform=account.platform, account_id=account.account_id
                )
                return AccountOutcome(account=account, error=error)

    async def _invalidate(self, account: AccountHandle, user_id: str | None) -> None:
        """Drop an expired mail credential so the user is prompted to reconnect."""
        if account.platform is not Platform.MAIL or not user_id or not self.account_repository:
            return
        try:
            await self.account_repository.invalidate(user_id, account.account_id)
        except Exception as e:
            logger.error(
                "Failed to invalidate expired account",
                account_id=account.account_id,
                error=str(e),
            )
